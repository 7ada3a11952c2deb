"""
Quiz grading.

``grade`` is a pure function of the quiz definition and the submitted answer
map. Authoring mistakes (a choice question without an answer key) raise
``ConfigurationError`` up front; anything wrong with the *submission* is
scored as incorrect and grading carries on with the next question.
"""

import logging
from fractions import Fraction
from math import floor
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..constants import OPTION_KEYED_TYPES, QuestionType, SEQUENCE_TYPES, SINGLE_ANSWER_TYPES
from .errors import ConfigurationError, ErrorKind
from .types import AttemptResult, QuestionResult, QuestionSpec, QuizSpec

logger = logging.getLogger(__name__)

GRADED = "GRADED"
UNANSWERED = "UNANSWERED"
MALFORMED = "MALFORMED"
MANUAL_REVIEW = ErrorKind.REQUIRES_MANUAL_GRADING.value


class _Malformed(Exception):
    pass


def round_half_up(value) -> int:
    return int(floor(Fraction(value) + Fraction(1, 2)))


def validate_question(question: QuestionSpec) -> None:
    """Raise ConfigurationError if the question cannot be auto-graded as authored."""
    qtype = question.question_type
    if question.points < 1:
        raise ConfigurationError(ErrorKind.CONFIG_INVALID_QUESTION,
                                 "question points must be at least 1",
                                 {"question_id": question.id})
    if qtype not in OPTION_KEYED_TYPES:
        return
    correct = question.correct_options()
    if not question.options or not correct:
        raise ConfigurationError(ErrorKind.CONFIG_INVALID_QUESTION,
                                 f"{qtype.value} question needs at least one correct option",
                                 {"question_id": question.id})
    if qtype in SINGLE_ANSWER_TYPES and len(correct) != 1:
        raise ConfigurationError(ErrorKind.CONFIG_INVALID_QUESTION,
                                 f"{qtype.value} question needs exactly one correct option",
                                 {"question_id": question.id, "correct": len(correct)})


def grade(quiz: QuizSpec, questions: Sequence[QuestionSpec],
          submitted_answers: Optional[Mapping[str, Any]]) -> AttemptResult:
    for q in questions:
        validate_question(q)

    answers = submitted_answers if isinstance(submitted_answers, Mapping) else {}
    results = []
    earned = Fraction(0)
    total = 0
    for question in sorted(questions, key=lambda q: q.order_index):
        result, points = _grade_one(question, _lookup(answers, question.id))
        results.append(result)
        earned += points
        total += question.points

    score = round_half_up(100 * earned / total) if total else 0
    score = max(0, min(100, score))
    correct = sum(1 for r in results if r.is_correct)
    skipped = sum(1 for r in results if r.status == UNANSWERED)
    return AttemptResult(
        score=score,
        passed=score >= quiz.passing_score,
        points_earned=float(earned),
        points_total=total,
        questions_correct=correct,
        questions_total=len(results),
        questions_skipped=skipped,
        per_question=tuple(results),
    )


def _lookup(answers: Mapping[str, Any], question_id: str):
    if question_id in answers:
        return answers[question_id]
    # JSON object keys are strings; integer keys show up from in-process callers
    for key, value in answers.items():
        if str(key) == question_id:
            return value
    return None


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _grade_one(question: QuestionSpec, value):
    if _is_blank(value):
        return _result(question, Fraction(0), UNANSWERED, value), Fraction(0)

    if question.question_type == QuestionType.LONG_ANSWER:
        return _result(question, Fraction(0), MANUAL_REVIEW, value), Fraction(0)

    grader = _GRADERS[question.question_type]
    try:
        points = grader(question, value)
    except _Malformed:
        logger.debug("malformed answer for question %s: %r", question.id, value)
        return _result(question, Fraction(0), MALFORMED, value), Fraction(0)
    return _result(question, points, GRADED, value), points


def _result(question: QuestionSpec, points: Fraction, status: str, value) -> QuestionResult:
    return QuestionResult(
        question_id=question.id,
        is_correct=status == GRADED and points == question.points,
        points_awarded=float(points),
        points_possible=question.points,
        status=status,
        submitted=value,
    )


def _as_id(value) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise _Malformed()
    return str(value)


def _as_id_list(value) -> list:
    if not isinstance(value, (list, tuple)):
        raise _Malformed()
    return [_as_id(v) for v in value]


def _grade_single(question: QuestionSpec, value) -> Fraction:
    chosen = _as_id(value)
    key = question.correct_options()[0].id
    return Fraction(question.points) if chosen == key else Fraction(0)


def _grade_multi_select(question: QuestionSpec, value) -> Fraction:
    chosen = set(_as_id_list(value))
    key = {o.id for o in question.correct_options()}
    if chosen == key:
        return Fraction(question.points)
    if not question.allow_partial_credit:
        return Fraction(0)
    right = len(chosen & key)
    wrong = len(chosen - key)
    return max(Fraction(0), Fraction(question.points * (right - wrong), len(key)))


def _grade_short_answer(question: QuestionSpec, value) -> Fraction:
    if not isinstance(value, str):
        raise _Malformed()
    accepted = _normalize(question, (o.text for o in question.correct_options()))
    answer = value.strip() if question.case_sensitive else value.strip().casefold()
    return Fraction(question.points) if answer in accepted else Fraction(0)


def _normalize(question: QuestionSpec, texts: Iterable[str]) -> set:
    if question.case_sensitive:
        return {t.strip() for t in texts}
    return {t.strip().casefold() for t in texts}


def _grade_sequence(question: QuestionSpec, value) -> Fraction:
    submitted = _as_id_list(value)
    canonical = [o.id for o in question.correct_options()]
    if submitted == canonical:
        return Fraction(question.points)
    if not question.allow_partial_credit:
        return Fraction(0)
    matching = sum(1 for got, want in zip(submitted, canonical) if got == want)
    return Fraction(question.points * matching, len(canonical))


_GRADERS = {
    QuestionType.MULTIPLE_CHOICE: _grade_single,
    QuestionType.TRUE_FALSE: _grade_single,
    QuestionType.MULTIPLE_SELECT: _grade_multi_select,
    QuestionType.SHORT_ANSWER: _grade_short_answer,
}
_GRADERS.update({t: _grade_sequence for t in SEQUENCE_TYPES})
