"""
Attempt policy: who may start another attempt, and in what order the quiz is
shown to them.
"""

import random
from typing import List, Optional, Sequence

from ..constants import QuestionType
from .authorization import TAKE_QUIZ, is_permitted
from .errors import ReasonCode
from .types import AttemptDecision, AttemptRecord, Learner, QuestionSpec, QuizSpec


def can_attempt(learner: Learner, quiz: QuizSpec, prior_attempts: Sequence[AttemptRecord],
                practice: bool = False) -> AttemptDecision:
    graded = [a for a in prior_attempts if not a.is_practice]
    used = len(graded)
    remaining = None if quiz.max_attempts is None else max(0, quiz.max_attempts - used)
    has_passed = any(a.passed for a in graded)

    def decide(allowed, reason=None):
        return AttemptDecision(allowed=allowed, reason=reason, attempts_used=used,
                               attempts_remaining=remaining, has_passed=has_passed)

    if not is_permitted(learner.role, TAKE_QUIZ):
        return decide(False, ReasonCode.ROLE_NOT_PERMITTED)
    if has_passed:
        return decide(True) if practice else decide(False, ReasonCode.ALREADY_PASSED)
    if practice:
        return decide(False, ReasonCode.PRACTICE_UNAVAILABLE)
    if remaining is not None and remaining <= 0:
        return decide(False, ReasonCode.ATTEMPTS_EXHAUSTED)
    return decide(True)


def shuffle(sequence: Sequence, rng: Optional[random.Random] = None) -> list:
    """Uniform random permutation (Fisher-Yates) returned as a new list."""
    rng = rng or random.Random()
    items = list(sequence)
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


def present(quiz: QuizSpec, questions: Sequence[QuestionSpec],
            rng: Optional[random.Random] = None) -> List[dict]:
    """Student-facing question list: no answer key, shuffled when the quiz asks for it."""
    rng = rng or random.Random()
    ordered = sorted(questions, key=lambda q: q.order_index)
    if quiz.shuffle_questions:
        ordered = shuffle(ordered, rng)

    out = []
    for q in ordered:
        options = sorted(q.options, key=lambda o: o.order_index)
        if quiz.shuffle_options:
            options = shuffle(options, rng)
        out.append({
            "id": q.id,
            "text": q.text,
            "questionType": q.question_type.value,
            "points": q.points,
            "allowPartialCredit": q.allow_partial_credit,
            "caseSensitive": q.case_sensitive,
            # short answer keys are option texts, so they never leave the server
            "options": [] if q.question_type == QuestionType.SHORT_ANSWER else [
                {"id": o.id, "text": o.text} for o in options
            ],
        })
    return out
