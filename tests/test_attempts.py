import random
from collections import Counter

from learnpath.constants import QuestionType, Role
from learnpath.engine.attempts import can_attempt, present, shuffle
from learnpath.engine.errors import ReasonCode
from learnpath.engine.grading import grade
from learnpath.engine.types import AttemptRecord, Learner, OptionSpec, QuestionSpec, QuizSpec

STUDENT = Learner(id="1")


def attempt(n, passed=False, practice=False, score=None):
    return AttemptRecord(id=str(n), quiz_id="quiz", score=score if score is not None else (90 if passed else 40),
                         passed=passed, is_practice=practice)


def quiz(**kwargs):
    return QuizSpec(id="quiz", topic_id="topic", **kwargs)


class TestCanAttempt:

    def test_two_failed_attempts_of_two_exhaust_the_quiz(self):
        decision = can_attempt(STUDENT, quiz(max_attempts=2), [attempt(1), attempt(2)])
        assert decision.allowed is False
        assert decision.reason == ReasonCode.ATTEMPTS_EXHAUSTED
        assert decision.attempts_remaining == 0

    def test_unlimited_attempts(self):
        prior = [attempt(i) for i in range(25)]
        decision = can_attempt(STUDENT, quiz(max_attempts=None), prior)
        assert decision.allowed is True
        assert decision.attempts_remaining is None
        assert decision.attempts_used == 25

    def test_practice_attempts_do_not_count(self):
        prior = [attempt(1), attempt(2, practice=True), attempt(3, practice=True)]
        decision = can_attempt(STUDENT, quiz(max_attempts=2), prior)
        assert decision.allowed is True
        assert decision.attempts_used == 1
        assert decision.attempts_remaining == 1

    def test_passed_quiz_sends_to_results(self):
        decision = can_attempt(STUDENT, quiz(), [attempt(1, passed=True)])
        assert decision.allowed is False
        assert decision.reason == ReasonCode.ALREADY_PASSED
        assert decision.to_dict()["hasPassed"] is True

    def test_practice_after_passing_even_when_exhausted(self):
        decision = can_attempt(STUDENT, quiz(max_attempts=1), [attempt(1, passed=True)], practice=True)
        assert decision.allowed is True

    def test_practice_before_passing_is_refused(self):
        decision = can_attempt(STUDENT, quiz(), [attempt(1)], practice=True)
        assert decision.allowed is False
        assert decision.reason == ReasonCode.PRACTICE_UNAVAILABLE

    def test_passing_practice_attempt_does_not_count_as_passed(self):
        prior = [attempt(1, passed=True, practice=True)]
        decision = can_attempt(STUDENT, quiz(max_attempts=3), prior)
        assert decision.allowed is True
        assert decision.has_passed is False

    def test_staff_cannot_take_quizzes(self):
        for role in (Role.MANAGER, Role.ADMIN):
            decision = can_attempt(Learner(id="9", role=role), quiz(), [])
            assert decision.allowed is False
            assert decision.reason == ReasonCode.ROLE_NOT_PERMITTED


class TestShuffle:

    def test_is_a_permutation_and_leaves_input_alone(self):
        items = list(range(10))
        out = shuffle(items, random.Random(3))
        assert sorted(out) == items
        assert items == list(range(10))

    def test_every_order_shows_up_evenly(self):
        rng = random.Random(11)
        counts = Counter(tuple(shuffle("abc", rng)) for _ in range(6000))
        assert len(counts) == 6
        assert all(800 < c < 1200 for c in counts.values())

    def test_empty_and_single(self):
        assert shuffle([]) == []
        assert shuffle(["x"]) == ["x"]


class TestPresent:

    def questions(self):
        return [
            QuestionSpec(id=f"q{i}", question_type=QuestionType.MULTIPLE_CHOICE, order_index=i,
                         text=f"Question {i}",
                         options=tuple(OptionSpec(id=f"q{i}-{j}", text=str(j), is_correct=j == 0,
                                                  order_index=j) for j in range(4)))
            for i in range(6)
        ]

    def test_no_answer_key_in_the_view(self):
        view = present(quiz(), self.questions())
        for q in view:
            for option in q["options"]:
                assert set(option) == {"id", "text"}

    def test_authored_order_without_flags(self):
        view = present(quiz(), list(reversed(self.questions())), random.Random(1))
        assert [q["id"] for q in view] == [f"q{i}" for i in range(6)]
        assert [o["id"] for o in view[0]["options"]] == ["q0-0", "q0-1", "q0-2", "q0-3"]

    def test_option_shuffle_keeps_questions_in_place(self):
        view = present(quiz(shuffle_options=True), self.questions(), random.Random(5))
        assert [q["id"] for q in view] == [f"q{i}" for i in range(6)]
        for q in view:
            assert sorted(o["id"] for o in q["options"]) == [f"{q['id']}-{j}" for j in range(4)]

    def test_shuffled_presentation_grades_the_same(self):
        questions = self.questions()
        answers = {q.id: f"{q.id}-0" for q in questions}
        shuffled = quiz(shuffle_questions=True, shuffle_options=True)
        present(shuffled, questions, random.Random(8))
        assert grade(shuffled, questions, answers) == grade(quiz(), questions, answers)
        assert grade(shuffled, questions, answers).score == 100

    def test_short_answer_texts_stay_hidden(self):
        question = QuestionSpec(id="s", question_type=QuestionType.SHORT_ANSWER,
                                options=(OptionSpec("o", "secret", True),))
        assert present(quiz(), [question])[0]["options"] == []
