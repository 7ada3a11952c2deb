from contextlib import contextmanager

import pytest

from learnpath import db
from learnpath.constants import EnrollmentStatus, QuestionType, Role
from learnpath.engine.errors import ReasonCode
from learnpath.engine.types import Learner
from learnpath.models import Enrollment, QuizAttempt, User
from learnpath.services.authoring import Authoring
from learnpath.services.locks import KeyedLocks
from learnpath.services.progress_service import ProgressAggregator
from learnpath.services.quiz_service import QuizService
from learnpath.services.store import SqlStore
from learnpath.utils.security import hash_password


class RecordingLocks(KeyedLocks):
    """KeyedLocks that also remembers which keys are held right now."""

    def __init__(self):
        super().__init__()
        self.held = []

    @contextmanager
    def hold(self, key):
        with super().hold(key):
            self.held.append(key)
            try:
                yield
            finally:
                self.held.remove(key)


class WatchedStore(SqlStore):
    """Notes the held lock keys at every write."""

    def __init__(self, locks):
        self.locks = locks
        self.writes = []

    def _note(self, kind):
        self.writes.append((kind, list(self.locks.held)))

    def save_attempt(self, *args, **kwargs):
        self._note("attempt")
        return super().save_attempt(*args, **kwargs)

    def save_progress(self, *args, **kwargs):
        self._note("progress")
        return super().save_progress(*args, **kwargs)

    def save_enrollment(self, enrollment):
        self._note("enrollment")
        return super().save_enrollment(enrollment)


@pytest.fixture
def single_try(app):
    """Published course with one lesson holding a one-attempt quiz; the learner is enrolled."""
    owner = User(email="owner@example.com", password_hash=hash_password("pw"), role=Role.MANAGER)
    student = User(email="student@example.com", password_hash=hash_password("pw"))
    db.session.add_all([owner, student])
    db.session.commit()

    authoring = Authoring()
    course = authoring.create_course(owner.id, "Single try")
    module = authoring.create_module(course.id, "Only")
    topic = authoring.create_topic(module.id, "Lesson with quiz")
    quiz = authoring.create_quiz(topic.id, "Quiz", max_attempts=1)
    question = authoring.add_question(quiz.id, "Pick", QuestionType.MULTIPLE_CHOICE,
                                      [{"text": "yes", "is_correct": True}, {"text": "no"}])
    authoring.publish(course.id)
    authoring.enroll(student.id, course.id)

    right = next(o.id for o in question.options if o.is_correct)
    wrong = next(o.id for o in question.options if not o.is_correct)
    return {
        "learner": Learner(id=str(student.id)),
        "course": str(course.id), "topic": str(topic.id), "quiz": str(quiz.id),
        "answers": {"right": {str(question.id): str(right)}, "wrong": {str(question.id): str(wrong)}},
    }


def services():
    locks = RecordingLocks()
    store = WatchedStore(locks)
    aggregator = ProgressAggregator(store, locks=locks)
    return locks, store, QuizService(store, aggregator, locks=locks)


class TestSerialization:

    def test_submit_writes_under_both_keys(self, single_try):
        locks, store, quizzes = services()
        learner = single_try["learner"]

        submission = quizzes.submit(learner, single_try["quiz"], single_try["answers"]["right"])
        assert submission.accepted

        quiz_key = ("quiz", learner.id, single_try["quiz"])
        course_key = ("course", learner.id, single_try["course"])
        assert [kind for kind, _ in store.writes][:1] == ["attempt"]
        assert {kind for kind, _ in store.writes} == {"attempt", "progress", "enrollment"}
        for kind, held in store.writes:
            assert quiz_key in held, kind
            assert course_key in held, kind
        # quiz key first, then course key
        assert store.writes[0][1] == [quiz_key, course_key]
        assert locks.held == []
        assert len(locks) == 0

        enrollment = Enrollment.query.filter_by(user_id=int(learner.id)).one()
        assert enrollment.overall_progress == submission.progress.rollup.enrollment.overall_progress
        assert enrollment.overall_progress == 100
        assert enrollment.status == EnrollmentStatus.COMPLETED

    def test_second_submission_is_refused_after_the_only_attempt(self, single_try):
        _, store, quizzes = services()
        learner = single_try["learner"]

        first = quizzes.submit(learner, single_try["quiz"], single_try["answers"]["wrong"])
        assert first.accepted
        writes = len(store.writes)

        second = quizzes.submit(learner, single_try["quiz"], single_try["answers"]["right"])
        assert not second.accepted
        assert second.decision.reason == ReasonCode.ATTEMPTS_EXHAUSTED
        assert len(store.writes) == writes
        assert QuizAttempt.query.filter_by(user_id=int(learner.id)).count() == 1

        enrollment = Enrollment.query.filter_by(user_id=int(learner.id)).one()
        assert enrollment.overall_progress == 0
        assert enrollment.status == EnrollmentStatus.ACTIVE

    def test_topic_actions_write_under_the_course_key(self, single_try):
        locks, store, _ = services()
        learner = single_try["learner"]
        aggregator = ProgressAggregator(store, locks=locks)

        assert aggregator.start_topic(learner, single_try["topic"]).ok
        assert store.writes
        course_key = ("course", learner.id, single_try["course"])
        for kind, held in store.writes:
            assert held == [course_key], kind
