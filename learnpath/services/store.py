"""
SQLAlchemy implementation of the engine's persistence port.

Rows go in, frozen engine value objects come out. Database errors are rolled
back and re-raised as ``PersistenceFailure``; nothing here retries.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .. import db
from ..engine.clock import utcnow
from ..engine.errors import LearnPathError, PersistenceFailure, RecordNotFound, SaveConflict
from ..engine.types import (
    AttemptRecord, AttemptResult, CourseNode, CourseOutline, EnrollmentState, LearnerState,
    ModuleNode, OptionSpec, ProgressState, QuestionSpec, QuizSpec, TopicNode,
)
from ..models import (
    Answer, Course, Enrollment, Module, ModuleProgress, Question, Quiz, QuizAttempt, Topic,
    TopicProgress,
)

logger = logging.getLogger(__name__)


def _key(value) -> str:
    return str(value) if value is not None else None


def _pk(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RecordNotFound("record", value)


@contextmanager
def write_scope():
    """Commit on success; roll back and wrap database errors otherwise."""
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise SaveConflict("conflicting write", {"detail": str(exc.orig)}) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceFailure(f"database error: {exc.__class__.__name__}") from exc
    except LearnPathError:
        db.session.rollback()
        raise


# --- row -> value object ----------------------------------------------------

def course_node(course: Course) -> CourseNode:
    return CourseNode(id=_key(course.id), status=course.status)


def module_node(module: Module) -> ModuleNode:
    return ModuleNode(
        id=_key(module.id),
        course_id=_key(module.course_id),
        order=module.order,
        prerequisite_id=_key(module.prerequisite_id),
        is_required=module.is_required,
        passing_score=module.passing_score,
        unlock_delay=module.unlock_delay or 0,
    )


def topic_node(topic: Topic) -> TopicNode:
    return TopicNode(
        id=_key(topic.id),
        module_id=_key(topic.module_id),
        order_index=topic.order_index,
        topic_type=topic.topic_type,
        prerequisite_id=_key(topic.prerequisite_id),
        is_required=topic.is_required,
        allow_skip=topic.allow_skip,
        quiz_ids=tuple(_key(q.id) for q in topic.quizzes),
    )


def quiz_spec(quiz: Quiz) -> QuizSpec:
    return QuizSpec(
        id=_key(quiz.id),
        topic_id=_key(quiz.topic_id),
        passing_score=quiz.passing_score,
        max_attempts=quiz.max_attempts,
        shuffle_questions=quiz.shuffle_questions,
        shuffle_options=quiz.shuffle_options,
        show_feedback=quiz.show_feedback,
        time_limit=quiz.time_limit,
        title=quiz.title,
    )


def question_spec(question: Question) -> QuestionSpec:
    return QuestionSpec(
        id=_key(question.id),
        question_type=question.question_type,
        points=question.points,
        order_index=question.order_index,
        allow_partial_credit=question.allow_partial_credit,
        case_sensitive=question.case_sensitive,
        text=question.text,
        options=tuple(
            OptionSpec(id=_key(o.id), text=o.text, is_correct=o.is_correct,
                       order_index=o.order_index)
            for o in question.options
        ),
    )


def attempt_record(attempt: QuizAttempt) -> AttemptRecord:
    return AttemptRecord(
        id=_key(attempt.id),
        quiz_id=_key(attempt.quiz_id),
        score=attempt.score,
        passed=attempt.passed,
        is_practice=attempt.is_practice,
        completed_at=attempt.completed_at,
    )


def enrollment_state(row: Enrollment) -> EnrollmentState:
    return EnrollmentState(
        user_id=_key(row.user_id),
        course_id=_key(row.course_id),
        status=row.status,
        overall_progress=row.overall_progress,
        enrolled_at=row.enrolled_at,
        completed_at=row.completed_at,
        last_access_at=row.last_access_at,
    )


def _progress_state(row) -> ProgressState:
    if isinstance(row, TopicProgress):
        extra = dict(attempt_count=row.attempt_count, average_score=row.average_score,
                     mastery_achieved=row.mastery_achieved, skipped_at=row.skipped_at)
    else:
        extra = dict(progress_percentage=row.progress_percentage)
    return ProgressState(
        status=row.status,
        started_at=row.started_at,
        completed_at=row.completed_at,
        last_access_at=row.last_access_at,
        best_score=row.best_score,
        **extra,
    )


# --- the port ---------------------------------------------------------------

class SqlStore:

    def load_course(self, course_id) -> Course:
        course = db.session.get(Course, _pk(course_id))
        if course is None:
            raise RecordNotFound("course", course_id)
        return course

    def load_course_outline(self, course_id) -> CourseOutline:
        course = self.load_course(course_id)
        modules = list(course.modules)
        topics = [t for m in modules for t in m.topics]
        return CourseOutline(
            course=course_node(course),
            modules=tuple(module_node(m) for m in modules),
            topics=tuple(topic_node(t) for t in topics),
        )

    def load_module(self, module_id) -> Module:
        module = db.session.get(Module, _pk(module_id))
        if module is None:
            raise RecordNotFound("module", module_id)
        return module

    def load_topic(self, topic_id) -> Topic:
        topic = db.session.get(Topic, _pk(topic_id))
        if topic is None:
            raise RecordNotFound("topic", topic_id)
        return topic

    def load_quiz(self, quiz_id) -> Quiz:
        quiz = db.session.get(Quiz, _pk(quiz_id))
        if quiz is None:
            raise RecordNotFound("quiz", quiz_id)
        return quiz

    def load_quiz_with_questions(self, quiz_id) -> Tuple[QuizSpec, List[QuestionSpec]]:
        quiz = self.load_quiz(quiz_id)
        return quiz_spec(quiz), [question_spec(q) for q in quiz.questions]

    def load_prior_attempts(self, student_id, quiz_id) -> List[AttemptRecord]:
        rows = (QuizAttempt.query
                .filter_by(user_id=_pk(student_id), quiz_id=_pk(quiz_id))
                .order_by(QuizAttempt.id.asc())
                .all())
        return [attempt_record(r) for r in rows]

    def load_enrollment(self, student_id, course_id) -> Optional[EnrollmentState]:
        row = self._enrollment_row(student_id, course_id)
        return enrollment_state(row) if row else None

    def load_learner_state(self, student_id, outline: CourseOutline) -> LearnerState:
        uid = _pk(student_id)
        topic_ids = [int(t.id) for t in outline.topics]
        module_ids = [int(m.id) for m in outline.modules]
        quiz_ids = [int(q) for t in outline.topics for q in t.quiz_ids]

        topic_rows = TopicProgress.query.filter(
            TopicProgress.user_id == uid, TopicProgress.topic_id.in_(topic_ids)).all() if topic_ids else []
        module_rows = ModuleProgress.query.filter(
            ModuleProgress.user_id == uid, ModuleProgress.module_id.in_(module_ids)).all() if module_ids else []
        attempt_rows = QuizAttempt.query.filter(
            QuizAttempt.user_id == uid, QuizAttempt.quiz_id.in_(quiz_ids)).all() if quiz_ids else []

        attempts: Dict[str, List[AttemptRecord]] = {}
        for row in attempt_rows:
            attempts.setdefault(_key(row.quiz_id), []).append(attempt_record(row))
        return LearnerState(
            enrollment=self.load_enrollment(student_id, outline.course.id),
            topic_progress={_key(r.topic_id): _progress_state(r) for r in topic_rows},
            module_progress={_key(r.module_id): _progress_state(r) for r in module_rows},
            attempts=attempts,
        )

    def save_attempt(self, student_id, quiz: QuizSpec, result: AttemptResult, time_spent=None,
                     is_practice=False, started_at: Optional[datetime] = None,
                     time_exceeded=False) -> QuizAttempt:
        now = utcnow()
        attempt = QuizAttempt(
            user_id=_pk(student_id),
            quiz_id=_pk(quiz.id),
            started_at=started_at or now,
            completed_at=now,
            score=result.score,
            passed=result.passed,
            questions_correct=result.questions_correct,
            questions_total=result.questions_total,
            questions_skipped=result.questions_skipped,
            points_earned=result.points_earned,
            points_total=result.points_total,
            time_spent=time_spent,
            time_exceeded=time_exceeded,
            requires_manual_grading=result.requires_manual_grading,
            is_practice=is_practice,
        )
        attempt.answers = [
            Answer(question_id=_pk(q.question_id), submitted=_jsonable(q.submitted),
                   is_correct=q.is_correct, points_awarded=q.points_awarded, status=q.status)
            for q in result.per_question
        ]
        db.session.add(attempt)
        db.session.flush()
        return attempt

    def save_progress(self, student_id, item_id, state: ProgressState, kind: str = "topic"):
        uid = _pk(student_id)
        if kind == "topic":
            row = TopicProgress.query.filter_by(user_id=uid, topic_id=_pk(item_id)).first()
            if row is None:
                row = TopicProgress(user_id=uid, topic_id=_pk(item_id))
                db.session.add(row)
            row.attempt_count = state.attempt_count
            row.average_score = state.average_score
            row.mastery_achieved = state.mastery_achieved
            row.skipped_at = state.skipped_at
        else:
            row = ModuleProgress.query.filter_by(user_id=uid, module_id=_pk(item_id)).first()
            if row is None:
                row = ModuleProgress(user_id=uid, module_id=_pk(item_id))
                db.session.add(row)
            row.progress_percentage = state.progress_percentage
        row.status = state.status
        row.started_at = state.started_at
        row.completed_at = state.completed_at
        row.last_access_at = state.last_access_at
        row.best_score = state.best_score
        return row

    def save_enrollment(self, enrollment: EnrollmentState) -> Enrollment:
        row = self._enrollment_row(enrollment.user_id, enrollment.course_id)
        if row is None:
            row = Enrollment(user_id=_pk(enrollment.user_id), course_id=_pk(enrollment.course_id),
                             enrolled_at=enrollment.enrolled_at or utcnow())
            db.session.add(row)
        row.status = enrollment.status
        row.overall_progress = enrollment.overall_progress
        row.completed_at = enrollment.completed_at
        row.last_access_at = enrollment.last_access_at
        return row

    def load_course_enrollments(self, course_id) -> List[EnrollmentState]:
        rows = Enrollment.query.filter_by(course_id=_pk(course_id)).order_by(Enrollment.id.asc()).all()
        return [enrollment_state(r) for r in rows]

    def _enrollment_row(self, student_id, course_id) -> Optional[Enrollment]:
        return Enrollment.query.filter_by(user_id=_pk(student_id), course_id=_pk(course_id)).first()


def _jsonable(value):
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)
