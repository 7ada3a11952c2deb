from sqlalchemy import event, inspect

from . import db
from .constants import (
    CourseStatus, EnrollmentStatus, ProgressStatus, QuestionType, Role, TopicType,
)
from .engine.clock import utcnow
from .engine.errors import AttemptImmutable


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(Role), nullable=False, default=Role.STUDENT)


class Course(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.Enum(CourseStatus), default=CourseStatus.DRAFT, nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)

    modules = db.relationship("Module", back_populates="course", order_by="Module.order",
                              cascade="all, delete-orphan")


class Module(db.Model):
    __table_args__ = (db.UniqueConstraint("course_id", "order", name="uq_module_order"),)

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(db.Integer, db.ForeignKey("course.id"), nullable=False)
    title = db.Column(db.String(120), nullable=False)
    order = db.Column(db.Integer, nullable=False, default=1)
    prerequisite_id = db.Column(db.Integer, db.ForeignKey("module.id"), nullable=True)
    is_required = db.Column(db.Boolean, default=True, nullable=False)
    passing_score = db.Column(db.Integer, default=70, nullable=False)
    unlock_delay = db.Column(db.Integer, default=0, nullable=False)  # hours

    course = db.relationship("Course", back_populates="modules")
    topics = db.relationship("Topic", back_populates="module", order_by="Topic.order_index",
                             cascade="all, delete-orphan")


class Topic(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    module_id = db.Column(db.Integer, db.ForeignKey("module.id"), nullable=False)
    title = db.Column(db.String(120), nullable=False)
    content = db.Column(db.Text)
    duration = db.Column(db.Integer, default=0)  # minutes
    order_index = db.Column(db.Integer, default=1, nullable=False)
    topic_type = db.Column(db.Enum(TopicType), default=TopicType.LESSON, nullable=False)
    prerequisite_id = db.Column(db.Integer, db.ForeignKey("topic.id"), nullable=True)
    is_required = db.Column(db.Boolean, default=True, nullable=False)
    allow_skip = db.Column(db.Boolean, default=False, nullable=False)

    module = db.relationship("Module", back_populates="topics")
    quizzes = db.relationship("Quiz", back_populates="topic", cascade="all, delete-orphan")


class Quiz(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    topic_id = db.Column(db.Integer, db.ForeignKey("topic.id"), nullable=False)
    title = db.Column(db.String(120), nullable=False)
    passing_score = db.Column(db.Integer, default=70, nullable=False)
    max_attempts = db.Column(db.Integer, nullable=True)  # NULL = unlimited
    shuffle_questions = db.Column(db.Boolean, default=False, nullable=False)
    shuffle_options = db.Column(db.Boolean, default=False, nullable=False)
    show_feedback = db.Column(db.Boolean, default=True, nullable=False)
    time_limit = db.Column(db.Integer, nullable=True)  # minutes

    topic = db.relationship("Topic", back_populates="quizzes")
    questions = db.relationship("Question", back_populates="quiz", order_by="Question.order_index",
                                cascade="all, delete-orphan")


class Question(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quiz.id"), nullable=False)
    text = db.Column(db.Text, nullable=False)
    question_type = db.Column(db.Enum(QuestionType), nullable=False,
                              default=QuestionType.MULTIPLE_CHOICE)
    points = db.Column(db.Integer, default=1, nullable=False)
    order_index = db.Column(db.Integer, default=1, nullable=False)
    allow_partial_credit = db.Column(db.Boolean, default=False, nullable=False)
    case_sensitive = db.Column(db.Boolean, default=False, nullable=False)

    quiz = db.relationship("Quiz", back_populates="questions")
    options = db.relationship("Option", back_populates="question", order_by="Option.order_index",
                              cascade="all, delete-orphan")


class Option(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey("question.id"), nullable=False)
    text = db.Column(db.String(255), nullable=False)
    is_correct = db.Column(db.Boolean, default=False, nullable=False)
    order_index = db.Column(db.Integer, default=1, nullable=False)

    question = db.relationship("Question", back_populates="options")


class QuizAttempt(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quiz.id"), nullable=False)
    started_at = db.Column(db.DateTime, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    passed = db.Column(db.Boolean, default=False, nullable=False)
    questions_correct = db.Column(db.Integer, default=0, nullable=False)
    questions_total = db.Column(db.Integer, default=0, nullable=False)
    questions_skipped = db.Column(db.Integer, default=0, nullable=False)
    points_earned = db.Column(db.Float, default=0.0, nullable=False)
    points_total = db.Column(db.Integer, default=0, nullable=False)
    time_spent = db.Column(db.Integer, nullable=True)  # seconds
    time_exceeded = db.Column(db.Boolean, default=False, nullable=False)
    requires_manual_grading = db.Column(db.Boolean, default=False, nullable=False)
    is_practice = db.Column(db.Boolean, default=False, nullable=False)

    answers = db.relationship("Answer", back_populates="attempt", cascade="all, delete-orphan")


class Answer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    attempt_id = db.Column(db.Integer, db.ForeignKey("quiz_attempt.id"), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey("question.id"), nullable=False)
    submitted = db.Column(db.JSON, nullable=True)
    is_correct = db.Column(db.Boolean, default=False, nullable=False)
    points_awarded = db.Column(db.Float, default=0.0, nullable=False)
    status = db.Column(db.String(32), nullable=False)

    attempt = db.relationship("QuizAttempt", back_populates="answers")


class Enrollment(db.Model):
    __table_args__ = (db.UniqueConstraint("user_id", "course_id", name="uq_enrollment"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey("course.id"), nullable=False)
    status = db.Column(db.Enum(EnrollmentStatus), default=EnrollmentStatus.ACTIVE, nullable=False)
    overall_progress = db.Column(db.Integer, default=0, nullable=False)
    enrolled_at = db.Column(db.DateTime, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    last_access_at = db.Column(db.DateTime, nullable=True)


class TopicProgress(db.Model):
    __table_args__ = (db.UniqueConstraint("user_id", "topic_id", name="uq_topic_progress"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    topic_id = db.Column(db.Integer, db.ForeignKey("topic.id"), nullable=False)
    status = db.Column(db.Enum(ProgressStatus), default=ProgressStatus.NOT_STARTED, nullable=False)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    last_access_at = db.Column(db.DateTime, nullable=True)
    attempt_count = db.Column(db.Integer, default=0, nullable=False)
    best_score = db.Column(db.Integer, nullable=True)
    average_score = db.Column(db.Float, nullable=True)
    mastery_achieved = db.Column(db.Boolean, default=False, nullable=False)
    skipped_at = db.Column(db.DateTime, nullable=True)


class ModuleProgress(db.Model):
    __table_args__ = (db.UniqueConstraint("user_id", "module_id", name="uq_module_progress"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id"), nullable=False)
    module_id = db.Column(db.Integer, db.ForeignKey("module.id"), nullable=False)
    status = db.Column(db.Enum(ProgressStatus), default=ProgressStatus.NOT_STARTED, nullable=False)
    progress_percentage = db.Column(db.Integer, default=0, nullable=False)
    best_score = db.Column(db.Integer, nullable=True)
    started_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    last_access_at = db.Column(db.DateTime, nullable=True)


@event.listens_for(QuizAttempt, "before_update")
def _freeze_completed_attempt(mapper, connection, target):
    # completed_at is stamped in the same flush that creates the row
    state = inspect(target)
    history = state.attrs.completed_at.history
    if history.deleted and history.deleted[0] is not None:
        raise AttemptImmutable(target.id)
    if not history.has_changes() and target.completed_at is not None:
        raise AttemptImmutable(target.id)
