"""
Value objects passed through the engine.

Everything here is a plain dataclass built by the persistence layer; the
engine never touches ORM rows or a session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..constants import (
    CourseStatus, EnrollmentStatus, ProgressStatus, QuestionType, Role, TopicType,
)
from .errors import ErrorKind, ReasonCode


@dataclass(frozen=True)
class Learner:
    id: str
    role: Role = Role.STUDENT


# --- curriculum -------------------------------------------------------------

@dataclass(frozen=True)
class CourseNode:
    id: str
    status: CourseStatus


@dataclass(frozen=True)
class ModuleNode:
    id: str
    course_id: str
    order: int
    prerequisite_id: Optional[str] = None
    is_required: bool = True
    passing_score: int = 70
    unlock_delay: int = 0  # hours


@dataclass(frozen=True)
class TopicNode:
    id: str
    module_id: str
    order_index: int
    topic_type: TopicType = TopicType.LESSON
    prerequisite_id: Optional[str] = None
    is_required: bool = True
    allow_skip: bool = False
    quiz_ids: Tuple[str, ...] = ()

    @property
    def has_quiz(self) -> bool:
        return bool(self.quiz_ids)


@dataclass(frozen=True)
class CourseOutline:
    """A course with its modules and topics, in course order."""

    course: CourseNode
    modules: Tuple[ModuleNode, ...]
    topics: Tuple[TopicNode, ...]

    def __post_init__(self):
        object.__setattr__(self, "modules", tuple(sorted(self.modules, key=lambda m: m.order)))
        object.__setattr__(self, "topics", tuple(self.topics))

    def module(self, module_id: str) -> Optional[ModuleNode]:
        for m in self.modules:
            if m.id == module_id:
                return m
        return None

    def topic(self, topic_id: str) -> Optional[TopicNode]:
        for t in self.topics:
            if t.id == topic_id:
                return t
        return None

    def topics_in(self, module_id: str) -> List[TopicNode]:
        return sorted((t for t in self.topics if t.module_id == module_id),
                      key=lambda t: t.order_index)

    def ordered_topics(self) -> List[TopicNode]:
        out = []
        for m in self.modules:
            out.extend(self.topics_in(m.id))
        return out

    def module_of_quiz(self, quiz_id: str) -> Optional[ModuleNode]:
        for t in self.topics:
            if quiz_id in t.quiz_ids:
                return self.module(t.module_id)
        return None


# --- quizzes ----------------------------------------------------------------

@dataclass(frozen=True)
class OptionSpec:
    id: str
    text: str
    is_correct: bool = False
    order_index: int = 0


@dataclass(frozen=True)
class QuestionSpec:
    id: str
    question_type: QuestionType
    points: int = 1
    order_index: int = 0
    options: Tuple[OptionSpec, ...] = ()
    allow_partial_credit: bool = False
    case_sensitive: bool = False
    text: str = ""

    def correct_options(self) -> List[OptionSpec]:
        return sorted((o for o in self.options if o.is_correct), key=lambda o: o.order_index)


@dataclass(frozen=True)
class QuizSpec:
    id: str
    topic_id: str
    passing_score: int = 70
    max_attempts: Optional[int] = None
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_feedback: bool = True
    time_limit: Optional[int] = None  # minutes
    title: str = ""


@dataclass(frozen=True)
class AttemptRecord:
    id: str
    quiz_id: str
    score: int
    passed: bool
    is_practice: bool = False
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class QuestionResult:
    question_id: str
    is_correct: bool
    points_awarded: float
    points_possible: int
    status: str
    submitted: Any = None

    def to_dict(self) -> dict:
        return {
            "questionId": self.question_id,
            "isCorrect": self.is_correct,
            "pointsAwarded": self.points_awarded,
            "pointsPossible": self.points_possible,
            "status": self.status,
        }


@dataclass(frozen=True)
class AttemptResult:
    score: int
    passed: bool
    points_earned: float
    points_total: int
    questions_correct: int
    questions_total: int
    questions_skipped: int
    per_question: Tuple[QuestionResult, ...]

    @property
    def requires_manual_grading(self) -> bool:
        return any(q.status == ErrorKind.REQUIRES_MANUAL_GRADING.value for q in self.per_question)

    def to_dict(self, include_questions: bool = True) -> dict:
        data = {
            "score": self.score,
            "passed": self.passed,
            "pointsEarned": self.points_earned,
            "pointsTotal": self.points_total,
            "questionsCorrect": self.questions_correct,
            "questionsTotal": self.questions_total,
            "questionsSkipped": self.questions_skipped,
            "requiresManualGrading": self.requires_manual_grading,
        }
        if include_questions:
            data["perQuestion"] = [q.to_dict() for q in self.per_question]
        return data


# --- learner state ----------------------------------------------------------

@dataclass(frozen=True)
class ProgressState:
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_access_at: Optional[datetime] = None
    attempt_count: int = 0
    best_score: Optional[int] = None
    average_score: Optional[float] = None
    mastery_achieved: bool = False
    progress_percentage: int = 0
    skipped_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "lastAccessAt": _iso(self.last_access_at),
            "attemptCount": self.attempt_count,
            "bestScore": self.best_score,
            "averageScore": self.average_score,
            "masteryAchieved": self.mastery_achieved,
            "progressPercentage": self.progress_percentage,
            "skippedAt": _iso(self.skipped_at),
        }


NOT_STARTED = ProgressState()


@dataclass(frozen=True)
class EnrollmentState:
    user_id: str
    course_id: str
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    overall_progress: int = 0
    enrolled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    last_access_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "courseId": self.course_id,
            "status": self.status.value,
            "overallProgress": self.overall_progress,
            "enrolledAt": _iso(self.enrolled_at),
            "completedAt": _iso(self.completed_at),
            "lastAccessAt": _iso(self.last_access_at),
        }


@dataclass
class LearnerState:
    """What one student has done inside one course."""

    enrollment: Optional[EnrollmentState]
    topic_progress: Dict[str, ProgressState] = field(default_factory=dict)
    module_progress: Dict[str, ProgressState] = field(default_factory=dict)
    attempts: Dict[str, List[AttemptRecord]] = field(default_factory=dict)

    def topic(self, topic_id: str) -> ProgressState:
        return self.topic_progress.get(topic_id, NOT_STARTED)

    def module(self, module_id: str) -> ProgressState:
        return self.module_progress.get(module_id, NOT_STARTED)

    def graded_attempts(self, quiz_id: str) -> List[AttemptRecord]:
        return [a for a in self.attempts.get(quiz_id, []) if not a.is_practice]

    def best_score(self, quiz_ids: Sequence[str]) -> Optional[int]:
        scores = [a.score for q in quiz_ids for a in self.graded_attempts(q)]
        return max(scores) if scores else None


@dataclass(frozen=True)
class AccessDecision:
    accessible: bool
    reason: Optional[ReasonCode] = None
    available_at: Optional[datetime] = None
    blocking_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"accessible": self.accessible,
                "reason": self.reason.value if self.reason else None}
        if self.available_at:
            data["availableAt"] = _iso(self.available_at)
        if self.blocking_id:
            data["blockingId"] = self.blocking_id
        return data


@dataclass(frozen=True)
class AttemptDecision:
    allowed: bool
    reason: Optional[ReasonCode] = None
    attempts_used: int = 0
    attempts_remaining: Optional[int] = None
    has_passed: bool = False

    def to_dict(self) -> dict:
        return {
            "canAttempt": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "attemptsUsed": self.attempts_used,
            "attemptsRemaining": self.attempts_remaining,
            "hasPassed": self.has_passed,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
