"""
Roll-up rules: topic -> module -> enrollment.

All functions here are pure. They take the learner's current state and return
the new state; ``services.progress_service`` is what reads and writes it.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..constants import DEFAULT_MASTERY_SCORE, EnrollmentStatus, ProgressStatus, TopicType
from .grading import round_half_up
from .types import (
    AttemptRecord, CourseOutline, EnrollmentState, LearnerState, ModuleNode, ProgressState,
    TopicNode,
)


@dataclass(frozen=True)
class Rollup:
    module_progress: Dict[str, ProgressState]
    enrollment: Optional[EnrollmentState]
    completed_required: int
    total_required: int
    newly_completed: bool = False

    def to_dict(self) -> dict:
        return {
            "enrollment": self.enrollment.to_dict() if self.enrollment else None,
            "modules": {mid: p.to_dict() for mid, p in self.module_progress.items()},
            "completedRequiredTopics": self.completed_required,
            "totalRequiredTopics": self.total_required,
            "courseCompleted": bool(self.enrollment and
                                    self.enrollment.status == EnrollmentStatus.COMPLETED),
        }


def _started(progress: ProgressState, now: datetime) -> ProgressState:
    if progress.started_at is None:
        return replace(progress, started_at=now)
    return progress


def start_topic(progress: ProgressState, now: datetime) -> ProgressState:
    progress = _started(progress, now)
    if progress.status == ProgressStatus.NOT_STARTED:
        progress = replace(progress, status=ProgressStatus.IN_PROGRESS)
    return replace(progress, last_access_at=now)


def skip_topic(progress: ProgressState, now: datetime) -> ProgressState:
    """Start the topic and remember the skip so later visits stay open."""
    progress = start_topic(progress, now)
    if progress.skipped_at is None:
        progress = replace(progress, skipped_at=now)
    return progress


def quizzes_passed(topic: TopicNode, state: LearnerState) -> bool:
    return all(any(a.passed for a in state.graded_attempts(q)) for q in topic.quiz_ids)


def _score_stats(topic: TopicNode, state: LearnerState):
    scores = [a.score for q in topic.quiz_ids for a in state.graded_attempts(q)]
    if not scores:
        return 0, None, None
    return len(scores), max(scores), round(sum(scores) / len(scores), 2)


def complete_topic(topic: TopicNode, progress: ProgressState, state: LearnerState,
                   now: datetime, mastery_score: int = DEFAULT_MASTERY_SCORE) -> ProgressState:
    """Explicit "mark complete". Topics with a quiz need a passing attempt first."""
    progress = replace(_started(progress, now), last_access_at=now)
    if progress.is_completed:
        return progress
    if topic.has_quiz and not quizzes_passed(topic, state):
        return replace(progress, status=ProgressStatus.NEEDS_REVIEW)
    count, best, average = _score_stats(topic, state)
    return replace(
        progress,
        status=ProgressStatus.COMPLETED,
        completed_at=now,
        attempt_count=count,
        best_score=best,
        average_score=average,
        mastery_achieved=True if best is None else best >= mastery_score,
    )


def record_attempt(topic: TopicNode, progress: ProgressState, state: LearnerState,
                   attempt: AttemptRecord, now: datetime, attempts_remaining: Optional[int],
                   mastery_score: int = DEFAULT_MASTERY_SCORE) -> ProgressState:
    """
    Fold a graded, non-practice attempt into the topic's progress. ``state``
    must already include ``attempt``.
    """
    count, best, average = _score_stats(topic, state)
    progress = replace(
        _started(progress, now),
        last_access_at=now,
        attempt_count=count,
        best_score=best,
        average_score=average,
        mastery_achieved=best is not None and best >= mastery_score,
    )
    if progress.is_completed:
        return progress
    if attempt.passed and quizzes_passed(topic, state):
        return replace(progress, status=ProgressStatus.COMPLETED, completed_at=now)
    if not attempt.passed and attempts_remaining == 0:
        return replace(progress, status=ProgressStatus.FAILED)
    return replace(progress, status=ProgressStatus.IN_PROGRESS)


def assessment_quiz_ids(outline: CourseOutline, module: ModuleNode) -> List[str]:
    return [q for t in outline.topics_in(module.id)
            if t.topic_type == TopicType.ASSESSMENT for q in t.quiz_ids]


def module_rollup(outline: CourseOutline, module: ModuleNode, state: LearnerState,
                  now: datetime) -> ProgressState:
    topics = outline.topics_in(module.id)
    required = [t for t in topics if t.is_required]
    done = [t for t in topics if state.topic(t.id).is_completed]
    touched = [t for t in topics if state.topic(t.id).status != ProgressStatus.NOT_STARTED]

    percentage = round_half_up(100 * len(done) / len(topics)) if topics else 100
    complete = all(state.topic(t.id).is_completed for t in required)

    # passing score gates completion only when the module has its own assessment
    assessments = assessment_quiz_ids(outline, module)
    best = state.best_score(assessments) if assessments else None
    if assessments and (best is None or best < module.passing_score):
        complete = False

    previous = state.module(module.id)
    if complete:
        status = ProgressStatus.COMPLETED
        completed_at = previous.completed_at if previous.is_completed else now
    else:
        status = ProgressStatus.IN_PROGRESS if touched else ProgressStatus.NOT_STARTED
        completed_at = None
    started_at = previous.started_at or (now if touched else None)
    return replace(
        previous,
        status=status,
        progress_percentage=percentage,
        best_score=best if best is not None else previous.best_score,
        started_at=started_at,
        completed_at=completed_at,
        last_access_at=now,
    )


def counted_modules(outline: CourseOutline) -> Sequence[ModuleNode]:
    required = [m for m in outline.modules if m.is_required]
    return required or list(outline.modules)


def aggregate(outline: CourseOutline, state: LearnerState, now: datetime) -> Rollup:
    """Recompute every module and the enrollment from topic progress."""
    modules = {m.id: module_rollup(outline, m, state, now) for m in outline.modules}

    counted = counted_modules(outline)
    required_topics = [t for m in counted for t in outline.topics_in(m.id) if t.is_required]
    completed = sum(1 for t in required_topics if state.topic(t.id).is_completed)
    all_done = bool(counted) and all(modules[m.id].is_completed for m in counted)
    if required_topics:
        overall = round_half_up(100 * completed / len(required_topics))
    else:
        overall = 100 if all_done else 0

    enrollment = state.enrollment
    newly_completed = False
    if enrollment is not None:
        enrollment = replace(enrollment, overall_progress=overall, last_access_at=now)
        if all_done and enrollment.status == EnrollmentStatus.ACTIVE:
            enrollment = replace(enrollment, status=EnrollmentStatus.COMPLETED, completed_at=now)
            newly_completed = True

    return Rollup(module_progress=modules, enrollment=enrollment,
                  completed_required=completed, total_required=len(required_topics),
                  newly_completed=newly_completed)
