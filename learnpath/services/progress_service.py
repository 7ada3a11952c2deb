"""
Progress aggregation entry points.

``on_topic_completed`` and ``on_quiz_graded`` are the only writers of topic,
module and enrollment progress. Each runs as one read-then-write pass under
the (student, course) lock and returns the updated aggregate.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..constants import DEFAULT_MASTERY_SCORE
from ..engine import progress as rules
from ..engine.clock import utcnow
from ..engine.prerequisites import PrerequisiteResolver
from ..engine.types import (
    AccessDecision, AttemptRecord, CourseOutline, Learner, LearnerState, QuizSpec,
)
from .locks import KeyedLocks, progress_locks
from .store import SqlStore, write_scope

logger = logging.getLogger(__name__)


@dataclass
class Outcome:
    decision: AccessDecision
    topic: Optional[dict] = None
    rollup: Optional[rules.Rollup] = None

    @property
    def ok(self) -> bool:
        return self.decision.accessible

    def to_dict(self) -> dict:
        data = {"access": self.decision.to_dict()}
        if self.topic is not None:
            data["topicProgress"] = self.topic
        if self.rollup is not None:
            data["progress"] = self.rollup.to_dict()
        return data


class ProgressAggregator:

    def __init__(self, store: Optional[SqlStore] = None, locks: Optional[KeyedLocks] = None,
                 mastery_score: int = DEFAULT_MASTERY_SCORE,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store or SqlStore()
        self.locks = locks or progress_locks
        self.mastery_score = mastery_score
        self.clock = clock or utcnow

    # -- reads ------------------------------------------------------------

    def context(self, student_id, course_id):
        outline = self.store.load_course_outline(course_id)
        return outline, self.store.load_learner_state(student_id, outline)

    def resolver(self, outline: CourseOutline) -> PrerequisiteResolver:
        return PrerequisiteResolver(outline, now=self.clock())

    def topic_access(self, learner: Learner, topic_id, skip: bool = False) -> AccessDecision:
        topic = self.store.load_topic(topic_id)
        outline, state = self.context(learner.id, topic.module.course_id)
        return self.resolver(outline).is_accessible(learner, outline.topic(str(topic.id)), state, skip=skip)

    def module_access(self, learner: Learner, module_id) -> AccessDecision:
        module = self.store.load_module(module_id)
        outline, state = self.context(learner.id, module.course_id)
        return self.resolver(outline).is_accessible(learner, outline.module(str(module.id)), state)

    def next_topic(self, learner: Learner, course_id):
        outline, state = self.context(learner.id, course_id)
        return self.resolver(outline).next_topic(learner, state)

    def snapshot(self, learner: Learner, course_id) -> dict:
        outline, state = self.context(learner.id, course_id)
        return {
            "enrollment": state.enrollment.to_dict() if state.enrollment else None,
            "modules": {m.id: state.module(m.id).to_dict() for m in outline.modules},
            "topics": {t.id: state.topic(t.id).to_dict() for t in outline.topics},
        }

    # -- writes -----------------------------------------------------------

    def start_topic(self, learner: Learner, topic_id) -> Outcome:
        return self._topic_action(learner, topic_id, skip=False, complete=False)

    def skip_topic(self, learner: Learner, topic_id) -> Outcome:
        """Explicit skip: open an ``allow_skip`` topic past an unfinished prerequisite."""
        return self._topic_action(learner, topic_id, skip=True, complete=False)

    def on_topic_completed(self, learner: Learner, topic_id) -> Outcome:
        return self._topic_action(learner, topic_id, skip=False, complete=True)

    def _topic_action(self, learner, topic_id, skip, complete) -> Outcome:
        topic_row = self.store.load_topic(topic_id)
        course_id = topic_row.module.course_id
        with self.locks.hold(("course", learner.id, str(course_id))):
            with write_scope():
                outline, state = self.context(learner.id, course_id)
                topic = outline.topic(str(topic_row.id))
                decision = self.resolver(outline).is_accessible(learner, topic, state, skip=skip)
                if not decision.accessible:
                    return Outcome(decision)

                now = self.clock()
                current = state.topic(topic.id)
                if complete:
                    updated = rules.complete_topic(topic, current, state, now, self.mastery_score)
                elif skip:
                    updated = rules.skip_topic(current, now)
                else:
                    updated = rules.start_topic(current, now)
                self.store.save_progress(learner.id, topic.id, updated)
                state.topic_progress[topic.id] = updated
                rollup = self._roll_up(learner, outline, state, now)
        return Outcome(decision, topic=updated.to_dict(), rollup=rollup)

    def on_quiz_graded(self, learner: Learner, quiz: QuizSpec, attempt: AttemptRecord) -> Outcome:
        topic_row = self.store.load_topic(quiz.topic_id)
        with self.locks.hold(("course", learner.id, str(topic_row.module.course_id))):
            with write_scope():
                return self.apply_quiz_graded(learner, quiz, attempt)

    def apply_quiz_graded(self, learner: Learner, quiz: QuizSpec, attempt: AttemptRecord) -> Outcome:
        """Same as ``on_quiz_graded`` for callers already holding the lock and transaction."""
        topic_row = self.store.load_topic(quiz.topic_id)
        outline, state = self.context(learner.id, topic_row.module.course_id)
        topic = outline.topic(str(topic_row.id))
        decision = AccessDecision(accessible=True)
        if attempt.is_practice:
            return Outcome(decision, topic=state.topic(topic.id).to_dict())

        _ensure_attempt(state, attempt)
        now = self.clock()
        remaining = None
        if quiz.max_attempts is not None:
            remaining = max(0, quiz.max_attempts - len(state.graded_attempts(quiz.id)))
        updated = rules.record_attempt(topic, state.topic(topic.id), state, attempt, now,
                                       remaining, self.mastery_score)
        self.store.save_progress(learner.id, topic.id, updated)
        state.topic_progress[topic.id] = updated
        rollup = self._roll_up(learner, outline, state, now)
        return Outcome(decision, topic=updated.to_dict(), rollup=rollup)

    def refresh(self, student_id, course_id) -> rules.Rollup:
        """Recompute module and enrollment progress after the outline changed."""
        with self.locks.hold(("course", str(student_id), str(course_id))):
            with write_scope():
                outline, state = self.context(student_id, course_id)
                return self._roll_up(Learner(id=str(student_id)), outline, state, self.clock())

    def _roll_up(self, learner: Learner, outline: CourseOutline, state: LearnerState,
                 now: datetime) -> rules.Rollup:
        rollup = rules.aggregate(outline, state, now)
        for module_id, progress in rollup.module_progress.items():
            self.store.save_progress(learner.id, module_id, progress, kind="module")
        if rollup.enrollment is not None:
            self.store.save_enrollment(rollup.enrollment)
            if rollup.newly_completed:
                logger.info("enrollment completed user=%s course=%s",
                            rollup.enrollment.user_id, rollup.enrollment.course_id)
        return rollup


def _ensure_attempt(state: LearnerState, attempt: AttemptRecord) -> None:
    known = state.attempts.setdefault(attempt.quiz_id, [])
    if all(a.id != attempt.id for a in known):
        known.append(attempt)

