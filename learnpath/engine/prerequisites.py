"""
Prerequisite resolution.

``PrerequisiteResolver.is_accessible`` answers "may this learner open this
topic or module right now?" from a ``CourseOutline`` and the learner's
``LearnerState``. It never raises for a locked item; it raises
``ConfigurationError`` only when the authored chains themselves are broken.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Set, Union

from ..constants import CourseStatus, EnrollmentStatus, ProgressStatus, TopicType
from .authorization import PREVIEW_LOCKED, VIEW_CONTENT, is_permitted
from .clock import utcnow
from .errors import ConfigurationError, ErrorKind, ReasonCode
from .types import AccessDecision, CourseOutline, Learner, LearnerState, ModuleNode, TopicNode

logger = logging.getLogger(__name__)

OPEN = AccessDecision(accessible=True)

SKIPPABLE = frozenset({ProgressStatus.NOT_STARTED, ProgressStatus.FAILED})


class PrerequisiteResolver:

    def __init__(self, outline: CourseOutline, now: Optional[datetime] = None):
        self.outline = outline
        self.now = now

    def is_accessible(self, learner: Learner, item: Union[TopicNode, ModuleNode],
                      state: LearnerState, skip: bool = False) -> AccessDecision:
        """
        ``skip`` is set only by the explicit skip action; it lets a topic with
        ``allow_skip`` past a NOT_STARTED or FAILED prerequisite. Navigation
        never passes it, but a topic the learner already skipped stays open.
        """
        gate = self._gate(learner, state)
        if gate is not None:
            return gate
        if is_permitted(learner.role, PREVIEW_LOCKED):
            return OPEN
        if isinstance(item, TopicNode):
            decision = self._topic(item, state, skip, set())
        else:
            decision = self._module(item, state, set())
        if not decision.accessible:
            logger.info("access denied learner=%s item=%s reason=%s",
                        learner.id, item.id, decision.reason.value)
        return decision

    def next_topic(self, learner: Learner, state: LearnerState) -> Optional[TopicNode]:
        for topic in self.outline.ordered_topics():
            if state.topic(topic.id).is_completed:
                continue
            if self.is_accessible(learner, topic, state).accessible:
                return topic
        return None

    # -- internals --------------------------------------------------------

    def _gate(self, learner: Learner, state: LearnerState) -> Optional[AccessDecision]:
        if self.outline.course.status != CourseStatus.PUBLISHED:
            return AccessDecision(False, ReasonCode.COURSE_UNAVAILABLE)
        if not is_permitted(learner.role, VIEW_CONTENT):
            return AccessDecision(False, ReasonCode.ROLE_NOT_PERMITTED)
        if is_permitted(learner.role, PREVIEW_LOCKED):
            return None
        enrollment = state.enrollment
        if enrollment is None or enrollment.status == EnrollmentStatus.DROPPED:
            return AccessDecision(False, ReasonCode.UNENROLLED)
        # a finished course stays open for review and practice
        if enrollment.status not in (EnrollmentStatus.ACTIVE, EnrollmentStatus.COMPLETED):
            return AccessDecision(False, ReasonCode.ENROLLMENT_INACTIVE)
        return None

    def _clock(self) -> datetime:
        return self.now or utcnow()

    def _module(self, module: ModuleNode, state: LearnerState, visited: Set[str]) -> AccessDecision:
        if module.id in visited:
            raise ConfigurationError(ErrorKind.CONFIG_CYCLE,
                                     "module prerequisite chain contains a cycle",
                                     {"module_id": module.id})
        visited.add(module.id)
        if module.prerequisite_id is None:
            return OPEN

        prereq = self.outline.module(module.prerequisite_id)
        if prereq is None:
            raise ConfigurationError(ErrorKind.CONFIG_INVALID_PREREQUISITE,
                                     "prerequisite module is not part of the course",
                                     {"module_id": module.id,
                                      "prerequisite_id": module.prerequisite_id})
        upstream = self._module(prereq, state, visited)
        if not upstream.accessible:
            return upstream

        satisfied_at = self._module_satisfied_at(prereq, state)
        if satisfied_at is False:
            return AccessDecision(False, ReasonCode.PREREQUISITE_INCOMPLETE, blocking_id=prereq.id)
        if module.unlock_delay and satisfied_at is not None:
            available_at = satisfied_at + timedelta(hours=module.unlock_delay)
            if self._clock() < available_at:
                return AccessDecision(False, ReasonCode.UNLOCK_PENDING,
                                      available_at=available_at, blocking_id=prereq.id)
        return OPEN

    def _module_satisfied_at(self, module: ModuleNode, state: LearnerState):
        """Completion time of the prerequisite, None if unknown, False if unmet."""
        progress = state.module(module.id)
        if progress.is_completed:
            return progress.completed_at

        # a module-level assessment meeting the module's passing score also counts
        quiz_ids = [q for t in self.outline.topics_in(module.id)
                    if t.topic_type == TopicType.ASSESSMENT for q in t.quiz_ids]
        qualifying = [a for q in quiz_ids for a in state.graded_attempts(q)
                      if a.score >= module.passing_score]
        if not qualifying:
            return False
        stamps = [a.completed_at for a in qualifying if a.completed_at is not None]
        return min(stamps) if stamps else None

    def _topic(self, topic: TopicNode, state: LearnerState, skip: bool,
               visited: Set[str]) -> AccessDecision:
        if topic.id in visited:
            raise ConfigurationError(ErrorKind.CONFIG_CYCLE,
                                     "topic prerequisite chain contains a cycle",
                                     {"topic_id": topic.id})
        visited.add(topic.id)

        module = self.outline.module(topic.module_id)
        if module is None:
            raise ConfigurationError(ErrorKind.CONFIG_INVALID_PREREQUISITE,
                                     "topic module is not part of the course",
                                     {"topic_id": topic.id})
        module_access = self._module(module, state, set())
        if not module_access.accessible:
            if module_access.reason == ReasonCode.UNLOCK_PENDING:
                return module_access
            return AccessDecision(False, ReasonCode.MODULE_LOCKED,
                                  blocking_id=module_access.blocking_id or module.id)

        if topic.prerequisite_id is None:
            return OPEN
        prereq = self.outline.topic(topic.prerequisite_id)
        if prereq is None:
            raise ConfigurationError(ErrorKind.CONFIG_INVALID_PREREQUISITE,
                                     "prerequisite topic is not part of the course",
                                     {"topic_id": topic.id,
                                      "prerequisite_id": topic.prerequisite_id})

        upstream = self._topic(prereq, state, False, visited)
        status = state.topic(prereq.id).status
        if status != ProgressStatus.COMPLETED:
            if topic.allow_skip and state.topic(topic.id).skipped_at is not None:
                return OPEN
            if skip and topic.allow_skip and status in SKIPPABLE and upstream.accessible:
                return OPEN
            return AccessDecision(False, ReasonCode.PREREQUISITE_INCOMPLETE, blocking_id=prereq.id)
        if not upstream.accessible:
            return upstream
        return OPEN
