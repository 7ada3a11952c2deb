"""
Content authoring and enrollment writes that feed the engine.

Prerequisite links are checked here, when they are set, so resolution never
has to guard against bad chains on the hot path.
"""

import logging
from dataclasses import replace

from .. import db
from ..constants import CourseStatus, EnrollmentStatus, QuestionType, TopicType
from ..engine import graph
from ..engine.clock import utcnow
from ..engine.errors import ConfigurationError, ErrorKind
from ..engine.grading import validate_question
from ..engine.types import EnrollmentState, OptionSpec, QuestionSpec
from ..models import Course, Module, Option, Question, Quiz, Topic
from .progress_service import ProgressAggregator
from .store import SqlStore, enrollment_state, module_node, topic_node, write_scope

logger = logging.getLogger(__name__)

# changes that move module completion or overallProgress
ROLLUP_FIELDS = frozenset({"is_required", "passing_score", "topic_type"})


def _check_score(value, name):
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 100:
        raise ConfigurationError(ErrorKind.CONFIG_INVALID_MODULE, f"{name} must be 0-100",
                                 {name: value})


class Authoring:

    def __init__(self, store: SqlStore = None, aggregator: ProgressAggregator = None):
        self.store = store or SqlStore()
        self.aggregator = aggregator or ProgressAggregator(self.store)

    # -- courses ----------------------------------------------------------

    def create_course(self, owner_id, title, description=""):
        with write_scope():
            course = Course(title=title, description=description, owner_id=int(owner_id))
            db.session.add(course)
        return course

    def publish(self, course_id) -> Course:
        course = self.store.load_course(course_id)
        graph.check_publishable(self.store.load_course_outline(course_id))
        with write_scope():
            course.status = CourseStatus.PUBLISHED
        logger.info("course %s published", course.id)
        return course

    def archive(self, course_id) -> Course:
        course = self.store.load_course(course_id)
        with write_scope():
            course.status = CourseStatus.ARCHIVED
        return course

    # -- modules ----------------------------------------------------------

    def create_module(self, course_id, title, order=None, prerequisite_id=None, is_required=True,
                      passing_score=70, unlock_delay=0) -> Module:
        course = self.store.load_course(course_id)
        if order is None:
            order = max((m.order for m in course.modules), default=0) + 1
        self._check_order(course, order)
        _check_score(passing_score, "passing_score")
        self._check_delay(unlock_delay)
        with write_scope():
            module = Module(course_id=course.id, title=title, order=order,
                            is_required=is_required, passing_score=passing_score,
                            unlock_delay=unlock_delay)
            db.session.add(module)
            db.session.flush()
            self._set_module_prerequisite(module, prerequisite_id)
        return module

    def update_module(self, module_id, **changes) -> Module:
        module = self.store.load_module(module_id)
        if "order" in changes:
            self._check_order(module.course, changes["order"], exclude=module.id)
        if "passing_score" in changes:
            _check_score(changes["passing_score"], "passing_score")
        if "unlock_delay" in changes:
            self._check_delay(changes["unlock_delay"])
        with write_scope():
            for name in ("title", "order", "is_required", "passing_score", "unlock_delay"):
                if name in changes:
                    setattr(module, name, changes[name])
            if "prerequisite_id" in changes:
                self._set_module_prerequisite(module, changes["prerequisite_id"])
        if ROLLUP_FIELDS & set(changes):
            self.refresh_enrollments(module.course_id)
        return module

    def _check_order(self, course, order, exclude=None):
        if not isinstance(order, int) or isinstance(order, bool) or order < 1:
            raise ConfigurationError(ErrorKind.CONFIG_INVALID_MODULE,
                                     "module order must be a positive integer", {"order": order})
        if any(m.order == order and m.id != exclude for m in course.modules):
            raise ConfigurationError(ErrorKind.CONFIG_INVALID_MODULE,
                                     "module order must be unique within the course",
                                     {"order": order})

    def _check_delay(self, hours):
        if not isinstance(hours, int) or isinstance(hours, bool) or hours < 0:
            raise ConfigurationError(ErrorKind.CONFIG_INVALID_MODULE,
                                     "unlock_delay must be a non-negative number of hours",
                                     {"unlock_delay": hours})

    def _set_module_prerequisite(self, module, prerequisite_id):
        prereq = None if prerequisite_id is None else str(prerequisite_id)
        outline = self.store.load_course_outline(module.course_id)
        # the outline may predate this module's flush; patch it in
        node = replace(module_node(module), prerequisite_id=None)
        modules = tuple(m for m in outline.modules if m.id != node.id) + (node,)
        outline = replace(outline, modules=modules)
        graph.validate_module_prerequisite(outline, node.id, prereq)
        module.prerequisite_id = None if prereq is None else int(prereq)

    # -- topics -----------------------------------------------------------

    def create_topic(self, module_id, title, content="", duration=0, order_index=None,
                     topic_type=TopicType.LESSON, prerequisite_id=None, is_required=True,
                     allow_skip=False) -> Topic:
        module = self.store.load_module(module_id)
        if order_index is None:
            order_index = max((t.order_index for t in module.topics), default=0) + 1
        with write_scope():
            topic = Topic(module_id=module.id, title=title, content=content, duration=duration,
                          order_index=order_index, topic_type=TopicType(topic_type),
                          is_required=is_required, allow_skip=allow_skip)
            db.session.add(topic)
            db.session.flush()
            self._set_topic_prerequisite(topic, prerequisite_id)
        return topic

    def update_topic(self, topic_id, **changes) -> Topic:
        topic = self.store.load_topic(topic_id)
        with write_scope():
            for name in ("title", "content", "duration", "order_index", "is_required", "allow_skip"):
                if name in changes:
                    setattr(topic, name, changes[name])
            if "topic_type" in changes:
                topic.topic_type = TopicType(changes["topic_type"])
            if "prerequisite_id" in changes:
                self._set_topic_prerequisite(topic, changes["prerequisite_id"])
        if ROLLUP_FIELDS & set(changes):
            self.refresh_enrollments(self.store.load_module(topic.module_id).course_id)
        return topic

    def _set_topic_prerequisite(self, topic, prerequisite_id):
        prereq = None if prerequisite_id is None else str(prerequisite_id)
        outline = self.store.load_course_outline(self.store.load_module(topic.module_id).course_id)
        node = replace(topic_node(topic), prerequisite_id=None)
        topics = tuple(t for t in outline.topics if t.id != node.id) + (node,)
        outline = replace(outline, topics=topics)
        graph.validate_topic_prerequisite(outline, node.id, prereq)
        topic.prerequisite_id = None if prereq is None else int(prereq)

    # -- quizzes ----------------------------------------------------------

    def create_quiz(self, topic_id, title, passing_score=70, max_attempts=None,
                    shuffle_questions=False, shuffle_options=False, show_feedback=True,
                    time_limit=None) -> Quiz:
        topic = self.store.load_topic(topic_id)
        _check_score(passing_score, "passing_score")
        if max_attempts is not None and (not isinstance(max_attempts, int) or max_attempts < 1):
            raise ConfigurationError(ErrorKind.CONFIG_INVALID_QUESTION,
                                     "max_attempts must be a positive integer or null",
                                     {"max_attempts": max_attempts})
        if time_limit is not None and (not isinstance(time_limit, int) or isinstance(time_limit, bool)
                                       or time_limit < 1):
            raise ConfigurationError(ErrorKind.CONFIG_INVALID_QUESTION,
                                     "time_limit must be a positive number of minutes or null",
                                     {"time_limit": time_limit})
        with write_scope():
            quiz = Quiz(topic_id=topic.id, title=title, passing_score=passing_score,
                        max_attempts=max_attempts, shuffle_questions=shuffle_questions,
                        shuffle_options=shuffle_options, show_feedback=show_feedback,
                        time_limit=time_limit)
            db.session.add(quiz)
        return quiz

    def add_question(self, quiz_id, text, question_type, options=(), points=1, order_index=None,
                     allow_partial_credit=False, case_sensitive=False) -> Question:
        quiz = self.store.load_quiz(quiz_id)
        qtype = QuestionType(question_type)
        if not isinstance(points, int) or isinstance(points, bool):
            raise ConfigurationError(ErrorKind.CONFIG_INVALID_QUESTION,
                                     "question points must be an integer", {"points": points})
        # validate against the engine's rules before anything is written
        validate_question(QuestionSpec(
            id="new", question_type=qtype, points=points,
            allow_partial_credit=allow_partial_credit, case_sensitive=case_sensitive,
            options=tuple(OptionSpec(id=str(i), text=o["text"], is_correct=bool(o.get("is_correct")),
                                     order_index=o.get("order_index", i))
                          for i, o in enumerate(options, start=1)),
        ))
        if order_index is None:
            order_index = max((q.order_index for q in quiz.questions), default=0) + 1
        with write_scope():
            question = Question(quiz_id=quiz.id, text=text, question_type=qtype, points=points,
                                order_index=order_index,
                                allow_partial_credit=allow_partial_credit,
                                case_sensitive=case_sensitive)
            question.options = [
                Option(text=o["text"], is_correct=bool(o.get("is_correct")),
                       order_index=o.get("order_index", i))
                for i, o in enumerate(options, start=1)
            ]
            db.session.add(question)
        return question

    # -- enrollment -------------------------------------------------------

    def enroll(self, student_id, course_id) -> EnrollmentState:
        """Returns the enrollment, or None when the course cannot be enrolled in."""
        course = self.store.load_course(course_id)
        if course.status != CourseStatus.PUBLISHED:
            return None
        existing = self.store.load_enrollment(student_id, course_id)
        if existing is not None and existing.status != EnrollmentStatus.DROPPED:
            return existing
        now = utcnow()
        with write_scope():
            if existing is None:
                row = self.store.save_enrollment(EnrollmentState(
                    user_id=str(student_id), course_id=str(course_id), enrolled_at=now,
                    last_access_at=now))
            else:
                row = self.store.save_enrollment(replace(existing, status=EnrollmentStatus.ACTIVE,
                                                         last_access_at=now))
        return enrollment_state(row)

    def unenroll(self, student_id, course_id) -> EnrollmentState:
        existing = self.store.load_enrollment(student_id, course_id)
        if existing is None:
            return None
        with write_scope():
            row = self.store.save_enrollment(replace(existing, status=EnrollmentStatus.DROPPED,
                                                     last_access_at=utcnow()))
        return enrollment_state(row)

    def refresh_enrollments(self, course_id) -> int:
        """Recompute progress for every live enrollment; returns how many were touched."""
        live = [e for e in self.store.load_course_enrollments(course_id)
                if e.status != EnrollmentStatus.DROPPED]
        for enrollment in live:
            self.aggregator.refresh(enrollment.user_id, course_id)
        if live:
            logger.info("progress refreshed course=%s enrollments=%d", course_id, len(live))
        return len(live)
