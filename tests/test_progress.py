import random
from dataclasses import replace
from datetime import datetime, timedelta

from learnpath.constants import CourseStatus, EnrollmentStatus, ProgressStatus, TopicType
from learnpath.engine import progress as rules
from learnpath.engine.types import (
    AttemptRecord, CourseNode, CourseOutline, EnrollmentState, LearnerState, ModuleNode,
    ProgressState, TopicNode,
)

NOW = datetime(2026, 5, 4, 9, 30)
COMPLETED = ProgressState(status=ProgressStatus.COMPLETED, completed_at=NOW)
IN_PROGRESS = ProgressState(status=ProgressStatus.IN_PROGRESS)


def course(modules, topics):
    return CourseOutline(CourseNode("c", CourseStatus.PUBLISHED), tuple(modules), tuple(topics))


def learner(**kwargs):
    return LearnerState(enrollment=EnrollmentState("s", "c", enrolled_at=NOW), **kwargs)


class TestTopicRules:

    lesson = TopicNode("t", "m", 1)
    quizzed = TopicNode("tq", "m", 2, quiz_ids=("q",))

    def test_start_moves_to_in_progress_once(self):
        started = rules.start_topic(ProgressState(), NOW)
        assert started.status == ProgressStatus.IN_PROGRESS
        assert started.started_at == NOW
        later = rules.start_topic(started, NOW + timedelta(hours=1))
        assert later.started_at == NOW
        assert later.last_access_at == NOW + timedelta(hours=1)

    def test_skip_is_remembered(self):
        skipped = rules.skip_topic(ProgressState(), NOW)
        assert skipped.status == ProgressStatus.IN_PROGRESS
        assert skipped.skipped_at == NOW
        again = rules.skip_topic(skipped, NOW + timedelta(hours=1))
        assert again.skipped_at == NOW
        done = rules.complete_topic(self.lesson, again, learner(), NOW + timedelta(hours=2))
        assert done.skipped_at == NOW

    def test_lesson_completes_on_explicit_mark(self):
        updated = rules.complete_topic(self.lesson, ProgressState(), learner(), NOW)
        assert updated.status == ProgressStatus.COMPLETED
        assert updated.completed_at == NOW
        assert updated.mastery_achieved is True

    def test_quiz_topic_needs_a_pass_before_marking(self):
        updated = rules.complete_topic(self.quizzed, IN_PROGRESS, learner(), NOW)
        assert updated.status == ProgressStatus.NEEDS_REVIEW

    def test_pass_completes_quiz_topic_with_stats(self):
        state = learner(attempts={"q": [AttemptRecord("1", "q", 50, False), AttemptRecord("2", "q", 85, True)]})
        updated = rules.record_attempt(self.quizzed, IN_PROGRESS, state, state.attempts["q"][-1], NOW, None)
        assert updated.status == ProgressStatus.COMPLETED
        assert updated.attempt_count == 2
        assert updated.best_score == 85
        assert updated.average_score == 67.5
        assert updated.mastery_achieved is False

    def test_mastery_from_the_configured_score(self):
        state = learner(attempts={"q": [AttemptRecord("1", "q", 85, True)]})
        updated = rules.record_attempt(self.quizzed, IN_PROGRESS, state, state.attempts["q"][0], NOW,
                                       None, mastery_score=80)
        assert updated.mastery_achieved is True

    def test_fail_with_attempts_left_stays_in_progress(self):
        state = learner(attempts={"q": [AttemptRecord("1", "q", 10, False)]})
        updated = rules.record_attempt(self.quizzed, ProgressState(), state, state.attempts["q"][0], NOW, 1)
        assert updated.status == ProgressStatus.IN_PROGRESS

    def test_last_failed_attempt_fails_the_topic(self):
        state = learner(attempts={"q": [AttemptRecord("1", "q", 10, False)]})
        updated = rules.record_attempt(self.quizzed, IN_PROGRESS, state, state.attempts["q"][0], NOW, 0)
        assert updated.status == ProgressStatus.FAILED

    def test_completed_topic_stays_completed(self):
        state = learner(attempts={"q": [AttemptRecord("1", "q", 90, True), AttemptRecord("2", "q", 10, False)]})
        updated = rules.record_attempt(self.quizzed, COMPLETED, state, state.attempts["q"][1], NOW, 0)
        assert updated.status == ProgressStatus.COMPLETED

    def test_practice_attempts_stay_out_of_stats(self):
        state = learner(attempts={"q": [AttemptRecord("1", "q", 80, True),
                                        AttemptRecord("2", "q", 20, False, is_practice=True)]})
        updated = rules.record_attempt(self.quizzed, IN_PROGRESS, state, state.attempts["q"][0], NOW, None)
        assert updated.attempt_count == 1
        assert updated.average_score == 80


class TestRollup:

    def test_two_of_three_required_topics(self):
        m = ModuleNode("m", "c", 1)
        topics = [TopicNode(f"t{i}", "m", i) for i in range(3)]
        state = learner(topic_progress={"t0": COMPLETED, "t1": COMPLETED, "t2": IN_PROGRESS})
        rollup = rules.aggregate(course([m], topics), state, NOW)
        assert rollup.module_progress["m"].status == ProgressStatus.IN_PROGRESS
        assert rollup.module_progress["m"].progress_percentage == 67
        assert rollup.enrollment.overall_progress == 67
        assert rollup.enrollment.status == EnrollmentStatus.ACTIVE
        assert rollup.enrollment.last_access_at == NOW

    def test_weight_is_per_required_topic_across_modules(self):
        m1, m2 = ModuleNode("m1", "c", 1), ModuleNode("m2", "c", 2)
        topics = [TopicNode("a", "m1", 1), TopicNode("b", "m1", 2), TopicNode("c1", "m1", 3),
                  TopicNode("d", "m2", 1)]
        state = learner(topic_progress={"a": COMPLETED, "b": COMPLETED})
        rollup = rules.aggregate(course([m1, m2], topics), state, NOW)
        assert rollup.enrollment.overall_progress == 50
        assert (rollup.completed_required, rollup.total_required) == (2, 4)

    def test_optional_topics_count_toward_percentage_only(self):
        m = ModuleNode("m", "c", 1)
        topics = [TopicNode("req", "m", 1), TopicNode("opt", "m", 2, is_required=False)]
        state = learner(topic_progress={"req": COMPLETED})
        rollup = rules.aggregate(course([m], topics), state, NOW)
        assert rollup.module_progress["m"].status == ProgressStatus.COMPLETED
        assert rollup.module_progress["m"].progress_percentage == 50
        assert rollup.enrollment.overall_progress == 100
        assert rollup.enrollment.status == EnrollmentStatus.COMPLETED
        assert rollup.newly_completed is True

    def test_module_assessment_must_meet_passing_score(self):
        m = ModuleNode("m", "c", 1, passing_score=80)
        exam = TopicNode("exam", "m", 1, topic_type=TopicType.ASSESSMENT, quiz_ids=("q",))
        # topic completed on a 75 (quiz passing score was lower than the module's)
        state = learner(topic_progress={"exam": COMPLETED},
                        attempts={"q": [AttemptRecord("1", "q", 75, True)]})
        rollup = rules.aggregate(course([m], [exam]), state, NOW)
        assert rollup.module_progress["m"].status != ProgressStatus.COMPLETED
        assert rollup.module_progress["m"].best_score == 75

        state.attempts["q"].append(AttemptRecord("2", "q", 90, True))
        rollup = rules.aggregate(course([m], [exam]), state, NOW)
        assert rollup.module_progress["m"].status == ProgressStatus.COMPLETED

    def test_optional_modules_are_ignored_when_required_exist(self):
        core = ModuleNode("core", "c", 1)
        extra = ModuleNode("extra", "c", 2, is_required=False)
        topics = [TopicNode("a", "core", 1), TopicNode("b", "extra", 1)]
        state = learner(topic_progress={"a": COMPLETED})
        rollup = rules.aggregate(course([core, extra], topics), state, NOW)
        assert rollup.enrollment.overall_progress == 100
        assert rollup.enrollment.status == EnrollmentStatus.COMPLETED

    def test_completion_is_one_way(self):
        m = ModuleNode("m", "c", 1)
        done_at = NOW - timedelta(days=3)
        state = LearnerState(
            enrollment=EnrollmentState("s", "c", status=EnrollmentStatus.COMPLETED, completed_at=done_at),
        )
        # a topic added after completion leaves the enrollment completed
        rollup = rules.aggregate(course([m], [TopicNode("new", "m", 1)]), state, NOW)
        assert rollup.enrollment.status == EnrollmentStatus.COMPLETED
        assert rollup.enrollment.completed_at == done_at
        assert rollup.enrollment.overall_progress == 0
        assert rollup.newly_completed is False

    def test_module_completed_at_is_kept(self):
        m = ModuleNode("m", "c", 1)
        first = NOW - timedelta(days=1)
        state = learner(topic_progress={"t": COMPLETED},
                        module_progress={"m": replace(COMPLETED, completed_at=first)})
        rollup = rules.aggregate(course([m], [TopicNode("t", "m", 1)]), state, NOW)
        assert rollup.module_progress["m"].completed_at == first

    def test_module_completion_matches_required_topics(self):
        rng = random.Random(42)
        statuses = list(ProgressStatus)
        for _ in range(300):
            m = ModuleNode("m", "c", 1)
            topics = [TopicNode(f"t{i}", "m", i, is_required=rng.random() < 0.7)
                      for i in range(rng.randint(1, 8))]
            progress = {t.id: ProgressState(status=rng.choice(statuses)) for t in topics
                        if rng.random() < 0.8}
            state = learner(topic_progress=progress)
            module = rules.module_rollup(course([m], topics), m, state, NOW)
            expected = all(state.topic(t.id).is_completed for t in topics if t.is_required)
            assert module.is_completed == expected
