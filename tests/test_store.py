import pytest

from learnpath import db
from learnpath.constants import EnrollmentStatus, ProgressStatus, QuestionType, Role
from learnpath.engine.errors import AttemptImmutable, RecordNotFound, SaveConflict
from learnpath.engine.grading import grade
from learnpath.engine.types import EnrollmentState, ProgressState
from learnpath.models import Answer, Enrollment, QuizAttempt, TopicProgress, User
from learnpath.services.authoring import Authoring
from learnpath.services.store import SqlStore, write_scope
from learnpath.utils.security import hash_password


@pytest.fixture
def seeded(app):
    owner = User(email="owner@example.com", password_hash=hash_password("pw"), role=Role.MANAGER)
    learner = User(email="learner@example.com", password_hash=hash_password("pw"))
    db.session.add_all([owner, learner])
    db.session.commit()

    authoring = Authoring()
    course = authoring.create_course(owner.id, "Stored")
    module = authoring.create_module(course.id, "Only")
    topic = authoring.create_topic(module.id, "Quiz topic")
    quiz = authoring.create_quiz(topic.id, "Quiz")
    authoring.add_question(quiz.id, "Pick", QuestionType.MULTIPLE_CHOICE,
                           [{"text": "yes", "is_correct": True}, {"text": "no"}])
    authoring.publish(course.id)
    return {"course": course.id, "module": module.id, "topic": topic.id, "quiz": quiz.id,
            "learner": learner.id}


def test_outline_uses_string_ids(seeded):
    outline = SqlStore().load_course_outline(seeded["course"])
    assert outline.course.id == str(seeded["course"])
    assert [t.id for t in outline.topics] == [str(seeded["topic"])]
    assert outline.topics[0].quiz_ids == (str(seeded["quiz"]),)


def test_missing_rows(app):
    with pytest.raises(RecordNotFound):
        SqlStore().load_topic(404)
    with pytest.raises(RecordNotFound):
        SqlStore().load_quiz("not-a-number")


def test_saved_attempt_keeps_answers_and_is_frozen(seeded):
    store = SqlStore()
    quiz, questions = store.load_quiz_with_questions(seeded["quiz"])
    key = questions[0].correct_options()[0].id
    result = grade(quiz, questions, {questions[0].id: key})

    with write_scope():
        row = store.save_attempt(seeded["learner"], quiz, result, time_spent=30)
    attempt_id = row.id

    saved = db.session.get(QuizAttempt, attempt_id)
    assert saved.completed_at is not None
    assert saved.score == 100
    answer = Answer.query.filter_by(attempt_id=attempt_id).one()
    assert answer.submitted == key
    assert answer.is_correct is True

    with pytest.raises(AttemptImmutable):
        with write_scope():
            saved.score = 0
    assert db.session.get(QuizAttempt, attempt_id).score == 100


def test_progress_upsert(seeded):
    store = SqlStore()
    topic_id = str(seeded["topic"])
    with write_scope():
        store.save_progress(seeded["learner"], topic_id, ProgressState(status=ProgressStatus.IN_PROGRESS))
    with write_scope():
        store.save_progress(seeded["learner"], topic_id,
                            ProgressState(status=ProgressStatus.COMPLETED, attempt_count=1, best_score=90))
    rows = TopicProgress.query.filter_by(user_id=seeded["learner"]).all()
    assert len(rows) == 1
    assert rows[0].status == ProgressStatus.COMPLETED
    assert rows[0].best_score == 90


def test_duplicate_enrollment_is_a_conflict(seeded):
    db.session.add(Enrollment(user_id=seeded["learner"], course_id=seeded["course"]))
    db.session.commit()
    with pytest.raises(SaveConflict):
        with write_scope():
            db.session.add(Enrollment(user_id=seeded["learner"], course_id=seeded["course"]))


def test_learner_state_round_trip(seeded):
    store = SqlStore()
    with write_scope():
        store.save_enrollment(EnrollmentState(str(seeded["learner"]), str(seeded["course"]),
                                              overall_progress=40))
    outline = store.load_course_outline(seeded["course"])
    state = store.load_learner_state(seeded["learner"], outline)
    assert state.enrollment.status == EnrollmentStatus.ACTIVE
    assert state.enrollment.overall_progress == 40
    assert state.topic(str(seeded["topic"])).status == ProgressStatus.NOT_STARTED
