import itertools

import pytest

from learnpath import create_app, db

_emails = itertools.count(1)


@pytest.fixture
def app():
    app = create_app(testing=True)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """Register a user with ``role`` and return auth headers for it."""

    def _login(role="STUDENT"):
        email = f"user{next(_emails)}@example.com"
        r = client.post("/api/auth/register", json={"email": email, "password": "secret", "role": role})
        assert r.status_code == 201, r.get_json()
        r = client.post("/api/auth/login", json={"email": email, "password": "secret"})
        assert r.status_code == 200, r.get_json()
        return {"Authorization": f"Bearer {r.get_json()['access_token']}"}

    return _login


@pytest.fixture
def manager(login):
    return login("MANAGER")


@pytest.fixture
def student(login):
    return login("STUDENT")


@pytest.fixture
def course(client, manager):
    """
    Published course with one module:

      t1  "Welcome"  LESSON
      t2  "Check"    ASSESSMENT, prerequisite t1, quiz (passing 80, max 2 attempts)
    """

    def post(url, payload):
        r = client.post(url, json=payload, headers=manager)
        assert r.status_code in (200, 201), r.get_json()
        return r.get_json()

    cid = post("/api/courses/", {"title": "Intro to Testing"})["id"]
    mid = post(f"/api/courses/{cid}/modules", {"title": "Basics"})["id"]
    t1 = post(f"/api/modules/{mid}/topics", {"title": "Welcome"})["id"]
    t2 = post(f"/api/modules/{mid}/topics", {"title": "Check", "topicType": "ASSESSMENT",
                                             "prerequisiteId": t1})["id"]
    quiz = post(f"/api/topics/{t2}/quizzes", {"title": "Quiz", "passingScore": 80, "maxAttempts": 2})["id"]
    question = post(f"/api/quizzes/{quiz}/questions", {
        "text": "2 + 2?",
        "questionType": "MULTIPLE_CHOICE",
        "options": [{"text": "4", "isCorrect": True}, {"text": "5"}],
    })
    post(f"/api/courses/{cid}/publish", {})

    right = next(o["id"] for o in question["options"] if o["isCorrect"])
    wrong = next(o["id"] for o in question["options"] if not o["isCorrect"])
    return {
        "course": cid, "module": mid, "t1": t1, "t2": t2, "quiz": quiz,
        "question": question["id"], "right": right, "wrong": wrong,
    }
