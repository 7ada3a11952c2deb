from flask import Blueprint, current_app, request

from ..constants import QuestionType
from ..engine.authorization import AUTHOR_CONTENT, TAKE_QUIZ
from ..services.authoring import Authoring
from ..services.progress_service import ProgressAggregator
from ..services.quiz_service import QuizService
from ..utils.authz import current_learner, require_permission
from . import as_enum, pick, required_text

bp = Blueprint("quizzes", __name__)

QUESTION_FIELDS = {
    "points": "points",
    "orderIndex": "order_index",
    "allowPartialCredit": "allow_partial_credit",
    "caseSensitive": "case_sensitive",
}


def _service():
    return QuizService(aggregator=ProgressAggregator(mastery_score=current_app.config["MASTERY_SCORE"]))


def _flag(data, name):
    value = data.get(name, False)
    return value if isinstance(value, bool) else str(value).lower() in ("1", "true")


@bp.post("/<int:quiz_id>/questions")
@require_permission(AUTHOR_CONTENT)
def add_question(quiz_id: int):
    data = request.get_json(silent=True) or {}
    text = required_text(data, "text")
    qtype = as_enum(QuestionType, data.get("questionType", QuestionType.MULTIPLE_CHOICE.value),
                    "questionType")
    raw = data.get("options") or []
    if not isinstance(raw, list) or not all(isinstance(o, dict) for o in raw):
        return {"error": "options must be a list of objects"}, 422
    options = [{"text": required_text(o, "text"), "is_correct": bool(o.get("isCorrect", False)),
                "order_index": o.get("orderIndex", i)}
               for i, o in enumerate(raw, start=1)]

    p = Authoring().add_question(quiz_id, text, qtype, options, **pick(data, QUESTION_FIELDS))
    # staff payload, so the key is included
    return {
        "id": p.id,
        "text": p.text,
        "questionType": p.question_type.value,
        "points": p.points,
        "options": [{"id": o.id, "text": o.text, "isCorrect": o.is_correct} for o in p.options],
    }, 201


@bp.get("/<int:quiz_id>")
@require_permission(TAKE_QUIZ)
def view_quiz(quiz_id: int):
    data = _service().view(current_learner(), quiz_id, practice=_flag(request.args, "practice"))
    if "access" in data and not data["access"]["accessible"]:
        return data, 403
    return data


@bp.post("/<int:quiz_id>/submit")
@require_permission(TAKE_QUIZ)
def submit_quiz(quiz_id: int):
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not isinstance(data.get("answers"), dict):
        return {"error": "JSON body with an 'answers' object is required"}, 422
    time_spent = data.get("timeSpent")
    if time_spent is not None and (not isinstance(time_spent, int) or isinstance(time_spent, bool)
                                   or time_spent < 0):
        return {"error": "'timeSpent' must be a non-negative integer (seconds)"}, 422

    submission = _service().submit(current_learner(), quiz_id, data["answers"],
                                   time_spent=time_spent, practice=_flag(data, "practice"))
    if not submission.access.accessible:
        return submission.to_dict(), 403
    if not submission.accepted:
        return submission.to_dict(), 409
    return submission.to_dict(), 201


@bp.get("/<int:quiz_id>/attempts")
@require_permission(TAKE_QUIZ)
def list_attempts(quiz_id: int):
    return _service().results(current_learner(), quiz_id)
