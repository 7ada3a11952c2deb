from flask import Blueprint, current_app, request

from ..constants import TopicType
from ..engine.authorization import AUTHOR_CONTENT, TRACK_PROGRESS, VIEW_CONTENT
from ..services.authoring import Authoring
from ..services.progress_service import ProgressAggregator
from ..services.store import SqlStore
from ..utils.authz import current_learner, require_permission
from . import as_enum, pick, required_text
from .modules import TOPIC_FIELDS

bp = Blueprint("topics", __name__)

QUIZ_FIELDS = {
    "passingScore": "passing_score",
    "maxAttempts": "max_attempts",
    "shuffleQuestions": "shuffle_questions",
    "shuffleOptions": "shuffle_options",
    "showFeedback": "show_feedback",
    "timeLimit": "time_limit",
}


def _aggregator():
    return ProgressAggregator(mastery_score=current_app.config["MASTERY_SCORE"])


def _topic_dict(t):
    return {
        "id": t.id,
        "moduleId": t.module_id,
        "title": t.title,
        "content": t.content,
        "duration": t.duration,
        "orderIndex": t.order_index,
        "topicType": t.topic_type.value,
        "prerequisiteId": t.prerequisite_id,
        "isRequired": t.is_required,
        "allowSkip": t.allow_skip,
    }


def _outcome(outcome):
    if not outcome.ok:
        return outcome.to_dict(), 403
    return outcome.to_dict()


@bp.patch("/<int:topic_id>")
@require_permission(AUTHOR_CONTENT)
def update_topic(topic_id):
    data = request.get_json(silent=True) or {}
    changes = pick(data, dict(TOPIC_FIELDS, title="title"))
    if "topicType" in data:
        changes["topic_type"] = as_enum(TopicType, data["topicType"], "topicType")
    return _topic_dict(Authoring().update_topic(topic_id, **changes))


@bp.get("/<int:topic_id>/access")
@require_permission(VIEW_CONTENT)
def topic_access(topic_id):
    skip = request.args.get("skip", "").lower() in ("1", "true")
    decision = _aggregator().topic_access(current_learner(), topic_id, skip=skip)
    return decision.to_dict()


@bp.get("/<int:topic_id>")
@require_permission(VIEW_CONTENT)
def get_topic(topic_id):
    decision = _aggregator().topic_access(current_learner(), topic_id)
    if not decision.accessible:
        return {"access": decision.to_dict()}, 403
    topic = SqlStore().load_topic(topic_id)
    return dict(_topic_dict(topic), access=decision.to_dict())


@bp.post("/<int:topic_id>/start")
@require_permission(TRACK_PROGRESS)
def start_topic(topic_id):
    return _outcome(_aggregator().start_topic(current_learner(), topic_id))


@bp.post("/<int:topic_id>/complete")
@require_permission(TRACK_PROGRESS)
def complete_topic(topic_id):
    return _outcome(_aggregator().on_topic_completed(current_learner(), topic_id))


@bp.post("/<int:topic_id>/skip")
@require_permission(TRACK_PROGRESS)
def skip_topic(topic_id):
    return _outcome(_aggregator().skip_topic(current_learner(), topic_id))


@bp.post("/<int:topic_id>/quizzes")
@require_permission(AUTHOR_CONTENT)
def add_quiz(topic_id):
    data = request.get_json(silent=True) or {}
    q = Authoring().create_quiz(topic_id, required_text(data, "title"), **pick(data, QUIZ_FIELDS))
    return {
        "id": q.id,
        "topicId": q.topic_id,
        "title": q.title,
        "passingScore": q.passing_score,
        "maxAttempts": q.max_attempts,
        "timeLimit": q.time_limit,
    }, 201
