from flask import Blueprint, current_app, request

from ..constants import TopicType
from ..engine.authorization import AUTHOR_CONTENT, TRACK_PROGRESS
from ..services.authoring import Authoring
from ..services.progress_service import ProgressAggregator
from ..utils.authz import current_learner, require_permission
from . import as_enum, pick, required_text
from .courses import MODULE_FIELDS, module_dict

bp = Blueprint("modules", __name__)

TOPIC_FIELDS = {
    "content": "content",
    "duration": "duration",
    "orderIndex": "order_index",
    "prerequisiteId": "prerequisite_id",
    "isRequired": "is_required",
    "allowSkip": "allow_skip",
}


@bp.patch("/<int:module_id>")
@require_permission(AUTHOR_CONTENT)
def update_module(module_id):
    data = request.get_json(silent=True) or {}
    changes = pick(data, dict(MODULE_FIELDS, title="title"))
    return module_dict(Authoring().update_module(module_id, **changes))


@bp.get("/<int:module_id>/access")
@require_permission(TRACK_PROGRESS)
def module_access(module_id):
    aggregator = ProgressAggregator(mastery_score=current_app.config["MASTERY_SCORE"])
    return aggregator.module_access(current_learner(), module_id).to_dict()


@bp.post("/<int:module_id>/topics")
@require_permission(AUTHOR_CONTENT)
def add_topic(module_id):
    data = request.get_json(silent=True) or {}
    kwargs = pick(data, TOPIC_FIELDS)
    if "topicType" in data:
        kwargs["topic_type"] = as_enum(TopicType, data["topicType"], "topicType")
    t = Authoring().create_topic(module_id, required_text(data, "title"), **kwargs)
    return {
        "id": t.id,
        "moduleId": t.module_id,
        "title": t.title,
        "orderIndex": t.order_index,
        "topicType": t.topic_type.value,
        "prerequisiteId": t.prerequisite_id,
    }, 201
