from flask import Blueprint, current_app, request
from flask_jwt_extended import get_jwt_identity

from ..constants import CourseStatus
from ..engine.authorization import AUTHOR_CONTENT, TRACK_PROGRESS
from ..models import Course
from ..services.authoring import Authoring
from ..services.progress_service import ProgressAggregator
from ..services.store import SqlStore
from ..utils.authz import current_learner, require_permission
from . import pick, required_text

bp = Blueprint("courses", __name__)

MODULE_FIELDS = {
    "order": "order",
    "prerequisiteId": "prerequisite_id",
    "isRequired": "is_required",
    "passingScore": "passing_score",
    "unlockDelay": "unlock_delay",
}


def _aggregator():
    return ProgressAggregator(mastery_score=current_app.config["MASTERY_SCORE"])


def module_dict(m):
    return {
        "id": m.id,
        "title": m.title,
        "order": m.order,
        "prerequisiteId": m.prerequisite_id,
        "isRequired": m.is_required,
        "passingScore": m.passing_score,
        "unlockDelay": m.unlock_delay,
        "topics": [{
            "id": t.id,
            "title": t.title,
            "orderIndex": t.order_index,
            "topicType": t.topic_type.value,
            "prerequisiteId": t.prerequisite_id,
            "isRequired": t.is_required,
            "allowSkip": t.allow_skip,
            "quizIds": [q.id for q in t.quizzes],
        } for t in m.topics],
    }


@bp.get("/")
def list_published():
    courses = Course.query.filter_by(status=CourseStatus.PUBLISHED).order_by(Course.id.asc()).all()
    return {"items": [{"id": c.id, "title": c.title, "ownerId": c.owner_id} for c in courses]}


@bp.get("/<int:course_id>")
def get_course(course_id):
    c = SqlStore().load_course(course_id)
    return {
        "id": c.id,
        "title": c.title,
        "description": c.description,
        "status": c.status.value,
        "ownerId": c.owner_id,
        "modules": [module_dict(m) for m in c.modules],
    }


@bp.post("/")
@require_permission(AUTHOR_CONTENT)
def create_course():
    data = request.get_json(silent=True) or {}
    c = Authoring().create_course(get_jwt_identity(), required_text(data, "title"),
                                  data.get("description", ""))
    return {"id": c.id, "title": c.title, "status": c.status.value}, 201


@bp.post("/<int:course_id>/modules")
@require_permission(AUTHOR_CONTENT)
def add_module(course_id):
    data = request.get_json(silent=True) or {}
    m = Authoring().create_module(course_id, required_text(data, "title"), **pick(data, MODULE_FIELDS))
    return module_dict(m), 201


@bp.post("/<int:course_id>/publish")
@require_permission(AUTHOR_CONTENT)
def publish_course(course_id):
    c = Authoring().publish(course_id)
    return {"ok": True, "status": c.status.value}


@bp.post("/<int:course_id>/archive")
@require_permission(AUTHOR_CONTENT)
def archive_course(course_id):
    c = Authoring().archive(course_id)
    return {"ok": True, "status": c.status.value}


@bp.post("/<int:course_id>/enroll")
@require_permission(TRACK_PROGRESS)
def enroll(course_id):
    learner = current_learner()
    authoring = Authoring()
    existing = authoring.store.load_enrollment(learner.id, course_id)
    enrollment = authoring.enroll(learner.id, course_id)
    if enrollment is None:
        return {"error": "course is not open for enrollment", "code": "COURSE_UNAVAILABLE"}, 409
    if existing is not None and existing.status == enrollment.status:
        return {"error": "already enrolled", "enrollment": enrollment.to_dict()}, 409
    return {"ok": True, "enrollment": enrollment.to_dict()}, 201


@bp.delete("/<int:course_id>/enroll")
@require_permission(TRACK_PROGRESS)
def unenroll(course_id):
    enrollment = Authoring().unenroll(current_learner().id, course_id)
    if enrollment is None:
        return {"error": "not enrolled", "code": "UNENROLLED"}, 404
    return {"ok": True, "enrollment": enrollment.to_dict()}


@bp.get("/<int:course_id>/progress")
@require_permission(TRACK_PROGRESS)
def course_progress(course_id):
    return _aggregator().snapshot(current_learner(), course_id)


@bp.get("/<int:course_id>/next-topic")
@require_permission(TRACK_PROGRESS)
def next_topic(course_id):
    topic = _aggregator().next_topic(current_learner(), course_id)
    if topic is None:
        return {"topic": None}
    return {"topic": {"id": topic.id, "moduleId": topic.module_id,
                      "orderIndex": topic.order_index, "topicType": topic.topic_type.value}}
