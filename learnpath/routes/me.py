from flask import Blueprint
from flask_jwt_extended import jwt_required, get_jwt_identity, get_jwt

from .. import db
from ..models import Course, Enrollment, User

bp = Blueprint("me", __name__)


@bp.get("/profile")
@jwt_required()
def profile():
    uid = int(get_jwt_identity())
    claims = get_jwt()
    u = db.get_or_404(User, uid)
    return {"id": u.id, "email": u.email, "role": claims.get("role")}


@bp.get("/enrollments")
@jwt_required()
def my_enrollments():
    uid = int(get_jwt_identity())
    rows = (db.session.query(Enrollment, Course)
            .join(Course, Course.id == Enrollment.course_id)
            .filter(Enrollment.user_id == uid)
            .order_by(Enrollment.id.asc())
            .all())
    items = [{
        "enrollmentId": e.id,
        "courseId": c.id,
        "courseTitle": c.title,
        "status": e.status.value,
        "overallProgress": e.overall_progress,
    } for e, c in rows]
    return {"items": items}
