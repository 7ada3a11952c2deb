from functools import wraps
from flask_jwt_extended import verify_jwt_in_request, get_jwt, get_jwt_identity

from ..constants import Role
from ..engine.authorization import is_permitted, roles_for
from ..engine.types import Learner


def require_permission(action):
    """
    Usage:
      @bp.post("/")
      @require_permission(AUTHOR_CONTENT)
      def create_course(): ...
    """
    def wrapper(fn):
        @wraps(fn)
        def inner(*args, **kwargs):
            verify_jwt_in_request()
            claims = get_jwt() or {}
            role = claims.get("role")
            if not is_permitted(role, action):
                return {"error": "forbidden", "needed": list(roles_for(action)), "got": role}, 403
            return fn(*args, **kwargs)
        return inner
    return wrapper


def current_learner() -> Learner:
    claims = get_jwt() or {}
    return Learner(id=str(get_jwt_identity()), role=Role(claims.get("role", Role.STUDENT.value)))
