import logging

from flask import Blueprint, request
from flask_jwt_extended import create_access_token
from werkzeug.exceptions import UnprocessableEntity

from .. import db
from ..constants import Role
from ..models import User
from ..services.store import write_scope
from ..utils.security import hash_password, verify_password
from . import as_enum, required_text

bp = Blueprint("auth", __name__)
logger = logging.getLogger(__name__)


def _account(data):
    """Normalized email and the raw password from a register/login body."""
    password = data.get("password")
    if not isinstance(password, str) or not password:
        raise UnprocessableEntity("'password' is required")
    return required_text(data, "email").lower(), password


def _user_dict(user):
    return {"id": user.id, "email": user.email, "role": user.role.value}


@bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email, password = _account(data)
    role = as_enum(Role, data.get("role", Role.STUDENT.value), "role")
    if User.query.filter_by(email=email).first() is not None:
        return {"error": "email already registered", "code": "EMAIL_TAKEN"}, 409

    # a concurrent registration still trips the unique email and becomes a 409
    with write_scope():
        user = User(email=email, password_hash=hash_password(password), role=role)
        db.session.add(user)
    logger.info("registered user=%s role=%s", user.id, role.value)
    return _user_dict(user), 201


@bp.post("/login")
def login():
    email, password = _account(request.get_json(silent=True) or {})
    user = User.query.filter_by(email=email).first()
    if user is None or not verify_password(password, user.password_hash):
        logger.info("login refused email=%s", email)
        return {"error": "invalid credentials", "code": "INVALID_CREDENTIALS"}, 401
    token = create_access_token(identity=str(user.id), additional_claims={"role": user.role.value})
    return {"access_token": token, "user": _user_dict(user)}
