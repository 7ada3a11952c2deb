from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from dotenv import load_dotenv
import os

from .constants import DEFAULT_MASTERY_SCORE

load_dotenv()
db = SQLAlchemy()
jwt = JWTManager()


def create_app(testing: bool = False):
    app = Flask(__name__, instance_relative_config=True)

    app.config["SECRET_KEY"] = os.getenv("SECRET_KEY", "dev-key")
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret-key-change-me-please")
    if testing:
        app.config["TESTING"] = True
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
    else:
        app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL", "sqlite:///learnpath.db")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["LOG_LEVEL"] = os.getenv("LOG_LEVEL", "INFO")
    app.config["MASTERY_SCORE"] = int(os.getenv("MASTERY_SCORE", DEFAULT_MASTERY_SCORE))

    from .logging_config import setup_logging
    setup_logging(app, app.config["LOG_LEVEL"])

    db.init_app(app)
    jwt.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    from . import models  # noqa
    from .errors import register_error_handlers
    from .routes.auth import bp as auth_bp
    from .routes.courses import bp as courses_bp
    from .routes.modules import bp as modules_bp
    from .routes.topics import bp as topics_bp
    from .routes.quizzes import bp as quizzes_bp
    from .routes.me import bp as me_bp

    register_error_handlers(app)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(courses_bp, url_prefix="/api/courses")
    app.register_blueprint(modules_bp, url_prefix="/api/modules")
    app.register_blueprint(topics_bp, url_prefix="/api/topics")
    app.register_blueprint(quizzes_bp, url_prefix="/api/quizzes")
    app.register_blueprint(me_bp, url_prefix="/api/me")

    with app.app_context():
        db.create_all()

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    return app
