import logging

from werkzeug.exceptions import HTTPException

from .engine.errors import ConfigurationError, LearnPathError, PersistenceFailure

logger = logging.getLogger(__name__)


def register_error_handlers(app):

    @app.errorhandler(LearnPathError)
    def handle_learnpath_error(error):
        if isinstance(error, ConfigurationError):
            logger.warning("configuration error %s: %s %s", error.code, error.message, error.details)
        elif isinstance(error, PersistenceFailure) and error.status_code >= 500:
            logger.error("persistence failure: %s", error.message, exc_info=error)
        return error.to_dict(), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return {"error": error.description, "code": error.name.upper().replace(" ", "_")}, error.code
