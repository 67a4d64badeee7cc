"""JSON error handlers for the application."""

from flask import Blueprint, current_app, jsonify

from .errors import AppError, ConstructionError, NotFoundError, ValidationError

error_handlers_bp = Blueprint("error_handlers", __name__)


def _error_response(code, message, status_code, details=None):
    body = {"code": code, "message": message}
    if details:
        body["details"] = details
    return jsonify({"error": body}), status_code


@error_handlers_bp.app_errorhandler(ValidationError)
def handle_validation_error(error):
    """Handles validation errors."""
    current_app.logger.warning(f"Validation Error: {error.message}")
    return jsonify({"error": error.to_dict()}), error.status_code


@error_handlers_bp.app_errorhandler(NotFoundError)
def handle_not_found_error(error):
    """Handles not found errors."""
    current_app.logger.warning(f"Not Found Error: {error.message}")
    return jsonify({"error": error.to_dict()}), error.status_code


@error_handlers_bp.app_errorhandler(ConstructionError)
def handle_construction_error(error):
    """Handles bracket invariant violations as internal errors."""
    current_app.logger.error(f"Bracket Construction Error: {error.message}")
    return _error_response(
        "INTERNAL_SERVER_ERROR", "Internal server error", error.status_code
    )


@error_handlers_bp.app_errorhandler(AppError)
def handle_app_error(error):
    """Handles generic application errors."""
    current_app.logger.warning(f"Application Error: {error.message}")
    return jsonify({"error": error.to_dict()}), error.status_code


@error_handlers_bp.app_errorhandler(404)
def handle_404(e):
    """Handles generic 404 errors for routes that don't exist."""
    return _error_response("NOT_FOUND", "Resource not found.", 404)


@error_handlers_bp.app_errorhandler(405)
def handle_405(e):
    """Handles requests with an unsupported method."""
    return _error_response("METHOD_NOT_ALLOWED", "Method not allowed.", 405)


@error_handlers_bp.app_errorhandler(500)
def handle_500(e):
    """Handles unexpected server errors."""
    current_app.logger.error(f"Internal Server Error: {e}")
    return _error_response("INTERNAL_SERVER_ERROR", "Internal server error", 500)
