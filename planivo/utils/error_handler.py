# planivo/utils/error_handler.py

"""
JSON error handling for the API.

Batch-level bulk import errors carry their own HTTP status; any other
unhandled exception is logged with its traceback and returned as a 500.
"""

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from planivo.bulk_import.errors import BulkImportError, RateLimitError
from planivo.models import db


def _request_context():
    return {
        "endpoint": request.endpoint,
        "method": request.method,
        "path": request.path,
        "remote_addr": request.remote_addr,
    }


def init_error_handlers(app):
    """Register JSON error handlers on ``app``"""

    @app.errorhandler(BulkImportError)
    def handle_bulk_import_error(error):
        status = int(error.status_code)
        app.logger.info(
            f"Bulk import request rejected with {status}: {error.message}",
            extra={"request_context": _request_context()},
        )
        response = jsonify(error.to_payload())
        response.status_code = status
        if isinstance(error, RateLimitError) and error.retry_after:
            response.headers["Retry-After"] = str(error.retry_after)
        return response

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        response = jsonify({"error": error.description or error.name})
        response.status_code = error.code or 500
        return response

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        db.session.rollback()
        app.logger.error(
            f"Unhandled error on {request.method} {request.path}: {str(error)}",
            exc_info=error,
            extra={"request_context": _request_context()},
        )
        return jsonify({"error": "Internal server error"}), 500
