"""Application-wide error handlers (JSON only)."""
from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from scimgw.core.exceptions import ProvisioningError


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(404)
    def not_found(error):
        if request.path.startswith("/scim/v2"):
            return jsonify(ProvisioningError("Resource not found", 404).to_dict()), 404
        return jsonify({"error": "Not Found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method Not Allowed", "message": str(error.description)}), 405

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        if isinstance(error, HTTPException):
            return error

        # ALWAYS log the full error, the client only gets a generic message
        app.logger.error(f"Unhandled exception: {error}", exc_info=True)
        if request.path.startswith("/scim/v2"):
            return jsonify(ProvisioningError("An unexpected error occurred").to_dict()), 500
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500
