# Overview: Shared JSON error translation for the API blueprints.

from flask import current_app, jsonify

from ..errors import LedgerError


def error_response(exc: LedgerError):
    """Translate a ledger error into its JSON body and HTTP status."""
    if exc.http_status >= 500:
        current_app.logger.error("Ledger storage failure: %s", exc)
    return jsonify(exc.to_dict()), exc.http_status


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500
