# Overview: Shared helpers for the JSON adapter: error mapping and retried command execution.

from flask import current_app, jsonify, request

from ..errors import SettlementError, ValidationError
from ..services.concurrency import run_with_retry


def error_response(exc: SettlementError):
    return jsonify({"error": exc.to_dict()}), exc.http_status


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": {"code": "internal_error", "message": "Internal server error"}}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def run_command(func):
    """Run a command, re-running it when it loses a concurrent write."""
    return run_with_retry(func, attempts=current_app.config.get("SILLON_CONCURRENCY_RETRIES", 3))
