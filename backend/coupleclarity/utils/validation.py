"""
Shared marshmallow helpers for request validation.
"""
from marshmallow import Schema, EXCLUDE, ValidationError
from flask import request, jsonify


class BaseSchema(Schema):
    """Request schema that ignores fields it does not declare."""

    class Meta:
        unknown = EXCLUDE


def request_data() -> dict:
    """The JSON body of the current request, or an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def validation_error(error: ValidationError):
    return jsonify({"error": "Validation failed", "details": error.messages}), 400
