"""
Custom route decorators for access control.

- ops_token_required: operational endpoints (reconcile sweep, integration
  status) require `Authorization: Bearer <OPS_API_TOKEN>` when the token is
  configured. Without a configured token the check is skipped.
"""

import hmac
from functools import wraps

from flask import current_app, jsonify, request


def ops_token_required(f):
    """Require the ops bearer token, if one is configured."""

    @wraps(f)
    def decorated(*args, **kwargs):
        expected = current_app.config.get("OPS_API_TOKEN")
        if expected:
            header = request.headers.get("Authorization", "")
            scheme, _, supplied = header.partition(" ")
            if scheme.lower() != "bearer" or not hmac.compare_digest(
                supplied.strip().encode("utf-8"), expected.encode("utf-8")
            ):
                return jsonify({"error": "unauthorized"}), 401
        return f(*args, **kwargs)

    return decorated
