"""
Custom route decorators for access control.

- admin_key_required: request must carry X-Admin-Key matching ADMIN_API_KEY.
- json_body: parse the JSON body (400 if it is not a JSON object) and pass
  it to the view as `data`.
"""

import hmac
from functools import wraps

from flask import current_app, request

from paybridge.errors import BadRequest, Forbidden


def admin_key_required(f):
    """Require the admin API key header."""

    @wraps(f)
    def decorated(*args, **kwargs):
        expected = current_app.config.get("ADMIN_API_KEY")
        supplied = request.headers.get("X-Admin-Key", "")
        if not expected or not hmac.compare_digest(supplied, expected):
            raise Forbidden("Admin key required")
        return f(*args, **kwargs)

    return decorated


def json_body(f):
    """Pass the parsed JSON object body to the view as `data`."""

    @wraps(f)
    def decorated(*args, **kwargs):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise BadRequest("Request body must be a JSON object")
        return f(*args, data=data, **kwargs)

    return decorated
