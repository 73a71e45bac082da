import hmac
from functools import wraps

from flask import current_app, jsonify, request


def require_bearer_token(config_key):
    """
    Reject requests whose Authorization header does not carry the bearer
    token stored under `config_key`. An unset token locks the endpoint.
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            expected = current_app.config.get(config_key)
            scheme, _, token = request.headers.get("Authorization", "").partition(" ")

            if (
                not expected
                or scheme.lower() != "bearer"
                or not hmac.compare_digest(token.strip().encode(), expected.encode())
            ):
                current_app.logger.warning(
                    f"Rejected unauthorized request to {request.path}"
                )
                return jsonify({"error": "Unauthorized"}), 401

            return f(*args, **kwargs)

        return decorated_function

    return decorator
