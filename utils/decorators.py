from __future__ import annotations
from functools import wraps
from flask import request, g, abort, current_app

ACCESS_COOKIE = "access_token"


def session_manager():
    return current_app.extensions["session_manager"]


def _access_token_from_request() -> str | None:
    # an explicit Bearer header wins over the ambient cookie
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        token = auth.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_COOKIE) or None


def jwt_required():
    """
    Require a valid access token (cookie or Bearer header).
    Sets g.current_user_id for the wrapped view.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = _access_token_from_request()
            if not token:
                abort(401, description="Missing or invalid Authorization header")
            result = session_manager().authenticate(token)
            if not result.ok:
                abort(401, description="Invalid access token")
            g.current_user_id = result.value
            return fn(*args, **kwargs)

        return wrapper

    return decorator
