from __future__ import annotations

from functools import wraps
from typing import Callable, TypeVar, Any, cast
from flask import session, jsonify

F = TypeVar("F", bound=Callable[..., Any])


def roles_required(*roles: str) -> Callable[[F], F]:
    """Decorator that requires a signed-in session with one of ``roles``.

    The auth blueprint stores ``role`` and ``school_id`` in the session.
    - No ``school_id`` in the session: 401.
    - ``session['role']`` not in ``roles``: 403.
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            if not session.get("school_id"):
                return jsonify({"error": "Not signed in"}), 401
            if session.get("role") not in roles:
                return jsonify({"error": "Forbidden"}), 403
            return func(*args, **kwargs)

        return cast(F, wrapper)

    return decorator
