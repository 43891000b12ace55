from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g, request

from app.lms.errors import ApiError
from app.lms.models import User


def user_has_role(user: User | None, *roles: str) -> bool:
    if not user or not user.is_active:
        return False
    return not roles or user.role in roles


def current_user() -> User:
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.is_active:
        raise ApiError(401, "Not authorized, no token")
    return user


def require_roles(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    401 when the request carries no valid token, 403 when the user's role is not listed.
    With no roles, any authenticated user passes.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = current_user()
            if not user_has_role(user, *roles):
                current_app.logger.warning(
                    "Authorization denied: role=%s required=%s path=%s",
                    user.role,
                    ",".join(roles),
                    request.path,
                )
                raise ApiError(403, f"Role '{user.role}' is not authorized to access this resource")
            return fn(*args, **kwargs)

        return wrapped

    return decorator


require_login = require_roles()
