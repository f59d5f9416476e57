# app/utils/check_roles.py
from typing import Callable
from functools import wraps

from app.core.errors import UnauthorizedError, ForbiddenError


def require_role(roles: list[str]):
    """Decorator to validate caller role; expects the caller to be passed by route as `_user`."""
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, _user, **kwargs):
            if _user is None:
                raise UnauthorizedError()
            if _user.role.lower() not in [r.lower() for r in roles]:
                raise ForbiddenError()
            return await func(*args, _user=_user, **kwargs)
        return wrapper
    return decorator
