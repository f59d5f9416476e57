# app/utils/get_user.py
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.errors import UnauthorizedError, ForbiddenError
from app.core.security import decode_token
from app.models.user_models import User
from app.schemas.auth_schemas import CallerContext


def _extract_token(token: str | None, authorization: str | None) -> str | None:
    # Support either header
    if token:
        return token
    if authorization and authorization.startswith("Bearer "):
        return authorization.split("Bearer ", 1)[1]
    return None


async def _resolve_caller(db: AsyncSession, raw_token: str) -> CallerContext:
    try:
        payload = decode_token(raw_token)
    except ValueError:
        raise UnauthorizedError("Invalid or expired token")

    subject = payload.get("sub")
    if subject is None or payload.get("type") != "access":
        raise UnauthorizedError("Invalid token payload")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid token payload")

    user = await db.get(User, user_id)
    if not user:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise ForbiddenError("User account is inactive.")

    return CallerContext(user_id=user.id, role=user.role, restaurant_id=user.restaurant_id)


async def get_current_user(
    request: Request,
    token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> CallerContext:
    raw_token = _extract_token(token, authorization)
    if not raw_token:
        raise UnauthorizedError("Missing access token")

    caller = await _resolve_caller(db, raw_token)
    request.state.user = caller
    return caller


async def get_optional_user(
    request: Request,
    token: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> CallerContext | None:
    """Same as get_current_user, but public calls without a token get None."""
    raw_token = _extract_token(token, authorization)
    if not raw_token:
        return None
    caller = await _resolve_caller(db, raw_token)
    request.state.user = caller
    return caller
