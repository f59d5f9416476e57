# app/core/errors.py
from fastapi import HTTPException


class AppError(HTTPException):
    """Base for every failure the RPC layer reports as a structured error."""

    kind = "AppError"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(status_code=self.status_code, detail=self.message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(AppError):
    kind = "ValidationError"
    status_code = 422
    default_message = "Invalid input"


class NotFoundError(AppError):
    kind = "NotFoundError"
    status_code = 404
    default_message = "Not found"


class InvalidTransitionError(AppError):
    kind = "InvalidTransitionError"
    status_code = 409
    default_message = "This order can no longer move to that status, please refresh and try again"


class InactiveDealError(AppError):
    kind = "InactiveDealError"
    status_code = 409
    default_message = "This deal is no longer active"


class ExhaustedError(AppError):
    kind = "ExhaustedError"
    status_code = 409
    default_message = "All coupons for this deal have been claimed, it is no longer available"


class AlreadyUsedError(AppError):
    kind = "AlreadyUsedError"
    status_code = 409
    default_message = "This coupon has already been used"


class ExpiredError(AppError):
    kind = "ExpiredError"
    status_code = 410
    default_message = "This coupon has expired"


class ConflictError(AppError):
    kind = "ConflictError"
    status_code = 409
    default_message = "The record changed while we were updating it, please try again"


class UnauthorizedError(AppError):
    kind = "UnauthorizedError"
    status_code = 401
    default_message = "User not authenticated"


class ForbiddenError(AppError):
    kind = "ForbiddenError"
    status_code = 403
    default_message = "Permission denied"
