# app/middleware/request_logger.py
import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("app.rpc")


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()

        # Call actual endpoint
        response = await call_next(request)

        # Only log RPC calls
        if request.url.path.startswith("/rpc/"):
            user = getattr(request.state, "user", None)
            user_id = getattr(user, "user_id", None) if user else None
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(
                "%s user=%s status=%s %.1fms",
                request.url.path[len("/rpc/"):],
                user_id,
                response.status_code,
                elapsed_ms,
            )

        return response
