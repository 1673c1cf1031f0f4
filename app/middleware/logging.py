import logging
import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("app.requests")

# Webhook bodies and progress pings are high volume; only failures are worth a line.
QUIET_PATH_PREFIXES = ("/stripe-webhook", "/lessons/")


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        path = request.url.path
        method = request.method

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"[{request_id}] {method} {path} failed after {_elapsed_ms(start)}ms: {exc}",
                extra={"request_id": request_id}
            )
            raise

        status_code = response.status_code
        if status_code >= 400:
            log_level = logging.WARNING
        elif path.startswith(QUIET_PATH_PREFIXES):
            log_level = logging.DEBUG
        else:
            log_level = logging.INFO
        logger.log(
            log_level,
            f"[{request_id}] {method} {path} - {status_code} ({_elapsed_ms(start)}ms)",
            extra={"request_id": request_id, "status_code": status_code}
        )

        response.headers["X-Request-ID"] = request_id
        return response
