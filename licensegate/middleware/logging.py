"""Per-request access log.

One JSON line per request on the ``licensegate.middleware.logging`` logger,
so it reaches the audit trail like every other ``licensegate`` record.
Routes that reach an authorization decision store it on
``request.state.auth_outcome`` and it is added to the line.
"""
from fastapi import Request
from datetime import datetime, timezone
import json
import logging
import time

logger = logging.getLogger(__name__)


class RequestLogMiddleware:
    def __init__(self, slow_request_seconds: float = 1.0):
        self.slow_request_seconds = slow_request_seconds

    def _entry(self, request: Request, started: datetime, elapsed: float, status_code: int) -> dict:
        entry = {
            "timestamp": started.isoformat(),
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration": f"{elapsed:.3f}s",
            "client_ip": request.client.host if request.client else None,
        }
        outcome = getattr(request.state, "auth_outcome", None)
        if outcome is not None:
            entry["auth_outcome"] = outcome
        return entry

    def _level(self, status_code: int, elapsed: float) -> int:
        if status_code >= 500 or elapsed >= self.slow_request_seconds:
            return logging.WARNING
        return logging.INFO

    async def __call__(self, request: Request, call_next):
        started = datetime.now(timezone.utc)
        clock = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            elapsed = time.perf_counter() - clock
            entry = self._entry(request, started, elapsed, 500)
            entry["error"] = str(exc)
            logger.warning(json.dumps(entry))
            raise

        elapsed = time.perf_counter() - clock
        logger.log(
            self._level(response.status_code, elapsed),
            json.dumps(self._entry(request, started, elapsed, response.status_code)),
        )
        return response


_request_log = RequestLogMiddleware()


async def log_requests(request: Request, call_next):
    """Middleware function for request logging"""
    return await _request_log(request, call_next)
