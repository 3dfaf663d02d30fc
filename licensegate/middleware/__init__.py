from .logging import RequestLogMiddleware, log_requests
