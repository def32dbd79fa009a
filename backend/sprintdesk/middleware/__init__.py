"""Middleware package."""

from sprintdesk.middleware.logging import LoggingMiddleware
from sprintdesk.middleware.request_id import RequestIDMiddleware

__all__ = ["LoggingMiddleware", "RequestIDMiddleware"]
