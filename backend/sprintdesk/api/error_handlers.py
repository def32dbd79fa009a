"""Map engine exceptions to HTTP responses.

Body shape for every handled error: ``{"error": {"code", "message"}}``.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
from sqlalchemy.exc import SQLAlchemyError

from sprintdesk.exceptions import InternalError, SprintdeskError

logger = structlog.get_logger()


def error_body(error: SprintdeskError) -> dict:
    return {"error": {"code": error.code, "message": error.message}}


async def sprintdesk_error_handler(request: Request, exc: SprintdeskError) -> ORJSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.info
    log(
        "request_rejected",
        code=exc.code,
        status_code=exc.http_status,
        message=exc.message,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.http_status == 401 else None
    return ORJSONResponse(
        status_code=exc.http_status,
        content=error_body(exc),
        headers=headers,
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> ORJSONResponse:
    logger.error("database_error", error=str(exc), error_type=exc.__class__.__name__)
    error = InternalError()
    return ORJSONResponse(status_code=error.http_status, content=error_body(error))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SprintdeskError, sprintdesk_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
