"""
Error responses and lenient request parsing.

Every failure reaches the client as ``{"error": <message>}`` with the status
code of its category. Stack traces stay in the server log, tagged with the
request's trace id.
"""

import json
import logging
from typing import Type, TypeVar

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from docdialogue.core.exceptions import DatabaseError, InputError, PipelineError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _trace_id(request: Request) -> str:
    trace = getattr(request.state, "trace", None)
    return trace.trace_id if trace is not None else "-"


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "[error] trace=%s %s %s -> %d %s",
            _trace_id(request), request.method, request.url.path,
            exc.status_code, exc.message)
    return error_response(exc.status_code, exc.message)


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.error(
        "[error] trace=%s %s %s database error: %s",
        _trace_id(request), request.method, request.url.path, exc)
    return error_response(500, str(exc))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Final safety net: log the traceback, return only the message."""
    logger.exception(
        "[error] trace=%s unhandled exception during %s %s",
        _trace_id(request), request.method, request.url.path,
        exc_info=exc,
    )
    return error_response(500, str(exc) or "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, pipeline_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


async def read_json_body(request: Request) -> dict:
    """
    Parse a request body as a JSON object; an empty body is ``{}``.

    Raises:
        InputError: If the body is not a JSON object.
    """
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InputError("invalid json") from e
    if not isinstance(body, dict):
        raise InputError("invalid json")
    return body


def parse_model(model: Type[ModelT], data: dict) -> ModelT:
    """Validate a body against a model, reporting failures as input errors."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) for err in e.errors())
        raise InputError(f"invalid fields: {fields}") from e
