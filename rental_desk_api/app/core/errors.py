"""
Error taxonomy and the handlers that render it.

Services raise the exceptions defined here; they never build HTTP
responses themselves.  ``register_exception_handlers`` installs FastAPI
handlers that turn every failure into the same JSON body::

    {"success": false, "error": "<kind>", "message": "...", ...extra}

``error`` is a stable machine readable kind, ``message`` is meant for
people.  Unclassified exceptions are logged with their traceback and
reported as ``internal_error`` with the raw message under ``details``.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)


class RentalDeskError(Exception):
    """Base class for classified failures."""

    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.kind, "message": self.message}
        body.update(self.extra)
        return body


class MalformedInput(RentalDeskError):
    kind = "malformed_input"
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationFailed(RentalDeskError):
    """A required field is missing or a value breaks a business rule."""

    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, field: str, message: str, **extra: Any) -> None:
        super().__init__(message, field=field, **extra)
        self.field = field


class NotFound(RentalDeskError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier: Any = None, message: Optional[str] = None) -> None:
        if message is None:
            message = f"Could not find {resource.lower()} with ID: {identifier}"
        extra: Dict[str, Any] = {"resource": resource}
        if identifier is not None:
            extra["identifier"] = identifier
        super().__init__(message, **extra)


class StateConflict(RentalDeskError):
    """The record's current state does not permit the request.

    Usually a status guard (``current``/``required`` are then reported as
    ``currentStatus``/``requiredStatus``), but also attempts to change
    immutable fields.
    """

    kind = "state_conflict"
    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        required: Iterable[str] | str = (),
        **extra: Any,
    ) -> None:
        if isinstance(required, str):
            required = [required]
        required = list(required)
        if current is not None:
            extra["currentStatus"] = current
        if required:
            extra["requiredStatus"] = required
        super().__init__(message, **extra)
        self.current = current


class UpstreamFailure(RentalDeskError):
    """The photo upload script answered with an error."""

    kind = "upstream_failure"
    status_code = status.HTTP_502_BAD_GATEWAY


class BackingStoreUnavailable(RentalDeskError):
    """Credentials or configuration missing, transport failure or timeout."""

    kind = "backing_store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, cause: Optional[BaseException] = None, **extra: Any) -> None:
        super().__init__(message, **extra)
        self.cause = cause


def method_not_allowed_body(allowed: str) -> Dict[str, Any]:
    return {
        "success": False,
        "error": "method_not_allowed",
        "message": f"This endpoint only accepts {allowed} requests",
        "allowed": [m.strip() for m in allowed.split(",") if m.strip()],
    }


async def _rental_desk_error_handler(request: Request, exc: RentalDeskError) -> JSONResponse:
    if isinstance(exc, BackingStoreUnavailable):
        logger.error("%s %s: %s (cause: %r)", request.method, request.url.path, exc.message, exc.cause)
    else:
        logger.info("%s %s rejected: %s %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any(err.get("type") in {"json_invalid", "value_error.jsondecode"} for err in errors):
        error = MalformedInput("Request body must be valid JSON")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query")]
    field = ".".join(loc) or "body"
    if first.get("type") == "missing" and not loc:
        error = MalformedInput("Request body is required")
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
    error = ValidationFailed(
        field,
        f"Invalid value for '{field}': {first.get('msg', 'invalid')}",
        details=[{"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")} for e in errors],
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    headers = getattr(exc, "headers", None) or {}
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        allowed = headers.get("Allow", "")
        return JSONResponse(status_code=exc.status_code, content=method_not_allowed_body(allowed), headers=headers)
    kinds = {
        status.HTTP_401_UNAUTHORIZED: "unauthorized",
        status.HTTP_403_FORBIDDEN: "forbidden",
        status.HTTP_404_NOT_FOUND: "not_found",
    }
    body = {"success": False, "error": kinds.get(exc.status_code, "http_error"), "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers or None)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = {
        "success": False,
        "error": "internal_error",
        "message": f"An unexpected error occurred during {request.method} {request.url.path}",
        "details": str(exc),
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all error handlers to ``app``."""
    app.add_exception_handler(RentalDeskError, _rental_desk_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
