"""Problem Details (RFC 9457) errors and the FastAPI handlers that render them."""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://cdc-travel.example/problems"
PROBLEM_MEDIA_TYPE = "application/problem+json"


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


class ProblemDetailsException(HTTPException):
    """
    An error answered with an RFC 9457 body.

    ``problem_details`` holds the members sent to the client: ``type``,
    ``title``, ``status``, optional ``detail`` and ``instance``, then any
    extension members (snake_case).

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        body: Dict[str, Any] = {
            "type": type_uri or f"about:blank#{status_code}",
            "title": title,
            "status": status_code,
        }
        if detail:
            body["detail"] = detail
        if instance:
            body["instance"] = instance
        body.update(extensions or {})

        self.title = title
        self.problem_details = body
        super().__init__(status_code=status_code, detail=body, headers=headers)


class ValidationError(ProblemDetailsException):
    """Invalid argument: malformed, out-of-range or empty input (400)."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        extensions: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        members = dict(extensions or {})
        if errors:
            members["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/validation-error",
            instance=instance,
            extensions=members,
        )


class InvalidChoiceError(ValidationError):
    """A value outside a closed set; the body lists the accepted values."""

    def __init__(self, field: str, value: Any, choices: List[str], detail: Optional[str] = None):
        super().__init__(
            detail=detail or f"'{value}' is not a valid {field}",
            extensions={"field": field, "value": value, "valid_values": list(choices)},
        )


class AuthenticationError(ProblemDetailsException):
    """Missing or unusable bearer token (401)."""

    def __init__(self, detail: str = "Authentication credentials are required"):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/authentication-required",
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """No booking or collaboration request with the given id (404)."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        if detail is None:
            subject = f"{resource_type} '{resource_id}'" if resource_id else resource_type
            detail = f"The requested {subject} could not be found"

        members: Dict[str, Any] = {"resource_type": resource_type}
        if resource_id:
            members["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-not-found",
            extensions=members,
        )


class ConflictError(ProblemDetailsException):
    """The resource changed underneath the request (409)."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        conflicting_resource: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=409,
            title="Resource Conflict",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-conflict",
            extensions={"conflicting_resource": conflicting_resource} if conflicting_resource else None,
        )


class RateLimitError(ProblemDetailsException):
    """The caller's token bucket is empty (429, with Retry-After)."""

    def __init__(
        self,
        detail: str = "Rate limit exceeded",
        retry_after: Optional[int] = None,
        limit: Optional[int] = None,
        window: Optional[int] = None,
    ):
        members: Dict[str, Any] = {}
        headers: Dict[str, str] = {}
        if limit:
            members["limit"] = limit
        if window:
            members["window_seconds"] = window
        if retry_after:
            members["retry_after_seconds"] = retry_after
            headers["Retry-After"] = str(retry_after)

        super().__init__(
            status_code=429,
            title="Rate Limit Exceeded",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/rate-limit-exceeded",
            extensions=members,
            headers=headers or None,
        )


class InternalServerError(ProblemDetailsException):
    """Store failure or other unexpected error (500); carries an id for log lookup."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred while processing the request",
        error_id: Optional[str] = None,
    ):
        super().__init__(
            status_code=500,
            title="Internal Server Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/internal-server-error",
            extensions={"error_id": error_id or str(uuid.uuid4()), "timestamp": _timestamp()},
        )


def _problem_response(status_code: int, body: Dict[str, Any], headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers=headers,
        media_type=PROBLEM_MEDIA_TYPE,
    )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """Render a ProblemDetailsException, defaulting ``instance`` to the request path."""
    body = dict(exc.problem_details)
    body.setdefault("instance", request.url.path)
    return _problem_response(exc.status_code, body, exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body and query schema failures become 400 with a ``violations`` list."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", "Invalid value"),
        }
        for error in exc.errors()
    ]
    return _problem_response(400, {
        "type": f"{PROBLEM_BASE_URI}/validation-error",
        "title": "Validation Error",
        "status": 400,
        "detail": "The request data failed validation",
        "instance": request.url.path,
        "violations": violations,
    })


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log with an error id and answer 500 without leaking internals."""
    error_id = str(uuid.uuid4())
    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )
    return _problem_response(500, {
        "type": f"{PROBLEM_BASE_URI}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": request.url.path,
        "error_id": error_id,
        "timestamp": _timestamp(),
    })
