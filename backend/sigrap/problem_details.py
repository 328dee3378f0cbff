"""RFC 7807 Problem Details rendering for domain and request-validation errors."""
from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .domain_errors import DomainError

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://api.sigrap.local/problems"


def _problem(*, status: int, code: str, detail: str, details: object | None = None) -> JSONResponse:
    try:
        title = HTTPStatus(status).phrase
    except ValueError:
        title = "Domain Error"

    payload: dict[str, object] = {
        "type": f"{PROBLEM_TYPE_BASE}/{code.lower()}",
        "title": title,
        "status": status,
        "detail": detail,
        "code": code,
    }
    if details is not None:
        payload["details"] = details

    return JSONResponse(status_code=status, content=payload, media_type="application/problem+json")


def build_problem_details_response(exc: DomainError) -> JSONResponse:
    """Render DomainError as RFC 7807 payload with stable domain code."""
    return _problem(status=exc.http_status, code=exc.code, detail=exc.message, details=exc.details)


def build_validation_problem_response(exc: RequestValidationError) -> JSONResponse:
    """Render pydantic request errors with the same envelope as ValidationFailureError."""
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return _problem(
        status=422,
        code="REQUEST_VALIDATION_FAILED",
        detail="Request payload failed validation",
        details={"errors": errors},
    )


def register_problem_handlers(app: FastAPI) -> None:
    async def _handle_domain_error(request: Request, exc: DomainError):
        if exc.http_status in (403, 409):
            logger.warning(
                "domain_error code=%s status=%s path=%s", exc.code, exc.http_status, request.url.path
            )
        return build_problem_details_response(exc)

    async def _handle_validation_error(_: Request, exc: RequestValidationError):
        return build_validation_problem_response(exc)

    app.add_exception_handler(DomainError, _handle_domain_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
