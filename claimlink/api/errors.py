"""Mapping from claim errors to HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from claimlink.errors import (
    AdminAttributionMissing,
    AlreadyClaimed,
    AuditWriteFailed,
    ClaimConflict,
    ClaimError,
    ConfidenceTooLow,
    NotClaimed,
    NotFound,
    NotOwner,
    TransientStoreError,
)

STATUS_CODES: dict[type[ClaimError], int] = {
    NotFound: 404,
    AlreadyClaimed: 409,
    ConfidenceTooLow: 403,
    AdminAttributionMissing: 401,
    AuditWriteFailed: 500,
    TransientStoreError: 503,
    NotClaimed: 409,
    NotOwner: 403,
    ClaimConflict: 409,
}


async def claim_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a ClaimError as ``{code, detail}`` with a distinct status."""
    assert isinstance(exc, ClaimError)
    status = STATUS_CODES.get(type(exc), 400)
    return JSONResponse(
        status_code=status,
        content={"code": exc.code, "detail": exc.message},
    )


def install_error_handlers(app: FastAPI) -> None:
    """Register the claim error handler on an app."""
    app.add_exception_handler(ClaimError, claim_error_handler)
