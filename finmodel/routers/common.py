"""
Shared HTTP error translation for the routers.

    NotFoundError    -> 404
    ValidationError  -> 422  error_code VALIDATION_ERROR, per-field errors in context
    DomainError      -> 422  error_code DOMAIN_ERROR
"""

from fastapi import HTTPException

from ..errors import DomainError, FinModelError, NotFoundError, ValidationError
from ..schemas import ErrorResponse

ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Not found"},
    422: {"model": ErrorResponse, "description": "Validation or domain error"},
}


def not_found(entity: str, entity_id) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{entity} {entity_id} not found")


def http_error(exc: FinModelError) -> HTTPException:
    """Convert an engine/service error into the API error format."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=422,
            detail={
                "detail": str(exc),
                "error_code": "VALIDATION_ERROR",
                "context": {"errors": exc.errors},
            },
        )
    if isinstance(exc, DomainError):
        return HTTPException(
            status_code=422,
            detail={"detail": str(exc), "error_code": "DOMAIN_ERROR", "context": None},
        )
    return HTTPException(status_code=500, detail=str(exc))
