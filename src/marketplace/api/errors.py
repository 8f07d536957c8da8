"""HTTP mapping of the marketplace error taxonomy.

    ValidationError            → 400 (Protean's handler)
    NotFoundError              → 404
    InvalidStateError          → 409
    ConflictError              → 409
    ConcurrencyConflictError   → 409
    ExpectedVersionError       → 409 (a stale save Protean rejected)
    InsufficientResourceError  → 422
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError
from protean.integrations.fastapi import register_exception_handlers

from marketplace.errors import (
    ConcurrencyConflictError,
    ConflictError,
    InsufficientResourceError,
    InvalidStateError,
    NotFoundError,
)


def register_marketplace_exception_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):  # noqa: ARG001
        return JSONResponse(status_code=404, content={"error": str(exc), "entity": exc.entity})

    @app.exception_handler(InvalidStateError)
    async def invalid_state(request: Request, exc: InvalidStateError):  # noqa: ARG001
        return JSONResponse(status_code=409, content={"error": str(exc), "current_state": exc.current_state})

    @app.exception_handler(ConflictError)
    async def conflict(request: Request, exc: ConflictError):  # noqa: ARG001
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(ConcurrencyConflictError)
    async def concurrency_conflict(request: Request, exc: ConcurrencyConflictError):  # noqa: ARG001
        return JSONResponse(
            status_code=409,
            content={"error": str(exc), "expected_revision": exc.expected, "actual_revision": exc.actual},
        )

    @app.exception_handler(ExpectedVersionError)
    async def stale_save(request: Request, exc: ExpectedVersionError):  # noqa: ARG001
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(InsufficientResourceError)
    async def insufficient_resource(request: Request, exc: InsufficientResourceError):  # noqa: ARG001
        return JSONResponse(
            status_code=422,
            content={
                "error": str(exc),
                "resource": exc.resource,
                "requested": exc.requested,
                "available": exc.available,
            },
        )
