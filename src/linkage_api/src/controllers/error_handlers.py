from __future__ import annotations

from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from linkage_api.src.models.errors import (
    LinkageError,
    PseudonymizationError,
    RelationNotFoundError,
)
from linkage_api.src.utils.logging_utils import log_warning


def _rejection(request: Request, exc: Exception, status: HTTPStatus) -> JSONResponse:
    error = type(exc).__name__
    log_warning("Request rejected", error=error, path=request.url.path, status=int(status))
    return JSONResponse(
        status_code=int(status),
        content={"error": error, "detail": str(exc)},
    )


async def linkage_error_handler(request: Request, exc: LinkageError) -> JSONResponse:
    return _rejection(request, exc, HTTPStatus.UNPROCESSABLE_ENTITY)


async def pseudonymization_error_handler(
    request: Request, exc: PseudonymizationError,
) -> JSONResponse:
    return _rejection(request, exc, HTTPStatus.UNPROCESSABLE_ENTITY)


async def relation_not_found_handler(
    request: Request, exc: RelationNotFoundError,
) -> JSONResponse:
    return _rejection(request, exc, HTTPStatus.NOT_FOUND)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LinkageError, linkage_error_handler)
    app.add_exception_handler(PseudonymizationError, pseudonymization_error_handler)
    app.add_exception_handler(RelationNotFoundError, relation_not_found_handler)
