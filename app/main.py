# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# Run locally:
#   uvicorn app.main:app --reload
#
# Every error leaves as the same envelope the success path uses:
#   { "success": false, "error": "...", "timestamp": "..." }
#
#   RequestValidationError  → 400 (first validation message)
#   HTTPException           → its status code and detail
#   anything else           → 500, generic text unless settings.debug
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.query import router as query_router
from app.config import settings
from app.models.responses import QueryResponse
from app.services.document_index import close_document_index

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s v%s starting", settings.app_name, settings.app_version)
    yield
    await close_document_index()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)
app.include_router(query_router)


def _error_response(status_code: int, message: str) -> JSONResponse:
    body = QueryResponse(success=False, error=message)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        detail = f"{location}: {message}" if location else message
    else:
        detail = "Invalid request"
    logger.info("Rejected %s %s: %s", request.method, request.url.path, detail)
    return _error_response(400, f"Validation error: {detail}")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(
    request: Request, exc: StarletteHTTPException,
) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error during query processing"
    if settings.debug:
        message = f"{message}: {exc}"
    return _error_response(500, message)
