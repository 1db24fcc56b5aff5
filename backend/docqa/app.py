"""FastAPI application setup for DocQA."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from docqa.api.dependencies import get_app_settings, get_database
from docqa.api.routes_admin import router as admin_router
from docqa.api.routes_chat import router as chat_router
from docqa.api.routes_documents import router as documents_router
from docqa.core.errors import DocQAError, NotFoundError, ValidationError
from docqa.core.logging import configure_logging, get_logger, log_context

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="DocQA",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(chat_router, prefix="", tags=["chat"])
app.include_router(documents_router, prefix="/documents", tags=["documents"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.exception_handler(DocQAError)
async def handle_docqa_error(request: Request, exc: DocQAError) -> JSONResponse:
    if isinstance(exc, ValidationError):
        status_code = 400
        detail = exc.message
    elif isinstance(exc, NotFoundError):
        status_code = 404
        detail = exc.message
    else:
        # dependency details stay in the logs
        logger.error("Request failed: %s", exc, extra=log_context(path=request.url.path, code=exc.error_code))
        status_code = 502
        detail = "Upstream dependency failed"
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": exc.error_code})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s", exc, extra=log_context(path=request.url.path))
    return JSONResponse(status_code=502, content={"detail": "Upstream dependency failed", "code": "INTERNAL_ERROR"})


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_database()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
