"""
Vantage — cash-flow dashboard backend.

App factory, lifespan, middleware and error handlers. Routes live in
app/routers/, business logic in app/services/.

Lifespan builds the process-wide resources once and keeps them on
app.state: the Database (engine + sessions), the shared httpx client and
the QuickBooksClient around it.
"""

import uuid
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import APP_VERSION, settings
from .connectors.quickbooks import QuickBooksClient
from .database import init_database
from .exceptions import VantageError
from .logging_config import setup_logging
from .rate_limit import limiter
from .routers import chat, qbo, statements, transactions
from .schemas.errors import ErrorResponse


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    db = init_database(settings.database_url)
    db.create_tables()
    http = httpx.AsyncClient(
        timeout=settings.qbo_timeout_seconds,
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )
    app.state.db = db
    app.state.http = http
    app.state.qbo = QuickBooksClient.from_settings(http, settings)
    logger.info("Vantage started", version=APP_VERSION)
    try:
        yield
    finally:
        await http.aclose()
        db.dispose()


app = FastAPI(title="Vantage", version=APP_VERSION, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(qbo.router)
app.include_router(chat.router)
app.include_router(statements.router)
app.include_router(transactions.router)


# ── Middleware ─────────────────────────────────────────────────────────


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    with logger.contextualize(request_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Error handlers ─────────────────────────────────────────────────────


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "")


def _respond(body: ErrorResponse) -> JSONResponse:
    return JSONResponse(body.model_dump(exclude_none=True), status_code=body.status_code)


def _error(request: Request, status_code: int, message: str, kind: str, detail: list | None = None):
    return _respond(ErrorResponse(
        error=message,
        status_code=status_code,
        kind=kind,
        request_id=_request_id(request),
        detail=detail,
    ))


@app.exception_handler(VantageError)
async def vantage_error_handler(request: Request, exc: VantageError):
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.message}")
    else:
        logger.info(f"{exc.__class__.__name__}: {exc.message}")
    return _respond(ErrorResponse.from_exception(exc, _request_id(request)))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(request, exc.status_code, str(exc.detail), "HTTPException")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    detail = [{"loc": list(e.get("loc", [])), "msg": e.get("msg", "")} for e in exc.errors()]
    return _error(request, 422, "Validation error", "ValidationError", detail)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error("Unhandled error")
    return _error(request, 500, "Internal server error", "InternalError")


@app.get("/health")
async def health():
    return {"status": "ok", "version": APP_VERSION}
