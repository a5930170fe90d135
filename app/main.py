"""
Main FastAPI application for the AiVerse payments API.
Serves Tribute payments, the internal refund endpoint, health and metrics.
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.deps import ApiError, shutdown_services
from app.api.routes import health, internal, tribute
from app.core.config import settings
from app.core.logging import configure_logging
from app.utils.metrics import router as metrics_router


configure_logging(settings)
logger = logging.getLogger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app_started", extra={"reason": settings.app_env})
    yield
    shutdown_services()
    logger.info("app_stopped")


app = FastAPI(
    title="AiVerse Payments API",
    description="Tribute payments, balance ledger and reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["https://aiverse.app", "http://localhost:5173", "http://127.0.0.1:5173"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get(settings.request_id_header) or uuid.uuid4().hex
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = round((time.perf_counter() - start) * 1000, 2)
    response.headers[settings.request_id_header] = request_id
    logger.info(
        "http_request",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": latency_ms,
        },
    )
    return response


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "error": message})


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(tribute.router)
app.include_router(internal.router)
app.include_router(metrics_router)
