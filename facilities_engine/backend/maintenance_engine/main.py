# backend/maintenance_engine/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .db import init_db
from .errors import EngineError, ExternalServiceFailure
from .logging_config import configure_logging
from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware
from .routers.executions import router as executions_router
from .routers.health import router as health_router
from .routers.imports import router as imports_router
from .routers.location_mappings import router as location_mappings_router
from .routers.recurring_work_orders import router as recurring_work_orders_router

API_PREFIX = "/api"

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def _engine_error(request: Request, exc: EngineError) -> JSONResponse:
    body: dict = {"error": exc.message}
    if isinstance(exc, ExternalServiceFailure):
        body["details"] = exc.details
        if exc.execution_id:
            body["executionId"] = exc.execution_id
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": f"{loc}: {msg}" if loc else msg},
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    init_db()
    yield


def create_app(*, manage_schema: bool = True) -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Recurring Work Order Engine",
        version="0.1.0",
        lifespan=_lifespan if manage_schema else None,
    )

    # added last runs first: request id must be set before the request log line
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(EngineError, _engine_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(executions_router, prefix=API_PREFIX)
    app.include_router(imports_router, prefix=API_PREFIX)
    app.include_router(recurring_work_orders_router, prefix=API_PREFIX)
    app.include_router(location_mappings_router, prefix=API_PREFIX)
    return app


app = create_app()
