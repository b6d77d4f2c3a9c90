# backend/main.py
from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.app.core.logging import setup_logging
from backend.app.core.config import Settings, get_settings, validate_settings
from backend.app.core.errors import CheckoutError, ConfigError

from backend.app.api.routes_checkout import router as checkout_router
from backend.app.api.routes_health import router as health_router
from backend.app.api.routes_metrics import router as metrics_router

log = logging.getLogger("backend")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    # Refuse to serve without a usable config; uvicorn reports the failed startup
    validate_settings(app.state.settings)
    log.info("Checkout backend ready (currency=%s)", app.state.settings.currency)
    yield


def create_app(cfg: Optional[Settings] = None) -> FastAPI:
    cfg = cfg or get_settings()
    # Initialize logging early so all imports use correct handlers/levels
    setup_logging(cfg.log_level, cfg.log_format)

    app = FastAPI(
        title=cfg.service_name or "Checkout Backend",
        version=cfg.version or "0.1.0",
        docs_url="/docs",
        redoc_url=None,
        openapi_url="/openapi.json",
        lifespan=_lifespan,
    )
    app.state.settings = cfg

    # --- Request failures -> {"error": ..., "kind": ...} ---
    @app.exception_handler(CheckoutError)
    async def _checkout_error_to_json(request: Request, exc: CheckoutError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    # --- Anything else: log the traceback, keep the body generic ---
    @app.exception_handler(Exception)
    async def _unhandled_exc_to_json(request: Request, exc: Exception):
        log.error(
            "Unhandled exception on %s %s",
            request.method, request.url.path,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "kind": "internal"},
        )

    # The storefront runs on another origin and sends credentials
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allow_origins,
        allow_credentials=True,
        allow_methods=cfg.cors_allow_methods or ["*"],
        allow_headers=cfg.cors_allow_headers or ["*"],
    )

    # Routes
    app.include_router(checkout_router)
    app.include_router(health_router)
    app.include_router(metrics_router)

    # Friendly root
    @app.get("/")
    def root():
        return {
            "service": cfg.service_name,
            "version": cfg.version,
            "environment": cfg.environment,
            "docs": "/docs",
            "openapi": "/openapi.json",
            "tips": {
                "checkout": "POST /create-checkout-session",
                "health": "/api/health",
                "metrics": "/api/metrics",
            },
        }

    return app


app = create_app()


def serve() -> int:
    """
    Console entry point. Validates config before binding the port and returns
    a non-zero status instead of exiting, so callers decide what to do.
    """
    import uvicorn

    cfg = get_settings()
    try:
        validate_settings(cfg)
    except ConfigError as exc:
        log.error("Invalid configuration: %s", exc)
        return 1

    log.info("Server running on http://%s:%s", cfg.host, cfg.port)
    uvicorn.run(app, host=cfg.host, port=cfg.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(serve())
