"""
ThreadSpire backend app.

Run with: uvicorn threadspire.main:app --reload
"""

import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from threadspire.api import analytics, health, metrics, threads, users
from threadspire.core.config import settings, validate_config
from threadspire.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from threadspire.core.logging import configure_logging
from threadspire.core.middleware.metrics import MetricsMiddleware
from threadspire.core.middleware.request_id import RequestIdMiddleware
from threadspire.core.middleware.tracing import TracingMiddleware
from threadspire.core.tracing import setup_tracing
from threadspire.core.validation import validate_env

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))
setup_tracing(enabled=settings.OTEL_ENABLED)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("threadspire")
    logger.info("Starting ThreadSpire backend...")
    app.state.startup_time = time.time()
    from threadspire.features.store import get_store

    get_store()
    try:
        yield
    finally:
        logging.getLogger("threadspire").info("Stopping ThreadSpire backend...")


app = FastAPI(title="ThreadSpire", lifespan=lifespan)

# Last added runs first: request id is bound before tracing and metrics see the request
app.add_middleware(TracingMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(threads.router)
app.include_router(users.router)
app.include_router(analytics.router)
app.include_router(health.router)
app.include_router(metrics.router)
