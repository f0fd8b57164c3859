import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load env before settings are read
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"))

from brandforge import __version__
from brandforge.api import actions, credits, health, metrics
from brandforge.core.config import settings, validate_config
from brandforge.core.database import create_all_tables
from brandforge.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from brandforge.core.logging import configure_logging
from brandforge.core.middleware.metrics import MetricsMiddleware
from brandforge.core.middleware.request_id import RequestIdMiddleware

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("brandforge")
    logger.info("Starting BrandForge backend...")
    app.state.startup_time = time.time()
    create_all_tables()
    try:
        yield
    finally:
        logging.getLogger("brandforge").info("Stopping BrandForge backend...")


app = FastAPI(title="BrandForge - Backend", version=__version__, lifespan=lifespan)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS (adjust origins in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.root_router, tags=["health"])
app.include_router(metrics.router, tags=["metrics"])
app.include_router(actions.router, tags=["actions"])
app.include_router(credits.router, tags=["credits"])
