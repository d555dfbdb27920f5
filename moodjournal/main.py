import logging
import os
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# Load env from moodjournal/.env
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

from moodjournal.api import admin, health, journals, notifications, payments, plans, usage  # noqa: E402
from moodjournal.core.config import settings, validate_config  # noqa: E402
from moodjournal.core.database import create_all_tables  # noqa: E402
from moodjournal.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from moodjournal.core.logging import configure_logging  # noqa: E402
from moodjournal.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from moodjournal.workers.expiry_sweeper import ExpirySweeper  # noqa: E402

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("moodjournal")
    logger.info("Starting Mood Journal backend...")
    app.state.startup_time = time.time()
    app.state.sweeper = None

    create_all_tables()

    if settings.SWEEPER_ENABLED:
        sweeper = ExpirySweeper(run_on_start=settings.SWEEPER_RUN_ON_START)
        sweeper.start()
        app.state.sweeper = sweeper
    try:
        yield
    finally:
        if app.state.sweeper is not None:
            app.state.sweeper.stop()
        logger.info("Stopping Mood Journal backend...")


app = FastAPI(title="Mood Journal - Backend", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# CORS (adjust origins in production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(usage.router)
app.include_router(journals.router)
app.include_router(plans.router)
app.include_router(payments.router)
app.include_router(notifications.router)
app.include_router(admin.router)
