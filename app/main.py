from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from app.clock import local_today
from app.config import get_settings
from app.logging_config import (
    REQUEST_ID_HEADER,
    configure_logging,
    new_request_id,
    reset_request_id,
    set_request_id,
)
from app.routes.api import api_router
from app.services.sweep_jobs_service import run_daily_sweep_once_per_day_if_ready

configure_logging()
logger = logging.getLogger(__name__)


def _startup_jobs_enabled() -> bool:
    raw = os.getenv("RUN_STARTUP_JOBS", "1").strip().lower()
    return raw in {"1", "true", "yes", "on"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting gym billing service")
    if _startup_jobs_enabled():
        guarded_run = run_daily_sweep_once_per_day_if_ready(today=local_today())
        if guarded_run is not None:
            if guarded_run.ran and guarded_run.sweep_result is not None:
                logger.info(
                    "Billing sweep startup daily run completed",
                    extra={
                        "processed": guarded_run.sweep_result.processed,
                        "created": guarded_run.sweep_result.created,
                    },
                )
            else:
                logger.info("Billing sweep startup daily run skipped (already ran today)")
    else:
        logger.info("Startup jobs disabled for this container role")
    yield
    logger.info("Shutting down gym billing service")


def create_app() -> FastAPI:
    app = FastAPI(title="Gym Billing", version="0.1.0", lifespan=lifespan)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = new_request_id(request.headers.get(REQUEST_ID_HEADER))
        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.app_host, port=settings.app_port)
