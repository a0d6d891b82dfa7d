"""
CivicPulse application entry point.

Builds the FastAPI application, wires the incident, poll and user stores to
their JSON snapshot files, and owns their background flushers for the life
of the process.
"""
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from civicpulse import __version__
from civicpulse.api import health_router, router as api_router
from civicpulse.core.config import Config, get_config
from civicpulse.core.exceptions import AppException, ValidationError
from civicpulse.core.logging_config import get_logger, setup_logging
from civicpulse.integrations.maps_client import BaseGeocoder, build_geocoder
from civicpulse.security.auth import JWTTokenHandler
from civicpulse.services.community.incident_service import IncidentService
from civicpulse.services.community.poll_service import PollLedger
from civicpulse.services.community.user_service import UserStore
from civicpulse.storage import JsonFileStorage

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    stores = (app.state.incidents, app.state.polls, app.state.users)
    for store in stores:
        await store.load()
        await store.start()
    logger.info(f"{app.state.config.app_name} {__version__} started")

    try:
        yield
    finally:
        for store in stores:
            await store.shutdown()
        await app.state.geocoder.close()
        logger.info(f"{app.state.config.app_name} stopped")


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=int(exc.status_code), content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    field_errors = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        field_errors.setdefault(location or "body", []).append(error.get("msg", "invalid"))
    error = ValidationError("Invalid request", field_errors=field_errors)
    return JSONResponse(status_code=int(error.status_code), content=error.to_dict())


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
    error = AppException("Server error", code="INTERNAL_ERROR")
    return JSONResponse(status_code=int(error.status_code), content=error.to_dict())


def create_app(config: Optional[Config] = None, geocoder: Optional[BaseGeocoder] = None) -> FastAPI:
    """
    Create the application.

    Args:
        config: Application configuration (defaults to ``get_config()``)
        geocoder: Geocoder override; built from ``config.geocoding`` when omitted

    Returns:
        Configured FastAPI application
    """
    config = config or get_config()
    storage = config.storage

    app = FastAPI(
        title=config.api.title,
        version=config.api.version,
        description=config.api.description,
        docs_url=None if config.is_production() else config.api.docs_url,
        debug=config.debug,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.geocoder = geocoder or build_geocoder(config.geocoding)
    app.state.token_handler = JWTTokenHandler.from_config(config.security)
    app.state.incidents = IncidentService(
        JsonFileStorage(storage.path_for(storage.incidents_file)),
        geocoder=app.state.geocoder,
        flush_delay=storage.flush_delay_seconds,
        strict_enums=config.incidents.strict_enums,
    )
    app.state.polls = PollLedger(
        JsonFileStorage(storage.path_for(storage.polls_file)),
        flush_delay=storage.flush_delay_seconds,
    )
    app.state.users = UserStore(
        JsonFileStorage(storage.path_for(storage.users_file)),
        flush_delay=storage.flush_delay_seconds,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix=config.api.api_prefix)

    return app


def main() -> None:
    config = get_config()
    setup_logging(config.logging)
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.logging.level.value.lower(),
    )


if __name__ == "__main__":
    main()
