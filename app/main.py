from __future__ import annotations
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

import uvicorn
from fastapi import FastAPI, Request, Response

from app.api import router
from app.errors import register_error_handlers
from logging_config import configure_logging
from services.measurements import MeasurementStore, build_default_measurement_store
from services.sensors import SensorStore, build_default_sensor_store
from settings import get_settings

access_logger = logging.getLogger("app.access")


async def log_requests(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    started = time.perf_counter()
    response = await call_next(request)
    context = {
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }
    if response.status_code >= 500:
        access_logger.error("server side error", extra=context)
    elif response.status_code >= 400:
        access_logger.warning("client side error", extra=context)
    else:
        access_logger.info("success", extra=context)
    return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    defaults = {
        "sensor_store": build_default_sensor_store,
        "measurement_store": build_default_measurement_store,
    }
    owned = []
    for attribute, factory in defaults.items():
        if getattr(app.state, attribute, None) is None:
            setattr(app.state, attribute, factory())
            owned.append(attribute)
    try:
        yield
    finally:
        app.state.sensor_store.close()
        app.state.measurement_store.close()
        for attribute in owned:
            defaults[attribute].cache_clear()
            setattr(app.state, attribute, None)


def create_app(
    sensor_store: Optional[SensorStore] = None,
    measurement_store: Optional[MeasurementStore] = None,
) -> FastAPI:
    """Build the API with explicitly supplied stores.

    Stores left as ``None`` are built from settings when the app starts.
    """
    configure_logging()
    app = FastAPI(
        title="Sensor Telemetry",
        description="Sensor registry with geospatial lookup and measurement summaries.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.sensor_store = sensor_store
    app.state.measurement_store = measurement_store
    app.middleware("http")(log_requests)
    register_error_handlers(app)
    app.include_router(router)
    return app


def run() -> None:
    settings = get_settings()
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port)


app = create_app()
