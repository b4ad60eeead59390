"""Sensor Analytics Compute Service: FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Tuple

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sensor_analytics.config import Settings, settings
from sensor_analytics.logging_utils import setup_logging
from sensor_analytics.api.v1.router import v1_router
from sensor_analytics.api.v1.health import router as health_root_router
from sensor_analytics.api.v1 import analytics as analytics_api
from sensor_analytics.api.v1 import engines as engines_api
from sensor_analytics.api.v1 import health as health_api
from sensor_analytics.analytics.service import SensorAnalyticsService
from sensor_analytics.engines.base import AnalysisEngine
from sensor_analytics.engines.statistical import StatisticalEngine
from sensor_analytics.jobs.worker import AnalyticsWorker
from sensor_analytics.sensors.source import (
    InMemorySensorDataSource,
    SensorDataSource,
    SupabaseSensorDataSource,
)
from sensor_analytics.storage.base import JobStore
from sensor_analytics.storage.memory import InMemoryJobStore
from sensor_analytics.storage.supabase_store import SupabaseJobStore

logger = logging.getLogger("sensor_analytics.main")


def build_backends(config: Settings) -> Tuple[JobStore, SensorDataSource, AnalysisEngine]:
    """Create the job store, reading source and engine selected by config."""
    if config.storage_backend == "supabase":
        from sensor_analytics.db.supabase_client import get_supabase

        client = get_supabase()
        store: JobStore = SupabaseJobStore(client, table=config.analytics_table)
        data_source: SensorDataSource = SupabaseSensorDataSource(
            client, table=config.sensor_data_table
        )
    elif config.storage_backend == "memory":
        store = InMemoryJobStore()
        data_source = InMemorySensorDataSource()
    else:
        raise ValueError(f"Unknown storage backend '{config.storage_backend}'")

    engine = StatisticalEngine(
        anomaly_zscore=config.anomaly_zscore_threshold,
        forecast_horizon=config.forecast_horizon,
    )
    return store, data_source, engine


# Global worker reference
_worker = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _worker

    setup_logging(settings.log_level)
    logger.info(f"Starting Sensor Analytics Compute Service on port {settings.compute_port}")
    logger.info(f"Storage backend: {settings.storage_backend}")

    store, data_source, engine = build_backends(settings)
    logger.info(f"Analysis engine: {engine.name}")

    # Start the job worker
    _worker = AnalyticsWorker(
        store,
        data_source,
        engine,
        step_hold_seconds=settings.progress_step_hold_seconds,
    )
    await _worker.start()
    logger.info("Analytics worker started")

    if settings.recover_pending_on_startup:
        recovered = await _worker.recover_pending()
        logger.info(f"Recovered {recovered} pending analytics")

    # Wire worker, service and engine into API endpoints
    analytics_api.set_service(SensorAnalyticsService(store, _worker))
    engines_api.set_engine(engine)
    health_api.set_worker(_worker)

    yield

    # Shutdown
    logger.info("Shutting down Sensor Analytics Compute Service")
    await _worker.stop()


app = FastAPI(
    title="Sensor Analytics Compute Service",
    description="Queued trend, anomaly and forecast analysis of sensor readings",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the dashboard dev servers and any configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
