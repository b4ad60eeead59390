"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from sensor_analytics.api.v1.health import router as health_router
from sensor_analytics.api.v1.analytics import router as analytics_router
from sensor_analytics.api.v1.engines import router as engines_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(analytics_router, tags=["analytics"])
v1_router.include_router(engines_router, tags=["engines"])
