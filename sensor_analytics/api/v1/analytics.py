"""Analytics API: submit analyses, poll progress, list and delete them."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from sensor_analytics.errors import JobNotFound, ValidationFailure
from sensor_analytics.jobs.models import AnalysisJob, AnalysisKind, AnalysisParameters

router = APIRouter()

# Set by main.py during lifespan
_service = None


def set_service(service):
    global _service
    _service = service


def _require_service():
    if _service is None:
        raise HTTPException(status_code=503, detail="Analytics service not initialized")
    return _service


class AnalyticsCreateRequest(BaseModel):
    sensor_id: str
    user_id: str
    type: AnalysisKind
    parameters: AnalysisParameters


class AnalyticsListResponse(BaseModel):
    data: List[AnalysisJob]
    count: int


@router.post("/analytics", response_model=AnalysisJob, status_code=201)
async def create_analytics(request: AnalyticsCreateRequest):
    """Create an analysis and queue it for processing.

    Poll GET /api/v1/analytics/{id} for status and step progress.
    """
    service = _require_service()
    try:
        return await service.create_analytics(
            user_id=request.user_id,
            sensor_id=request.sensor_id,
            kind=request.type,
            parameters=request.parameters,
        )
    except ValidationFailure as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/analytics", response_model=AnalyticsListResponse)
async def list_user_analytics(user_id: str):
    jobs = await _require_service().list_for_user(user_id)
    return AnalyticsListResponse(data=jobs, count=len(jobs))


@router.get("/analytics/{analytics_id}", response_model=AnalysisJob)
async def get_analytics(analytics_id: str):
    """Current status, progress and (once completed) result of an analysis."""
    try:
        return await _require_service().get_analytics(analytics_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Analytics not found")


@router.get("/sensors/{sensor_id}/analytics", response_model=AnalyticsListResponse)
async def list_sensor_analytics(sensor_id: str, user_id: Optional[str] = None):
    jobs = await _require_service().list_for_sensor(sensor_id, user_id=user_id)
    return AnalyticsListResponse(data=jobs, count=len(jobs))


@router.delete("/analytics/{analytics_id}")
async def delete_analytics(analytics_id: str):
    try:
        await _require_service().delete_analytics(analytics_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Analytics not found")
    return {"success": True, "message": "Analytics deleted successfully"}
