from fastapi import APIRouter

from ...config import settings
from ...observability.metrics import metrics_endpoint

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """health check endpoint"""
    return {
        "status": "ok",
        "service": settings.service_name,
        "version": settings.service_version,
    }


@router.get("/metrics")
async def metrics():
    """prometheus metrics endpoint"""
    return metrics_endpoint()
