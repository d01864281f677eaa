"""
Health API Routes
AlertBridge Trade Automation
"""

from fastapi import APIRouter, Depends

from alertbridge.api.deps import get_services
from alertbridge.db.session import health_check
from alertbridge.services.registry import ServiceRegistry

router = APIRouter()


@router.get("/health")
async def get_health(services: ServiceRegistry = Depends(get_services)):
    """Health check endpoint for load balancers and monitoring."""
    db_healthy = await health_check(services.session_factory)
    return {
        "status": "healthy" if db_healthy else "degraded",
        "database": "connected" if db_healthy else "disconnected",
        "services": services.get_status(),
    }
