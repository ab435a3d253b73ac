from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request

from poster_gateway.auth.dependencies import get_gateway
from poster_gateway.config import config

health = APIRouter()


@health.get("/health")
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": "poster-gateway",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config.get("environment", "development"),
    }


@health.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Detailed health check reporting which collaborators are configured"""
    gateway = get_gateway(request)
    health_status = {
        "status": "healthy",
        "service": "poster-gateway",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config.get("environment", "development"),
        "checks": {},
    }

    health_status["checks"]["identity_provider"] = (
        "healthy" if gateway.auth_client is not None else "unconfigured"
    )
    health_status["checks"]["allowlist"] = (
        "healthy" if gateway.gate.store is not None else "unconfigured"
    )
    health_status["checks"]["tenants"] = [tenant.id for tenant in gateway.registry]

    if gateway.auth_client is None or gateway.gate.store is None:
        health_status["status"] = "unhealthy"
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
