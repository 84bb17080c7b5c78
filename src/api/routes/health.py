"""
Health check endpoints.

Provides endpoints for monitoring application health and status.
"""

from typing import Any, Dict

from fastapi import APIRouter, Request


router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Returns:
        Health status with basic info
    """
    return {
        "status": "healthy",
        "service": "hybrid-search-api",
        "environment": request.app.state.settings.environment,
    }


@router.get("/ready")
async def readiness_check(request: Request) -> Dict[str, Any]:
    """
    Kubernetes-style readiness probe.

    Ready once the search stack is built and at least one retrieval
    backend is configured.
    """
    stack = getattr(request.app.state, "search_stack", None)
    if stack is None:
        return {"status": "not_ready", "reason": "search_stack_not_built"}
    if not (stack.semantic.available or stack.keyword.available):
        return {"status": "not_ready", "reason": "no_retrieval_backend_configured"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes-style liveness probe.

    Returns 200 if the service is alive.
    """
    return {"status": "alive"}
