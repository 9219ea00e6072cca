"""Health check endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...infrastructure.dependencies import ServiceContainer, get_service_container

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    container: ServiceContainer = Depends(get_service_container),
) -> Dict[str, Any]:
    """Check the health of all service components.

    Returns:
        Service status and which verifier adapters are active
    """
    verifiers = {
        name.title(): is_active
        for name, is_active in container.verifier_factory.available_verifiers.items()
    }
    return {
        "status": "healthy",
        "verifier_provider": container.config.verifier_provider,
        "verifiers": verifiers,
    }
