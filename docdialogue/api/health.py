"""Health check utilities."""

from typing import Dict

from docdialogue.core.dependencies import ServiceContainer
from docdialogue.services.health import (
    check_openai,
    check_postgres,
    check_qdrant,
    check_redis,
)

# Optional backends do not make a service unhealthy when left unconfigured.
_OK_STATES = ("healthy", "not_configured")


async def check_all_dependencies(
    services: ServiceContainer, include_openai: bool = True
) -> Dict:
    """
    Check all service dependencies.

    Args:
        services: Service container.
        include_openai: Whether to call the OpenAI API.

    Returns:
        Dictionary with overall status and individual service statuses.
    """
    checks = {
        "qdrant": await check_qdrant(services.vector_db),
        "postgres": await check_postgres(services.database),
        "redis": await check_redis(services.cache_service),
    }
    if include_openai:
        checks["openai"] = await check_openai(services.embedding_service)

    overall_status = "healthy"
    for name, status in checks.items():
        if status.get("status") not in _OK_STATES:
            overall_status = "unhealthy"

    return {"status": overall_status, "services": checks}


async def check_readiness(services: ServiceContainer) -> Dict:
    """
    Check service readiness: the vector index and database must answer.

    Returns:
        Readiness status dictionary.
    """
    qdrant_status = await check_qdrant(services.vector_db)
    postgres_status = await check_postgres(services.database)

    result = {
        "qdrant": qdrant_status.get("status") == "healthy",
        "postgres": postgres_status.get("status") == "healthy",
    }
    result["ready"] = result["qdrant"] and result["postgres"]
    return result
