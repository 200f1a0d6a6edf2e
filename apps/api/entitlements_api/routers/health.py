"""Health check endpoints."""

import logging

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from entitlements_api import __version__
from entitlements_api.storage.dynamodb_client import get_entitlements_store

router = APIRouter()
logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    services: dict[str, str]


def check_dynamodb() -> str:
    """Check DynamoDB connectivity.

    Returns:
        str: "up" if healthy, error message otherwise
    """
    try:
        table_status = get_entitlements_store().ping()
        if table_status != "ACTIVE":
            return f"down: table {table_status}"
        return "up"
    except ValueError as e:
        # Config error (guardrail / env)
        logger.error(f"DynamoDB config error: {e}")
        return f"down: config error - {str(e)[:40]}"
    except Exception as e:
        logger.error(f"DynamoDB health check failed: {e}")
        return f"down: {str(e)[:50]}"


@router.get("/health", response_model=HealthResponse)
async def health(response: Response) -> HealthResponse:
    """Liveness + dependency check."""
    services = {"dynamodb": check_dynamodb()}
    healthy = all(state == "up" for state in services.values())
    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        services=services,
    )
