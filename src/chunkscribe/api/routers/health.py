"""
Health check endpoints.
"""

import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from ...core.container import ENTITY_STORE, OBJECT_STORAGE, WORK_QUEUE
from ..deps import get_container
from ..schemas.common import ApiResponse
from ..utils.responses import ok

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

READINESS_TIMEOUT_SECONDS = 10.0


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    timestamp: datetime
    version: str
    service: str


class ReadinessResponse(BaseModel):
    status: str
    checks: dict


@router.get("", response_model=ApiResponse[HealthResponse])
async def health_check(request: Request):
    """
    Liveness check. Does not touch any dependency.
    """
    settings = get_container(request).settings
    return ok(
        request,
        data=HealthResponse(
            status="healthy",
            timestamp=datetime.utcnow(),
            version=settings.app_version,
            service=settings.app_name,
        ),
        message="OK",
    )


@router.get("/ready", response_model=ApiResponse[ReadinessResponse])
async def readiness_check(request: Request, response: Response):
    """
    Readiness check endpoint.

    Probes the entity store, the blob container and the work queue; any
    failing probe answers 503.
    """
    container = get_container(request)
    probes = {
        "entity_store": getattr(container.get(ENTITY_STORE), "ping", None),
        "object_storage": getattr(container.get(OBJECT_STORAGE), "ping", None),
        "work_queue": getattr(container.get(WORK_QUEUE), "get_queue_length", None),
    }

    checks = {}
    all_ok = True
    for name, probe in probes.items():
        if probe is None:
            checks[name] = "not_checked"
            continue
        try:
            await asyncio.wait_for(probe(), timeout=READINESS_TIMEOUT_SECONDS)
            checks[name] = "ok"
        except Exception as e:
            logger.error(f"Readiness probe {name} failed: {e}")
            checks[name] = f"error: {str(e)[:50]}"
            all_ok = False

    if not all_ok:
        response.status_code = 503
    status = "ready" if all_ok else "not_ready"
    return ok(request, data=ReadinessResponse(status=status, checks=checks), message=status)
