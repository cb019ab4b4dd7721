"""Liveness and readiness probes.

``/health/`` answers as long as the process is serving. ``/health/ready``
round-trips ``SELECT 1`` through the session factory and answers 503 while
the database is unreachable, so a load balancer stops routing scheduling
requests to an instance that cannot persist them.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buildplan import __version__
from buildplan.logging import get_logger
from buildplan.web.dependencies import get_session_factory

logger = get_logger(__name__)


class LivenessResponse(BaseModel):
    status: Literal["ok"] = "ok"
    version: str = __version__


class ReadinessResponse(BaseModel):
    status: Literal["ok", "unavailable"]
    database: Literal["connected", "disconnected"]


async def database_reachable(session_factory: async_sessionmaker[AsyncSession]) -> bool:
    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001 - any failure means not ready
        logger.warning("readiness_probe_failed", error=str(exc))
        return False
    return True


def create_health_router() -> APIRouter:
    router = APIRouter(prefix="/health", tags=["health"])

    @router.get("/", response_model=LivenessResponse)
    async def liveness() -> LivenessResponse:
        return LivenessResponse()

    @router.get("/ready", response_model=ReadinessResponse)
    async def readiness(
        response: Response,
        session_factory: async_sessionmaker[AsyncSession] = Depends(  # noqa: B008
            get_session_factory
        ),
    ) -> ReadinessResponse:
        if await database_reachable(session_factory):
            return ReadinessResponse(status="ok", database="connected")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="unavailable", database="disconnected")

    return router
