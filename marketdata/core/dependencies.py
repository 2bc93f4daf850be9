"""Common FastAPI dependencies."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from marketdata.core.database import get_db_session
from marketdata.services.container import MarketDataContainer, get_container
from marketdata.services.orchestrator import TimeframeOrchestrator
from marketdata.tasks.jobs import build_task_runner
from marketdata.tasks.runner import TaskRunner

DBSession = Annotated[AsyncSession, Depends(get_db_session)]


def get_market_container(request: Request) -> MarketDataContainer:
    container = getattr(request.app.state, "container", None)
    return container if container is not None else get_container()


Container = Annotated[MarketDataContainer, Depends(get_market_container)]


def get_orchestrator(container: Container) -> TimeframeOrchestrator:
    return container.orchestrator


def get_task_runner(container: Container) -> TaskRunner:
    return build_task_runner(container)


Orchestrator = Annotated[TimeframeOrchestrator, Depends(get_orchestrator)]
Runner = Annotated[TaskRunner, Depends(get_task_runner)]

__all__ = ["Container", "DBSession", "Orchestrator", "Runner", "get_market_container"]
