"""Manual trigger for scheduled tasks."""
from __future__ import annotations

from fastapi import APIRouter

from marketdata.core.dependencies import Runner
from marketdata.schemas.tasks import TaskRunRequest, TaskRunResponse

router = APIRouter(prefix="/tasks")


@router.post("/run", response_model=TaskRunResponse)
async def run_tasks(runner: Runner, payload: TaskRunRequest | None = None) -> TaskRunResponse:
    """Run one task by name, or every task in order when none is given."""

    report = await runner.run(payload.task if payload else None)
    return TaskRunResponse.model_validate(report)
