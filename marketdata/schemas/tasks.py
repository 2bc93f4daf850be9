"""Pydantic schemas for the task trigger API."""
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from marketdata.tasks.runner import TaskStatus


class TaskRunRequest(BaseModel):
    task: Optional[str] = None


class TaskResultOut(BaseModel):
    task: str
    status: TaskStatus
    duration_ms: float
    details: Dict[str, Any]
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TaskRunResponse(BaseModel):
    requested: Optional[str]
    success: bool
    started_at: dt.datetime
    finished_at: Optional[dt.datetime]
    results: List[TaskResultOut]

    model_config = ConfigDict(from_attributes=True)


__all__ = ["TaskResultOut", "TaskRunRequest", "TaskRunResponse"]
