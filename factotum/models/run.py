import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field


class ExecutionState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    # Reserved, never assigned by the engine
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self not in (ExecutionState.PENDING, ExecutionState.RUNNING)

    @property
    def stops_execution(self) -> bool:
        return self in (ExecutionState.FAILED, ExecutionState.CANCELLED)


class StepOutcome(BaseModel):
    step_id: str
    step_name: str = ""
    step_type: str = ""
    state: ExecutionState = ExecutionState.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: Any = None
    error: str | None = None
    children: list["StepOutcome"] | None = None
    retry_count: int = 0

    def find(self, step_id: str) -> "StepOutcome | None":
        """Depth-first lookup of the outcome recorded for ``step_id``."""
        if self.step_id == step_id:
            return self
        for child in self.children or []:
            found = child.find(step_id)
            if found is not None:
                return found
        return None


class Run(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    workflow_name: str = ""
    state: ExecutionState = ExecutionState.PENDING
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
    step_outcomes: list[StepOutcome] = []

    @computed_field
    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def find_outcome(self, step_id: str) -> StepOutcome | None:
        for outcome in self.step_outcomes:
            found = outcome.find(step_id)
            if found is not None:
                return found
        return None
