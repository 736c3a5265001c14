import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, JsonValue

from factotum.utils import params

WORKFLOW_TYPE = "FactotumTrigger"


class StepKind(str, Enum):
    PROCESS = "process"  # HTTP call
    PARALLEL = "parallel"
    SERIAL = "serial"
    BATCH = "batch"
    EXECUTABLE = "executable"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str) -> "StepKind":
        value = (raw or "").strip().lower()
        if value == cls.UNKNOWN.value:
            return cls.UNKNOWN
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_container(self) -> bool:
        return self in (StepKind.PARALLEL, StepKind.SERIAL)

    @property
    def is_leaf(self) -> bool:
        return self in (StepKind.PROCESS, StepKind.BATCH, StepKind.EXECUTABLE)


class Step(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    type: str = ""
    parameters: dict[str, JsonValue] = {}
    steps: list["Step"] | None = None  # children, container kinds only

    @property
    def kind(self) -> StepKind:
        return StepKind.parse(self.type)

    @property
    def children(self) -> list["Step"]:
        return self.steps or []


class Workflow(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    type: str = WORKFLOW_TYPE
    parameters: dict[str, JsonValue] = {}
    steps: list[Step] = []
    # Bookkeeping only, never serialised back to callers
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), exclude=True)
    updated_at: datetime | None = Field(default=None, exclude=True)

    @property
    def timeout_seconds(self) -> int | None:
        """Run timeout from ``run_seconds``; non-positive values mean no timeout."""
        seconds = params.get_int(self.parameters, "run_seconds")
        if seconds is None or seconds <= 0:
            return None
        return seconds

    @property
    def endpoint(self) -> str | None:
        return params.get_str(self.parameters, "endpoint")

    @property
    def cron(self) -> str | None:
        return params.get_str(self.parameters, "cron")
