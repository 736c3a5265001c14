import threading
from datetime import datetime, timezone

from factotum.models.run import Run
from factotum.models.workflow import Workflow
from factotum.utils.exceptions import EndpointConflictError, NotFoundError


class MemoryStore:
    """Process-local store. Records are copied on the way in and out."""

    def __init__(self) -> None:
        self._workflows: dict[str, Workflow] = {}
        self._runs: dict[str, Run] = {}
        self._endpoints: dict[str, str] = {}  # endpoint path -> workflow id
        self._lock = threading.Lock()

    # Workflows

    def save_workflow(self, workflow: Workflow) -> str:
        """Insert or replace ``workflow``.

        Raises ``EndpointConflictError`` when another workflow owns its endpoint.
        """
        with self._lock:
            if workflow.endpoint:
                owner = self._endpoints.get(workflow.endpoint)
                if owner is not None and owner != workflow.id:
                    raise EndpointConflictError(workflow.endpoint)
            workflow.updated_at = datetime.now(timezone.utc)
            previous = self._workflows.get(workflow.id)
            if previous is not None and previous.endpoint:
                if self._endpoints.get(previous.endpoint) == workflow.id:
                    del self._endpoints[previous.endpoint]
            self._workflows[workflow.id] = workflow.model_copy(deep=True)
            if workflow.endpoint:
                self._endpoints[workflow.endpoint] = workflow.id
            return workflow.id

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
            return workflow.model_copy(deep=True) if workflow else None

    def get_workflow_by_endpoint(self, endpoint: str) -> Workflow | None:
        with self._lock:
            workflow_id = self._endpoints.get(endpoint)
        return self.get_workflow(workflow_id) if workflow_id else None

    def list_workflows(self) -> list[Workflow]:
        with self._lock:
            return [w.model_copy(deep=True) for w in self._workflows.values()]

    def delete_workflow(self, workflow_id: str) -> bool:
        with self._lock:
            workflow = self._workflows.pop(workflow_id, None)
            if workflow is None:
                return False
            if workflow.endpoint and self._endpoints.get(workflow.endpoint) == workflow_id:
                del self._endpoints[workflow.endpoint]
            return True

    # Runs

    def create_run(self, workflow_id: str) -> Run:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
            if workflow is None:
                raise NotFoundError(f"Workflow '{workflow_id}' not found")
            run = Run(workflow_id=workflow_id, workflow_name=workflow.name)
            self._runs[run.id] = run.model_copy(deep=True)
            return run

    def get_run(self, run_id: str) -> Run | None:
        with self._lock:
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run else None

    def update_run(self, run: Run) -> bool:
        with self._lock:
            if run.id not in self._runs:
                return False
            self._runs[run.id] = run.model_copy(deep=True)
            return True

    def history(self, workflow_id: str, limit: int = 20) -> list[Run]:
        with self._lock:
            runs = [r for r in self._runs.values() if r.workflow_id == workflow_id]
            return [r.model_copy(deep=True) for r in _most_recent(runs, limit)]

    def history_by_name(self, workflow_name: str, limit: int = 20) -> list[Run]:
        with self._lock:
            runs = [r for r in self._runs.values() if r.workflow_name == workflow_name]
            return [r.model_copy(deep=True) for r in _most_recent(runs, limit)]


def _most_recent(runs: list[Run], limit: int) -> list[Run]:
    return sorted(runs, key=lambda r: r.created_at, reverse=True)[:limit]
