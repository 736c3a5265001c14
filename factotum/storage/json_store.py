import json
import os
import threading
from datetime import datetime, timezone
from pathlib import Path

from factotum.models.run import Run
from factotum.models.workflow import Workflow
from factotum.utils.exceptions import EndpointConflictError, NotFoundError


class JsonStore:
    """One JSON file per workflow and per run under ``base_dir``."""

    def __init__(self, base_dir: str | Path | None = None):
        if base_dir is None:
            base_dir = os.environ.get("FACTOTUM_DATA_DIR", "data")
        self._base = Path(base_dir)
        self._workflows_dir = self._base / "workflows"
        self._runs_dir = self._base / "runs"
        self._workflows_dir.mkdir(parents=True, exist_ok=True)
        self._runs_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _atomic_write(self, path: Path, data: dict) -> None:
        tmp = path.parent / f"{path.name}.{threading.get_ident()}.tmp"
        tmp.write_text(json.dumps(data, indent=2, default=str))
        os.replace(tmp, path)

    # Workflows

    def save_workflow(self, workflow: Workflow) -> str:
        with self._lock:
            if workflow.endpoint:
                owner = self.get_workflow_by_endpoint(workflow.endpoint)
                if owner is not None and owner.id != workflow.id:
                    raise EndpointConflictError(workflow.endpoint)
            workflow.updated_at = datetime.now(timezone.utc)
            data = workflow.model_dump(mode="json")
            # bookkeeping timestamps are excluded from dumps, keep them on disk
            data["created_at"] = workflow.created_at.isoformat()
            data["updated_at"] = workflow.updated_at.isoformat()
            self._atomic_write(self._workflow_path(workflow.id), data)
            return workflow.id

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        path = self._workflow_path(workflow_id)
        with self._lock:
            if not path.exists():
                return None
            return Workflow.model_validate(json.loads(path.read_text()))

    def get_workflow_by_endpoint(self, endpoint: str) -> Workflow | None:
        for workflow in self.list_workflows():
            if workflow.endpoint == endpoint:
                return workflow
        return None

    def list_workflows(self) -> list[Workflow]:
        with self._lock:
            return [
                Workflow.model_validate(json.loads(p.read_text()))
                for p in sorted(self._workflows_dir.glob("*.json"))
            ]

    def delete_workflow(self, workflow_id: str) -> bool:
        path = self._workflow_path(workflow_id)
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
            return True

    # Runs

    def create_run(self, workflow_id: str) -> Run:
        with self._lock:
            workflow = self.get_workflow(workflow_id)
            if workflow is None:
                raise NotFoundError(f"Workflow '{workflow_id}' not found")
            run = Run(workflow_id=workflow_id, workflow_name=workflow.name)
            self._atomic_write(self._run_path(run.id), run.model_dump(mode="json"))
            return run

    def get_run(self, run_id: str) -> Run | None:
        path = self._run_path(run_id)
        with self._lock:
            if not path.exists():
                return None
            return Run.model_validate(json.loads(path.read_text()))

    def update_run(self, run: Run) -> bool:
        path = self._run_path(run.id)
        with self._lock:
            if not path.exists():
                return False
            self._atomic_write(path, run.model_dump(mode="json"))
            return True

    def list_runs(self) -> list[Run]:
        with self._lock:
            return [
                Run.model_validate(json.loads(p.read_text()))
                for p in sorted(self._runs_dir.glob("*.json"))
            ]

    def history(self, workflow_id: str, limit: int = 20) -> list[Run]:
        runs = [r for r in self.list_runs() if r.workflow_id == workflow_id]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)[:limit]

    def history_by_name(self, workflow_name: str, limit: int = 20) -> list[Run]:
        runs = [r for r in self.list_runs() if r.workflow_name == workflow_name]
        return sorted(runs, key=lambda r: r.created_at, reverse=True)[:limit]

    def _workflow_path(self, workflow_id: str) -> Path:
        return self._workflows_dir / f"{_safe_name(workflow_id)}.json"

    def _run_path(self, run_id: str) -> Path:
        return self._runs_dir / f"{_safe_name(run_id)}.json"


def _safe_name(identifier: str) -> str:
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in identifier)
