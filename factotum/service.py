"""Workflow operations for callers: registration, background runs, history."""

import logging
import threading
from datetime import datetime, timezone

from factotum.executor.workflow_engine import WorkflowEngine
from factotum.models.run import ExecutionState, Run
from factotum.models.workflow import Workflow
from factotum.utils.exceptions import EndpointConflictError, NotFoundError, WorkflowValidationError

logger = logging.getLogger(__name__)


class WorkflowService:
    def __init__(self, store, engine: WorkflowEngine | None = None) -> None:
        self._store = store
        self._engine = engine or WorkflowEngine(store)
        self._threads: dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

    @property
    def engine(self) -> WorkflowEngine:
        return self._engine

    def register_workflow(self, workflow: Workflow) -> str:
        logger.info(f"Registering workflow: {workflow.name}")
        errors = self._engine.validate_workflow(workflow)
        if errors:
            raise WorkflowValidationError(errors)

        # the store rejects an endpoint already owned by another workflow
        try:
            workflow_id = self._store.save_workflow(workflow)
        except EndpointConflictError:
            logger.warning(f"Endpoint already taken: {workflow.endpoint}")
            raise
        logger.info(f"Workflow registered: {workflow.name} ({workflow_id})")
        return workflow_id

    def submit_workflow(self, workflow: Workflow) -> str:
        """Register ``workflow`` and start a run in the background; returns the run id."""
        self.register_workflow(workflow)
        return self._start_background(workflow)

    def run_workflow(self, workflow_id: str) -> str:
        workflow = self._store.get_workflow(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow '{workflow_id}' not found")
        return self._start_background(workflow)

    def trigger_by_endpoint(self, endpoint: str) -> str | None:
        logger.info(f"Triggering workflow by endpoint: {endpoint}")
        workflow = self._store.get_workflow_by_endpoint(endpoint)
        if workflow is None:
            logger.warning(f"No workflow found for endpoint: {endpoint}")
            return None
        return self._start_background(workflow)

    def cancel_run(self, run_id: str) -> bool:
        logger.info(f"Cancelling workflow execution: {run_id}")
        cancelled = self._engine.cancel_execution(run_id)
        if not cancelled:
            logger.warning(f"Could not cancel workflow execution: {run_id}")
        return cancelled

    def delete_workflow(self, workflow_id: str) -> bool:
        deleted = self._store.delete_workflow(workflow_id)
        if deleted:
            logger.info(f"Workflow deleted: {workflow_id}")
        else:
            logger.warning(f"Could not delete workflow: {workflow_id}")
        return deleted

    def list_workflows(self) -> list[Workflow]:
        return self._store.list_workflows()

    def get_workflow(self, workflow_id: str) -> Workflow | None:
        return self._store.get_workflow(workflow_id)

    def get_run(self, run_id: str) -> Run | None:
        return self._store.get_run(run_id)

    def history(self, workflow_id: str, limit: int = 20) -> list[Run]:
        return self._store.history(workflow_id, limit)

    def history_by_name(self, workflow_name: str, limit: int = 20) -> list[Run]:
        return self._store.history_by_name(workflow_name, limit)

    def wait(self, run_id: str, timeout: float | None = None) -> Run | None:
        """Block until the background run finishes (or ``timeout``), then return it."""
        with self._lock:
            thread = self._threads.get(run_id)
        if thread is not None:
            thread.join(timeout)
        return self._store.get_run(run_id)

    def _start_background(self, workflow: Workflow) -> str:
        run = self._store.create_run(workflow.id)

        def run_in_background():
            try:
                self._engine.execute_workflow(workflow, run.id)
            except Exception as e:
                logger.exception(f"Error executing workflow: {workflow.name} ({run.id})")
                self._mark_failed(run.id, str(e))
            finally:
                with self._lock:
                    self._threads.pop(run.id, None)

        thread = threading.Thread(target=run_in_background, name=f"run-{run.id}", daemon=True)
        with self._lock:
            self._threads[run.id] = thread
        thread.start()

        logger.info(f"Workflow submitted for execution: {workflow.name} ({run.id})")
        return run.id

    def _mark_failed(self, run_id: str, error: str) -> None:
        run = self._store.get_run(run_id)
        if run is None or run.state.is_terminal:
            return
        run.state = ExecutionState.FAILED
        run.error = error
        run.finished_at = datetime.now(timezone.utc)
        self._store.update_run(run)
