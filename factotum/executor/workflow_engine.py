"""Runs workflows: walks the step tree, records outcomes, owns run state.

A run moves ``pending -> running -> completed | failed | cancelled`` and
always ends in one of the terminal states, whatever happens during
traversal. Root steps run one after another; the first failed or cancelled
root step stops the run and hands it its state and error.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone

from factotum.config.settings import EngineConfig
from factotum.executor.cancellation import CancellationRegistry, CancellationScope, default_registry
from factotum.executor.dispatcher import StepDispatcher
from factotum.graph import validator
from factotum.models.run import ExecutionState, Run, StepOutcome
from factotum.models.workflow import Step, Workflow
from factotum.utils.exceptions import (
    ExecutionCancelledError,
    NotFoundError,
    WorkflowValidationError,
)

logger = logging.getLogger(__name__)

CIRCULAR_DEPENDENCY_ERROR = "Workflow contains circular dependencies"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowEngine:
    def __init__(
        self,
        store,
        registry: CancellationRegistry | None = None,
        config: EngineConfig | None = None,
        validate: Callable[[Workflow], list[str]] = validator.validate,
    ) -> None:
        self._store = store
        self._validate = validate
        self._registry = registry if registry is not None else default_registry
        self._config = config or EngineConfig()
        self._dispatcher = StepDispatcher(
            self._process_child,
            default_timeout=self._config.default_timeout,
            poll_interval=self._config.poll_interval,
            max_parallelism=self._config.max_parallelism,
        )
        # guards children lists of outcomes shared by parallel branches
        self._outcome_lock = threading.Lock()
        # serialises terminal transitions between a run and cancel requests
        self._run_lock = threading.Lock()

    @property
    def registry(self) -> CancellationRegistry:
        return self._registry

    def validate_workflow(self, workflow: Workflow) -> list[str]:
        errors = list(self._validate(workflow))
        if validator.has_circular_dependencies(workflow):
            errors.append(CIRCULAR_DEPENDENCY_ERROR)
        return errors

    def execute_workflow(
        self,
        workflow: Workflow,
        run_id: str | None = None,
        cancel_scope: CancellationScope | None = None,
    ) -> Run:
        errors = self.validate_workflow(workflow)
        if errors:
            raise WorkflowValidationError(errors)

        if self._store.get_workflow(workflow.id) is None:
            self._store.save_workflow(workflow)

        if run_id is None:
            run = self._store.create_run(workflow.id)
        else:
            run = self._store.get_run(run_id)
            if run is None:
                raise NotFoundError(f"Execution with ID {run_id} not found")

        timeout = workflow.timeout_seconds
        scope = CancellationScope(
            parent=cancel_scope,
            timeout=timeout,
            timeout_reason=f"Workflow timed out after {timeout} seconds" if timeout else None,
        )
        current = self._start(run, scope)
        if current is not None:
            scope.close()
            logger.warning(f"Run {run.id} is already {current.state.value}, not executing")
            return current

        try:
            logger.info(f"Starting workflow execution: {workflow.name} ({run.id})")
            self._run_root_steps(workflow, run, scope)
        except ExecutionCancelledError as e:
            logger.warning(f"Workflow execution cancelled: {workflow.name} ({run.id})")
            run.state = ExecutionState.CANCELLED
            run.error = str(e)
        except Exception as e:
            logger.exception(f"Error executing workflow: {workflow.name} ({run.id})")
            run.state = ExecutionState.FAILED
            run.error = str(e)
        finally:
            self._registry.remove(run.id)
            scope.close()
            self._finish(run)

        logger.info(f"Workflow execution finished: {workflow.name} ({run.id}) -> {run.state.value}")
        return run

    def process_step(
        self,
        step: Step,
        parent: StepOutcome | None = None,
        scope: CancellationScope | None = None,
        workflow: Workflow | None = None,
    ) -> StepOutcome:
        """Execute ``step`` and its subtree, returning its outcome.

        Never raises for step failures; the outcome carries the state and
        error. When ``parent`` is given the outcome is attached to its
        children before the step starts.
        """
        scope = scope or CancellationScope()
        outcome = StepOutcome(
            step_id=step.id,
            step_name=step.name,
            step_type=step.type,
            state=ExecutionState.RUNNING,
            started_at=_now(),
            children=[] if step.kind.is_container else None,
        )
        if parent is not None:
            with self._outcome_lock:
                if parent.children is None:
                    parent.children = []
                parent.children.append(outcome)

        where = f" in {workflow.name}" if workflow is not None else ""
        logger.info(f"Processing step: {step.name} ({step.type}){where}")
        try:
            self._dispatcher.dispatch(step, outcome, scope, workflow)
            outcome.state = ExecutionState.COMPLETED
            logger.info(f"Step completed: {step.name} ({step.type})")
        except ExecutionCancelledError as e:
            logger.warning(f"Step cancelled: {step.name} ({step.type})")
            outcome.state = ExecutionState.CANCELLED
            outcome.error = str(e)
        except Exception as e:
            if scope.cancelled:
                logger.warning(f"Step cancelled: {step.name} ({step.type}): {e}")
                outcome.state = ExecutionState.CANCELLED
                outcome.error = scope.reason or str(e)
            else:
                logger.error(f"Error executing step: {step.name} ({step.type}): {e}")
                outcome.state = ExecutionState.FAILED
                outcome.error = str(e)
        outcome.finished_at = _now()
        return outcome

    def cancel_execution(self, run_id: str) -> bool:
        with self._run_lock:
            run = self._store.get_run(run_id)
            if run is None or run.state.is_terminal:
                return False

            scope = self._registry.get(run_id)
            if scope is not None:
                try:
                    scope.cancel("Run cancelled by request")
                except Exception:
                    logger.exception(f"Error cancelling workflow: {run_id}")

            run.state = ExecutionState.CANCELLED
            run.finished_at = _now()
            if run.error is None:
                run.error = "Run cancelled by request"
            self._store.update_run(run)

        logger.info(f"Workflow cancelled: {run_id}")
        return True

    def _process_child(self, step, parent, scope, workflow) -> StepOutcome:
        return self.process_step(step, parent, scope, workflow)

    def _run_root_steps(self, workflow: Workflow, run: Run, scope: CancellationScope) -> None:
        for step in workflow.steps:
            outcome = self.process_step(step, scope=scope, workflow=workflow)
            run.step_outcomes.append(outcome)
            if outcome.state.stops_execution:
                run.state = outcome.state
                run.error = outcome.error
                return
        run.state = ExecutionState.COMPLETED

    def _start(self, run: Run, scope: CancellationScope) -> Run | None:
        """Claim ``run``: mark it running and register its scope.

        Returns the stored run instead when another traversal already owns it
        or a cancel request finished it first.
        """
        with self._run_lock:
            stored = self._store.get_run(run.id)
            if stored is not None and (stored.state.is_terminal or stored.state == ExecutionState.RUNNING):
                return stored
            run.state = ExecutionState.RUNNING
            run.started_at = _now()
            self._store.update_run(run)
            self._registry.register(run.id, scope)
            return None

    def _finish(self, run: Run) -> None:
        with self._run_lock:
            stored = self._store.get_run(run.id)
            if stored is not None and stored.state.is_terminal:
                # cancelled from outside: keep that verdict, attach the outcomes
                run.state = stored.state
                run.error = stored.error
                run.finished_at = stored.finished_at or _now()
            else:
                if not run.state.is_terminal:
                    run.state = ExecutionState.FAILED
                    run.error = run.error or "Run ended without reaching a terminal state"
                run.finished_at = _now()
            self._store.update_run(run)
