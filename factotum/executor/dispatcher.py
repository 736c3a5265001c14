"""Routes a step to the routine for its kind.

Every ``StepKind`` has exactly one handler, including ``UNKNOWN`` which
rejects the step. Containers call back into ``process_step`` for each child.
"""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from factotum.executor import http_executor, process_executor
from factotum.executor.cancellation import CancellationScope
from factotum.models.run import ExecutionState, StepOutcome
from factotum.models.workflow import Step, StepKind, Workflow
from factotum.utils.exceptions import (
    ExecutionCancelledError,
    StepExecutionError,
    UnsupportedStepKindError,
)

logger = logging.getLogger(__name__)

# (step, parent outcome, scope, workflow) -> child outcome
ProcessStep = Callable[[Step, StepOutcome, CancellationScope, "Workflow | None"], StepOutcome]
Handler = Callable[[Step, StepOutcome, CancellationScope, "Workflow | None"], None]


class StepDispatcher:
    def __init__(
        self,
        process_step: ProcessStep,
        default_timeout: int = 60,
        poll_interval: float = 0.05,
        max_parallelism: int | None = None,
    ) -> None:
        self._process_step = process_step
        self._default_timeout = default_timeout
        self._poll_interval = poll_interval
        self._max_parallelism = max_parallelism
        self._handlers: dict[StepKind, Handler] = {
            StepKind.PROCESS: self._run_network_call,
            StepKind.PARALLEL: self._run_parallel,
            StepKind.SERIAL: self._run_serial,
            StepKind.BATCH: self._run_process,
            StepKind.EXECUTABLE: self._run_process,
            StepKind.UNKNOWN: self._reject_unknown,
        }
        missing = set(StepKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for step kinds: {sorted(k.value for k in missing)}")

    def dispatch(
        self,
        step: Step,
        outcome: StepOutcome,
        scope: CancellationScope,
        workflow: Workflow | None = None,
    ) -> None:
        self._handlers[step.kind](step, outcome, scope, workflow)

    # Leaves

    def _run_network_call(self, step, outcome, scope, workflow) -> None:
        outcome.result = http_executor.execute(
            step, scope, default_timeout=self._default_timeout, poll_interval=self._poll_interval
        )

    def _run_process(self, step, outcome, scope, workflow) -> None:
        outcome.result = process_executor.execute(
            step, scope, default_timeout=self._default_timeout, poll_interval=self._poll_interval
        )

    def _reject_unknown(self, step, outcome, scope, workflow) -> None:
        raise UnsupportedStepKindError(f"Unsupported step type: {step.type}")

    # Containers

    def _run_parallel(self, step, outcome, scope, workflow) -> None:
        children = step.children
        if not children:
            return
        workers = len(children)
        if self._max_parallelism:
            workers = min(workers, self._max_parallelism)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"parallel-{step.id}") as pool:
            futures = [
                pool.submit(self._process_step, child, outcome, scope, workflow)
                for child in children
            ]
            results = [f.result() for f in futures]

        cancelled = [r for r in results if r.state == ExecutionState.CANCELLED]
        if cancelled:
            raise ExecutionCancelledError(cancelled[0].error or "Execution was cancelled")
        failed = [r for r in results if r.state == ExecutionState.FAILED]
        if failed:
            names = ", ".join(r.step_name or r.step_id for r in failed)
            raise StepExecutionError(f"{len(failed)} of {len(results)} parallel steps failed: {names}")

    def _run_serial(self, step, outcome, scope, workflow) -> None:
        for child in step.children:
            result = self._process_step(child, outcome, scope, workflow)
            if result.state == ExecutionState.CANCELLED:
                raise ExecutionCancelledError(result.error or "Execution was cancelled")
            if result.state == ExecutionState.FAILED:
                raise StepExecutionError(result.error or f"Step '{result.step_name}' failed")
