import logging
import os
import shlex
import signal
import subprocess
import time
from typing import Any

from factotum.executor.cancellation import CancellationScope
from factotum.models.workflow import Step
from factotum.utils import params
from factotum.utils.exceptions import (
    ExecutionCancelledError,
    ParameterError,
    ProcessExitError,
    StepExecutionError,
    StepTimeoutError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
# Grace period for collecting output from a process group that was just killed
_REAP_TIMEOUT = 5


def execute(
    step: Step,
    scope: CancellationScope,
    default_timeout: int = DEFAULT_TIMEOUT,
    poll_interval: float = 0.05,
) -> dict[str, Any]:
    """Run the command of a batch/executable step and return its exit code and output."""
    p = step.parameters
    command = params.get_str(p, "command", required=True)
    arguments = _arguments(p)
    working_directory = params.get_str(p, "working_directory") or os.getcwd()
    timeout = params.get_int(p, "run_seconds")
    if timeout is None or timeout <= 0:
        timeout = default_timeout

    scope.raise_if_cancelled()
    logger.info(f"Executing shell command: {command} {' '.join(arguments)} in directory {working_directory}")

    try:
        proc = subprocess.Popen(
            [command, *arguments],
            cwd=working_directory,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
    except OSError as e:
        raise StepExecutionError(f"Failed to start process '{command}': {e}")

    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        try:
            stdout, stderr = proc.communicate(timeout=max(0.0, min(poll_interval, remaining)))
            break
        except subprocess.TimeoutExpired:
            pass
        if scope.cancelled:
            _kill_tree(proc)
            logger.warning(f"Shell command cancelled: {command}")
            raise ExecutionCancelledError(scope.reason or "Execution was cancelled")
        if time.monotonic() >= deadline:
            _kill_tree(proc)
            raise StepTimeoutError(
                f"Shell task timed out after {timeout} seconds: {command} {' '.join(arguments)}".rstrip()
            )

    logger.info(f"Shell command completed with exit code: {proc.returncode}")

    if proc.returncode != 0:
        raise ProcessExitError(proc.returncode, stdout, stderr)

    return {"exit_code": proc.returncode, "stdout": stdout, "stderr": stderr}


def _arguments(p: dict[str, Any]) -> list[str]:
    value = params.get_any(p, "arguments")
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ParameterError(
        f"Parameter 'arguments' must be a string or a list of strings, got {type(value).__name__}"
    )


def _kill_tree(proc: subprocess.Popen) -> None:
    """Kill the process and everything it spawned, then reap it."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
    except AttributeError:
        # no process groups on this platform
        proc.kill()
    try:
        proc.communicate(timeout=_REAP_TIMEOUT)
    except subprocess.TimeoutExpired:
        logger.warning(f"Process {proc.pid} still holds its pipes open after kill")
