import subprocess
import sys
import threading
import time
from unittest.mock import patch

import pytest

from factotum.executor.cancellation import CancellationScope
from factotum.executor.process_executor import execute
from factotum.models.workflow import Step
from factotum.utils.exceptions import (
    ExecutionCancelledError,
    ParameterError,
    ProcessExitError,
    StepExecutionError,
    StepTimeoutError,
)

PY = sys.executable


def _step(**parameters):
    return Step(id="p", name="proc", type="Executable", parameters=parameters)


def _python(code, **extra):
    return _step(command=PY, arguments=["-c", code], **extra)


class _SpawnRecorder:
    """Popen side effect that keeps hold of every spawned process."""

    def __init__(self):
        self.real_popen = subprocess.Popen
        self.spawned = []

    def __call__(self, *args, **kwargs):
        proc = self.real_popen(*args, **kwargs)
        self.spawned.append(proc)
        return proc


def test_success_captures_output():
    result = execute(_python("import sys; print('hello'); print('warn', file=sys.stderr)"), CancellationScope())
    assert result["exit_code"] == 0
    assert result["stdout"].strip() == "hello"
    assert result["stderr"].strip() == "warn"


def test_string_arguments_are_split():
    step = _step(command=PY, arguments="-c \"print('split ok')\"")
    assert execute(step, CancellationScope())["stdout"].strip() == "split ok"


def test_working_directory(tmp_path):
    step = _python("import os; print(os.getcwd())", working_directory=str(tmp_path))
    result = execute(step, CancellationScope())
    assert result["stdout"].strip() == str(tmp_path.resolve())


def test_non_zero_exit_carries_code_and_output():
    step = _python("import sys; print('out'); print('bad things', file=sys.stderr); sys.exit(3)")
    with pytest.raises(ProcessExitError, match="exit code 3") as exc_info:
        execute(step, CancellationScope())
    assert exc_info.value.exit_code == 3
    assert exc_info.value.stdout.strip() == "out"
    assert "bad things" in exc_info.value.stderr


def test_missing_command_is_rejected():
    with pytest.raises(ParameterError, match="command"):
        execute(_step(), CancellationScope())


def test_spawn_failure_is_execution_error():
    with pytest.raises(StepExecutionError, match="Failed to start process"):
        execute(_step(command="/nonexistent/definitely-not-here"), CancellationScope())


def test_timeout_kills_process():
    recorder = _SpawnRecorder()
    step = _python("import time; time.sleep(5)", run_seconds=1)
    start = time.monotonic()
    with patch("factotum.executor.process_executor.subprocess.Popen", side_effect=recorder):
        with pytest.raises(StepTimeoutError, match="timed out after 1 seconds"):
            execute(step, CancellationScope(), poll_interval=0.02)
    assert time.monotonic() - start < 4
    assert recorder.spawned[0].poll() is not None


def test_timeout_kills_descendants(tmp_path):
    marker = tmp_path / "grandchild_done"
    grandchild = f"import time, pathlib; time.sleep(2); pathlib.Path({str(marker)!r}).write_text('x')"
    code = (
        "import subprocess, sys, time; "
        f"subprocess.Popen([sys.executable, '-c', {grandchild!r}]); "
        "time.sleep(10)"
    )
    with pytest.raises(StepTimeoutError):
        execute(_python(code, run_seconds=1), CancellationScope(), poll_interval=0.02)
    time.sleep(2.5)
    assert not marker.exists()


def test_cancellation_kills_process():
    recorder = _SpawnRecorder()
    scope = CancellationScope()
    threading.Timer(0.3, scope.cancel, kwargs={"reason": "Run cancelled by request"}).start()
    start = time.monotonic()
    with patch("factotum.executor.process_executor.subprocess.Popen", side_effect=recorder):
        with pytest.raises(ExecutionCancelledError, match="cancelled by request"):
            execute(_python("import time; time.sleep(30)"), scope, poll_interval=0.02)
    assert time.monotonic() - start < 5
    assert recorder.spawned[0].poll() is not None


def test_already_cancelled_scope_does_not_spawn():
    scope = CancellationScope()
    scope.cancel()
    with patch("factotum.executor.process_executor.subprocess.Popen") as mock_popen:
        with pytest.raises(ExecutionCancelledError):
            execute(_python("print(1)"), scope)
    mock_popen.assert_not_called()
