import sys
import threading
import time
from unittest.mock import patch

import pytest

from factotum.executor.cancellation import CancellationRegistry
from factotum.executor.workflow_engine import WorkflowEngine
from factotum.models.run import ExecutionState
from factotum.models.workflow import Step, Workflow
from factotum.service import WorkflowService
from factotum.storage.memory_store import MemoryStore
from factotum.utils.exceptions import EndpointConflictError, NotFoundError, WorkflowValidationError


@pytest.fixture
def service():
    store = MemoryStore()
    return WorkflowService(store, WorkflowEngine(store, registry=CancellationRegistry()))


def _workflow(workflow_id="wf1", endpoint=None, steps=None):
    parameters = {"endpoint": endpoint} if endpoint else {}
    return Workflow(
        id=workflow_id, name=f"name-{workflow_id}", parameters=parameters,
        steps=steps or [Step(id="s1", name="s1", type="Process", parameters={"endpoint": "http://x.test"})],
    )


def test_register_rejects_invalid_workflow(service):
    with pytest.raises(WorkflowValidationError):
        service.register_workflow(Workflow(name="", steps=[]))


def test_register_rejects_duplicate_endpoint(service):
    service.register_workflow(_workflow("wf1", endpoint="/hook"))
    with pytest.raises(EndpointConflictError, match="/hook"):
        service.register_workflow(_workflow("wf2", endpoint="/hook"))
    # re-registering the owner is fine
    assert service.register_workflow(_workflow("wf1", endpoint="/hook")) == "wf1"


def test_submit_returns_immediately_and_completes(service):
    with patch("factotum.executor.http_executor.execute", return_value={"ok": True}):
        run_id = service.submit_workflow(_workflow())
        run = service.wait(run_id, timeout=5)
    assert run.state == ExecutionState.COMPLETED
    assert service.history("wf1")[0].id == run_id


def test_trigger_by_endpoint(service):
    service.register_workflow(_workflow(endpoint="/hooks/deploy"))
    assert service.trigger_by_endpoint("/hooks/unknown") is None
    with patch("factotum.executor.http_executor.execute", return_value={}):
        run_id = service.trigger_by_endpoint("/hooks/deploy")
        run = service.wait(run_id, timeout=5)
    assert run.workflow_id == "wf1"
    assert run.state == ExecutionState.COMPLETED


def test_run_unknown_workflow(service):
    with pytest.raises(NotFoundError):
        service.run_workflow("missing")


def test_cancel_background_run(service):
    slow = Step(
        id="slow", name="slow", type="Executable",
        parameters={"command": sys.executable, "arguments": ["-c", "import time; time.sleep(30)"]},
    )
    run_id = service.submit_workflow(_workflow(steps=[slow]))
    deadline = time.monotonic() + 5
    while service.get_run(run_id).state != ExecutionState.RUNNING and time.monotonic() < deadline:
        time.sleep(0.02)

    assert service.cancel_run(run_id) is True
    run = service.wait(run_id, timeout=5)
    assert run.state == ExecutionState.CANCELLED
    assert service.cancel_run(run_id) is False


def test_background_error_marks_run_failed(service):
    with patch.object(WorkflowEngine, "execute_workflow", side_effect=RuntimeError("no engine")):
        run_id = service.submit_workflow(_workflow())
        run = service.wait(run_id, timeout=5)
    assert run.state == ExecutionState.FAILED
    assert run.error == "no engine"


def test_delete_and_history_by_name(service):
    with patch("factotum.executor.http_executor.execute", return_value={}):
        run_id = service.submit_workflow(_workflow())
        service.wait(run_id, timeout=5)
    assert [r.id for r in service.history_by_name("name-wf1")] == [run_id]
    assert service.delete_workflow("wf1") is True
    assert service.get_workflow("wf1") is None
    assert service.delete_workflow("wf1") is False


def test_concurrent_registrations_share_no_endpoint(service):
    results, conflicts = [], []

    def register(i):
        try:
            results.append(service.register_workflow(_workflow(f"wf{i}", endpoint="/race")))
        except EndpointConflictError as e:
            conflicts.append(e)

    threads = [threading.Thread(target=register, args=(i,)) for i in range(8)]
    for t in threads: t.start()
    for t in threads: t.join()

    assert len(results) == 1
    assert len(conflicts) == 7
    assert [w.id for w in service.list_workflows()] == results
