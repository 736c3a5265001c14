import pytest

from factotum.models.workflow import Step, StepKind, Workflow
from factotum.utils import params
from factotum.utils.exceptions import ParameterError


def test_get_str_default_and_required():
    assert params.get_str({}, "method", "GET") == "GET"
    assert params.get_str({"method": "post"}, "method") == "post"
    with pytest.raises(ParameterError, match="Missing required parameter 'endpoint'"):
        params.get_str({}, "endpoint", required=True)
    with pytest.raises(ParameterError, match="must not be empty"):
        params.get_str({"endpoint": "  "}, "endpoint", required=True)


def test_get_str_type_mismatch():
    with pytest.raises(ParameterError, match="'command' must be a string, got int"):
        params.get_str({"command": 5}, "command")


def test_get_int_rejects_bool_and_strings():
    assert params.get_int({"run_seconds": 5}, "run_seconds") == 5
    with pytest.raises(ParameterError, match="integer"):
        params.get_int({"run_seconds": True}, "run_seconds")
    with pytest.raises(ParameterError, match="integer"):
        params.get_int({"run_seconds": "5"}, "run_seconds")


def test_get_int_list():
    assert params.get_int_list({"codes": [200, 201]}, "codes") == [200, 201]
    assert params.get_int_list({}, "codes", [200]) == [200]
    with pytest.raises(ParameterError, match="list of integers"):
        params.get_int_list({"codes": ["200"]}, "codes")


def test_get_mapping_and_str_list():
    assert params.get_mapping({"headers": {"a": "b"}}, "headers") == {"a": "b"}
    with pytest.raises(ParameterError, match="mapping"):
        params.get_mapping({"headers": ["a"]}, "headers")
    assert params.get_str_list({"args": ["-c", "x"]}, "args") == ["-c", "x"]


def test_none_counts_as_missing():
    assert params.get_int({"run_seconds": None}, "run_seconds", 60) == 60


def test_step_kind_parsing_is_case_insensitive():
    assert Step(type="Process").kind == StepKind.PROCESS
    assert Step(type="PARALLEL").kind == StepKind.PARALLEL
    assert Step(type="executable").kind == StepKind.EXECUTABLE
    assert Step(type="Teleport").kind == StepKind.UNKNOWN
    assert Step(type="").kind == StepKind.UNKNOWN


def test_workflow_well_known_parameters():
    wf = Workflow(name="w", parameters={"run_seconds": 30, "endpoint": "/hook", "cron": "* * * * *"})
    assert wf.timeout_seconds == 30
    assert wf.endpoint == "/hook"
    assert wf.cron == "* * * * *"
    assert Workflow(name="w", parameters={"run_seconds": 0}).timeout_seconds is None


def test_workflow_timestamps_not_serialised():
    data = Workflow(name="w").model_dump(mode="json")
    assert "created_at" not in data
    assert "updated_at" not in data
