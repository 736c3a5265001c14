from factotum.models.workflow import WORKFLOW_TYPE, Step, StepKind, Workflow
from factotum.utils import params
from factotum.utils.exceptions import ParameterError

MAX_NAME_LENGTH = 100

_STEP_TYPES = "'Process', 'Parallel', 'Serial', 'Batch', or 'Executable'"


def validate(workflow: Workflow) -> list[str]:
    """Return human-readable problems with ``workflow``; empty when valid."""
    errors: list[str] = []
    _check_workflow_fields(workflow, errors)
    if not workflow.steps:
        errors.append("Workflow must contain at least one step")
    for step in workflow.steps:
        _check_step(step, errors)
    return errors


def has_circular_dependencies(workflow: Workflow) -> bool:
    """True when a step id reappears on its own root-to-leaf path."""

    def dfs(step: Step, path: set[str]) -> bool:
        if step.id in path:
            return True
        path.add(step.id)
        try:
            return any(dfs(child, path) for child in step.children)
        finally:
            path.discard(step.id)

    return any(dfs(step, set()) for step in workflow.steps)


def _check_workflow_fields(workflow: Workflow, errors: list[str]) -> None:
    _check_name(workflow.name, "Workflow", errors)

    if not workflow.type:
        errors.append("Workflow type is required")
    elif workflow.type.lower() != WORKFLOW_TYPE.lower():
        errors.append(f"Workflow type must be '{WORKFLOW_TYPE}'")

    for key, getter in (("run_seconds", params.get_int), ("endpoint", params.get_str), ("cron", params.get_str)):
        try:
            getter(workflow.parameters, key)
        except ParameterError as e:
            errors.append(str(e))

    endpoint = workflow.parameters.get("endpoint")
    if isinstance(endpoint, str) and not endpoint.strip():
        errors.append("Workflow parameter 'endpoint' must not be empty")


def _check_step(step: Step, errors: list[str]) -> None:
    _check_name(step.name, "Step", errors)
    label = step.name or step.id

    if not step.type:
        errors.append(f"Step type is required ({label})")
        return

    kind = step.kind
    if kind == StepKind.UNKNOWN:
        errors.append(f"Step type must be one of: {_STEP_TYPES} ({label})")
        return

    if kind.is_container:
        if not step.steps:
            errors.append(f"Container step must have at least one child step ({label})")
        for child in step.children:
            _check_step(child, errors)
        return

    if step.steps:
        errors.append(f"Leaf step must not declare child steps ({label})")

    if kind == StepKind.PROCESS:
        _check_required_str(step, "endpoint", "Process step must have an 'endpoint' parameter", errors)
        for key, getter in (
            ("method", params.get_str),
            ("headers", params.get_mapping),
            ("success_response_codes", params.get_int_list),
        ):
            _check_type(step, key, getter, errors)
    else:
        _check_required_str(
            step, "command", "Batch/Executable step must have a 'command' parameter", errors
        )
        _check_type(step, "working_directory", params.get_str, errors)

    _check_type(step, "run_seconds", params.get_int, errors)


def _check_name(name: str, what: str, errors: list[str]) -> None:
    if not name or not name.strip():
        errors.append(f"{what} name is required")
    elif len(name) > MAX_NAME_LENGTH:
        errors.append(f"{what} name cannot exceed {MAX_NAME_LENGTH} characters")


def _check_required_str(step: Step, key: str, message: str, errors: list[str]) -> None:
    value = step.parameters.get(key)
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{message} ({step.name or step.id})")


def _check_type(step: Step, key: str, getter, errors: list[str]) -> None:
    try:
        getter(step.parameters, key)
    except ParameterError as e:
        errors.append(f"{e} ({step.name or step.id})")
