"""
Workflow: Check a few public APIs, then report.

Layout:
    checks (Parallel)
      ├── httpbin status      (Process)
      └── open-meteo forecast (Process)
    report (Executable: python -c ...)

The parallel checks run together; the report only runs if both succeed.
"""

import json
import sys

from factotum.executor.workflow_engine import WorkflowEngine
from factotum.models.workflow import Step, Workflow
from factotum.storage.memory_store import MemoryStore


def build_workflow() -> Workflow:
    return Workflow(
        id="health_check",
        name="Public API health check",
        parameters={"run_seconds": 60},
        steps=[
            Step(
                id="checks",
                name="checks",
                type="Parallel",
                steps=[
                    Step(
                        id="httpbin",
                        name="httpbin status",
                        type="Process",
                        parameters={"endpoint": "https://httpbin.org/get", "method": "GET"},
                    ),
                    Step(
                        id="weather",
                        name="open-meteo forecast",
                        type="Process",
                        parameters={
                            "endpoint": "https://api.open-meteo.com/v1/forecast?latitude=52.52&longitude=13.41",
                            "method": "GET",
                            "run_seconds": 15,
                        },
                    ),
                ],
            ),
            Step(
                id="report",
                name="report",
                type="Executable",
                parameters={"command": sys.executable, "arguments": ["-c", "print('all checks passed')"]},
            ),
        ],
    )


def _print_outcome(outcome, depth=0):
    pad = "  " * depth
    print(f"{pad}- {outcome.step_name} [{outcome.state.value}]")
    if outcome.error:
        print(f"{pad}  ERROR: {outcome.error}")
    elif outcome.result is not None and not outcome.children:
        print(f"{pad}  " + json.dumps(outcome.result, default=str)[:200])
    for child in outcome.children or []:
        _print_outcome(child, depth + 1)


def main():
    engine = WorkflowEngine(MemoryStore())

    workflow = build_workflow()
    print(f"=== Workflow: {workflow.name} ===")
    errors = engine.validate_workflow(workflow)
    if errors:
        print("Invalid:", errors)
        return

    run = engine.execute_workflow(workflow)

    print(f"=== Run result: {run.state.value} ({run.duration}s) ===")
    for outcome in run.step_outcomes:
        _print_outcome(outcome)


if __name__ == "__main__":
    main()
