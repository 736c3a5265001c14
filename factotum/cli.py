import argparse
import json
import sys

from factotum.config.logging_setup import configure_logging
from factotum.config.settings import load_settings
from factotum.executor.workflow_engine import WorkflowEngine
from factotum.models.run import ExecutionState
from factotum.models.workflow import Workflow
from factotum.service import WorkflowService
from factotum.storage.factory import create_store
from factotum.utils.exceptions import WorkflowValidationError


def _load_workflow(path: str) -> Workflow:
    with open(path) as f:
        return Workflow.model_validate(json.load(f))


def _service(args) -> WorkflowService:
    settings = load_settings(args.config)
    store = create_store(settings, args.data_dir)
    return WorkflowService(store, WorkflowEngine(store, config=settings.engine))


def cmd_serve(args):
    import uvicorn

    from factotum.api.app import create_app

    settings = load_settings(args.config)
    app = create_app(data_dir=args.data_dir, settings=settings)
    uvicorn.run(app, host=args.host, port=args.port)


def cmd_register(args):
    service = _service(args)
    wf = _load_workflow(args.file)
    try:
        service.register_workflow(wf)
    except WorkflowValidationError as e:
        for error in e.errors:
            print(f"  - {error}")
        sys.exit(1)
    print(f"Registered workflow: {wf.id} ({wf.name})")


def cmd_validate(args):
    service = _service(args)
    errors = service.engine.validate_workflow(_load_workflow(args.file))
    if errors:
        print("Workflow is invalid:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)
    print("Workflow is valid")


def cmd_run(args):
    service = _service(args)
    try:
        run = service.engine.execute_workflow(_load_workflow(args.file))
    except WorkflowValidationError as e:
        print(str(e))
        sys.exit(1)
    print(json.dumps(run.model_dump(mode="json"), indent=2, default=str))
    if run.state != ExecutionState.COMPLETED:
        sys.exit(1)


def cmd_history(args):
    service = _service(args)
    runs = service.history(args.workflow_id, args.limit)
    print(json.dumps([r.model_dump(mode="json") for r in runs], indent=2, default=str))


def main():
    parser = argparse.ArgumentParser(prog="factotum", description="Workflow execution engine")
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    parser.add_argument("--data-dir", default=None)
    sub = parser.add_subparsers(dest="command")

    serve_p = sub.add_parser("serve", help="Start the web server")
    serve_p.add_argument("--host", default="0.0.0.0")
    serve_p.add_argument("--port", type=int, default=8000)

    reg_p = sub.add_parser("register", help="Register a workflow from JSON")
    reg_p.add_argument("file", help="Path to workflow JSON file")

    val_p = sub.add_parser("validate", help="Validate a workflow JSON file")
    val_p.add_argument("file", help="Path to workflow JSON file")

    run_p = sub.add_parser("run", help="Execute a workflow JSON file and wait for it")
    run_p.add_argument("file", help="Path to workflow JSON file")

    hist_p = sub.add_parser("history", help="Show recent runs of a workflow")
    hist_p.add_argument("workflow_id")
    hist_p.add_argument("--limit", type=int, default=20)

    args = parser.parse_args()
    configure_logging(load_settings(args.config).logging)

    commands = {
        "serve": cmd_serve,
        "register": cmd_register,
        "validate": cmd_validate,
        "run": cmd_run,
        "history": cmd_history,
    }
    if args.command not in commands:
        parser.print_help()
        sys.exit(1)
    commands[args.command](args)


if __name__ == "__main__":
    main()
