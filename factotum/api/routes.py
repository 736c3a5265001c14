from fastapi import APIRouter, HTTPException, Request

from factotum.models.workflow import Workflow

router = APIRouter(prefix="/api")


def _service(request: Request):
    return request.app.state.service


# --- Workflows ---

@router.get("/workflows")
def list_workflows(request: Request):
    return [w.model_dump(mode="json") for w in _service(request).list_workflows()]


@router.post("/workflows")
def register_workflow(workflow: Workflow, request: Request):
    workflow_id = _service(request).register_workflow(workflow)
    return {"id": workflow_id}


@router.post("/workflows/validate")
def validate_workflow(workflow: Workflow, request: Request):
    return {"errors": _service(request).engine.validate_workflow(workflow)}


@router.get("/workflows/{workflow_id}")
def get_workflow(workflow_id: str, request: Request):
    workflow = _service(request).get_workflow(workflow_id)
    if workflow is None:
        raise HTTPException(404, f"Workflow '{workflow_id}' not found")
    return workflow.model_dump(mode="json")


@router.delete("/workflows/{workflow_id}")
def delete_workflow(workflow_id: str, request: Request):
    if not _service(request).delete_workflow(workflow_id):
        raise HTTPException(404, f"Workflow '{workflow_id}' not found")
    return {"deleted": True}


# --- Runs ---

@router.post("/workflows/{workflow_id}/runs")
def create_run(workflow_id: str, request: Request):
    return {"run_id": _service(request).run_workflow(workflow_id)}


@router.get("/workflows/{workflow_id}/runs")
def list_runs(workflow_id: str, request: Request, limit: int = 20):
    return [r.model_dump(mode="json") for r in _service(request).history(workflow_id, limit)]


@router.post("/submit")
def submit_workflow(workflow: Workflow, request: Request):
    return {"run_id": _service(request).submit_workflow(workflow)}


@router.post("/trigger/{endpoint:path}")
def trigger(endpoint: str, request: Request):
    service = _service(request)
    # endpoints may be registered with or without the leading slash
    run_id = service.trigger_by_endpoint(endpoint) or service.trigger_by_endpoint(f"/{endpoint}")
    if run_id is None:
        raise HTTPException(404, f"No workflow registered for endpoint '{endpoint}'")
    return {"run_id": run_id}


@router.get("/history")
def history_by_name(name: str, request: Request, limit: int = 20):
    return [r.model_dump(mode="json") for r in _service(request).history_by_name(name, limit)]


@router.get("/runs/{run_id}")
def get_run(run_id: str, request: Request):
    run = _service(request).get_run(run_id)
    if run is None:
        raise HTTPException(404, f"Run '{run_id}' not found")
    return run.model_dump(mode="json")


@router.post("/runs/{run_id}/cancel")
def cancel_run(run_id: str, request: Request):
    service = _service(request)
    if service.get_run(run_id) is None:
        raise HTTPException(404, f"Run '{run_id}' not found")
    return {"cancelled": service.cancel_run(run_id)}
