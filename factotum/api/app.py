from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from factotum.api.routes import router
from factotum.config.settings import Settings, load_settings
from factotum.executor.workflow_engine import WorkflowEngine
from factotum.service import WorkflowService
from factotum.storage.factory import create_store
from factotum.utils.exceptions import NotFoundError, WorkflowValidationError


def create_app(
    data_dir: str | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    app = FastAPI(title="Factotum Workflow Engine")
    app.include_router(router)

    @app.exception_handler(WorkflowValidationError)
    def validation_error(request: Request, exc: WorkflowValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc), "errors": exc.errors})

    @app.exception_handler(NotFoundError)
    def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.on_event("startup")
    def startup():
        cfg = settings or load_settings()
        store = create_store(cfg, data_dir)
        engine = WorkflowEngine(store, config=cfg.engine)
        app.state.service = WorkflowService(store, engine)

    return app
