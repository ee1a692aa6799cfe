"""Pipeline routes: start a full run and poll its status."""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse

from autotest_pipeline.credentials import write_docker_credentials
from autotest_pipeline.workflows.full_pipeline import FULL_PIPELINE, PipelineOrchestrator

logger = structlog.get_logger()

router = APIRouter(tags=["pipeline"])

START_MESSAGE = "Full pipeline workflow started. Use runId to track progress."


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    """Orchestrator from app state, created on first use."""
    if request.app.state.orchestrator is None:
        request.app.state.orchestrator = PipelineOrchestrator()
    return request.app.state.orchestrator


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@router.post("/start-full-pipeline")
async def start_full_pipeline(request: Request, background_tasks: BackgroundTasks):
    """
    Start the full pipeline in the background.

    The GitHub token comes from the body `token` or an
    `Authorization: Bearer` header and is written to the credentials file
    the clone step reads.
    """
    try:
        body = await _json_body(request)
        token = body.get("token") or bearer_token(request.headers.get("authorization"))
        if not token or not isinstance(token, str):
            return _error(400, "Missing required GitHub access token")

        project_id = body.get("projectId")
        if not project_id or not isinstance(project_id, str):
            return _error(400, "Missing required projectId")

        orchestrator = get_orchestrator(request)
        write_docker_credentials(token, filename=orchestrator.config.credentials_filename)

        record = orchestrator.create_run(FULL_PIPELINE, project_id=project_id)
        background_tasks.add_task(
            orchestrator.run,
            record.run_id,
            project_id=project_id,
            repository_url=body.get("repositoryUrl"),
            context_data=body.get("contextData"),
            target_test_file=body.get("targetTestFile"),
        )
        logger.info("full_pipeline_scheduled", run_id=record.run_id, project_id=project_id)
        return {"message": START_MESSAGE, "runId": record.run_id}
    except Exception as e:
        logger.error("full_pipeline_start_failed", error=str(e))
        return _error(500, str(e) or "Failed to start full pipeline")


@router.get("/runs/{run_id}")
async def get_run_status(run_id: str, request: Request):
    record = get_orchestrator(request).get_run(run_id)
    if record is None:
        return _error(404, f"Run {run_id} not found")
    return record.to_payload()
