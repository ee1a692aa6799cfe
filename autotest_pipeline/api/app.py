"""FastAPI application factory."""

from typing import Optional

import structlog
from fastapi import FastAPI

from autotest_pipeline import __version__
from autotest_pipeline.workflows.full_pipeline import PipelineOrchestrator

logger = structlog.get_logger()


def create_app(orchestrator: Optional[PipelineOrchestrator] = None) -> FastAPI:
    """
    Create the API application.

    Args:
        orchestrator: Orchestrator running the pipelines; built from
            configuration on first use when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Autotest Pipeline",
        description="Generates unit tests for a GitHub repository and opens a pull request",
        version=__version__,
    )
    app.state.orchestrator = orchestrator

    from autotest_pipeline.api.routes import router

    app.include_router(router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "autotest-pipeline"}

    logger.info("api_app_created")
    return app
