"""LangGraph workflows composing the pipeline agents."""

from autotest_pipeline.workflows.base import PipelineServices
from autotest_pipeline.workflows.docker_setup import DockerSetupWorkflow
from autotest_pipeline.workflows.gather_context import GatherContextWorkflow
from autotest_pipeline.workflows.unit_tests import UnitTestWorkflow
from autotest_pipeline.workflows.github_pr import GitHubPRWorkflow
from autotest_pipeline.workflows.coverage import CoverageWorkflow
from autotest_pipeline.workflows.full_pipeline import (
    FULL_PIPELINE,
    WORKFLOWS,
    FullPipelineWorkflow,
    PipelineOrchestrator,
    normalize_output,
)

__all__ = [
    "PipelineServices",
    "DockerSetupWorkflow",
    "GatherContextWorkflow",
    "UnitTestWorkflow",
    "GitHubPRWorkflow",
    "CoverageWorkflow",
    "FullPipelineWorkflow",
    "PipelineOrchestrator",
    "normalize_output",
    "FULL_PIPELINE",
    "WORKFLOWS",
]
