"""Agents package for the test generation pipeline."""

from autotest_pipeline.agents.base import PromptAgent
from autotest_pipeline.agents.personas import get_agent
from autotest_pipeline.agents.docker_setup import DockerSetupAgent
from autotest_pipeline.agents.project_profile import ProjectProfileAgent
from autotest_pipeline.agents.context_gatherer import ContextGathererAgent
from autotest_pipeline.agents.test_planner import UnitTestPlanner
from autotest_pipeline.agents.test_generator import UnitTestGenerator
from autotest_pipeline.agents.pr_creator import PullRequestAgent
from autotest_pipeline.agents.coverage_estimator import CoverageEstimatorAgent

__all__ = [
    "PromptAgent",
    "get_agent",
    "DockerSetupAgent",
    "ProjectProfileAgent",
    "ContextGathererAgent",
    "UnitTestPlanner",
    "UnitTestGenerator",
    "PullRequestAgent",
    "CoverageEstimatorAgent",
]
