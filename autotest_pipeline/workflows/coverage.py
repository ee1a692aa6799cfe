"""
Coverage workflow.

estimate_coverage -> post_coverage
"""

import time
from typing import Any, Dict, Tuple

import structlog
from langgraph.graph import END, StateGraph

from autotest_pipeline.agents.coverage_estimator import CoverageEstimatorAgent
from autotest_pipeline.models.state import PipelineState, agent_record, error_entry
from autotest_pipeline.workflows.base import (
    PipelineServices,
    compile_standalone,
    node_failed,
    notify,
    should_continue,
)

logger = structlog.get_logger()


def coverage_summary(report) -> str:
    return f"{report.percent:.2f}% via {report.method} ({report.files} files)"


class CoverageWorkflow:
    """Measures coverage and reports it to the backend."""

    name = "coverage"

    def __init__(self, services: PipelineServices, best_effort: bool = False):
        """
        Args:
            services: Shared clients
            best_effort: Log coverage failures instead of failing the run
        """
        self.services = services
        self.best_effort = best_effort
        self._estimator = None

    @property
    def estimator(self) -> CoverageEstimatorAgent:
        if self._estimator is None:
            self._estimator = CoverageEstimatorAgent(
                self.services.docker,
                self.services.backend,
                agent=self.services.agent("coverage_agent"),
            )
        return self._estimator

    def estimate_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="estimate_coverage")
        start_time = time.time()
        notify(state, "run-coverage-step", "starting", "Run coverage", "Validating project and calculating coverage")

        try:
            report = self.estimator.estimate(state["container_id"], state.get("repo_path"))
        except Exception as e:
            if not self.best_effort:
                return node_failed("estimate_coverage", "run-coverage-step", state, e, "Coverage")
            logger.warning("coverage_skipped", error=str(e))
            notify(state, "run-coverage-step", "completed", "Coverage skipped", str(e)[:300], level="warning")
            return {"errors": [error_entry(f"Coverage skipped: {e}")]}

        duration = time.time() - start_time
        notify(state, "run-coverage-step", "completed", "Coverage calculated", coverage_summary(report))
        logger.info("langgraph_node_complete", node="estimate_coverage", duration=duration,
                    coverage=report.coverage, method=report.method)
        return {
            "coverage_report": report,
            "next_action": "continue",
            "agent_history": [agent_record("CoverageEstimatorAgent", "estimate", report.coverage, duration)],
        }

    def post_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="post_coverage")
        report = state.get("coverage_report")
        if report is None:
            logger.info("langgraph_node_complete", node="post_coverage", skipped=True)
            return {}

        notify(state, "post-test-coverage-step", "starting", "Post coverage",
               f"{report.percent:.2f}% ({report.method})")
        posted = self.estimator.post(state["project_id"], report)
        notify(state, "post-test-coverage-step", "completed", "Coverage posted", coverage_summary(report),
               level=None if posted else "warning")
        logger.info("langgraph_node_complete", node="post_coverage", posted=posted)
        return {}

    def register(self, graph: StateGraph) -> Tuple[str, str]:
        graph.add_node("estimate_coverage", self.estimate_node)
        graph.add_node("post_coverage", self.post_node)
        graph.add_conditional_edges("estimate_coverage", should_continue, {"continue": "post_coverage", "fail": END})
        return "estimate_coverage", "post_coverage"

    def build(self):
        return compile_standalone(self.register)
