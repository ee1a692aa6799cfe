"""
Full pipeline and run orchestration.

Chains docker setup, context gathering, unit tests, the GitHub PR and
coverage into one LangGraph graph, and keeps an in-memory registry of runs.
"""

import threading
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import structlog
from langgraph.graph import END, START, StateGraph

from autotest_pipeline.config import Config, get_config
from autotest_pipeline.integrations.alerts import associate_run_with_project
from autotest_pipeline.models.pipeline import PipelineOutput, RunRecord
from autotest_pipeline.models.state import PipelineState, new_run_id
from autotest_pipeline.tools.base import tool_metrics
from autotest_pipeline.workflows.base import PipelineServices, compile_standalone, should_continue
from autotest_pipeline.workflows.coverage import CoverageWorkflow
from autotest_pipeline.workflows.docker_setup import DockerSetupWorkflow
from autotest_pipeline.workflows.gather_context import GatherContextWorkflow
from autotest_pipeline.workflows.github_pr import GitHubPRWorkflow
from autotest_pipeline.workflows.unit_tests import UnitTestWorkflow

logger = structlog.get_logger()

FULL_PIPELINE = "full_pipeline"
RECURSION_LIMIT = 100


def normalize_output(state: PipelineState) -> PipelineOutput:
    """Collapse a final state into the pipeline result."""
    failed = state.get("next_action") == "fail"
    unit_tests = state.get("unit_test_result")
    pull_request = state.get("pull_request")
    coverage = state.get("coverage_report")

    if failed:
        errors = state.get("errors") or []
        result = errors[-1] if errors else "Pipeline failed"
    else:
        result = unit_tests.result if unit_tests else "Pipeline completed"

    return PipelineOutput(
        result=result,
        success=not failed and (unit_tests.success if unit_tests else True),
        tool_call_count=tool_metrics.call_count,
        container_id=state.get("container_id") or "",
        context_path=state.get("context_path"),
        project_id=state.get("project_id") or "",
        pr_url=(pull_request.pr_url if pull_request else None) or "",
        coverage=coverage.coverage if coverage else None,
    )


class FullPipelineWorkflow:
    """Every stage in sequence, ending in a normalized output."""

    name = FULL_PIPELINE

    def __init__(self, services: PipelineServices):
        self.stages = [
            DockerSetupWorkflow(services),
            GatherContextWorkflow(services),
            UnitTestWorkflow(services),
            GitHubPRWorkflow(services),
            CoverageWorkflow(services, best_effort=True),
        ]

    def normalize_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="normalize")
        output = normalize_output(state)
        logger.info("langgraph_node_complete", node="normalize", success=output.success, pr_url=output.pr_url)
        return {"output": output}

    def register(self, graph: StateGraph) -> Tuple[str, str]:
        first = None
        previous_last = None
        for stage in self.stages:
            stage_first, stage_last = stage.register(graph)
            if previous_last is None:
                first = stage_first
            else:
                graph.add_conditional_edges(previous_last, should_continue, {"continue": stage_first, "fail": END})
            previous_last = stage_last

        graph.add_node("normalize", self.normalize_node)
        graph.add_conditional_edges(previous_last, should_continue, {"continue": "normalize", "fail": END})
        return first, "normalize"

    def build(self):
        return compile_standalone(self.register)


WORKFLOWS = {
    DockerSetupWorkflow.name: DockerSetupWorkflow,
    GatherContextWorkflow.name: GatherContextWorkflow,
    UnitTestWorkflow.name: UnitTestWorkflow,
    GitHubPRWorkflow.name: GitHubPRWorkflow,
    CoverageWorkflow.name: CoverageWorkflow,
    FullPipelineWorkflow.name: FullPipelineWorkflow,
}


class PipelineOrchestrator:
    """Creates runs, executes workflows and remembers their outcome."""

    def __init__(self, config: Optional[Config] = None, services: Optional[PipelineServices] = None):
        self.config = config or get_config()
        self.services = services or PipelineServices.from_config(self.config)
        self._graphs: Dict[str, Any] = {}
        self._runs: Dict[str, RunRecord] = {}
        self._lock = threading.Lock()

    def workflow(self, name: str):
        """Compiled graph for a workflow name."""
        if name not in WORKFLOWS:
            raise KeyError(f"Unknown workflow '{name}'. Available: {', '.join(sorted(WORKFLOWS))}")
        if name not in self._graphs:
            logger.info("building_langgraph_workflow", workflow=name)
            self._graphs[name] = WORKFLOWS[name](self.services).build()
        return self._graphs[name]

    def create_run(self, workflow: str = FULL_PIPELINE, project_id: Optional[str] = None) -> RunRecord:
        record = RunRecord(
            run_id=new_run_id(),
            workflow=workflow,
            project_id=project_id,
            started_at=datetime.utcnow().isoformat(),
        )
        with self._lock:
            self._runs[record.run_id] = record
        if project_id:
            associate_run_with_project(record.run_id, project_id)
        logger.info("run_created", run_id=record.run_id, workflow=workflow, project_id=project_id)
        return record

    def get_run(self, run_id: str) -> Optional[RunRecord]:
        with self._lock:
            record = self._runs.get(run_id)
            return record.model_copy(deep=True) if record else None

    def _finish(self, run_id: str, status: str, output: Optional[Dict[str, Any]], errors) -> None:
        with self._lock:
            record = self._runs.get(run_id)
            if record is None:
                return
            record.status = status
            record.output = output
            record.errors = list(errors)
            record.finished_at = datetime.utcnow().isoformat()

    def run(
        self,
        run_id: str,
        project_id: Optional[str] = None,
        repository_url: Optional[str] = None,
        context_data: Optional[Dict[str, Any]] = None,
        target_test_file: Optional[str] = None,
        extra_state: Optional[Dict[str, Any]] = None,
    ) -> PipelineState:
        """
        Execute the run's workflow to completion.

        Errors never escape: a crashed graph marks the run failed.

        Returns:
            The final workflow state
        """
        record = self.get_run(run_id)
        if record is None:
            raise KeyError(f"Unknown run '{run_id}'")

        initial: PipelineState = {
            "run_id": run_id,
            "project_id": project_id or record.project_id or "",
            "repository_url": repository_url,
            "context_data": context_data,
            "target_test_file": target_test_file,
            "test_results": [],
            "errors": [],
            "agent_history": [],
            "next_action": "continue",
            "started_at": datetime.utcnow().isoformat(),
        }
        initial.update(extra_state or {})
        logger.info("langgraph_orchestrator_start", run_id=run_id, workflow=record.workflow, project_id=project_id)

        try:
            final = self.workflow(record.workflow).invoke(initial, config={"recursion_limit": RECURSION_LIMIT})
        except Exception as e:
            logger.error("langgraph_orchestrator_failed", run_id=run_id, error=str(e))
            failed = dict(initial, next_action="fail", errors=[f"Orchestrator failed: {e}"])
            self._finish(run_id, "failed", normalize_output(failed).to_payload(), failed["errors"])
            return failed

        output = final.get("output") or normalize_output(final)
        status = "failed" if final.get("next_action") == "fail" else "completed"
        self._finish(run_id, status, output.to_payload(), final.get("errors", []))
        logger.info(
            "langgraph_orchestrator_complete",
            run_id=run_id,
            status=status,
            total_agents=len(final.get("agent_history", [])),
            pr_url=output.pr_url,
        )
        return final
