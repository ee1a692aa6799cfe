"""
Context gathering workflow.

gather_start -> (analyze_repository || analyze_codebase || analyze_build)
    -> synthesize_context -> save_unit_test_context

The analysis nodes fall back to stub results, so only a missing container
or a synthesis crash can fail this workflow.
"""

import time
from typing import Any, Dict, List, Tuple, Union

import structlog
from langgraph.graph import END, StateGraph

from autotest_pipeline.agents.context_gatherer import CONTEXT_NOT_SAVED, ContextGathererAgent
from autotest_pipeline.models.state import PipelineState, agent_record
from autotest_pipeline.workflows.base import (
    PipelineServices,
    compile_standalone,
    node_failed,
    notify,
    should_continue,
)

logger = structlog.get_logger()


def should_continue_after_start(state: PipelineState) -> Union[str, List[str]]:
    if state.get("next_action") == "fail":
        return "fail"
    return ["repository", "codebase", "build"]


class GatherContextWorkflow:
    """Parallel repository analyses merged into one saved context."""

    name = "gather_context"

    def __init__(self, services: PipelineServices):
        self.services = services
        self._gatherer = None

    @property
    def gatherer(self) -> ContextGathererAgent:
        if self._gatherer is None:
            self._gatherer = ContextGathererAgent(
                self.services.agent("context_agent"),
                self.services.docker,
                context_path=self.services.config.context_path,
            )
        return self._gatherer

    def _repo_path(self, state: PipelineState) -> str:
        return state.get("repo_path") or self.services.docker.find_repo_path(state["container_id"])

    def gather_start_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="gather_start")
        notify(state, "gather-start-step", "starting", "Gather workflow start", "Planning repository analysis")

        if not state.get("container_id"):
            return node_failed("gather_start", "gather-start-step", state,
                               ValueError("containerId is required"), "Gather context")

        self.gatherer.start(state.get("run_id", ""), state["container_id"])
        update: Dict[str, Any] = {"next_action": "continue"}
        if not state.get("repo_path"):
            update["repo_path"] = self._repo_path(state)
        notify(state, "gather-start-step", "completed", "Gather workflow initialized", "Plan logged")
        logger.info("langgraph_node_complete", node="gather_start")
        return update

    def analyze_repository_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="analyze_repository")
        start_time = time.time()
        notify(state, "analyze-repository-step", "starting", "Analyze repository", "Quick scan starting")

        structure = self.gatherer.analyze_repository(state["container_id"], self._repo_path(state))

        duration = time.time() - start_time
        notify(state, "analyze-repository-step", "completed", "Analyze repository completed", f"Type: {structure.type}")
        logger.info("langgraph_node_complete", node="analyze_repository", duration=duration, type=structure.type)
        return {
            "repository_structure": structure,
            "agent_history": [agent_record("ContextGathererAgent", "analyze_repository", structure.type, duration)],
        }

    def analyze_codebase_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="analyze_codebase")
        start_time = time.time()
        notify(state, "analyze-codebase-step", "starting", "Analyze codebase")

        analysis = self.gatherer.analyze_codebase(state["container_id"], self._repo_path(state))

        duration = time.time() - start_time
        frameworks = ", ".join(fw.name for fw in analysis.frameworks) or "none detected"
        notify(state, "analyze-codebase-step", "completed", "Analyze codebase completed", f"Frameworks: {frameworks}")
        logger.info("langgraph_node_complete", node="analyze_codebase", duration=duration,
                    frameworks=len(analysis.frameworks))
        return {
            "codebase_analysis": analysis,
            "agent_history": [agent_record("ContextGathererAgent", "analyze_codebase", frameworks, duration)],
        }

    def analyze_build_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="analyze_build")
        start_time = time.time()
        notify(state, "analyze-build-deployment-step", "starting", "Analyze build & deployment")

        analysis = self.gatherer.analyze_build(state["container_id"], self._repo_path(state))

        duration = time.time() - start_time
        build_system = analysis.build_system.type or "unknown"
        notify(state, "analyze-build-deployment-step", "completed", "Analyze build & deployment completed",
               f"Build system: {build_system}")
        logger.info("langgraph_node_complete", node="analyze_build", duration=duration, build_system=build_system)
        return {
            "build_analysis": analysis,
            "agent_history": [agent_record("ContextGathererAgent", "analyze_build", build_system, duration)],
        }

    def synthesize_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="synthesize_context")
        start_time = time.time()
        notify(state, "synthesize-context-step", "starting", "Synthesize context", "Merging analyses")

        try:
            context = self.gatherer.synthesize(
                state["repository_structure"],
                state["codebase_analysis"],
                state["build_analysis"],
            )
            duration = time.time() - start_time
            notify(state, "synthesize-context-step", "completed", "Synthesize context completed",
                   f"Complexity: {context.insights.complexity}")
            logger.info("langgraph_node_complete", node="synthesize_context", duration=duration,
                        complexity=context.insights.complexity, confidence=context.confidence.overall)
            return {
                "repo_context": context,
                "next_action": "continue",
                "agent_history": [
                    agent_record("ContextGathererAgent", "synthesize", context.insights.complexity, duration)
                ],
            }
        except Exception as e:
            return node_failed("synthesize_context", "synthesize-context-step", state, e, "Synthesize context")

    def save_context_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="save_unit_test_context")
        notify(state, "save-unit-test-context-step", "starting", "Save unit test context",
               f"Writing {self.services.config.context_path}")

        path = self.gatherer.save_unit_test_context(state["container_id"], state["repo_context"])

        if path == CONTEXT_NOT_SAVED:
            notify(state, "save-unit-test-context-step", "completed", "Unit test context not saved",
                   "Continuing without a context file", level="warning")
        else:
            notify(state, "save-unit-test-context-step", "completed", "Saved unit test context", f"Path: {path}")
        logger.info("langgraph_node_complete", node="save_unit_test_context", path=path)
        return {"context_path": path, "next_action": "continue"}

    def register(self, graph: StateGraph) -> Tuple[str, str]:
        graph.add_node("gather_start", self.gather_start_node)
        graph.add_node("analyze_repository", self.analyze_repository_node)
        graph.add_node("analyze_codebase", self.analyze_codebase_node)
        graph.add_node("analyze_build", self.analyze_build_node)
        graph.add_node("synthesize_context", self.synthesize_node)
        graph.add_node("save_unit_test_context", self.save_context_node)

        graph.add_conditional_edges(
            "gather_start",
            should_continue_after_start,
            {
                "repository": "analyze_repository",
                "codebase": "analyze_codebase",
                "build": "analyze_build",
                "fail": END,
            },
        )
        graph.add_edge(["analyze_repository", "analyze_codebase", "analyze_build"], "synthesize_context")
        graph.add_conditional_edges(
            "synthesize_context",
            should_continue,
            {"continue": "save_unit_test_context", "fail": END},
        )
        return "gather_start", "save_unit_test_context"

    def build(self):
        return compile_standalone(self.register)
