"""
GitHub PR workflow.

prepare_commit_and_push -> create_pull_request -> post_pr_url
"""

import time
from typing import Any, Dict, Optional, Tuple

import structlog
from langgraph.graph import END, StateGraph

from autotest_pipeline.agents.pr_creator import PullRequestAgent
from autotest_pipeline.models.state import PipelineState, agent_record
from autotest_pipeline.models.testing import TestGenerationResult
from autotest_pipeline.workflows.base import (
    PipelineServices,
    compile_standalone,
    node_failed,
    notify,
    should_continue,
)

logger = structlog.get_logger()


def _generation(state: PipelineState) -> Optional[TestGenerationResult]:
    result = state.get("unit_test_result")
    return result.test_generation if result else None


class GitHubPRWorkflow:
    """Commits generated tests and opens the pull request."""

    name = "github_pr"

    def __init__(self, services: PipelineServices):
        self.services = services
        self._agent = None

    @property
    def agent(self) -> PullRequestAgent:
        if self._agent is None:
            self._agent = PullRequestAgent(
                self.services.docker,
                self.services.backend,
                github_factory=self.services.github,
                pr_agent=self.services.agent("github_pr_agent"),
            )
        return self._agent

    def prepare_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="prepare_commit_and_push")
        start_time = time.time()
        notify(state, "prepare-commit-and-push-step", "starting", "Prepare commit & push", "Creating branch")

        plan = state.get("test_plan")
        test_dir = plan.repo_analysis.test_directory if plan else self.services.config.test_dir
        try:
            info = self.agent.prepare_commit_and_push(
                state["container_id"],
                state.get("repo_path"),
                state.get("run_id"),
                generation=_generation(state),
                test_dir=test_dir or "tests",
            )
        except Exception as e:
            return node_failed("prepare_commit_and_push", "prepare-commit-and-push-step", state, e, "Commit & push")

        duration = time.time() - start_time
        if info.has_changes:
            notify(state, "prepare-commit-and-push-step", "completed", "Committed & pushed branch",
                   f"{info.branch_name} -> {info.base_branch}")
        else:
            notify(state, "prepare-commit-and-push-step", "completed", "No changes detected",
                   "Skipping commit & push")
        logger.info("langgraph_node_complete", node="prepare_commit_and_push", duration=duration,
                    branch=info.branch_name, has_changes=info.has_changes)
        return {
            "pull_request": info,
            "next_action": "continue",
            "agent_history": [agent_record("PullRequestAgent", "commit_and_push", info.branch_name, duration)],
        }

    def create_pr_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="create_pull_request")
        start_time = time.time()
        info = state["pull_request"]

        if not info.has_changes:
            notify(state, "create-pull-request-step", "completed", "Pull request skipped", "No changes to commit")
            logger.info("langgraph_node_complete", node="create_pull_request", skipped=True)
            return {"next_action": "continue"}

        notify(state, "create-pull-request-step", "starting", "Create pull request",
               f"{info.branch_name} -> {info.base_branch}")
        plan = state.get("test_plan")
        try:
            info = self.agent.create_pull_request(
                state["container_id"],
                info,
                generation=_generation(state),
                test_specs=plan.test_specs if plan else None,
            )
        except Exception as e:
            return node_failed("create_pull_request", "create-pull-request-step", state, e, "Create pull request")

        duration = time.time() - start_time
        notify(state, "create-pull-request-step", "completed", "PR created", info.pr_url)
        logger.info("langgraph_node_complete", node="create_pull_request", duration=duration,
                    pr_number=info.pr_number)
        return {
            "pull_request": info,
            "next_action": "continue",
            "agent_history": [agent_record("PullRequestAgent", "create_pr", info.pr_url, duration)],
        }

    def post_pr_url_node(self, state: PipelineState) -> Dict[str, Any]:
        """Report the PR URL to the backend; a rejected post only warns."""
        logger.info("langgraph_node_start", node="post_pr_url")
        info = state.get("pull_request")
        pr_url = info.pr_url if info else None
        if not pr_url:
            logger.info("langgraph_node_complete", node="post_pr_url", skipped=True)
            return {"next_action": "continue"}

        notify(state, "post-pr-url-step", "starting", "Report PR URL", pr_url)
        posted = self.agent.post_pr_url(state["project_id"], pr_url)
        notify(state, "post-pr-url-step", "completed", "PR URL reported",
               pr_url if posted else f"Backend did not accept {pr_url}", level=None if posted else "warning")
        logger.info("langgraph_node_complete", node="post_pr_url", posted=posted)
        return {"next_action": "continue"}

    def register(self, graph: StateGraph) -> Tuple[str, str]:
        graph.add_node("prepare_commit_and_push", self.prepare_node)
        graph.add_node("create_pull_request", self.create_pr_node)
        graph.add_node("post_pr_url", self.post_pr_url_node)

        graph.add_conditional_edges(
            "prepare_commit_and_push", should_continue, {"continue": "create_pull_request", "fail": END}
        )
        graph.add_conditional_edges("create_pull_request", should_continue, {"continue": "post_pr_url", "fail": END})
        return "prepare_commit_and_push", "post_pr_url"

    def build(self):
        return compile_standalone(self.register)
