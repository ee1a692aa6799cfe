"""
Shared plumbing for the LangGraph workflows.

Each workflow class registers its nodes on a StateGraph so that the same
nodes can be compiled on their own or chained into the full pipeline.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import structlog
from langgraph.graph import END, START, StateGraph

from autotest_pipeline.agents.base import PromptAgent
from autotest_pipeline.agents.personas import get_agent
from autotest_pipeline.config import Config, get_config
from autotest_pipeline.credentials import get_github_token
from autotest_pipeline.exceptions import MissingCredentialsError
from autotest_pipeline.integrations.alerts import notify_step_status
from autotest_pipeline.integrations.backend_client import BackendClient, get_backend_client
from autotest_pipeline.integrations.docker_client import DockerClient, get_docker_client
from autotest_pipeline.integrations.github_client import GitHubClient
from autotest_pipeline.models.state import PipelineState, error_entry
from autotest_pipeline.tools.base import tool_metrics

logger = structlog.get_logger()


@dataclass
class PipelineServices:
    """Clients and persona factory shared by every node of a run."""

    config: Config
    docker: DockerClient
    backend: BackendClient
    github_factory: Callable[..., GitHubClient] = GitHubClient
    agent_factory: Optional[Callable[[str], PromptAgent]] = None
    _agents: Dict[str, PromptAgent] = field(default_factory=dict, repr=False)

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "PipelineServices":
        config = config or get_config()
        return cls(
            config=config,
            docker=get_docker_client(config.docker_exec_timeout),
            backend=get_backend_client(config.backend_base_url, config.backend_timeout),
        )

    def agent(self, agent_id: str) -> PromptAgent:
        """Persona by id, built once per services instance."""
        if agent_id not in self._agents:
            if self.agent_factory is not None:
                self._agents[agent_id] = self.agent_factory(agent_id)
            else:
                self._agents[agent_id] = get_agent(agent_id, self.config, docker=self.docker)
        return self._agents[agent_id]

    def github(self, token: Optional[str] = None) -> GitHubClient:
        return self.github_factory(token, self.config.github_api_url)

    def optional_github_token(self) -> Optional[str]:
        try:
            return get_github_token()
        except MissingCredentialsError:
            logger.debug("github_token_unavailable")
            return None


def notify(
    state: PipelineState,
    step_id: str,
    status: str,
    title: str,
    subtitle: Optional[str] = None,
    container_id: Optional[str] = None,
    **extra: Any,
) -> bool:
    """Send a step alert carrying the run identifiers from the state."""
    return notify_step_status(
        step_id=step_id,
        status=status,
        run_id=state.get("run_id"),
        project_id=state.get("project_id"),
        container_id=container_id or state.get("container_id"),
        title=title,
        subtitle=subtitle,
        tool_call_count=tool_metrics.call_count if status in ("completed", "failed") else None,
        **extra,
    )


def node_failed(node: str, step_id: str, state: PipelineState, error: Exception, action: str) -> Dict[str, Any]:
    """State update for a node that failed the run."""
    logger.error("langgraph_node_failed", node=node, error=str(error))
    notify(state, step_id, "failed", f"{action} failed", str(error)[:300] or type(error).__name__)
    return {
        "errors": [error_entry(f"{action} failed: {error}")],
        "next_action": "fail",
    }


def should_continue(state: PipelineState) -> str:
    """Generic router: END on failure, onwards otherwise."""
    if state.get("next_action") == "fail":
        return "fail"
    return "continue"


def compile_standalone(register: Callable[[StateGraph], Tuple[str, str]]):
    """Compile a workflow's nodes as their own graph from START to END."""
    graph = StateGraph(PipelineState)
    first, last = register(graph)
    graph.add_edge(START, first)
    graph.add_edge(last, END)
    return graph.compile()
