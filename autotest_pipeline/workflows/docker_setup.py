"""
Docker setup workflow.

bootstrap -> clone -> (post_description || post_stack) -> save_context
"""

import time
from typing import Any, Dict, List, Tuple, Union

import structlog
from langgraph.graph import END, StateGraph

from autotest_pipeline.agents.docker_setup import DockerSetupAgent, resolve_repository
from autotest_pipeline.agents.project_profile import ProjectProfileAgent
from autotest_pipeline.models.state import PipelineState, agent_record
from autotest_pipeline.workflows.base import (
    PipelineServices,
    compile_standalone,
    node_failed,
    notify,
    should_continue,
)

logger = structlog.get_logger()


def should_continue_after_clone(state: PipelineState) -> Union[str, List[str]]:
    """Fan out to the two backend posts unless the clone failed."""
    if state.get("next_action") == "fail":
        return "fail"
    return ["description", "stack"]


class DockerSetupWorkflow:
    """Container bootstrap, clone and project profile."""

    name = "docker_setup"

    def __init__(self, services: PipelineServices):
        self.services = services
        config = services.config
        self.setup = DockerSetupAgent(
            services.docker,
            image=config.docker_image,
            base_image=config.docker_base_image,
            container_name=config.container_name,
            context_path=config.context_path,
            credentials_filename=config.credentials_filename,
        )

    def _profile(self) -> ProjectProfileAgent:
        services = self.services
        return ProjectProfileAgent(
            services.docker,
            services.backend,
            services.github(services.optional_github_token()),
            description_agent=services.agent("codebase_description_agent"),
        )

    def bootstrap_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="bootstrap")
        start_time = time.time()
        notify(state, "docker-setup-step", "starting", "Docker setup", "Building image and starting container")

        try:
            container_id = self.setup.bootstrap()
            duration = time.time() - start_time
            notify(
                state, "docker-setup-step", "completed", "Docker setup completed",
                f"Container ready ({container_id[:12]})", container_id=container_id,
            )
            logger.info("langgraph_node_complete", node="bootstrap", duration=duration, container_id=container_id[:12])
            return {
                "container_id": container_id,
                "next_action": "continue",
                "agent_history": [agent_record("DockerSetupAgent", "bootstrap", container_id, duration)],
            }
        except Exception as e:
            return node_failed("bootstrap", "docker-setup-step", state, e, "Docker setup")

    def clone_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="clone")
        start_time = time.time()

        try:
            repository = resolve_repository(
                state.get("repository_url"),
                state.get("context_data"),
                self.services.config.default_repository,
            )
            notify(state, "clone-repository-step", "starting", "Cloning repository", repository.full_name)
            repo_path = self.setup.clone(state["container_id"], repository)
            duration = time.time() - start_time
            notify(state, "clone-repository-step", "completed", "Repository cloned", repo_path)
            logger.info("langgraph_node_complete", node="clone", duration=duration, repo=repository.full_name)
            return {
                "repository": repository,
                "repo_path": repo_path,
                "next_action": "continue",
                "agent_history": [agent_record("DockerSetupAgent", "clone", repo_path, duration)],
            }
        except Exception as e:
            return node_failed("clone", "clone-repository-step", state, e, "Repository clone")

    def post_description_node(self, state: PipelineState) -> Dict[str, Any]:
        """Describe the project for the backend; never fails the run."""
        logger.info("langgraph_node_start", node="post_description")
        start_time = time.time()
        notify(state, "post-project-description-step", "starting", "Post project description",
               "Analyzing repository README and metadata")

        try:
            profile = self._profile()
            description = profile.build_description(
                state["container_id"], state["repo_path"], state.get("repository")
            )
            posted = profile.post_description(state["project_id"], description)
        except Exception as e:
            logger.warning("project_description_failed", error=str(e))
            notify(state, "post-project-description-step", "completed", "Project description skipped", str(e)[:300],
                   level="warning")
            return {"description": None}

        duration = time.time() - start_time
        notify(state, "post-project-description-step", "completed", "Project description posted",
               f"{len(description)} characters" if posted else "Backend did not accept the description")
        logger.info("langgraph_node_complete", node="post_description", duration=duration, posted=posted)
        return {
            "description": description,
            "agent_history": [agent_record("ProjectProfileAgent", "post_description", description, duration)],
        }

    def post_stack_node(self, state: PipelineState) -> Dict[str, Any]:
        """Post the detected technology stack; never fails the run."""
        logger.info("langgraph_node_start", node="post_stack")
        start_time = time.time()
        notify(state, "post-project-stack-step", "starting", "Post project stack", "Detecting technologies")

        try:
            profile = self._profile()
            stack = profile.build_stack(state["container_id"], state["repo_path"], state.get("repository"))
            posted = profile.post_stack(state["project_id"], stack)
        except Exception as e:
            logger.warning("project_stack_failed", error=str(e))
            notify(state, "post-project-stack-step", "completed", "Project stack skipped", str(e)[:300],
                   level="warning")
            return {"stack_posted": 0}

        duration = time.time() - start_time
        notify(state, "post-project-stack-step", "completed", "Project stack posted",
               f"{posted}/{len(stack)} items: " + ", ".join(item.title for item in stack[:5]))
        logger.info("langgraph_node_complete", node="post_stack", duration=duration, posted=posted)
        return {
            "stack_posted": posted,
            "agent_history": [agent_record("ProjectProfileAgent", "post_stack", f"{posted} items", duration)],
        }

    def save_context_node(self, state: PipelineState) -> Dict[str, Any]:
        logger.info("langgraph_node_start", node="save_context")
        start_time = time.time()
        context_data = state.get("context_data")
        notify(state, "save-context-step", "starting", "Saving context to container",
               "Context data provided" if context_data else "No context data")

        try:
            path = self.setup.save_context(state["container_id"], context_data)
            duration = time.time() - start_time
            notify(state, "save-context-step", "completed", "Context saved", f"Saved to {path}")
            logger.info("langgraph_node_complete", node="save_context", duration=duration, path=path)
            return {
                "next_action": "continue",
                "agent_history": [agent_record("DockerSetupAgent", "save_context", path, duration)],
            }
        except Exception as e:
            return node_failed("save_context", "save-context-step", state, e, "Save context")

    def register(self, graph: StateGraph) -> Tuple[str, str]:
        """Add this workflow's nodes and edges; returns (first, last) node names."""
        graph.add_node("bootstrap", self.bootstrap_node)
        graph.add_node("clone", self.clone_node)
        graph.add_node("post_description", self.post_description_node)
        graph.add_node("post_stack", self.post_stack_node)
        graph.add_node("save_context", self.save_context_node)

        graph.add_conditional_edges("bootstrap", should_continue, {"continue": "clone", "fail": END})
        graph.add_conditional_edges(
            "clone",
            should_continue_after_clone,
            {"description": "post_description", "stack": "post_stack", "fail": END},
        )
        graph.add_edge(["post_description", "post_stack"], "save_context")
        return "bootstrap", "save_context"

    def build(self):
        return compile_standalone(self.register)
