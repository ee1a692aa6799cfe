"""Integrations package for external services."""

from autotest_pipeline.integrations.openai_client import OpenAIClient, LLMResponse, get_openai_client
from autotest_pipeline.integrations.github_client import GitHubClient, get_github_client
from autotest_pipeline.integrations.docker_client import DockerClient, get_docker_client
from autotest_pipeline.integrations.backend_client import BackendClient, get_backend_client

__all__ = [
    "OpenAIClient",
    "LLMResponse",
    "get_openai_client",
    "GitHubClient",
    "get_github_client",
    "DockerClient",
    "get_docker_client",
    "BackendClient",
    "get_backend_client",
]
