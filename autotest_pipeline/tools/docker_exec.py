"""Run raw shell commands inside the sandbox container."""

from typing import Any, Dict, Optional

from autotest_pipeline.integrations.docker_client import DockerClient, get_docker_client
from autotest_pipeline.tools.base import ToolDefinition, object_schema, tool_metrics

DOCKER_EXEC_TIMEOUT = 120


def normalize_command(cmd: str) -> str:
    """Strip an accidental `bash -lc` wrapper and one layer of surrounding quotes."""
    normalized = cmd.strip()
    if normalized.startswith("bash -lc "):
        normalized = normalized[len("bash -lc "):].strip()
    if len(normalized) >= 2 and normalized[0] == normalized[-1] and normalized[0] in ("'", '"'):
        normalized = normalized[1:-1]
    return normalized


def docker_exec(container_id: str, cmd: str, docker: Optional[DockerClient] = None) -> str:
    """
    Run a command in the container and return its stdout.

    Raises:
        ValueError: missing container id or command
        CommandError: non-zero exit, message carries stderr
    """
    if not container_id or not isinstance(container_id, str):
        raise ValueError("containerId is required and must be a string")
    if not cmd or not isinstance(cmd, str):
        raise ValueError("cmd is required and must be a string")

    tool_metrics.increment()
    docker = docker or get_docker_client()
    result = docker.exec(container_id, normalize_command(cmd), timeout=DOCKER_EXEC_TIMEOUT)
    return result.stdout


def docker_exec_tool(docker: Optional[DockerClient] = None) -> ToolDefinition:
    def handler(args: Dict[str, Any]) -> str:
        return docker_exec(args.get("containerId"), args.get("cmd"), docker=docker)

    return ToolDefinition(
        name="docker_exec",
        description="Run a shell command inside a docker container. Pass RAW commands only (no 'bash -lc' wrapper).",
        parameters=object_schema(
            {
                "containerId": {"type": "string", "description": "Docker container ID or name"},
                "cmd": {"type": "string", "description": "The shell command to run inside the container (raw, unwrapped)"},
            },
            required=("containerId", "cmd"),
        ),
        handler=handler,
    )
