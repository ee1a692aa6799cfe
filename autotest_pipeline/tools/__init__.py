"""Tools exposed to agents through function calling."""

from typing import Iterable, List, Optional

from autotest_pipeline.integrations.docker_client import DockerClient
from autotest_pipeline.tools.base import ToolDefinition, ToolMetrics, tool_metrics
from autotest_pipeline.tools.code_analysis import code_analysis_tool
from autotest_pipeline.tools.coverage import coverage_detection_tool, coverage_parse_tool, coverage_runner_tool
from autotest_pipeline.tools.docker_exec import docker_exec_tool
from autotest_pipeline.tools.exec_command import exec_command_tool
from autotest_pipeline.tools.file_operations import file_operations_tool
from autotest_pipeline.tools.task_logging import task_logging_tool


def build_tools(names: Iterable[str], docker: Optional[DockerClient] = None) -> List[ToolDefinition]:
    """Instantiate the named tools, sharing one Docker client."""
    factories = {
        "exec_command": lambda: exec_command_tool(),
        "docker_exec": lambda: docker_exec_tool(docker),
        "file_operations": lambda: file_operations_tool(docker),
        "code_analysis": lambda: code_analysis_tool(docker),
        "coverage_detection": lambda: coverage_detection_tool(docker),
        "coverage_runner": lambda: coverage_runner_tool(docker),
        "coverage_parse": lambda: coverage_parse_tool(docker),
        "task_logging": lambda: task_logging_tool(),
    }
    tools: List[ToolDefinition] = []
    for name in names:
        if name not in factories:
            raise KeyError(f"Unknown tool: {name}")
        tools.append(factories[name]())
    return tools


__all__ = [
    "ToolDefinition",
    "ToolMetrics",
    "tool_metrics",
    "build_tools",
]
