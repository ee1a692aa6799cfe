"""Run shell commands on the host."""

from typing import Any, Dict

from autotest_pipeline.tools.base import ToolDefinition, object_schema, tool_metrics
from autotest_pipeline.utils.shell import run_command

HOST_COMMAND_TIMEOUT = 300


def exec_command(command: str) -> str:
    if not command or not isinstance(command, str):
        raise ValueError("command is required and must be a string")
    tool_metrics.increment()
    return run_command(command, timeout=HOST_COMMAND_TIMEOUT).stdout


def exec_command_tool() -> ToolDefinition:
    def handler(args: Dict[str, Any]) -> str:
        return exec_command(args.get("command"))

    return ToolDefinition(
        name="exec_command",
        description="Execute a shell command on the host machine (docker CLI, git, file inspection) and return stdout.",
        parameters=object_schema(
            {"command": {"type": "string", "description": "Shell command to execute on the host"}},
            required=("command",),
        ),
        handler=handler,
    )
