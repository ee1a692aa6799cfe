"""File operations inside the sandbox container."""

import posixpath
from datetime import datetime
from typing import Any, Dict, Optional

from autotest_pipeline.integrations.docker_client import DockerClient, get_docker_client
from autotest_pipeline.tools.base import ToolDefinition, object_schema, tool_metrics
from autotest_pipeline.utils.shell import shell_escape

OPERATIONS = ("read", "write", "create_dir", "list", "exists", "copy")


def file_operation(
    container_id: str,
    operation: str,
    file_path: str,
    content: Optional[str] = None,
    target_path: Optional[str] = None,
    docker: Optional[DockerClient] = None,
) -> Dict[str, Any]:
    """
    Perform one file operation in the container.

    Raises:
        ValueError: missing or invalid arguments
        CommandError: the underlying command failed
    """
    if not container_id or not isinstance(container_id, str):
        raise ValueError("containerId is required and must be a string")
    if not operation:
        raise ValueError("operation is required")
    if operation not in OPERATIONS:
        raise ValueError(f"Unsupported operation: {operation}")
    if not file_path or not isinstance(file_path, str):
        raise ValueError("filePath is required and must be a string")
    if operation == "write" and not content:
        raise ValueError("content is required for write operation")
    if operation == "copy" and not target_path:
        raise ValueError("targetPath is required for copy operation")

    tool_metrics.increment()
    docker = docker or get_docker_client()
    quoted = shell_escape(file_path)

    if operation == "write":
        parent = posixpath.dirname(file_path)
        if parent:
            docker.exec(container_id, f"mkdir -p {shell_escape(parent)}")
        size = docker.write_file(container_id, file_path, content)
        output = f"Wrote {size} bytes to {file_path}"
    else:
        command = {
            "read": f"cat {quoted}",
            "create_dir": f"mkdir -p {quoted}",
            "list": f"ls -la {quoted}",
            "exists": f"test -e {quoted} && echo 'EXISTS' || echo 'NOT_EXISTS'",
            "copy": f"cp {quoted} {shell_escape(target_path or '')}",
        }[operation]
        output = docker.exec(container_id, command).output

    return {
        "operation": operation,
        "filePath": file_path,
        "targetPath": target_path,
        "success": True,
        "output": output,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }


def file_operations_tool(docker: Optional[DockerClient] = None) -> ToolDefinition:
    def handler(args: Dict[str, Any]) -> Dict[str, Any]:
        return file_operation(
            args.get("containerId"),
            args.get("operation"),
            args.get("filePath"),
            content=args.get("content"),
            target_path=args.get("targetPath"),
            docker=docker,
        )

    return ToolDefinition(
        name="file_operations",
        description="Perform file operations like reading, writing, creating directories for test files",
        parameters=object_schema(
            {
                "containerId": {"type": "string", "description": "Docker container ID to run operations in"},
                "operation": {"type": "string", "enum": list(OPERATIONS), "description": "File operation to perform"},
                "filePath": {"type": "string", "description": "Path to the file or directory"},
                "content": {"type": "string", "description": "Content to write (for write operation)"},
                "targetPath": {"type": "string", "description": "Target path (for copy operation)"},
            },
            required=("containerId", "operation", "filePath"),
        ),
        handler=handler,
    )
