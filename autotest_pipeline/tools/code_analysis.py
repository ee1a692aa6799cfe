"""Grep-based source inspection used by the test agents before writing tests."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from autotest_pipeline.exceptions import CommandError
from autotest_pipeline.integrations.docker_client import DockerClient, get_docker_client
from autotest_pipeline.tools.base import ToolDefinition, object_schema, tool_metrics
from autotest_pipeline.utils.shell import shell_escape

ANALYSIS_TYPES = ("structure", "functions", "dependencies", "exports", "full")


def _function_patterns(file_path: str, language: Optional[str]) -> List[str]:
    if language in ("typescript", "javascript") or file_path.endswith((".ts", ".tsx", ".js", ".jsx")):
        return [r"function\|class\|const.*=\|export", r"async\|await\|Promise"]
    if language == "python" or file_path.endswith(".py"):
        return [r"def\|class\|@"]
    return [r"function\|class\|def\|fn\|func"]


def build_analysis_commands(file_path: str, analysis_type: str, language: Optional[str] = None) -> List[str]:
    """Commands to run for one analysis, in order; the existence check comes first."""
    path = shell_escape(file_path)
    commands = [f"test -f {path} && echo 'FILE_EXISTS' || echo 'FILE_NOT_FOUND'"]

    def grep(pattern: str) -> str:
        return f"grep -n {shell_escape(pattern)} {path}"

    if analysis_type in ("structure", "full"):
        commands += [f"file {path}", f"wc -l {path}", f"head -20 {path}"]
    if analysis_type in ("functions", "full"):
        commands += [grep(p) for p in _function_patterns(file_path, language)]
    if analysis_type in ("dependencies", "full"):
        commands.append(grep(r"import\|require\|from.*import"))
    if analysis_type in ("exports", "full"):
        commands.append(grep(r"export\|module.exports"))
    return commands


def analyze_code(
    container_id: str,
    file_path: str,
    analysis_type: str,
    language: Optional[str] = None,
    docker: Optional[DockerClient] = None,
) -> Dict[str, Any]:
    if not container_id or not isinstance(container_id, str):
        raise ValueError("containerId is required and must be a string")
    if not file_path or not isinstance(file_path, str):
        raise ValueError("filePath is required and must be a string")
    if not analysis_type:
        raise ValueError("analysisType is required")
    if analysis_type not in ANALYSIS_TYPES:
        raise ValueError(f"Unsupported analysisType: {analysis_type}")

    tool_metrics.increment()
    docker = docker or get_docker_client()

    results = []
    for command in build_analysis_commands(file_path, analysis_type, language):
        try:
            result = docker.exec(container_id, command, check=False)
        except CommandError as e:
            results.append({"command": command, "output": "", "error": str(e)})
            continue
        # grep exits 1 when nothing matched
        if result.ok or (command.startswith("grep") and result.returncode == 1):
            results.append({"command": command, "output": result.output})
        else:
            results.append({
                "command": command,
                "output": "",
                "error": result.stderr.strip() or f"exit code {result.returncode}",
            })

    return {
        "filePath": file_path,
        "analysisType": analysis_type,
        "language": language or "auto-detected",
        "fileExists": results[0]["output"] == "FILE_EXISTS",
        "results": results[1:],
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }


def code_analysis_tool(docker: Optional[DockerClient] = None) -> ToolDefinition:
    def handler(args: Dict[str, Any]) -> Dict[str, Any]:
        return analyze_code(
            args.get("containerId"),
            args.get("filePath"),
            args.get("analysisType"),
            language=args.get("language"),
            docker=docker,
        )

    return ToolDefinition(
        name="code_analysis",
        description=(
            "Perform deep analysis of source code files to extract structure, "
            "functions, classes, and testing requirements"
        ),
        parameters=object_schema(
            {
                "containerId": {"type": "string", "description": "Docker container ID to run analysis in"},
                "filePath": {"type": "string", "description": "Path to the source code file to analyze"},
                "analysisType": {"type": "string", "enum": list(ANALYSIS_TYPES), "description": "Type of analysis to perform"},
                "language": {"type": "string", "description": "Programming language (auto-detected if not provided)"},
            },
            required=("containerId", "filePath", "analysisType"),
        ),
        handler=handler,
    )
