"""
Coverage detection, execution and parsing inside the sandbox container.

Detection picks a coverage command from the project layout, the runner
executes it, and parsing reads the ratio from coverage reports or stdout.
"""

import json
import re
from typing import Any, Dict, Optional, Tuple

import structlog

from autotest_pipeline.exceptions import CommandError
from autotest_pipeline.integrations.docker_client import DockerClient, get_docker_client
from autotest_pipeline.tools.base import ToolDefinition, object_schema, tool_metrics

logger = structlog.get_logger()

NO_COVERAGE_COMMAND = 'echo "No coverage command detected"'
COVERAGE_RUN_TIMEOUT = 1800

JSON_REPORTS = (
    "coverage/coverage-summary.json",
    "coverage/coverage-final.json",
    "coverage/coverage.json",
)

_SOURCE_FIND = (
    "find . -type f \\( -name '*.ts' -o -name '*.tsx' -o -name '*.js' -o -name '*.jsx' -o -name '*.py' \\) "
    "-not -path '*/node_modules/*' -not -path '*/.git/*' -not -path '*/dist/*' -not -path '*/build/*' "
    "-not -path '*/coverage/*' -not -path '*/.venv/*'"
)
_TEST_FILTER = r"(\.test\.|\.spec\.|/tests?/|/__tests__/|/test_[^/]*$)"


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _pct_in_line(line: str) -> Optional[float]:
    numbers = re.findall(r"\d{1,3}(?:\.\d+)?", line)
    if not numbers:
        return None
    last = float(numbers[-1])
    if 0 <= last <= 100:
        return _clamp(last / 100)
    return None


def parse_coverage_text(text: str) -> Optional[float]:
    """
    Read a coverage ratio from test runner output.

    Looks for an istanbul "All files" row, then a "Total |" row, then the
    last percentage anywhere in the text.
    """
    if not text:
        return None
    lines = text.splitlines()
    for marker in (re.compile(r"All files", re.I), re.compile(r"Total\s*\|", re.I)):
        for line in lines:
            if marker.search(line):
                ratio = _pct_in_line(line)
                if ratio is not None:
                    return ratio
    percentages = re.findall(r"\b(\d{1,3}(?:\.\d+)?)%", text)
    if percentages:
        value = float(percentages[-1])
        if 0 <= value <= 100:
            return _clamp(value / 100)
    return None


def parse_coverage_json(raw: str) -> Optional[float]:
    """Ratio from an istanbul summary or a coverage.py JSON report."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None

    total = data.get("total")
    if isinstance(total, dict):
        for key in ("lines", "statements"):
            section = total.get(key)
            if isinstance(section, dict) and isinstance(section.get("pct"), (int, float)):
                return _clamp(section["pct"] / 100)

    totals = data.get("totals")
    if isinstance(totals, dict):
        pct = totals.get("percent_covered")
        if not isinstance(pct, (int, float)):
            try:
                pct = float(str(totals.get("percent_covered_display", "")).replace("%", ""))
            except ValueError:
                return None
        return _clamp(pct / 100)
    return None


def parse_cobertura(raw: str) -> Optional[float]:
    match = re.search(r'line-rate="([0-9.]+)', raw or "")
    if not match:
        return None
    try:
        return _clamp(float(match.group(1)))
    except ValueError:
        return None


def detect_coverage(
    container_id: str,
    repo_path: Optional[str] = None,
    docker: Optional[DockerClient] = None,
) -> Dict[str, Any]:
    """Choose install and coverage commands for the repository."""
    if not container_id:
        raise ValueError("containerId is required")
    tool_metrics.increment()
    docker = docker or get_docker_client()
    repo_path = repo_path or docker.find_repo_path(container_id)

    language = "unknown"
    framework = "unknown"
    install: Optional[str] = None
    run = ""

    try:
        package_json = docker.read_file(container_id, f"{repo_path}/package.json")
    except CommandError as e:
        logger.warning("coverage_detection_read_failed", file="package.json", error=str(e))
        package_json = None

    if package_json is not None:
        language = "node"
        try:
            package = json.loads(package_json)
        except json.JSONDecodeError:
            package = {}
        deps = {**(package.get("dependencies") or {}), **(package.get("devDependencies") or {})}
        scripts = package.get("scripts") or {}
        framework = "vitest" if "vitest" in deps else "jest" if "jest" in deps else "unknown"

        has_lock = docker.path_exists(container_id, f"{repo_path}/package-lock.json")
        install = "npm ci --no-audit --no-fund" if has_lock else "npm install --no-audit --no-fund"

        if framework == "vitest":
            run = "npx -y vitest run --coverage"
        elif framework == "jest":
            run = "npx -y jest --coverage --ci"
        elif "test:coverage" in scripts:
            run = "npm run -s test:coverage"
        else:
            run = "npm test -- --coverage || true"

    if not run:
        markers = ("pytest.ini", "pyproject.toml", "requirements.txt")
        if any(docker.path_exists(container_id, f"{repo_path}/{m}") for m in markers):
            language = "python" if language == "unknown" else language
            framework = "pytest"
            install = "pip3 install --no-input --quiet pytest pytest-cov"
            run = (
                "pytest -q --maxfail=1 --disable-warnings --cov=. --cov-report=term-missing "
                "--cov-report=json:coverage/coverage.json"
            )

    return {
        "repoPath": repo_path,
        "language": language,
        "framework": framework,
        "install": install,
        "run": run or NO_COVERAGE_COMMAND,
    }


def run_coverage(
    container_id: str,
    repo_path: str,
    run: str,
    install: Optional[str] = None,
    docker: Optional[DockerClient] = None,
) -> Dict[str, str]:
    """Install dependencies (best-effort) and run the coverage command."""
    if not container_id or not repo_path or not run:
        raise ValueError("containerId, repoPath and run are required")
    tool_metrics.increment()
    docker = docker or get_docker_client()

    if install and install.strip():
        result = docker.exec_in_repo(container_id, repo_path, install, timeout=COVERAGE_RUN_TIMEOUT, check=False)
        if not result.ok:
            logger.warning("coverage_install_failed", returncode=result.returncode)

    result = docker.exec_in_repo(
        container_id, repo_path, f"{run} 2>&1 || true", timeout=COVERAGE_RUN_TIMEOUT, check=False
    )
    return {"stdout": result.stdout + result.stderr, "stderr": result.stderr}


def parse_coverage(
    container_id: str,
    repo_path: str,
    stdout: Optional[str] = None,
    docker: Optional[DockerClient] = None,
) -> Tuple[float, str]:
    """
    Find the coverage ratio for a finished run.

    Returns:
        Tuple of (ratio in 0..1, method); ("none") when nothing was found
    """
    if not container_id or not repo_path:
        raise ValueError("containerId and repoPath are required")
    tool_metrics.increment()
    docker = docker or get_docker_client()

    for report in JSON_REPORTS:
        try:
            raw = docker.read_file(container_id, f"{repo_path}/{report}")
        except CommandError:
            continue
        ratio = parse_coverage_json(raw) if raw else None
        if ratio is not None:
            return ratio, "json"

    try:
        xml = docker.read_file(container_id, f"{repo_path}/coverage/coverage.xml")
    except CommandError:
        xml = None
    ratio = parse_cobertura(xml) if xml else None
    if ratio is not None:
        return ratio, "xml"

    ratio = parse_coverage_text(stdout or "")
    if ratio is not None:
        return ratio, "stdout"
    return 0.0, "none"


def count_source_and_test_files(
    container_id: str,
    repo_path: str,
    docker: Optional[DockerClient] = None,
) -> Tuple[int, int]:
    """Count non-test source files and test files under the repository."""
    docker = docker or get_docker_client()
    sources = docker.exec_in_repo(
        container_id, repo_path, f"{_SOURCE_FIND} | grep -v -E '{_TEST_FILTER}' | wc -l", check=False
    )
    tests = docker.exec_in_repo(
        container_id, repo_path, f"{_SOURCE_FIND} | grep -E '{_TEST_FILTER}' | wc -l", check=False
    )
    return _to_int(sources.output), _to_int(tests.output)


def _to_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        return 0


def estimate_coverage_from_counts(source_files: int, test_files: int) -> float:
    """Rough ratio when no coverage tooling is available."""
    return min(1.0, test_files / max(source_files, 1) * 2.5)


def coverage_detection_tool(docker: Optional[DockerClient] = None) -> ToolDefinition:
    return ToolDefinition(
        name="coverage_detection",
        description="Detect project type and choose best coverage command inside a Docker container",
        parameters=object_schema(
            {
                "containerId": {"type": "string", "description": "Docker container ID"},
                "repoPath": {"type": "string", "description": "Optional absolute repo path inside the container"},
            },
            required=("containerId",),
        ),
        handler=lambda args: detect_coverage(args.get("containerId"), args.get("repoPath"), docker=docker),
    )


def coverage_runner_tool(docker: Optional[DockerClient] = None) -> ToolDefinition:
    return ToolDefinition(
        name="coverage_runner",
        description="Run installation and coverage command inside Docker container and return stdout/stderr",
        parameters=object_schema(
            {
                "containerId": {"type": "string"},
                "repoPath": {"type": "string"},
                "install": {"type": ["string", "null"]},
                "run": {"type": "string"},
            },
            required=("containerId", "repoPath", "run"),
        ),
        handler=lambda args: run_coverage(
            args.get("containerId"), args.get("repoPath"), args.get("run"), args.get("install"), docker=docker
        ),
    )


def coverage_parse_tool(docker: Optional[DockerClient] = None) -> ToolDefinition:
    def handler(args: Dict[str, Any]) -> Dict[str, Any]:
        ratio, method = parse_coverage(args.get("containerId"), args.get("repoPath"), args.get("stdout"), docker=docker)
        return {"coverage": ratio, "method": method}

    return ToolDefinition(
        name="coverage_parse",
        description="Parse coverage ratio (0..1) from coverage files or stdout",
        parameters=object_schema(
            {
                "containerId": {"type": "string", "description": "Docker container ID"},
                "repoPath": {"type": "string", "description": "Repository path inside container"},
                "stdout": {"type": "string", "description": "Raw stdout/stderr to parse when files are missing"},
            },
            required=("containerId", "repoPath"),
        ),
        handler=handler,
    )
