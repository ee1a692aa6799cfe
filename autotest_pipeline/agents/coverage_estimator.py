"""
Coverage Estimator Agent.

Measures test coverage of the checked-out repository. The coverage persona
is asked first; when it cannot produce a usable answer the detection, runner
and parse tools are driven directly, and as a last resort the ratio is
estimated from file counts.
"""

from typing import Optional

import structlog

from autotest_pipeline.agents.base import PromptAgent
from autotest_pipeline.exceptions import PipelineError
from autotest_pipeline.integrations.backend_client import BackendClient
from autotest_pipeline.integrations.docker_client import DockerClient
from autotest_pipeline.models.pipeline import CoverageAgentReply, CoverageReport, CoverageStats
from autotest_pipeline.tools.coverage import (
    NO_COVERAGE_COMMAND,
    count_source_and_test_files,
    detect_coverage,
    estimate_coverage_from_counts,
    parse_coverage,
    run_coverage,
)

logger = structlog.get_logger()

COVERAGE_PROMPT = """CRITICAL: Analyze this project for test coverage. Return ONLY JSON.

Container ID: {container_id}
Repo Path Hint: {repo_path}

YOUR MISSION:
1. Confirm the repository path (search /app for package.json, pyproject.toml or requirements.txt if the hint is wrong).
2. coverage_detection with containerId='{container_id}' to find language, framework and commands.
3. coverage_runner to install dependencies and run the coverage command.
4. coverage_parse to read the ratio, preferring coverage files over stdout.
5. If the toolchain is missing in the container, count source and test files with docker_exec and
   estimate: coverage = min(1.0, test_files / max(source_files, 1) * 2.5), method "algorithmic".
   Tests may be co-located with source files.

REQUIRED JSON OUTPUT:
{{
  "isValid": boolean,
  "repoPath": string,
  "language": string,
  "framework": string,
  "coverage": number,
  "method": "json" | "xml" | "stdout" | "algorithmic",
  "stats": {{
    "statements": {{"total": number, "covered": number, "pct": number}},
    "branches": {{"total": number, "covered": number, "pct": number}},
    "functions": {{"total": number, "covered": number, "pct": number}},
    "lines": {{"total": number, "covered": number, "pct": number}}
  }},
  "files": number,
  "reason": string
}}

Include the exact commands you tried in "reason" if anything fails."""


class InvalidProjectError(PipelineError):
    """The coverage persona judged the repository unsuitable for measurement."""


def report_from_reply(reply: CoverageAgentReply, repo_path: Optional[str] = None) -> CoverageReport:
    """
    Normalize a persona reply into a report.

    Raises:
        InvalidProjectError: the reply is marked invalid
    """
    if not reply.is_valid:
        raise InvalidProjectError(f"Invalid project for coverage: {reply.reason or 'Unknown validation error'}")
    coverage = max(0.0, min(1.0, float(reply.coverage or 0)))
    return CoverageReport(
        coverage=coverage,
        language=reply.language or "unknown",
        framework=reply.framework or "unknown",
        method=reply.method or "unknown",
        stats=reply.stats or CoverageStats.from_ratio(coverage),
        files=reply.files or 0,
        repo_path=reply.repo_path or repo_path,
    )


class CoverageEstimatorAgent:
    """Measures coverage and reports it to the backend."""

    def __init__(
        self,
        docker: DockerClient,
        backend: BackendClient,
        agent: Optional[PromptAgent] = None,
        max_steps: int = 100,
    ):
        """
        Initialize the estimator.

        Args:
            docker: Docker client used by the tool chain fallback
            backend: Backend client receiving the report
            agent: Coverage persona; the tool chain runs alone when None
            max_steps: Step limit for the persona
        """
        self.docker = docker
        self.backend = backend
        self.agent = agent
        self.max_steps = max_steps

    def estimate_with_agent(self, container_id: str, repo_path: Optional[str]) -> CoverageReport:
        prompt = COVERAGE_PROMPT.format(
            container_id=container_id,
            repo_path=repo_path or "Not provided - please discover",
        )
        reply = self.agent.generate_json(prompt, CoverageAgentReply, max_steps=self.max_steps)
        return report_from_reply(reply, repo_path)

    def estimate_algorithmically(self, container_id: str, repo_path: str, language: str = "unknown",
                                 framework: str = "unknown") -> CoverageReport:
        sources, tests = count_source_and_test_files(container_id, repo_path, docker=self.docker)
        coverage = estimate_coverage_from_counts(sources, tests)
        logger.info("coverage_estimated_from_counts", source_files=sources, test_files=tests, coverage=coverage)
        return CoverageReport(
            coverage=coverage,
            language=language,
            framework=framework,
            method="algorithmic",
            stats=CoverageStats.from_ratio(coverage),
            files=sources,
            repo_path=repo_path,
        )

    def estimate_with_tools(self, container_id: str, repo_path: Optional[str]) -> CoverageReport:
        """Detect, run and parse coverage without the persona."""
        detection = detect_coverage(container_id, repo_path, docker=self.docker)
        repo_path = detection["repoPath"]
        language, framework = detection["language"], detection["framework"]

        if detection["run"] == NO_COVERAGE_COMMAND:
            return self.estimate_algorithmically(container_id, repo_path, language, framework)

        output = run_coverage(container_id, repo_path, detection["run"], detection["install"], docker=self.docker)
        coverage, method = parse_coverage(container_id, repo_path, output["stdout"], docker=self.docker)
        if method == "none":
            return self.estimate_algorithmically(container_id, repo_path, language, framework)

        sources, _ = count_source_and_test_files(container_id, repo_path, docker=self.docker)
        return CoverageReport(
            coverage=coverage,
            language=language,
            framework=framework,
            method=method,
            stats=CoverageStats.from_ratio(coverage),
            files=sources,
            repo_path=repo_path,
        )

    def estimate(self, container_id: str, repo_path: Optional[str] = None) -> CoverageReport:
        """
        Measure coverage for the repository.

        Raises:
            InvalidProjectError: the persona rejected the project
        """
        if self.agent is not None:
            try:
                report = self.estimate_with_agent(container_id, repo_path)
                logger.info("coverage_agent_complete", coverage=report.coverage, method=report.method)
                return report
            except InvalidProjectError:
                raise
            except Exception as e:
                logger.warning("coverage_agent_failed", error=str(e))
        return self.estimate_with_tools(container_id, repo_path)

    def post(self, project_id: str, report: CoverageReport) -> bool:
        """Send the report to the backend; failures only warn."""
        return self.backend.post_test_coverage(project_id, report)
