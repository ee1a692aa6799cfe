"""
Context Gatherer Agent.

Runs the three repository analyses, synthesizes them into a RepoContext and
writes the unit-testing view of it into the container. Every analysis
degrades to a fallback value instead of failing the run.
"""

import json
import time
from typing import Callable, Type, TypeVar

import structlog
from pydantic import BaseModel

from autotest_pipeline.agents.base import PromptAgent
from autotest_pipeline.integrations.docker_client import DockerClient
from autotest_pipeline.models.context import (
    BuildAndDeployment,
    CodebaseAnalysis,
    RepoContext,
    RepositoryStructure,
    SynthesisResult,
    assemble_repo_context,
    build_unit_test_context,
    fallback_build_and_deployment,
    fallback_codebase_analysis,
    fallback_repository_structure,
    fallback_synthesis,
)
from autotest_pipeline.tools.task_logging import task_log

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

CONTEXT_NOT_SAVED = "not-saved"
ANALYSIS_MAX_STEPS = 15

REPOSITORY_PROMPT = """You are a senior software engineer doing a quick repository assessment. Use docker_exec with containerId='{container_id}' efficiently.

TASK: Quick repository overview - focus on the essentials only.

Instructions:
1. Get current directory with 'pwd' for rootPath (the repository is at {repo_path})
2. Quick git check: 'git status' (if it fails, not a git repo)
3. Repository type: Look for workspace indicators (packages/, apps/, pnpm-workspace.yaml, turbo.json) vs single package.json
4. Main language: Check for dominant file types in src/ or root (ls -la, find . -name "*.ts" -o -name "*.js" -o -name "*.py" | head -10)
5. Key structure: Identify 2-3 main directories only (src, lib, app, etc.)

Return strictly JSON - be decisive and quick:
{{
  "type": "monorepo" | "single-package" | "multi-project",
  "rootPath": "/path/to/repo",
  "gitStatus": {{"isGitRepo": boolean, "defaultBranch": string | null, "lastCommit": string | null, "hasRemote": boolean, "isDirty": boolean}},
  "structure": {{
    "packages": [{{"path": ".", "name": "main", "type": "app", "language": "typescript"}}],
    "keyDirectories": ["src", "lib"],
    "ignoredPaths": ["node_modules", ".git", "build", "dist"]
  }},
  "languages": [{{"language": "typescript", "percentage": 80, "fileCount": 50, "mainFiles": ["index.ts"]}}]
}}"""

CODEBASE_PROMPT = """Quick codebase scan for unit testing context using docker_exec with containerId='{container_id}'. The repository is at {repo_path}.

TASK: Essential codebase insights focused on unit test generation needs.

Instructions:
1. Check package manifests for key dependencies (package.json, pyproject.toml, requirements.txt)
2. Look for source files and exports (ls src/ && find src/ -name "*.ts" -o -name "*.js" -o -name "*.py" | head -5)
3. Quick test setup check (jest.config*, vitest.config*, pytest.ini, existing test files)
4. Framework/tool detection for testing strategy (next.config*, angular.json, vite.config*)
5. Check for main exports/functions (grep -r "export.*function\\|export.*class\\|^def \\|^class " src/ | head -5)

Return JSON focused on testable components:
{{
  "architecture": {{
    "pattern": "monolithic",
    "entryPoints": ["src/index.ts"],
    "mainModules": [{{"path": "src/app", "purpose": "main application logic"}}],
    "dependencies": {{"internal": [], "external": {{"express": "^4.18.0"}}, "keyLibraries": [{{"name": "express", "purpose": "HTTP server", "version": "4"}}]}}
  }},
  "codeQuality": {{
    "hasTests": false,
    "testCoverage": null,
    "linting": ["eslint"],
    "formatting": [],
    "documentation": {{"hasReadme": true, "hasApiDocs": false, "codeComments": "minimal"}}
  }},
  "frameworks": [{{"name": "Express", "version": "4", "purpose": "web server", "configFiles": ["tsconfig.json"]}}]
}}"""

BUILD_PROMPT = """Fast DevOps scan using docker_exec with containerId='{container_id}'. The repository is at {repo_path}.

TASK: Quick build & deployment overview - essentials only.

Instructions:
1. Check package manager: ls *lock* (package-lock.json = npm, yarn.lock = yarn, poetry.lock = poetry, etc.)
2. Quick scripts check: cat package.json | grep -A5 '"scripts"'
3. CI/CD presence: ls .github/workflows/ || ls .circleci/
4. Docker check: ls Dockerfile docker-compose.yml

Return JSON - infer from common patterns:
{{
  "buildSystem": {{"type": "npm", "configFiles": ["package.json"], "buildCommands": ["npm run build"], "buildAttempts": []}},
  "packageManagement": {{"managers": ["npm"], "lockFiles": ["package-lock.json"], "workspaceConfig": null}},
  "testing": {{"frameworks": [], "testDirs": [], "testCommands": [], "testAttempts": []}},
  "deployment": {{
    "cicd": [],
    "dockerfiles": [],
    "deploymentConfigs": [],
    "environmentConfig": {{"envFiles": [], "requiredVars": []}}
  }}
}}"""

SYNTHESIS_PROMPT = """You are a senior technical lead providing an executive summary and insights about a codebase.

Repository Analysis:
{repository}

Codebase Analysis:
{codebase}

Build & Deployment Analysis:
{build_deploy}

TASK: Synthesize insights and provide executive summary as a senior engineer would.

Instructions:
1. Assess complexity based on architecture, dependencies, and codebase size
2. Determine maturity level based on testing, documentation, and tooling
3. Evaluate maintainability based on code quality, structure, and practices
4. Provide actionable recommendations
5. Identify potential issues and technical debt
6. Highlight strengths and weaknesses
7. Write a professional executive summary (2-3 paragraphs)
8. Assign confidence scores (0-1) for each analysis area

Return strictly JSON matching this schema:
{{
  "insights": {{
    "complexity": "simple|moderate|complex|very-complex",
    "maturity": "prototype|development|production|mature",
    "maintainability": "excellent|good|fair|poor",
    "recommendations": ["Add comprehensive tests", "Improve documentation"],
    "potentialIssues": ["Missing error handling", "No type safety"],
    "strengthsWeaknesses": {{"strengths": ["Modern tech stack"], "weaknesses": ["Limited testing"]}}
  }},
  "confidence": {{"repository": 0.9, "codebase": 0.8, "buildDeploy": 0.7, "overall": 0.8}},
  "executiveSummary": "This is a well-structured TypeScript project..."
}}"""


class ContextGathererAgent:
    """Builds the repository context consumed by test planning."""

    def __init__(self, agent: PromptAgent, docker: DockerClient, context_path: str = "/app/agent.context.json"):
        """
        Initialize the context gatherer.

        Args:
            agent: The context analysis persona
            docker: Docker client used to write the context file
            context_path: Container path of the unit test context file
        """
        self.agent = agent
        self.docker = docker
        self.context_path = context_path

    def _analyze(
        self,
        name: str,
        prompt: str,
        model: Type[ModelT],
        fallback: Callable[[], ModelT],
        max_steps: int = ANALYSIS_MAX_STEPS,
    ) -> ModelT:
        start_time = time.time()
        logger.info("context_analysis_start", analysis=name)
        try:
            result = self.agent.generate_json(prompt, model, max_steps=max_steps)
        except Exception as e:
            logger.error("context_analysis_failed", analysis=name, error=str(e))
            logger.warning("context_analysis_fallback", analysis=name)
            return fallback()
        logger.info("context_analysis_complete", analysis=name, duration=time.time() - start_time)
        return result

    def start(self, run_id: str, container_id: str) -> None:
        """Record the start of a gathering run in the task log."""
        task_log.log(
            agent_id=self.agent.agent_id,
            task_id=f"gather-context-{run_id}",
            task_name="Gather repository context",
            status="started",
            metadata={"containerId": container_id, "parallelSteps": ["repository", "codebase", "build"]},
        )

    def analyze_repository(self, container_id: str, repo_path: str) -> RepositoryStructure:
        return self._analyze(
            "repository",
            REPOSITORY_PROMPT.format(container_id=container_id, repo_path=repo_path),
            RepositoryStructure,
            lambda: fallback_repository_structure(repo_path or "/app"),
        )

    def analyze_codebase(self, container_id: str, repo_path: str) -> CodebaseAnalysis:
        return self._analyze(
            "codebase",
            CODEBASE_PROMPT.format(container_id=container_id, repo_path=repo_path),
            CodebaseAnalysis,
            fallback_codebase_analysis,
        )

    def analyze_build(self, container_id: str, repo_path: str) -> BuildAndDeployment:
        return self._analyze(
            "build",
            BUILD_PROMPT.format(container_id=container_id, repo_path=repo_path),
            BuildAndDeployment,
            fallback_build_and_deployment,
        )

    def synthesize(
        self,
        repository: RepositoryStructure,
        codebase: CodebaseAnalysis,
        build_deploy: BuildAndDeployment,
    ) -> RepoContext:
        """Ask for insights over the three analyses and merge everything into one context."""
        prompt = SYNTHESIS_PROMPT.format(
            repository=json.dumps(repository.to_payload(), indent=2),
            codebase=json.dumps(codebase.to_payload(), indent=2),
            build_deploy=json.dumps(build_deploy.to_payload(), indent=2),
        )
        synthesis = self._analyze("synthesis", prompt, SynthesisResult, fallback_synthesis, max_steps=10)
        return assemble_repo_context(repository, codebase, build_deploy, synthesis)

    def save_unit_test_context(self, container_id: str, context: RepoContext) -> str:
        """
        Write the unit test context file.

        Returns:
            The container path, or "not-saved" when writing failed
        """
        document = build_unit_test_context(context)
        try:
            size = self.docker.write_file(container_id, self.context_path, json.dumps(document, indent=2))
        except Exception as e:
            logger.error("unit_test_context_save_failed", path=self.context_path, error=str(e))
            return CONTEXT_NOT_SAVED
        logger.info("unit_test_context_saved", path=self.context_path, size=size)
        return self.context_path
