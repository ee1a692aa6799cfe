"""
Test Planner Agent.

Chooses the module to cover and the functions and cases to test. Plans are
checkpointed in the container so a later run can skip planning.
"""

import json
from datetime import datetime
from pathlib import PurePosixPath
from typing import List, Optional

import structlog
from pydantic import ValidationError

from autotest_pipeline.agents.base import PromptAgent
from autotest_pipeline.exceptions import CommandError
from autotest_pipeline.integrations.docker_client import DockerClient
from autotest_pipeline.models.base import CamelModel
from autotest_pipeline.models.testing import (
    FunctionSpec,
    PLAN_VERSION,
    RepoTestAnalysis,
    SourceModule,
    TestPlan,
    TestSpecification,
    compute_test_file_path,
)

logger = structlog.get_logger()

PLAN_PROMPT = """CRITICAL: Return ONLY valid JSON. No explanations, no comments.

TASK: Context analysis and high-priority module testing strategy using docker_exec with containerId='{container_id}'.

The repository is checked out at {repo_path}. The repository context is saved at {context_path}.

PHASE 1: REPOSITORY DISCOVERY
1. Read the context file: docker_exec cat {context_path}
2. Parse repository structure, frameworks and dependencies.

PHASE 2: MODULE PRIORITIZATION
3. List source files: docker_exec find {repo_path}/src -type f | head -20
4. Weigh each module by business logic, external dependencies, async patterns and error handling.
5. Select the SINGLE highest value module.

PHASE 3: TEST SPECIFICATION
6. Read the selected source file and list its exported functions, classes and methods.
7. For each, write test cases covering success paths, error conditions, edge cases and async behavior.

Paths in sourceFile are relative to the repository root (for example "src/utils/math.ts").

RETURN FORMAT (JSON only):
{{
  "repoAnalysis": {{
    "sourceModules": [{{"modulePath": "src/utils", "sourceFiles": ["math.ts"], "priority": "high", "language": "typescript"}}],
    "testingFramework": "vitest",
    "testDirectory": "tests",
    "totalFiles": 1
  }},
  "testSpecs": [
    {{
      "sourceFile": "src/utils/math.ts",
      "functions": [{{"name": "add", "testCases": ["should add two numbers when both are finite"]}}]
    }}
  ]
}}"""


class PlanReply(CamelModel):
    repo_analysis: RepoTestAnalysis
    test_specs: List[TestSpecification]


def narrow_specs(plan: TestPlan, target_test_file: Optional[str]) -> List[TestSpecification]:
    """Specs whose test path is the target; every spec when none match or no target is set."""
    if not target_test_file:
        return list(plan.test_specs)
    test_dir = plan.repo_analysis.test_directory or "tests"
    matching = [
        spec for spec in plan.test_specs
        if compute_test_file_path(spec.source_file, test_dir) == target_test_file
    ]
    return matching or list(plan.test_specs)


def select_mvp_plan(reply: PlanReply) -> TestPlan:
    """
    Reduce an agent plan to one high-priority module and its specs.

    When no module is marked high priority the first module is promoted.
    """
    modules = list(reply.repo_analysis.source_modules)
    high = [m for m in modules if m.priority == "high"]
    if not high and modules:
        modules[0] = modules[0].model_copy(update={"priority": "high"})
        high = [modules[0]]
    if not high:
        raise ValueError("Plan contains no source modules")

    selected = high[0]
    stems = [str(PurePosixPath(f).with_suffix("")) for f in selected.source_files]
    specs = [spec for spec in reply.test_specs if any(stem in spec.source_file for stem in stems)]
    if not specs:
        specs = list(reply.test_specs[:1])

    analysis = reply.repo_analysis.model_copy(update={"source_modules": [selected], "total_files": 1})
    return TestPlan(
        repo_analysis=analysis,
        test_specs=specs,
        timestamp=datetime.utcnow().isoformat() + "Z",
        version=PLAN_VERSION,
    )


def fallback_plan() -> TestPlan:
    """Built-in single-module plan used when planning fails."""
    return TestPlan(
        repo_analysis=RepoTestAnalysis(
            source_modules=[
                SourceModule(
                    module_path="src/mastra/tools",
                    source_files=["cli-tool.ts"],
                    priority="high",
                    language="typescript",
                )
            ],
            testing_framework="vitest",
            test_directory="tests",
            total_files=1,
        ),
        test_specs=[
            TestSpecification(
                source_file="src/mastra/tools/cli-tool.ts",
                functions=[
                    FunctionSpec(
                        name="cliTool.execute",
                        test_cases=[
                            "should execute command successfully with valid parameters",
                            "should reject with proper error when execution fails",
                            "should validate input parameters and throw on invalid input",
                            "should handle timeout scenarios appropriately",
                            "should increment metrics on successful calls",
                            "should handle stderr output correctly",
                        ],
                    )
                ],
            )
        ],
        timestamp=datetime.utcnow().isoformat() + "Z",
    )


class UnitTestPlanner:
    """Plans unit tests and keeps the plan checkpoint."""

    def __init__(
        self,
        agent: PromptAgent,
        docker: DockerClient,
        plan_path: str = "/app/unit.plan.json",
        max_steps: int = 50,
    ):
        self.agent = agent
        self.docker = docker
        self.plan_path = plan_path
        self.max_steps = max_steps

    def load_plan(self, container_id: str) -> Optional[TestPlan]:
        """Read the checkpointed plan; None when missing or unreadable."""
        try:
            raw = self.docker.read_file(container_id, self.plan_path)
        except CommandError as e:
            logger.warning("plan_checkpoint_read_failed", path=self.plan_path, error=str(e))
            return None
        if not raw or not raw.strip():
            return None
        try:
            return TestPlan.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning("plan_checkpoint_invalid", path=self.plan_path, error=str(e))
            return None

    def save_plan(self, container_id: str, plan: TestPlan) -> bool:
        """Checkpoint the plan; failures only warn."""
        try:
            self.docker.write_file(container_id, self.plan_path, json.dumps(plan.to_payload(), indent=2))
        except Exception as e:
            logger.warning("plan_checkpoint_save_failed", path=self.plan_path, error=str(e))
            return False
        logger.info("plan_checkpoint_saved", path=self.plan_path)
        return True

    def check_saved_plan(self, container_id: str, target_test_file: Optional[str] = None) -> Optional[TestPlan]:
        """
        Look for a saved plan, narrowed to the target test file.

        Returns:
            The plan when one exists, otherwise None and planning must run
        """
        plan = self.load_plan(container_id)
        if plan is None:
            logger.info("no_saved_plan", path=self.plan_path)
            return None
        specs = narrow_specs(plan, target_test_file)
        logger.info(
            "saved_plan_found",
            high_priority_modules=sum(1 for m in plan.repo_analysis.source_modules if m.priority == "high"),
            test_specs=len(specs),
            testing_framework=plan.repo_analysis.testing_framework,
        )
        return plan.model_copy(update={"test_specs": specs})

    def plan_tests(
        self,
        container_id: str,
        repo_path: str,
        context_path: str,
        target_test_file: Optional[str] = None,
    ) -> TestPlan:
        """
        Create an MVP plan for one module and checkpoint it.

        Falls back to the built-in plan when the agent reply is unusable.
        """
        prompt = PLAN_PROMPT.format(container_id=container_id, repo_path=repo_path, context_path=context_path)
        try:
            reply = self.agent.generate_json(prompt, PlanReply, max_steps=self.max_steps)
            plan = select_mvp_plan(reply)
        except Exception as e:
            logger.error("test_planning_failed", error=str(e))
            logger.warning("test_planning_fallback")
            return fallback_plan()

        logger.info(
            "mvp_plan_created",
            module=plan.repo_analysis.source_modules[0].module_path,
            source_files=plan.repo_analysis.source_modules[0].source_files,
            test_specs=len(plan.test_specs),
            testing_framework=plan.repo_analysis.testing_framework,
        )
        self.save_plan(container_id, plan)
        return plan.model_copy(update={"test_specs": narrow_specs(plan, target_test_file)})
