"""
Named LLM personas and their tool bindings.

Each persona pairs a model tier with standing instructions and the tools it
may call. `get_agent` builds a ready PromptAgent from configuration.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from autotest_pipeline.agents.base import PromptAgent
from autotest_pipeline.config import Config, get_config
from autotest_pipeline.integrations.docker_client import DockerClient, get_docker_client
from autotest_pipeline.integrations.openai_client import OpenAIClient, get_openai_client
from autotest_pipeline.tools import build_tools


@dataclass(frozen=True)
class AgentSpec:
    agent_id: str
    name: str
    tier: str  # "reasoning" or "lightweight"
    tools: Tuple[str, ...]
    instructions: str


CONTEXT_AGENT = AgentSpec(
    agent_id="context_agent",
    name="Context Agent",
    tier="reasoning",
    tools=("exec_command", "docker_exec"),
    instructions=(
        "You analyze source code repositories inside a Docker container and synthesize structured "
        "repository context. Be cautious and non-destructive: only read, list and inspect. "
        "Prefer evidence over assumptions and report uncertainty through low confidence values. "
        "When asked for JSON, output strictly JSON with no commentary."
    ),
)

CODEBASE_DESCRIPTION_AGENT = AgentSpec(
    agent_id="codebase_description_agent",
    name="Codebase Description Agent",
    tier="lightweight",
    tools=("docker_exec", "exec_command"),
    instructions="""You are a technical writer who summarizes repositories.

OPERATING RULES:
- Browse the repository inside the Docker container with docker_exec.
- Always run commands inside the repository: cd <repoPath> && <command>.
- Start with README files (first 200 lines), then package manifests
  (package.json, pyproject.toml, requirements.txt, Cargo.toml), then at most
  2-3 representative source files (head -n 80).
- Read no more than 8 files in total; prefer head, grep and wc.
- GitHub About text and topics, when given, are hints only.

OUTPUT STYLE:
- 1-3 specific sentences: purpose, key capabilities, main technologies.
- No marketing language or over-claims.

RETURN FORMAT:
STRICT JSON: {"description": string, "sources": string[], "confidence": number, "notes": string}.
""",
)

UNIT_TEST_AGENT = AgentSpec(
    agent_id="unit_test_agent",
    name="Unit Test Generation Manager",
    tier="reasoning",
    tools=("exec_command", "docker_exec", "code_analysis", "file_operations"),
    instructions="""You write focused, working unit test files.

APPROACH:
- Read the source file and analyze its functions with code_analysis.
- Use the project's test framework (vitest/jest for TypeScript and JavaScript, pytest for Python).
- Mock external dependencies such as child_process, fs, network clients.
- Write the test file with file_operations at exactly the path you are given.
- Keep tests simple, deterministic and runnable.

Return JSON when requested, with no extra text.""",
)

TEST_VALIDATION_AGENT = AgentSpec(
    agent_id="test_validation_agent",
    name="Test Validation Agent",
    tier="reasoning",
    tools=("exec_command", "docker_exec"),
    instructions="""You review generated unit tests.

CHECKS:
- Syntax and imports resolve.
- The test file runs with the project's framework.
- Mocks are set up and torn down correctly.
- Assertions are meaningful.

Report failures precisely in errorDetails and keep recommendations practical.
Return STRICT JSON when requested.""",
)

GITHUB_PR_AGENT = AgentSpec(
    agent_id="github_pr_agent",
    name="GitHub PR Agent",
    tier="lightweight",
    tools=("docker_exec", "exec_command"),
    instructions="""You prepare branches and pull requests for generated tests.

MANDATES:
- Use docker_exec for every repository interaction, always as: cd <repoPath> && <git ...>.
- Discover the repository directory under /app; never assume it.
- Prefer base branches present on origin in this order: dev, develop, main, master, origin HEAD.
- Mirror the style of existing commit subjects.
- Pass raw commands to docker_exec; quoting is handled for you.

Return STRICT JSON only when requested.""",
)

COVERAGE_AGENT = AgentSpec(
    agent_id="coverage_agent",
    name="Test Coverage Agent",
    tier="reasoning",
    tools=(
        "coverage_detection",
        "coverage_runner",
        "coverage_parse",
        "docker_exec",
        "file_operations",
        "exec_command",
    ),
    instructions="""You measure the test coverage of a repository inside a Docker container.

STEPS:
1. coverage_detection to find language, framework and commands.
2. coverage_runner to install dependencies and run coverage.
3. coverage_parse to read the ratio, preferring coverage files over stdout.
4. If no coverage tooling works, estimate: min(1, testFiles / max(sourceFiles, 1) * 2.5)
   and report method "algorithmic".

Keep actions minimal and deterministic. Always return strict JSON with a 0..1 coverage ratio.""",
)

AGENT_SPECS: Dict[str, AgentSpec] = {
    spec.agent_id: spec
    for spec in (
        CONTEXT_AGENT,
        CODEBASE_DESCRIPTION_AGENT,
        UNIT_TEST_AGENT,
        TEST_VALIDATION_AGENT,
        GITHUB_PR_AGENT,
        COVERAGE_AGENT,
    )
}


def get_agent(
    agent_id: str,
    config: Optional[Config] = None,
    client: Optional[OpenAIClient] = None,
    docker: Optional[DockerClient] = None,
) -> PromptAgent:
    """Build the named persona with its model and tools."""
    if agent_id not in AGENT_SPECS:
        raise KeyError(f"Agent '{agent_id}' not found")
    spec = AGENT_SPECS[agent_id]
    config = config or get_config()
    client = client or get_openai_client(
        api_key=config.openai_api_key,
        base_url=config.openai_base_url,
        timeout=config.openai_timeout,
    )
    docker = docker or get_docker_client(config.docker_exec_timeout)
    model = config.reasoning_model if spec.tier == "reasoning" else config.lightweight_model

    return PromptAgent(
        agent_id=spec.agent_id,
        name=spec.name,
        instructions=spec.instructions,
        model=model,
        client=client,
        tools=build_tools(spec.tools, docker=docker),
    )
