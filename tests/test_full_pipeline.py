"""End-to-end runs of the composed workflows with faked container, LLM and GitHub services."""

from types import SimpleNamespace

import pytest

from autotest_pipeline.config import Config
from autotest_pipeline.models import testing as tm
from autotest_pipeline.workflows.base import PipelineServices
from autotest_pipeline.workflows.docker_setup import DockerSetupWorkflow
from autotest_pipeline.workflows.full_pipeline import FULL_PIPELINE, FullPipelineWorkflow, PipelineOrchestrator
from autotest_pipeline.workflows.github_pr import GitHubPRWorkflow

from conftest import FakeAgent, FakeBackend, FakeDocker, FakeGenerator, FakePlanner

REMOTE = "https://github.com/acme/widgets.git"
PR_URL = "https://github.com/acme/widgets/pull/7"


class SandboxDocker(FakeDocker):
    """FakeDocker that also accepts the container lifecycle calls."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.lifecycle = []

    def build_image(self, image, base_image="ubuntu:22.04"):
        self.lifecycle.append(("build", image))

    def remove_container(self, name):
        self.lifecycle.append(("remove", name))

    def run_detached(self, name, image):
        self.lifecycle.append(("run", name))
        return "0123456789abcdef"

    def inspect_id(self, name):
        return "0123456789abcdef"

    def copy_to(self, container_id, local_path, container_path):
        self.lifecycle.append(("copy", container_path))


class FakeGitHub:
    def __init__(self):
        self.created = []

    def get_about(self, owner, name):
        return "Widget factory", ["widgets"]

    def get_languages(self, owner, name):
        return {"TypeScript": 1000}

    def get_repository(self, owner, name):
        return f"{owner}/{name}"

    def create_pull_request(self, repo, title, body, head, base="main"):
        self.created.append((repo, head, base))
        return SimpleNamespace(number=7, html_url=PR_URL)

    def add_comment(self, pr, body):
        return True


def sandbox_docker():
    return (
        SandboxDocker()
        .on("ls-remote --heads origin dev", stdout="main\n")
        .on("test -d", stdout="EXISTS")
        .on("git status --porcelain", stdout=" M tests/a.test.ts")
        .on("git rev-parse HEAD", stdout="abc1234def\n")
        .on("git remote get-url origin", stdout=REMOTE)
    )


def agents(agent_id):
    if agent_id == "coverage_agent":
        return FakeAgent({"isValid": True, "coverage": 0.6, "method": "json"})
    return FakeAgent()


@pytest.fixture
def sandbox(tmp_path, monkeypatch):
    (tmp_path / ".docker.credentials").write_text("GITHUB_PAT=ghp_test\n")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GITHUB_PAT", "ghp_test")

    docker = sandbox_docker()
    github = FakeGitHub()
    services = PipelineServices(
        config=Config(str(tmp_path / "missing.yaml")),
        docker=docker,
        backend=FakeBackend(),
        github_factory=lambda token=None, base_url=None: github,
        agent_factory=agents,
    )
    return SimpleNamespace(services=services, docker=docker, backend=services.backend, github=github)


def pipeline(services):
    workflow = FullPipelineWorkflow(services)
    unit_tests = workflow.stages[2]
    unit_tests._planner = FakePlanner(plan=tm.TestPlan(
        repo_analysis=tm.RepoTestAnalysis(testing_framework="vitest", test_directory="tests"),
        test_specs=[tm.TestSpecification(source_file="src/a.ts", functions=[tm.FunctionSpec(name="add")])],
    ))
    unit_tests._generator = FakeGenerator()
    return workflow, unit_tests._generator


def start(services, workflow, repository_url="https://github.com/acme/widgets"):
    orchestrator = PipelineOrchestrator(services.config, services)
    orchestrator._graphs[FULL_PIPELINE] = workflow.build()
    record = orchestrator.create_run(FULL_PIPELINE, project_id="p1")
    final = orchestrator.run(
        record.run_id,
        project_id="p1",
        repository_url=repository_url,
        context_data={"name": "widgets"},
    )
    return final, orchestrator.get_run(record.run_id)


def test_full_pipeline_runs_every_stage(sandbox):
    workflow, generator = pipeline(sandbox.services)

    final, record = start(sandbox.services, workflow)

    assert final["next_action"] == "continue"
    assert final["repo_path"] == "/app/widgets"
    assert generator.targets == ["tests/a.test.ts"]
    assert sandbox.github.created == [("acme/widgets", final["pull_request"].branch_name, "main")]

    kinds = []
    for kind, project_id, _ in sandbox.backend.posts:
        assert project_id == "p1"
        if kind not in kinds:
            kinds.append(kind)
    assert sorted(kinds[:2]) == ["description", "stack"]
    assert kinds[2:] == ["pr-url", "test-coverage"]
    assert ("description", "p1", "Widget factory") in sandbox.backend.posts

    output = final["output"]
    assert output.success is True
    assert output.pr_url == PR_URL
    assert output.coverage == 0.6
    assert output.container_id == "0123456789abcdef"
    assert output.result == "Generated 1/1 test files (1 functions, 3 cases)"
    assert record.status == "completed"
    assert record.output["prUrl"] == PR_URL
    assert ("copy", "/root/.docker.credentials") in sandbox.docker.lifecycle


def test_failed_push_skips_pull_request_and_coverage(sandbox):
    sandbox.docker.on("git push -u origin", returncode=1, stderr="fatal: Authentication failed")
    workflow, generator = pipeline(sandbox.services)

    final, record = start(sandbox.services, workflow)

    assert final["next_action"] == "fail"
    assert generator.targets == ["tests/a.test.ts"]
    assert sandbox.github.created == []
    assert sorted({kind for kind, _, _ in sandbox.backend.posts}) == ["description", "stack"]
    assert "coverage_report" not in final
    assert "output" not in final
    assert record.status == "failed"
    assert "Commit & push failed: Failed to push branch" in record.output["result"]
    assert record.output["success"] is False


def test_malformed_repository_url_stops_after_bootstrap(sandbox):
    workflow, generator = pipeline(sandbox.services)

    final, record = start(sandbox.services, workflow, repository_url="my org/my repo")

    assert final["container_id"] == "0123456789abcdef"
    assert not any("git clone" in c for c in sandbox.docker.commands)
    assert sandbox.backend.posts == []
    assert generator.targets == []
    assert "context_path" not in final
    assert record.status == "failed"
    assert "Repository clone failed: Invalid repository format: my org/my repo" in record.output["result"]


def test_docker_setup_workflow_posts_profile_and_saves_context(sandbox):
    final = DockerSetupWorkflow(sandbox.services).build().invoke({
        "run_id": "r1", "project_id": "p1", "repository_url": "acme/widgets",
        "context_data": {"name": "widgets"}, "test_results": [], "errors": [], "agent_history": [],
        "next_action": "continue",
    })

    assert final["next_action"] == "continue"
    assert final["repository"].full_name == "acme/widgets"
    assert final["description"] == "Widget factory"
    assert final["stack_posted"] == 1
    assert sandbox.docker.files["/app/agent.context.json"] == '{\n  "name": "widgets"\n}'
    assert [node["action"] for node in final["agent_history"]][:2] == ["bootstrap", "clone"]


def test_github_pr_workflow_skips_pull_request_without_changes(sandbox):
    sandbox.docker.on("git status --porcelain", stdout="")
    sandbox.docker.rules.insert(0, sandbox.docker.rules.pop())

    final = GitHubPRWorkflow(sandbox.services).build().invoke({
        "run_id": "r1", "project_id": "p1", "container_id": "c1", "repo_path": "/app/widgets",
        "test_results": [], "errors": [], "agent_history": [], "next_action": "continue",
    })

    assert final["next_action"] == "continue"
    assert final["pull_request"].has_changes is False
    assert sandbox.github.created == []
    assert sandbox.backend.posts == []
