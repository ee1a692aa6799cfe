"""Shared fakes for the pipeline tests."""

from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest

from autotest_pipeline.exceptions import CommandError
from autotest_pipeline.models import testing as tm
from autotest_pipeline.utils.shell import CommandResult


class FakeDocker:
    """
    Stand-in for DockerClient.

    Commands are answered by the first rule whose pattern is a substring
    of the command; unmatched commands succeed with empty output.
    """

    def __init__(self, files: Optional[Dict[str, str]] = None, repo_path: str = "/app/widgets"):
        self.files = dict(files or {})
        self.repo_path = repo_path
        self.rules: List[Tuple[str, int, str, str]] = []
        self.commands: List[str] = []

    def on(self, pattern: str, stdout: str = "", returncode: int = 0, stderr: str = "") -> "FakeDocker":
        self.rules.append((pattern, returncode, stdout, stderr))
        return self

    def exec(self, container_id: str, command: str, timeout=None, check: bool = True) -> CommandResult:
        self.commands.append(command)
        result = CommandResult(command=command, returncode=0, stdout="", stderr="")
        for pattern, returncode, stdout, stderr in self.rules:
            if pattern in command:
                result = CommandResult(command=command, returncode=returncode, stdout=stdout, stderr=stderr)
                break
        if check and not result.ok:
            raise CommandError(command, result.returncode, stderr=result.stderr, stdout=result.stdout)
        return result

    def exec_in_repo(self, container_id: str, repo_path: str, command: str, timeout=None, check: bool = True):
        return self.exec(container_id, command, timeout=timeout, check=check)

    def read_file(self, container_id: str, path: str) -> Optional[str]:
        return self.files.get(path)

    def write_file(self, container_id: str, path: str, content: str) -> int:
        self.files[path] = content
        return len(content.encode("utf-8"))

    def path_exists(self, container_id: str, path: str) -> bool:
        return path in self.files

    def find_repo_path(self, container_id: str, default: str = "/app") -> str:
        return self.repo_path


class FakeAgent:
    """Replays scripted replies through the PromptAgent.generate_json interface."""

    agent_id = "fake-agent"

    def __init__(self, *replies: Any):
        self.replies = list(replies)
        self.prompts: List[str] = []

    def generate_json(self, prompt: str, model=None, max_steps: int = 50):
        self.prompts.append(prompt)
        if not self.replies:
            raise RuntimeError("No scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if model is not None:
            return model.model_validate(reply)
        return reply


class FakeBackend:
    def __init__(self, accept: bool = True):
        self.accept = accept
        self.posts: List[Tuple[str, str, Any]] = []

    def post_description(self, project_id, description):
        self.posts.append(("description", project_id, description))
        return self.accept

    def post_stack_item(self, project_id, item):
        self.posts.append(("stack", project_id, item))
        return self.accept

    def post_pr_url(self, project_id, pr_url):
        self.posts.append(("pr-url", project_id, pr_url))
        return self.accept

    def post_test_coverage(self, project_id, report):
        self.posts.append(("test-coverage", project_id, report))
        return self.accept


class FakePlanner:
    def __init__(self, saved=None, plan=None):
        self.saved = saved
        self.plan = plan

    def check_saved_plan(self, container_id, target_test_file=None):
        return self.saved

    def plan_tests(self, container_id, repo_path, context_path, target_test_file=None):
        return self.plan


class FakeGenerator:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.targets = []

    def generate(self, container_id, repo_path, plan, target=None):
        self.targets.append(target)
        if target in self.failing:
            raise RuntimeError(f"cannot write {target}")
        return target

    def finalize(self, container_id, repo_path, plan, generation, target=None):
        result = tm.TestFileResult(source_file=plan.test_specs[0].source_file, test_file=target,
                                   functions_count=1, test_cases_count=3, success=True)
        return SimpleNamespace(test_generation=SimpleNamespace(test_files=[result]))


@pytest.fixture
def fake_docker():
    return FakeDocker()


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture(autouse=True)
def captured_alerts(monkeypatch):
    """Record step alerts instead of posting them."""
    sent: List[Dict[str, Any]] = []

    def record(**kwargs):
        sent.append(kwargs)
        return True

    monkeypatch.setattr("autotest_pipeline.workflows.base.notify_step_status", record)
    return sent
