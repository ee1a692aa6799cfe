"""Tests for the Docker CLI wrapper, with the shell replaced by a recorder."""

import pytest

from autotest_pipeline.exceptions import CommandError
from autotest_pipeline.integrations import docker_client
from autotest_pipeline.integrations.docker_client import DockerClient
from autotest_pipeline.utils.shell import CommandResult


@pytest.fixture
def shell(monkeypatch):
    calls = []
    outputs = []

    def fake_run(command, timeout=None, input_text=None, check=True):
        calls.append({"command": command, "timeout": timeout, "input": input_text})
        stdout = outputs.pop(0) if outputs else ""
        return CommandResult(command=command, returncode=0, stdout=stdout, stderr="")

    monkeypatch.setattr(docker_client, "run_command", fake_run)
    return calls, outputs


def test_build_feeds_inline_dockerfile(shell):
    calls, _ = shell
    DockerClient().build_image("autotest:latest", "node:20")

    assert calls[0]["command"] == "docker build -t 'autotest:latest' -"
    assert calls[0]["input"].startswith("FROM node:20\n")
    assert "WORKDIR /app" in calls[0]["input"]


def test_exec_wraps_command_in_login_shell(shell):
    calls, outputs = shell
    outputs.append("ok\n")

    result = DockerClient(exec_timeout=30).exec_in_repo("abc", "/app/w", "echo 'hi'")

    assert result.output == "ok"
    assert calls[0]["command"] == "docker exec 'abc' bash -lc 'cd '\"'\"'/app/w'\"'\"' && echo '\"'\"'hi'\"'\"''"
    assert calls[0]["timeout"] == 30


def test_read_file_not_found(shell):
    _, outputs = shell
    outputs.extend(["NOT_FOUND\n", "content\n"])
    client = DockerClient()

    assert client.read_file("abc", "/app/missing.json") is None
    assert client.read_file("abc", "/app/present.json") == "content\n"


def test_write_file_verifies_size(shell):
    calls, outputs = shell
    outputs.extend(["", "7\n"])

    assert DockerClient().write_file("abc", "/app/agent.context.json", "{\"a\":1}") == 7
    assert calls[0]["command"].startswith("docker cp ")
    assert calls[0]["command"].endswith("'abc':'/app/agent.context.json'")


def test_write_file_rejects_unexpected_verification(shell):
    _, outputs = shell
    outputs.extend(["", "oops"])

    with pytest.raises(CommandError):
        DockerClient().write_file("abc", "/app/x.json", "{}")


def test_find_repo_path_defaults(shell):
    _, outputs = shell
    outputs.extend(["/app/widgets\n", ""])
    client = DockerClient()

    assert client.find_repo_path("abc") == "/app/widgets"
    assert client.find_repo_path("abc") == "/app"
