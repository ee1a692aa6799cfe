"""Tests for the command line entry point."""

import json

import pytest

from autotest_pipeline import main as cli
from autotest_pipeline.models.pipeline import PipelineOutput, RunRecord


def test_parse_args():
    args = cli.parse_args(["--debug", "run", "--project-id", "p1", "--repository-url", "acme/widgets"])
    assert args.command == "run"
    assert args.debug is True
    assert args.repository_url == "acme/widgets"

    args = cli.parse_args(["workflow", "coverage", "--container-id", "c1"])
    assert (args.name, args.container_id, args.project_id) == ("coverage", "c1", "")

    with pytest.raises(SystemExit):
        cli.parse_args(["workflow", "full_pipeline"])


def test_load_context(tmp_path):
    path = tmp_path / "context.json"
    path.write_text(json.dumps({"name": "widgets"}))

    assert cli.load_context(str(path)) == {"name": "widgets"}
    assert cli.load_context(None) is None


def test_print_results(capsys):
    output = PipelineOutput(result="✅ done", container_id="0123456789abcdef", pr_url="https://github.com/a/b/pull/1",
                            coverage=0.5)
    cli.print_results({"output": output, "errors": ["[t] Coverage skipped: none"]}, "full_pipeline")

    printed = capsys.readouterr().out
    assert "✓ full_pipeline completed successfully!" in printed
    assert "Container: 0123456789ab" in printed
    assert "Coverage: 50.00%" in printed
    assert "Warnings: 1" in printed

    cli.print_results({"next_action": "fail", "errors": ["[t] Clone failed: denied"]}, "docker_setup")
    printed = capsys.readouterr().out
    assert "❌ docker_setup failed!" in printed
    assert "  - [t] Clone failed: denied" in printed


class StubOrchestrator:
    instances = []

    def __init__(self, config):
        self.runs = []
        StubOrchestrator.instances.append(self)

    def create_run(self, workflow, project_id=None):
        return RunRecord(run_id="run-1", workflow=workflow, project_id=project_id, started_at="now")

    def run(self, run_id, **kwargs):
        self.runs.append(kwargs)
        return {"next_action": kwargs["extra_state"].get("outcome", "continue"), "errors": []}


def test_run_workflow_exit_codes(monkeypatch, capsys):
    monkeypatch.setattr(cli, "PipelineOrchestrator", StubOrchestrator)

    args = cli.parse_args(["workflow", "unit_tests", "--container-id", "c1", "--repo-path", "/app/w"])
    assert cli.run_workflow(None, args) == 0
    assert StubOrchestrator.instances[-1].runs[0]["extra_state"] == {"container_id": "c1", "repo_path": "/app/w"}

    monkeypatch.setattr(StubOrchestrator, "run", lambda self, run_id, **kwargs: {"next_action": "fail"})
    args = cli.parse_args(["run", "--project-id", "p1"])
    assert cli.run_workflow(None, args) == 1
