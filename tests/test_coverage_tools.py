"""Tests for coverage detection, parsing and estimation."""

import json

import pytest

from autotest_pipeline.tools import coverage
from autotest_pipeline.tools.coverage import (
    NO_COVERAGE_COMMAND,
    detect_coverage,
    estimate_coverage_from_counts,
    parse_cobertura,
    parse_coverage,
    parse_coverage_json,
    parse_coverage_text,
)

from conftest import FakeDocker

REPO = "/app/widgets"

ISTANBUL_TABLE = """
----------|---------|----------|---------|---------|
File      | % Stmts | % Branch | % Funcs | % Lines |
----------|---------|----------|---------|---------|
All files |   81.25 |    66.67 |      75 |   82.35 |
 math.ts  |   81.25 |    66.67 |      75 |   82.35 |
"""

PYTEST_COV = """
Name           Stmts   Miss  Cover
----------------------------------
pkg/mod.py        20      5    75%
TOTAL             20      5    75%
"""


def test_parse_text_prefers_all_files_row():
    assert parse_coverage_text(ISTANBUL_TABLE) == pytest.approx(0.8235)


def test_parse_text_uses_last_percentage():
    assert parse_coverage_text(PYTEST_COV) == pytest.approx(0.75)
    assert parse_coverage_text("no numbers") is None
    assert parse_coverage_text("") is None


def test_parse_istanbul_summary_json():
    raw = json.dumps({"total": {"lines": {"pct": 64.5}, "statements": {"pct": 60}}})
    assert parse_coverage_json(raw) == pytest.approx(0.645)


def test_parse_coverage_py_json():
    assert parse_coverage_json(json.dumps({"totals": {"percent_covered": 42.0}})) == pytest.approx(0.42)
    assert parse_coverage_json(json.dumps({"totals": {"percent_covered_display": "88%"}})) == pytest.approx(0.88)
    assert parse_coverage_json("not json") is None
    assert parse_coverage_json("[1, 2]") is None


def test_parse_cobertura():
    assert parse_cobertura('<coverage line-rate="0.731" branch-rate="0.5">') == pytest.approx(0.731)
    assert parse_cobertura("<coverage>") is None


def test_algorithmic_estimate_is_capped():
    assert estimate_coverage_from_counts(20, 4) == pytest.approx(0.5)
    assert estimate_coverage_from_counts(3, 10) == 1.0
    assert estimate_coverage_from_counts(0, 0) == 0.0


def test_detect_vitest_project():
    package = {"devDependencies": {"vitest": "^1.0.0"}, "scripts": {"test": "vitest"}}
    docker = FakeDocker(files={f"{REPO}/package.json": json.dumps(package), f"{REPO}/package-lock.json": "{}"})

    detection = detect_coverage("c1", REPO, docker=docker)

    assert detection["language"] == "node"
    assert detection["framework"] == "vitest"
    assert detection["install"] == "npm ci --no-audit --no-fund"
    assert detection["run"] == "npx -y vitest run --coverage"


def test_detect_node_without_framework_uses_script():
    package = {"scripts": {"test:coverage": "c8 node test.js"}}
    docker = FakeDocker(files={f"{REPO}/package.json": json.dumps(package)})

    detection = detect_coverage("c1", REPO, docker=docker)

    assert detection["framework"] == "unknown"
    assert detection["install"] == "npm install --no-audit --no-fund"
    assert detection["run"] == "npm run -s test:coverage"


def test_detect_python_project():
    docker = FakeDocker(files={f"{REPO}/pyproject.toml": "[project]\n"})

    detection = detect_coverage("c1", REPO, docker=docker)

    assert detection["language"] == "python"
    assert detection["framework"] == "pytest"
    assert "--cov-report=json:coverage/coverage.json" in detection["run"]


def test_detect_nothing_and_discovers_repo_path():
    docker = FakeDocker(repo_path="/app/found")

    detection = detect_coverage("c1", docker=docker)

    assert detection["repoPath"] == "/app/found"
    assert detection["run"] == NO_COVERAGE_COMMAND


def test_detect_requires_container_id():
    with pytest.raises(ValueError):
        detect_coverage("", REPO, docker=FakeDocker())


def test_parse_coverage_prefers_report_files():
    docker = FakeDocker(files={f"{REPO}/coverage/coverage-summary.json": json.dumps({"total": {"lines": {"pct": 50}}})})
    assert parse_coverage("c1", REPO, stdout="All files | 99 |", docker=docker) == (pytest.approx(0.5), "json")


def test_parse_coverage_falls_back_to_xml_then_stdout():
    docker = FakeDocker(files={f"{REPO}/coverage/coverage.xml": '<coverage line-rate="0.25">'})
    assert parse_coverage("c1", REPO, docker=docker) == (pytest.approx(0.25), "xml")

    assert parse_coverage("c1", REPO, stdout=PYTEST_COV, docker=FakeDocker()) == (pytest.approx(0.75), "stdout")
    assert parse_coverage("c1", REPO, stdout="", docker=FakeDocker()) == (0.0, "none")


def test_count_files_tolerates_bad_output():
    docker = FakeDocker().on("grep -v -E", stdout="12\n").on("grep -E", stdout="garbage")
    assert coverage.count_source_and_test_files("c1", REPO, docker=docker) == (12, 0)
