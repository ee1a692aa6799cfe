"""Tests for test planning, generation, validation and retries."""

import json

import pytest

from autotest_pipeline.agents import test_generator as gen
from autotest_pipeline.agents import test_planner as planner_module
from autotest_pipeline.models import testing as tm

from conftest import FakeAgent, FakeDocker

PLAN_PATH = "/app/unit.plan.json"

PLAN_REPLY = {
    "repoAnalysis": {
        "sourceModules": [
            {"modulePath": "src/lib", "sourceFiles": ["helpers.ts"], "priority": "low"},
            {"modulePath": "src/utils", "sourceFiles": ["math.ts"], "priority": "high"},
        ],
        "testingFramework": "vitest",
        "testDirectory": "tests",
        "totalFiles": 2,
    },
    "testSpecs": [
        {"sourceFile": "src/lib/helpers.ts", "functions": [{"name": "slug", "testCases": ["a"]}]},
        {"sourceFile": "src/utils/math.ts", "functions": [{"name": "add", "testCases": ["a", "b"]}]},
    ],
}


def make_plan(*source_files):
    return tm.TestPlan(
        repo_analysis=tm.RepoTestAnalysis(testing_framework="vitest", test_directory="tests"),
        test_specs=[
            tm.TestSpecification(
                source_file=path,
                functions=[tm.FunctionSpec(name="fn", test_cases=["case one", "case two"])],
            )
            for path in source_files
        ],
    )


def generated(test_file, success=True, **extra):
    reply = {
        "sourceFile": "src/utils/math.ts",
        "testFile": test_file,
        "functionsCount": 1,
        "testCasesCount": 2,
        "success": success,
    }
    reply.update(extra)
    return reply


def test_select_mvp_plan_keeps_high_priority_module():
    plan = planner_module.select_mvp_plan(planner_module.PlanReply.model_validate(PLAN_REPLY))

    assert [m.module_path for m in plan.repo_analysis.source_modules] == ["src/utils"]
    assert plan.repo_analysis.total_files == 1
    assert [s.source_file for s in plan.test_specs] == ["src/utils/math.ts"]
    assert plan.timestamp.endswith("Z")


def test_select_mvp_plan_promotes_first_module():
    reply = json.loads(json.dumps(PLAN_REPLY))
    reply["repoAnalysis"]["sourceModules"][1]["priority"] = "medium"
    plan = planner_module.select_mvp_plan(planner_module.PlanReply.model_validate(reply))

    assert plan.repo_analysis.source_modules[0].module_path == "src/lib"
    assert plan.repo_analysis.source_modules[0].priority == "high"


def test_select_mvp_plan_matches_tsx_sources():
    reply = {
        "repoAnalysis": {
            "sourceModules": [{"modulePath": "src/components", "sourceFiles": ["Button.tsx"], "priority": "high"}],
        },
        "testSpecs": [
            {"sourceFile": "src/lib/other.ts", "functions": [{"name": "noop"}]},
            {"sourceFile": "src/components/Button.tsx", "functions": [{"name": "Button"}]},
        ],
    }
    plan = planner_module.select_mvp_plan(planner_module.PlanReply.model_validate(reply))

    assert [s.source_file for s in plan.test_specs] == ["src/components/Button.tsx"]


def test_narrow_specs_to_target():
    plan = make_plan("src/a.ts", "src/b.ts")
    assert [s.source_file for s in planner_module.narrow_specs(plan, "tests/b.test.ts")] == ["src/b.ts"]
    assert len(planner_module.narrow_specs(plan, "tests/zzz.test.ts")) == 2
    assert len(planner_module.narrow_specs(plan, None)) == 2


def test_plan_tests_saves_checkpoint():
    docker = FakeDocker()
    planner = planner_module.UnitTestPlanner(FakeAgent(PLAN_REPLY), docker, plan_path=PLAN_PATH)

    plan = planner.plan_tests("c1", "/app/widgets", "/app/agent.context.json")

    saved = json.loads(docker.files[PLAN_PATH])
    assert saved["repoAnalysis"]["sourceModules"][0]["modulePath"] == "src/utils"
    assert plan.test_specs[0].source_file == "src/utils/math.ts"


def test_plan_tests_falls_back_without_saving():
    docker = FakeDocker()
    planner = planner_module.UnitTestPlanner(FakeAgent(RuntimeError("no reply")), docker, plan_path=PLAN_PATH)

    plan = planner.plan_tests("c1", "/app/widgets", "/app/agent.context.json")

    assert plan.test_specs[0].source_file == "src/mastra/tools/cli-tool.ts"
    assert PLAN_PATH not in docker.files


def test_check_saved_plan():
    plan = make_plan("src/a.ts", "src/b.ts")
    docker = FakeDocker(files={PLAN_PATH: json.dumps(plan.to_payload())})
    planner = planner_module.UnitTestPlanner(FakeAgent(), docker, plan_path=PLAN_PATH)

    found = planner.check_saved_plan("c1", "tests/a.test.ts")
    assert [s.source_file for s in found.test_specs] == ["src/a.ts"]

    docker.files[PLAN_PATH] = "{not json"
    assert planner.check_saved_plan("c1") is None

    del docker.files[PLAN_PATH]
    assert planner.check_saved_plan("c1") is None


def test_generate_rejects_wrong_path():
    plan = make_plan("src/utils/math.ts")
    generator = gen.UnitTestGenerator(FakeAgent(generated("tests/elsewhere.test.ts")))

    result = generator.generate("c1", "/app/widgets", plan)

    assert result.summary.failed_files == 1
    assert "wrong path" in result.test_files[0].error
    assert result.test_files[0].test_file == "tests/utils/math.test.ts"


def test_finalize_retries_then_validates():
    plan = make_plan("src/utils/math.ts")
    target = "tests/utils/math.test.ts"
    agent = FakeAgent(
        generated(target, success=False, error="SyntaxError: Unexpected token"),
        generated(target, correctionsMade="Fixed import"),
    )
    validator = FakeAgent({"syntaxValid": True, "executionSuccessful": True, "recommendations": ["Add edge cases"]})
    generator = gen.UnitTestGenerator(agent, validator=validator, max_retries=2)

    first = generator.generate("c1", "/app/widgets", plan)
    assert first.summary.successful_files == 0

    result = generator.finalize("c1", "/app/widgets", plan, first)

    assert result.success is True
    assert "SyntaxError: Unexpected token" in agent.prompts[1]
    assert result.test_generation.quality.coverage_score == 85
    assert result.test_generation.quality.follows_best_practices is True
    assert "Corrections applied: Fixed import" in result.recommendations
    assert "Add edge cases" in result.recommendations
    assert result.result.startswith("✅")


def test_finalize_gives_up_after_max_retries():
    plan = make_plan("src/utils/math.ts")
    target = "tests/utils/math.test.ts"
    agent = FakeAgent(generated(target, success=False, error="e1"), generated(target, success=False, error="e2"))
    generator = gen.UnitTestGenerator(agent, max_retries=1)

    result = generator.finalize("c1", "/app/widgets", plan, generator.generate("c1", "/app/widgets", plan))

    assert result.success is False
    assert result.result.startswith("❌")
    assert "after 1 retry attempts" in result.result
    assert len(agent.prompts) == 2


def test_validation_requested_retry():
    plan = make_plan("src/utils/math.ts")
    target = "tests/utils/math.test.ts"
    agent = FakeAgent(generated(target), generated(target))
    validator = FakeAgent(
        {"syntaxValid": False, "executionSuccessful": False, "needsRetry": True, "errorDetails": "mock missing"},
        {"syntaxValid": True, "executionSuccessful": False},
    )
    generator = gen.UnitTestGenerator(agent, validator=validator, max_retries=2)

    result = generator.finalize("c1", "/app/widgets", plan, generator.generate("c1", "/app/widgets", plan))

    assert "mock missing" in agent.prompts[1]
    assert result.success is True
    assert result.test_generation.quality.coverage_score == 50
    assert result.test_generation.quality.follows_best_practices is False


def test_resolve_target_requires_specs():
    with pytest.raises(ValueError):
        gen.UnitTestGenerator.resolve_target(make_plan())
