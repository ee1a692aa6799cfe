"""Models package for the pipeline."""

from autotest_pipeline.models.state import PipelineState, TestTargetTask, agent_record, error_entry, new_run_id
from autotest_pipeline.models.context import (
    RepositoryStructure,
    CodebaseAnalysis,
    BuildAndDeployment,
    RepoContext,
    SynthesisResult,
)
from autotest_pipeline.models.testing import (
    RepoTestAnalysis,
    TestSpecification,
    TestPlan,
    TestFileResult,
    TestGenerationResult,
    UnitTestResult,
    ValidationReport,
)
from autotest_pipeline.models.pipeline import (
    RepositoryRef,
    StackItem,
    PullRequestInfo,
    CoverageReport,
    CoverageStats,
    PipelineOutput,
    RunRecord,
)

__all__ = [
    "PipelineState",
    "TestTargetTask",
    "agent_record",
    "error_entry",
    "new_run_id",
    "RepositoryStructure",
    "CodebaseAnalysis",
    "BuildAndDeployment",
    "RepoContext",
    "SynthesisResult",
    "RepoTestAnalysis",
    "TestSpecification",
    "TestPlan",
    "TestFileResult",
    "TestGenerationResult",
    "UnitTestResult",
    "ValidationReport",
    "RepositoryRef",
    "StackItem",
    "PullRequestInfo",
    "CoverageReport",
    "CoverageStats",
    "PipelineOutput",
    "RunRecord",
]
