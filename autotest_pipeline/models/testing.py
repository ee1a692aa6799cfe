"""Schemas for test planning, generation and validation."""

import re
from typing import List, Literal, Optional

from pydantic import Field

from autotest_pipeline.models.base import CamelModel

PLAN_VERSION = "mvp-1.0"

_SOURCE_SUFFIXES = (
    (".tsx", ".test.tsx"),
    (".ts", ".test.ts"),
    (".jsx", ".test.jsx"),
    (".js", ".test.js"),
)


class SourceModule(CamelModel):
    module_path: str
    source_files: List[str] = Field(default_factory=list)
    priority: Literal["high", "medium", "low"] = "medium"
    language: str = "typescript"


class RepoTestAnalysis(CamelModel):
    """Which modules to test, and where tests live."""
    source_modules: List[SourceModule] = Field(default_factory=list)
    testing_framework: str = "vitest"
    test_directory: str = "tests"
    total_files: int = 0


class FunctionSpec(CamelModel):
    name: str
    test_cases: List[str] = Field(default_factory=list)


class TestSpecification(CamelModel):
    """Functions of one source file and the cases to cover."""
    source_file: str
    functions: List[FunctionSpec] = Field(default_factory=list)


class TestPlan(CamelModel):
    repo_analysis: RepoTestAnalysis
    test_specs: List[TestSpecification] = Field(default_factory=list)
    timestamp: Optional[str] = None
    version: str = PLAN_VERSION


class TestFileResult(CamelModel):
    source_file: str
    test_file: str
    functions_count: int = 0
    test_cases_count: int = 0
    success: bool = False
    error: Optional[str] = None


class GenerationSummary(CamelModel):
    total_source_files: int = 0
    total_test_files: int = 0
    total_functions: int = 0
    total_test_cases: int = 0
    successful_files: int = 0
    failed_files: int = 0


class GenerationQuality(CamelModel):
    syntax_valid: bool = False
    follows_best_practices: bool = False
    coverage_score: float = 0


class TestGenerationResult(CamelModel):
    test_files: List[TestFileResult] = Field(default_factory=list)
    summary: GenerationSummary = Field(default_factory=GenerationSummary)
    quality: GenerationQuality = Field(default_factory=GenerationQuality)


class ValidationReport(CamelModel):
    """Verdict of the validation agent on a generated test file."""
    syntax_valid: bool
    execution_successful: bool
    error_details: Optional[str] = None
    needs_retry: bool = False
    recommendations: List[str] = Field(default_factory=list)


class UnitTestResult(CamelModel):
    result: str
    success: bool
    tool_call_count: int = 0
    test_generation: TestGenerationResult = Field(default_factory=TestGenerationResult)
    recommendations: List[str] = Field(default_factory=list)


def compute_test_file_path(source_file: str, test_dir: str = "tests") -> str:
    """
    Map a source file to the test file that covers it.

    "src/utils/math.ts" becomes "tests/utils/math.test.ts";
    "pkg/mod.py" becomes "tests/pkg/test_mod.py".
    """
    test_dir = test_dir.rstrip("/") or "tests"
    if source_file.endswith(".py"):
        relative = re.sub(r"^src/", "", source_file)
        head, _, name = relative.rpartition("/")
        prefix = f"{test_dir}/{head}/" if head else f"{test_dir}/"
        return f"{prefix}test_{name}"

    path = re.sub(r"^src/", f"{test_dir}/", source_file)
    for suffix, test_suffix in _SOURCE_SUFFIXES:
        if path.endswith(suffix) and not path.endswith(test_suffix):
            return path[: -len(suffix)] + test_suffix
    return path


def failed_generation(target: str, error: str, source_file: Optional[str] = None) -> TestGenerationResult:
    """Generation result recording a single failed file."""
    return TestGenerationResult(
        test_files=[
            TestFileResult(
                source_file=source_file or target,
                test_file=target,
                success=False,
                error=error,
            )
        ],
        summary=GenerationSummary(
            total_source_files=1,
            total_test_files=0,
            successful_files=0,
            failed_files=1,
        ),
        quality=GenerationQuality(syntax_valid=False, follows_best_practices=False, coverage_score=0),
    )


def aggregate_results(results: List[TestFileResult]) -> TestGenerationResult:
    """Sum per-target results into one generation result."""
    successful = [r for r in results if r.success]
    failed_count = len(results) - len(successful)
    total_functions = sum(r.functions_count for r in successful)
    return TestGenerationResult(
        test_files=list(results),
        summary=GenerationSummary(
            total_source_files=len(results),
            total_test_files=len(successful),
            total_functions=total_functions,
            total_test_cases=sum(r.test_cases_count for r in successful),
            successful_files=len(successful),
            failed_files=failed_count,
        ),
        quality=GenerationQuality(
            syntax_valid=failed_count == 0,
            follows_best_practices=failed_count == 0,
            coverage_score=80 if total_functions > 0 else 0,
        ),
    )
