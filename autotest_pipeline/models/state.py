"""
State management for the pipeline.

Defines the state schema passed between LangGraph nodes. Parallel branches
write disjoint keys; list fields that several branches append to carry an
additive reducer.
"""

import operator
import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from typing_extensions import Annotated, TypedDict

from autotest_pipeline.models.context import (
    BuildAndDeployment,
    CodebaseAnalysis,
    RepoContext,
    RepositoryStructure,
)
from autotest_pipeline.models.pipeline import (
    CoverageReport,
    PipelineOutput,
    PullRequestInfo,
    RepositoryRef,
)
from autotest_pipeline.models.testing import (
    TestFileResult,
    TestPlan,
    UnitTestResult,
)

NextAction = Literal["continue", "skip_planning", "retry", "complete", "fail"]


class PipelineState(TypedDict, total=False):
    """State shared by every workflow graph."""

    # Inputs
    run_id: str
    project_id: str
    repository_url: Optional[str]
    context_data: Optional[Dict[str, Any]]
    target_test_file: Optional[str]

    # Docker setup
    container_id: str
    repository: RepositoryRef
    repo_path: str
    description: Optional[str]
    stack_posted: int

    # Context gathering
    repository_structure: RepositoryStructure
    codebase_analysis: CodebaseAnalysis
    build_analysis: BuildAndDeployment
    repo_context: RepoContext
    context_path: str

    # Unit tests
    test_plan: Optional[TestPlan]
    test_results: Annotated[List[TestFileResult], operator.add]
    unit_test_result: UnitTestResult

    # Pull request and coverage
    pull_request: PullRequestInfo
    coverage_report: CoverageReport

    # Bookkeeping
    output: PipelineOutput
    next_action: NextAction
    errors: Annotated[List[str], operator.add]
    agent_history: Annotated[List[Dict[str, Any]], operator.add]
    started_at: str


class TestTargetTask(TypedDict):
    """Payload sent to each parallel test generation branch."""
    run_id: str
    project_id: str
    container_id: str
    repo_path: str
    target: str
    test_plan: Optional[TestPlan]


def new_run_id() -> str:
    return str(uuid.uuid4())


def agent_record(agent_name: str, action: str, result: Any, duration: float) -> Dict[str, Any]:
    """One agent_history entry."""
    return {
        "agent": agent_name,
        "action": action,
        "result": str(result)[:500],
        "duration_seconds": duration,
        "timestamp": datetime.utcnow().isoformat(),
    }


def error_entry(error: str) -> str:
    """An errors entry prefixed with its timestamp."""
    return f"[{datetime.utcnow().isoformat()}] {error}"
