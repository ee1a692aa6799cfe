"""Schemas for repository setup, pull requests, coverage and the pipeline result."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from autotest_pipeline.models.base import CamelModel


class RepositoryRef(CamelModel):
    """GitHub repository targeted by a run."""
    owner: str
    repo: str
    branch: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def container_path(self) -> str:
        return f"/app/{self.repo}"


class ProjectDescription(CamelModel):
    description: str
    sources: List[str] = Field(default_factory=list)
    confidence: float = 0
    notes: Optional[str] = None


class StackItem(CamelModel):
    title: str
    description: str
    icon: str


class PullRequestInfo(CamelModel):
    """Git branch, commit and PR information."""
    repo_path: str
    branch_name: str
    base_branch: str
    repo_owner: Optional[str] = None
    repo_name: Optional[str] = None
    commit_message: Optional[str] = None
    commit_sha: Optional[str] = None
    has_changes: bool = True
    pr_number: Optional[int] = None
    pr_url: Optional[str] = None


class PrPlan(CamelModel):
    """Optional git plan suggested by the PR agent."""
    repo_path: Optional[str] = None
    branch_name: Optional[str] = None
    base_branch: Optional[str] = None
    commit_message: Optional[str] = None


class CoverageStat(CamelModel):
    total: int = 0
    covered: int = 0
    pct: float = 0


class CoverageStats(CamelModel):
    statements: CoverageStat = Field(default_factory=CoverageStat)
    branches: CoverageStat = Field(default_factory=CoverageStat)
    functions: CoverageStat = Field(default_factory=CoverageStat)
    lines: CoverageStat = Field(default_factory=CoverageStat)

    @classmethod
    def from_ratio(cls, coverage: float) -> "CoverageStats":
        pct = round(coverage * 100, 2)
        return cls(statements=CoverageStat(pct=pct), lines=CoverageStat(pct=pct))


class CoverageAgentReply(CamelModel):
    is_valid: bool
    repo_path: Optional[str] = None
    language: Optional[str] = None
    framework: Optional[str] = None
    coverage: float = 0
    method: Optional[str] = None
    stats: Optional[CoverageStats] = None
    files: Optional[int] = None
    reason: Optional[str] = None


class CoverageReport(CamelModel):
    """Coverage figure reported to the backend."""
    coverage: float
    language: str = "unknown"
    framework: str = "unknown"
    method: str = "unknown"
    stats: CoverageStats = Field(default_factory=CoverageStats)
    files: int = 0
    repo_path: Optional[str] = None

    @property
    def percent(self) -> float:
        return self.coverage * 100


RunStatus = Literal["running", "completed", "failed"]


class PipelineOutput(CamelModel):
    """Normalized result of a full pipeline run."""
    result: str = "Pipeline completed"
    success: bool = True
    tool_call_count: int = 0
    container_id: Optional[str] = None
    context_path: Optional[str] = None
    project_id: Optional[str] = None
    pr_url: Optional[str] = None
    coverage: Optional[float] = None


class RunRecord(CamelModel):
    run_id: str
    workflow: str
    status: RunStatus = "running"
    project_id: Optional[str] = None
    started_at: str
    finished_at: Optional[str] = None
    output: Optional[Dict[str, Any]] = None
    errors: List[str] = Field(default_factory=list)
