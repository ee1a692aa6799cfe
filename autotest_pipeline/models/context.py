"""
Repository context schemas produced by the context-gathering agents.

Each analysis has a fallback used when the agent reply is unusable, so a
failed LLM call degrades the context instead of aborting the run.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from autotest_pipeline.models.base import CamelModel

DEFAULT_IGNORED_PATHS = ["node_modules", ".git", "build", "dist", ".next", ".venv", "target"]


class GitStatus(CamelModel):
    is_git_repo: bool = False
    default_branch: Optional[str] = None
    last_commit: Optional[str] = None
    has_remote: bool = False
    is_dirty: bool = False


class PackageInfo(CamelModel):
    path: str
    name: Optional[str] = None
    type: Literal["app", "library", "tool", "config", "unknown"] = "unknown"
    language: Optional[str] = None


class StructureLayout(CamelModel):
    packages: List[PackageInfo] = Field(default_factory=list)
    key_directories: List[str] = Field(default_factory=list)
    ignored_paths: List[str] = Field(default_factory=list)


class LanguageShare(CamelModel):
    language: str
    percentage: float = 0
    file_count: int = 0
    main_files: List[str] = Field(default_factory=list)


class RepositoryStructure(CamelModel):
    """Layout of the cloned repository."""
    type: Literal["monorepo", "single-package", "multi-project"]
    root_path: str
    git_status: GitStatus = Field(default_factory=GitStatus)
    structure: StructureLayout = Field(default_factory=StructureLayout)
    languages: List[LanguageShare] = Field(default_factory=list)


class ModuleInfo(CamelModel):
    path: str
    purpose: str


class InternalDependency(CamelModel):
    from_: str = Field(alias="from")
    to: str
    type: str


class KeyLibrary(CamelModel):
    name: str
    purpose: str
    version: Optional[str] = None


class DependencyGraph(CamelModel):
    internal: List[InternalDependency] = Field(default_factory=list)
    external: Dict[str, str] = Field(default_factory=dict)
    key_libraries: List[KeyLibrary] = Field(default_factory=list)


class Architecture(CamelModel):
    pattern: str
    entry_points: List[str] = Field(default_factory=list)
    main_modules: List[ModuleInfo] = Field(default_factory=list)
    dependencies: DependencyGraph = Field(default_factory=DependencyGraph)


class Documentation(CamelModel):
    has_readme: bool = False
    has_api_docs: bool = False
    code_comments: Literal["extensive", "moderate", "minimal", "none"] = "none"


class CodeQuality(CamelModel):
    has_tests: bool = False
    test_coverage: Optional[str] = None
    linting: List[str] = Field(default_factory=list)
    formatting: List[str] = Field(default_factory=list)
    documentation: Documentation = Field(default_factory=Documentation)


class Framework(CamelModel):
    name: str
    version: Optional[str] = None
    purpose: str = ""
    config_files: List[str] = Field(default_factory=list)


class CodebaseAnalysis(CamelModel):
    """Architecture, quality and framework usage of the code."""
    architecture: Architecture
    code_quality: CodeQuality = Field(default_factory=CodeQuality)
    frameworks: List[Framework] = Field(default_factory=list)


class BuildAttempt(CamelModel):
    command: str
    success: bool
    output: str = ""
    issues: List[str] = Field(default_factory=list)


class TestAttempt(CamelModel):
    command: str
    success: bool
    output: str = ""


class BuildSystem(CamelModel):
    type: Optional[str] = None
    config_files: List[str] = Field(default_factory=list)
    build_commands: List[str] = Field(default_factory=list)
    build_attempts: List[BuildAttempt] = Field(default_factory=list)


class PackageManagement(CamelModel):
    managers: List[str] = Field(default_factory=list)
    lock_files: List[str] = Field(default_factory=list)
    workspace_config: Optional[str] = None


class TestingSetup(CamelModel):
    frameworks: List[str] = Field(default_factory=list)
    test_dirs: List[str] = Field(default_factory=list)
    test_commands: List[str] = Field(default_factory=list)
    test_attempts: List[TestAttempt] = Field(default_factory=list)


class EnvironmentConfig(CamelModel):
    env_files: List[str] = Field(default_factory=list)
    required_vars: List[str] = Field(default_factory=list)


class Deployment(CamelModel):
    cicd: List[str] = Field(default_factory=list)
    dockerfiles: List[str] = Field(default_factory=list)
    deployment_configs: List[str] = Field(default_factory=list)
    environment_config: EnvironmentConfig = Field(default_factory=EnvironmentConfig)


class BuildAndDeployment(CamelModel):
    """Build, packaging, testing and deployment setup."""
    build_system: BuildSystem = Field(default_factory=BuildSystem)
    package_management: PackageManagement = Field(default_factory=PackageManagement)
    testing: TestingSetup = Field(default_factory=TestingSetup)
    deployment: Deployment = Field(default_factory=Deployment)


class StrengthsWeaknesses(CamelModel):
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)


class Insights(CamelModel):
    complexity: Literal["simple", "moderate", "complex", "very-complex"]
    maturity: Literal["prototype", "development", "production", "mature"]
    maintainability: Literal["excellent", "good", "fair", "poor"]
    recommendations: List[str] = Field(default_factory=list)
    potential_issues: List[str] = Field(default_factory=list)
    strengths_weaknesses: StrengthsWeaknesses = Field(default_factory=StrengthsWeaknesses)


class Confidence(CamelModel):
    repository: float = 0
    codebase: float = 0
    build_deploy: float = 0
    overall: float = 0


class SynthesisResult(CamelModel):
    """The part of RepoContext the synthesis agent writes."""
    insights: Insights
    confidence: Confidence = Field(default_factory=Confidence)
    executive_summary: str


class RepoContext(CamelModel):
    """Combined view of the repository handed to test planning."""
    repository: RepositoryStructure
    codebase: CodebaseAnalysis
    build_deploy: BuildAndDeployment
    insights: Insights
    confidence: Confidence
    executive_summary: str


# Fallbacks

def fallback_repository_structure(root_path: str = "/app") -> RepositoryStructure:
    return RepositoryStructure(
        type="single-package",
        root_path=root_path,
        git_status=GitStatus(),
        structure=StructureLayout(ignored_paths=list(DEFAULT_IGNORED_PATHS)),
        languages=[],
    )


def fallback_codebase_analysis() -> CodebaseAnalysis:
    return CodebaseAnalysis(
        architecture=Architecture(pattern="unknown"),
        code_quality=CodeQuality(documentation=Documentation(code_comments="none")),
        frameworks=[],
    )


def fallback_build_and_deployment() -> BuildAndDeployment:
    return BuildAndDeployment(build_system=BuildSystem(type="unknown"))


FALLBACK_EXECUTIVE_SUMMARY = (
    "Analysis was incomplete due to technical issues during the codebase examination. "
    "The repository structure was partially analyzed, but a more thorough investigation "
    "would be needed to provide accurate insights and recommendations."
)


def fallback_synthesis() -> SynthesisResult:
    return SynthesisResult(
        insights=Insights(
            complexity="moderate",
            maturity="development",
            maintainability="fair",
            recommendations=["Complete the codebase analysis", "Implement proper error handling"],
            potential_issues=["Incomplete analysis due to technical issues"],
            strengths_weaknesses=StrengthsWeaknesses(
                strengths=["Project structure is present"],
                weaknesses=["Analysis was incomplete due to technical issues"],
            ),
        ),
        confidence=Confidence(repository=0.3, codebase=0.2, build_deploy=0.2, overall=0.2),
        executive_summary=FALLBACK_EXECUTIVE_SUMMARY,
    )


def assemble_repo_context(
    repository: RepositoryStructure,
    codebase: CodebaseAnalysis,
    build_deploy: BuildAndDeployment,
    synthesis: SynthesisResult,
) -> RepoContext:
    return RepoContext(
        repository=repository,
        codebase=codebase,
        build_deploy=build_deploy,
        insights=synthesis.insights,
        confidence=synthesis.confidence,
        executive_summary=synthesis.executive_summary,
    )


def build_unit_test_context(context: RepoContext) -> Dict[str, Any]:
    """
    Reduce a RepoContext to the document test agents read from the container.

    The full analysis is embedded under "fullAnalysis" so nothing is lost.
    """
    repo = context.repository
    codebase = context.codebase
    build = context.build_deploy

    packages = repo.structure.packages
    languages = repo.languages

    keep = ("test", "ci", "error")
    testing_recommendations = [
        rec for rec in context.insights.recommendations
        if any(word in rec.lower() for word in keep)
    ]

    return {
        "metadata": {
            "projectName": (packages[0].name if packages and packages[0].name else "unknown"),
            "projectType": repo.type,
            "primaryLanguage": languages[0].language if languages else "typescript",
            "rootPath": repo.root_path,
            "isGitRepo": repo.git_status.is_git_repo,
            "generatedAt": datetime.utcnow().isoformat() + "Z",
            "confidence": context.confidence.overall,
        },
        "structure": {
            "sourceDirectories": repo.structure.key_directories,
            "packages": [p.to_payload() for p in packages],
            "testingFramework": build.testing.frameworks[0] if build.testing.frameworks else "jest",
            "entryPoints": codebase.architecture.entry_points,
            "mainModules": [m.to_payload() for m in codebase.architecture.main_modules],
        },
        "dependencies": {
            "keyLibraries": [lib.to_payload() for lib in codebase.architecture.dependencies.key_libraries],
            "external": codebase.architecture.dependencies.external,
            "frameworks": [fw.to_payload() for fw in codebase.frameworks],
            "packageManager": build.package_management.managers[0] if build.package_management.managers else "npm",
        },
        "testingStrategy": {
            "architecturePattern": codebase.architecture.pattern,
            "complexity": context.insights.complexity,
            "hasExistingTests": codebase.code_quality.has_tests,
            "testCommands": build.testing.test_commands,
            "recommendedApproach": "unit-focused" if context.insights.complexity == "simple" else "integration-included",
        },
        "codeQuality": {
            "hasTypeScript": any(lang.language.lower() == "typescript" for lang in languages),
            "hasLinting": bool(codebase.code_quality.linting),
            "codeComments": codebase.code_quality.documentation.code_comments,
            "maintainability": context.insights.maintainability,
        },
        "testingRecommendations": testing_recommendations,
        "fullAnalysis": context.to_payload(),
    }
