"""Tests for repository resolution, cloning, context saving and the project profile."""

import json

import pytest

from autotest_pipeline.agents.docker_setup import CONTAINER_CREDENTIALS_PATH, DockerSetupAgent, resolve_repository
from autotest_pipeline.agents.project_profile import (
    ProjectProfileAgent,
    dedupe_stack,
    map_to_stack_item,
    summarize_readme,
    synthesize_description,
)
from autotest_pipeline.credentials import get_github_token, read_token_from_file, write_docker_credentials
from autotest_pipeline.exceptions import CommandError, MissingCredentialsError, RepositoryResolutionError
from autotest_pipeline.models.pipeline import RepositoryRef

from conftest import FakeAgent, FakeDocker


class FakeGitHub:
    def __init__(self, about=None, topics=(), languages=None):
        self.about = about
        self.topics = list(topics)
        self.languages = languages or {}

    def get_about(self, owner, name):
        return self.about, self.topics

    def get_languages(self, owner, name):
        return self.languages


def test_resolve_repository_order():
    assert resolve_repository("https://github.com/acme/widgets.git", None).full_name == "acme/widgets"
    assert resolve_repository("acme/widgets", None).repo == "widgets"
    assert resolve_repository(None, {"owner": "o", "repo": "r"}).full_name == "o/r"
    assert resolve_repository("", {"fullName": "o/r2.git"}).repo == "r2"
    assert resolve_repository(None, None, default="d/default").full_name == "d/default"

    ref = resolve_repository("acme/widgets", {"defaultBranch": "develop"})
    assert ref.branch == "develop"

    with pytest.raises(RepositoryResolutionError):
        resolve_repository("not a repo", {})


def test_credentials_round_trip(tmp_path, monkeypatch):
    for var in ("GITHUB_PAT", "GITHUB_TOKEN", "GH_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    workdir = tmp_path / "a" / "b"
    workdir.mkdir(parents=True)

    path = write_docker_credentials("ghp_secret", cwd=str(workdir))
    assert read_token_from_file(path) == "ghp_secret"
    assert get_github_token(cwd=str(workdir)) == "ghp_secret"

    monkeypatch.setenv("GH_TOKEN", "from-env")
    assert get_github_token(cwd=str(workdir)) == "from-env"


def test_missing_token_raises(tmp_path, monkeypatch):
    for var in ("GITHUB_PAT", "GITHUB_TOKEN", "GH_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    workdir = tmp_path / "x" / "y"
    workdir.mkdir(parents=True)
    with pytest.raises(MissingCredentialsError):
        get_github_token(cwd=str(workdir))


class CopyingDocker(FakeDocker):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.copies = []

    def copy_to(self, container_id, local_path, container_path):
        self.copies.append((local_path, container_path))


def test_clone_removes_credentials_even_on_failure(tmp_path):
    creds = tmp_path / ".docker.credentials"
    creds.write_text("GITHUB_PAT=abc\n")
    docker = CopyingDocker().on("git clone", returncode=128, stderr="Repository not found")
    agent = DockerSetupAgent(docker)

    with pytest.raises(CommandError):
        agent.clone("c1", RepositoryRef(owner="acme", repo="widgets", branch="dev"), str(creds))

    assert docker.copies == [(str(creds), CONTAINER_CREDENTIALS_PATH)]
    assert "--branch 'dev'" in docker.commands[1]
    assert docker.commands[-1] == f"rm -f {CONTAINER_CREDENTIALS_PATH}"


def test_clone_skips_existing_checkout(tmp_path):
    creds = tmp_path / ".docker.credentials"
    creds.write_text("GITHUB_PAT=abc\n")
    docker = CopyingDocker(files={"/app/widgets/.git": ""})

    repo_path = DockerSetupAgent(docker).clone("c1", RepositoryRef(owner="acme", repo="widgets"), str(creds))

    assert repo_path == "/app/widgets"
    assert docker.copies == []


def test_save_context_requires_data():
    docker = FakeDocker()
    agent = DockerSetupAgent(docker, context_path="/app/agent.context.json")

    with pytest.raises(ValueError):
        agent.save_context("c1", None)

    assert agent.save_context("c1", {"name": "widgets"}) == "/app/agent.context.json"
    assert json.loads(docker.files["/app/agent.context.json"]) == {"name": "widgets"}


def test_stack_mapping():
    assert map_to_stack_item("TypeScript").title == "TypeScript"
    assert map_to_stack_item("@nestjs").title == "NestJS"
    assert map_to_stack_item("next.config").title == "Next.js"
    assert map_to_stack_item("nodemon").title == "Node.js"
    assert map_to_stack_item("left-pad") is None

    items = [map_to_stack_item(n) for n in ("react", "React", "vite")]
    assert [i.title for i in dedupe_stack(items)] == ["React", "Vite"]


def test_readme_and_synthesized_descriptions():
    readme = "# Widgets\n\n![badge](https://img)\n\nWidgets   does\nthings.\n"
    assert summarize_readme(readme, "widgets") == "Widgets   does\nthings."
    assert summarize_readme("", "widgets") == "Repository widgets"
    assert synthesize_description(["TypeScript"], ["Docker"], []) == "A TypeScript codebase. Includes Docker."


def test_description_prefers_agent_then_about(fake_backend):
    docker = FakeDocker()
    repo = RepositoryRef(owner="acme", repo="widgets")

    agent = FakeAgent({"description": "  A   widget\nfactory. ", "sources": ["README.md"], "confidence": 0.9})
    profile = ProjectProfileAgent(docker, fake_backend, FakeGitHub(about="About text"), description_agent=agent)
    assert profile.build_description("c1", "/app/widgets", repo) == "A widget factory."

    failing = FakeAgent(RuntimeError("model down"))
    profile = ProjectProfileAgent(docker, fake_backend, FakeGitHub(about="About  text"), description_agent=failing)
    assert profile.build_description("c1", "/app/widgets", repo) == "About text"


def test_stack_combines_github_and_checkout(fake_backend):
    package = {"dependencies": {"react": "18"}, "devDependencies": {"vitest": "1"}}
    docker = FakeDocker(files={
        "/app/widgets/package.json": json.dumps(package),
        "/app/widgets/Dockerfile": "FROM node",
    }).on("git ls-files", stdout="src/a.ts\nsrc/b.ts\nnode_modules/x.js\n")
    github = FakeGitHub(languages={"TypeScript": 100, "CSS": 10})
    profile = ProjectProfileAgent(docker, fake_backend, github)

    stack = profile.build_stack("c1", "/app/widgets", RepositoryRef(owner="acme", repo="widgets"))

    assert [item.title for item in stack] == ["TypeScript", "CSS", "React", "Vitest", "Docker"]
    assert profile.post_stack("p1", stack) == 5
    assert len(fake_backend.posts) == 5


@pytest.mark.parametrize("url", [
    "not a repo url",
    "https://github.com/onlyowner",
    "my org/my repo",
    "widgets",
])
def test_malformed_repository_url_never_falls_back(url):
    context = {"owner": "ctx", "repo": "fromcontext"}
    with pytest.raises(RepositoryResolutionError):
        resolve_repository(url, context, default="acme/default")


@pytest.mark.parametrize("url", [
    'acme/widgets";rm -rf /;"',
    "acme/$(whoami)",
    "https://github.com/ac`id`me/widgets",
    "acme/wid;gets",
])
def test_repository_names_with_shell_characters_are_rejected(url):
    with pytest.raises(RepositoryResolutionError):
        resolve_repository(url, None)


def test_context_and_default_names_are_validated():
    with pytest.raises(RepositoryResolutionError):
        resolve_repository(None, {"owner": "acme", "repo": "x$(id)"})
    with pytest.raises(RepositoryResolutionError):
        resolve_repository(None, None, default="acme/w w")
    assert resolve_repository(None, {"fullName": "my-org/my_repo.js"}).full_name == "my-org/my_repo.js"


def test_clone_rejects_unsafe_reference_before_copying_credentials(tmp_path):
    creds = tmp_path / ".docker.credentials"
    creds.write_text("GITHUB_PAT=abc\n")
    docker = CopyingDocker()

    with pytest.raises(RepositoryResolutionError):
        DockerSetupAgent(docker).clone("c1", RepositoryRef(owner="acme", repo='w"; id; "'), str(creds))

    assert docker.copies == []
    assert docker.commands == []


def test_clone_looks_up_configured_credentials_file(tmp_path, monkeypatch):
    (tmp_path / "sandbox.credentials").write_text("GITHUB_PAT=abc\n")
    monkeypatch.chdir(tmp_path)
    docker = CopyingDocker()

    DockerSetupAgent(docker, credentials_filename="sandbox.credentials").clone(
        "c1", RepositoryRef(owner="acme", repo="widgets")
    )

    assert docker.copies == [(str(tmp_path / "sandbox.credentials"), CONTAINER_CREDENTIALS_PATH)]

    with pytest.raises(MissingCredentialsError):
        DockerSetupAgent(docker, credentials_filename="absent.credentials").clone(
            "c1", RepositoryRef(owner="acme", repo="widgets")
        )
