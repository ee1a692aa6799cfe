"""
Project Profile Agent.

Produces the project description and technology stack shown by the backend.
The description comes from the description agent when it answers, and from
README, manifest and file-layout heuristics otherwise. The stack is derived
deterministically from GitHub languages and the files in the checkout.
"""

import json
import re
from collections import Counter
from typing import Dict, List, Optional, Tuple

import structlog

from autotest_pipeline.agents.base import PromptAgent
from autotest_pipeline.exceptions import CommandError
from autotest_pipeline.integrations.backend_client import BackendClient
from autotest_pipeline.integrations.docker_client import DockerClient
from autotest_pipeline.integrations.github_client import GitHubClient
from autotest_pipeline.models.pipeline import ProjectDescription, RepositoryRef, StackItem

logger = structlog.get_logger()

MAX_STACK_ITEMS = 20
README_CANDIDATES = ("README", "README.md", "README.rst", "README.txt", "readme.md", "Readme.md")
README_PARAGRAPH_LIMIT = 600

_IMAGE_LINE = re.compile(r"!\[[^\]]*\]\([^)]*\)")

# Extension -> display language for descriptions
DESCRIPTION_LANGUAGES = {
    "ts": "TypeScript", "tsx": "TypeScript", "js": "JavaScript", "jsx": "JavaScript",
    "py": "Python", "rb": "Ruby", "go": "Go", "rs": "Rust", "java": "Java", "kt": "Kotlin",
    "c": "C", "cpp": "C++", "cc": "C++", "cxx": "C++", "hpp": "C++", "mm": "Objective-C",
    "php": "PHP", "swift": "Swift", "m": "Objective-C", "scala": "Scala",
    "html": "HTML", "css": "CSS", "scss": "SCSS", "sass": "Sass", "md": "Markdown", "sh": "Shell",
}

# Extension -> stack table key
STACK_LANGUAGES = {
    "ts": "typescript", "tsx": "typescript", "js": "javascript", "jsx": "javascript",
    "py": "python", "rb": "ruby", "go": "go", "rs": "rust", "java": "java", "kt": "kotlin",
    "c": "c", "cpp": "c++", "cc": "c++", "cxx": "c++", "hpp": "c++",
    "php": "php", "swift": "swift", "scala": "scala", "sh": "shell", "css": "css", "scss": "scss", "html": "html",
}

FEATURE_FILES = (
    ("Dockerfile", "Dockerized"),
    ("docker-compose.yml", "Docker Compose"),
    ("next.config.js", "Next.js"),
    ("tailwind.config.js", "Tailwind CSS"),
    ("vite.config.ts", "Vite"),
    ("jest.config.js", "Jest"),
    ("vitest.config.ts", "Vitest"),
    ("prisma/schema.prisma", "Prisma"),
)

# normalized name -> (icon, title, description)
STACK_MAP: Dict[str, Tuple[str, str, str]] = {
    "typescript": ("ts", "TypeScript", "Typed superset of JavaScript that compiles to plain JS."),
    "javascript": ("js", "JavaScript", "High-level, dynamic language for the web and Node.js."),
    "python": ("py", "Python", "Versatile language for scripting, data, and backend services."),
    "go": ("go", "Go", "Compiled language for fast, concurrent services by Google."),
    "rust": ("rust", "Rust", "Memory-safe systems programming language."),
    "java": ("java", "Java", "General-purpose language for enterprise applications."),
    "c++": ("cpp", "C++", "High-performance systems and application language."),
    "c": ("c", "C", "Low-level systems programming language."),
    "c#": ("cs", "C#", "Modern language for .NET platforms."),
    "php": ("php", "PHP", "Scripting language for server-side web development."),
    "ruby": ("ruby", "Ruby", "Dynamic language focused on simplicity and productivity."),
    "kotlin": ("kotlin", "Kotlin", "Modern JVM language by JetBrains."),
    "swift": ("swift", "Swift", "Apple's language for iOS and macOS development."),
    "scala": ("scala", "Scala", "JVM language blending OOP and functional programming."),
    "shell": ("bash", "Shell", "Shell scripting for automation."),
    "html": ("html", "HTML", "Markup language for web pages."),
    "css": ("css", "CSS", "Stylesheet language for web pages."),
    "scss": ("sass", "SCSS", "Sass syntax for CSS with variables and nesting."),
    "sass": ("sass", "Sass", "CSS preprocessor with powerful features."),
    "next": ("nextjs", "Next.js", "React framework for hybrid rendering (SSR/SSG) and routing by Vercel."),
    "nextjs": ("nextjs", "Next.js", "React framework for hybrid rendering (SSR/SSG) and routing by Vercel."),
    "react": ("react", "React", "Component-based UI library for building interactive interfaces."),
    "vue": ("vue", "Vue.js", "Progressive framework for building user interfaces."),
    "svelte": ("svelte", "Svelte", "Compiler-based UI framework for minimal runtime."),
    "vite": ("vite", "Vite", "Next-gen frontend tooling with fast dev server and build."),
    "vitest": ("vitest", "Vitest", "Vite-native unit test framework with Jest-compatible API."),
    "jest": ("jest", "Jest", "Delightful JavaScript testing framework."),
    "tailwind": ("tailwind", "Tailwind CSS", "Utility-first CSS framework for rapid UI development."),
    "express": ("express", "Express", "Minimal and flexible Node.js web application framework."),
    "nestjs": ("nestjs", "NestJS", "Progressive Node.js framework for scalable server-side apps."),
    "graphql": ("graphql", "GraphQL", "Query language for APIs and runtime for fulfilling queries."),
    "prisma": ("prisma", "Prisma", "Type-safe ORM for Node.js and TypeScript."),
    "sequelize": ("sequelize", "Sequelize", "Promise-based Node.js ORM for Postgres, MySQL, etc."),
    "redux": ("redux", "Redux", "Predictable state container for JavaScript apps."),
    "webpack": ("webpack", "Webpack", "Module bundler for JavaScript applications."),
    "rollup": ("rollupjs", "Rollup", "Module bundler for JavaScript libraries."),
    "eslint": ("js", "ESLint", "Pluggable linting utility for JavaScript and TypeScript."),
    "fastapi": ("fastapi", "FastAPI", "High performance Python web framework for APIs."),
    "flask": ("flask", "Flask", "Lightweight WSGI web application framework."),
    "django": ("django", "Django", "High-level Python web framework."),
    "pytorch": ("pytorch", "PyTorch", "Deep learning framework."),
    "tensorflow": ("tensorflow", "TensorFlow", "End-to-end open source platform for machine learning."),
    "sklearn": ("sklearn", "Scikit-learn", "Machine learning in Python."),
    "docker": ("docker", "Docker", "Containerization platform."),
    "kubernetes": ("kubernetes", "Kubernetes", "Container orchestration system."),
    "terraform": ("terraform", "Terraform", "Infrastructure as code tool."),
    "postgres": ("postgres", "PostgreSQL", "Advanced open source relational database."),
    "sqlite": ("sqlite", "SQLite", "Serverless SQL database engine."),
    "mongodb": ("mongodb", "MongoDB", "NoSQL document database."),
    "redis": ("redis", "Redis", "In-memory data store for caching and messaging."),
    "rabbitmq": ("rabbitmq", "RabbitMQ", "Message broker for distributed systems."),
    "elasticsearch": ("elasticsearch", "Elasticsearch", "Search and analytics engine."),
    "nginx": ("nginx", "Nginx", "High performance HTTP and reverse proxy server."),
}

NODE_DESCRIPTION = "V8-based JavaScript runtime for server-side applications."

DESCRIPTION_PROMPT = """You have access to docker_exec. containerId='{container_id}'. Repo path hint='{repo_path}'.
Your task: produce a crisp 1-3 sentence description for this repository.
Start by checking obvious sources (README, package manifests). Then, if needed, sample a few representative source files.
Do not read more than 8 content files total. Keep outputs small using head and grep. Use only standard shell tools.
Hints: {hints}.

When done, return STRICT JSON only: {{"description": string, "sources": string[], "confidence": number, "notes": string}}."""


def normalize_name(name: str) -> str:
    """Lowercase, drop '@' and anything outside [a-z0-9+-.]."""
    return re.sub(r"[^a-z0-9+\-.]", "", name.lower().replace("@", ""))


def _item(key: str) -> StackItem:
    icon, title, description = STACK_MAP[key]
    return StackItem(title=title, description=description, icon=icon)


def map_to_stack_item(name: str) -> Optional[StackItem]:
    """Map a language or package name to a stack entry, or None when unknown."""
    n = normalize_name(name)
    if n in STACK_MAP:
        return _item(n)
    if re.match(r"^next(\.|$)", n):
        return _item("next")
    if re.match(r"^react(\.|$)", n):
        return _item("react")
    if "typescript" in n or n == "ts":
        return _item("typescript")
    if "javascript" in n or n == "js":
        return _item("javascript")
    if "node" in n:
        return StackItem(title="Node.js", description=NODE_DESCRIPTION, icon="nodejs")
    return None


def collapse_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def summarize_readme(readme: str, repo_name: str) -> str:
    """Second paragraph of the README (first when there is only one), image lines removed."""
    cleaned = "\n".join(line for line in readme.split("\n") if not _IMAGE_LINE.search(line))
    paragraphs = [re.sub(r"^#+\s*", "", p).strip() for p in re.split(r"\n\s*\n", cleaned)]
    paragraphs = [p for p in paragraphs if p]
    if len(paragraphs) > 1:
        chosen = paragraphs[1]
    elif paragraphs:
        chosen = paragraphs[0]
    else:
        chosen = f"Repository {repo_name}"
    return chosen[:README_PARAGRAPH_LIMIT]


def synthesize_description(languages: List[str], features: List[str], topics: List[str]) -> str:
    first = f"A {', '.join(languages[:3])} codebase." if languages else "A software project."
    parts = [first]
    if features:
        parts.append(f"Includes {', '.join(features[:3])}.")
    if topics:
        parts.append(f"Topics: {', '.join(topics[:3])}.")
    return " ".join(parts)


def _extension(path: str) -> str:
    match = re.search(r"\.([a-z0-9]+)$", path.lower())
    return match.group(1) if match else ""


def count_languages(paths: List[str], mapping: Dict[str, str]) -> List[str]:
    """Languages ordered by file count, node_modules excluded."""
    counts: Counter = Counter()
    for path in paths:
        if "node_modules" in path.lower():
            continue
        language = mapping.get(_extension(path))
        if language:
            counts[language] += 1
    return [language for language, _ in counts.most_common()]


def dedupe_stack(items: List[StackItem], limit: int = MAX_STACK_ITEMS) -> List[StackItem]:
    seen = set()
    unique: List[StackItem] = []
    for item in items:
        key = item.title.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique[:limit]


class ProjectProfileAgent:
    """Describes the project and its technology stack for the backend."""

    def __init__(
        self,
        docker: DockerClient,
        backend: BackendClient,
        github: GitHubClient,
        description_agent: Optional[PromptAgent] = None,
    ):
        self.docker = docker
        self.backend = backend
        self.github = github
        self.description_agent = description_agent

    # Repository reads

    def _list_files(self, container_id: str, repo_path: str) -> List[str]:
        try:
            result = self.docker.exec_in_repo(container_id, repo_path, "(git ls-files || find . -type f)")
        except CommandError as e:
            logger.warning("file_listing_failed", repo_path=repo_path, error=str(e))
            return []
        return [line.strip() for line in result.stdout.split("\n") if line.strip()]

    def _read(self, container_id: str, path: str) -> Optional[str]:
        try:
            return self.docker.read_file(container_id, path)
        except CommandError as e:
            logger.warning("profile_read_failed", path=path, error=str(e))
            return None

    def _read_package_json(self, container_id: str, repo_path: str) -> Optional[dict]:
        raw = self._read(container_id, f"{repo_path}/package.json")
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("package_json_invalid", repo_path=repo_path)
            return None
        return data if isinstance(data, dict) else None

    def _read_readme(self, container_id: str, repo_path: str) -> Optional[str]:
        candidates = " ".join(README_CANDIDATES)
        script = f'for f in {candidates}; do if [ -f "$f" ]; then sed -n \'1,200p\' "$f"; break; fi; done'
        try:
            content = self.docker.exec_in_repo(container_id, repo_path, script).output
        except CommandError as e:
            logger.warning("readme_read_failed", error=str(e))
            return None
        return content or None

    def _features(self, container_id: str, repo_path: str) -> List[str]:
        features = []
        for relative, feature in FEATURE_FILES:
            try:
                if self.docker.path_exists(container_id, f"{repo_path}/{relative}"):
                    features.append(feature)
            except CommandError:
                continue
        return features

    # Description

    def describe_with_agent(
        self,
        container_id: str,
        repo_path: str,
        repository: Optional[RepositoryRef],
        about: Optional[str],
        topics: List[str],
    ) -> Optional[str]:
        if self.description_agent is None:
            return None
        hints = {
            "owner": repository.owner if repository else None,
            "repo": repository.repo if repository else None,
            "githubAbout": about,
            "githubTopics": topics,
        }
        prompt = DESCRIPTION_PROMPT.format(container_id=container_id, repo_path=repo_path, hints=json.dumps(hints))
        try:
            reply = self.description_agent.generate_json(prompt, ProjectDescription, max_steps=12)
        except Exception as e:
            logger.warning("description_agent_failed", error=str(e))
            return None

        description = collapse_whitespace(reply.description)
        if not description:
            return None
        logger.info(
            "description_agent_success",
            preview=description[:140],
            confidence=reply.confidence,
            sources_count=len(reply.sources),
        )
        return description

    def describe_with_heuristics(
        self,
        container_id: str,
        repo_path: str,
        repository: Optional[RepositoryRef],
        about: Optional[str],
        topics: List[str],
    ) -> str:
        """GitHub about text or package.json, then the README, then the file layout."""
        package = self._read_package_json(container_id, repo_path) or {}
        primary = about or (package.get("description") if isinstance(package.get("description"), str) else None)
        if primary and primary.strip():
            return collapse_whitespace(primary)

        readme = self._read_readme(container_id, repo_path)
        if readme:
            repo_name = repository.repo if repository else repo_path.rstrip("/").split("/")[-1] or "repository"
            return collapse_whitespace(summarize_readme(readme, repo_name))

        languages = count_languages(self._list_files(container_id, repo_path), DESCRIPTION_LANGUAGES)
        features = self._features(container_id, repo_path)
        return collapse_whitespace(synthesize_description(languages, features, topics))

    def build_description(self, container_id: str, repo_path: str, repository: Optional[RepositoryRef]) -> str:
        about, topics = (None, [])
        if repository:
            about, topics = self.github.get_about(repository.owner, repository.repo)

        description = self.describe_with_agent(container_id, repo_path, repository, about, topics)
        if description:
            return description
        logger.info("description_fallback_used", repo_path=repo_path)
        return self.describe_with_heuristics(container_id, repo_path, repository, about, topics)

    def post_description(self, project_id: str, description: str) -> bool:
        return self.backend.post_description(project_id, description)

    # Stack

    def stack_from_github(self, repository: Optional[RepositoryRef]) -> List[StackItem]:
        if repository is None:
            return []
        languages = list(self.github.get_languages(repository.owner, repository.repo))
        items = [map_to_stack_item(lang.lower()) for lang in languages[:8]]
        return [item for item in items if item]

    def stack_from_checkout(self, container_id: str, repo_path: str) -> List[StackItem]:
        names: List[str] = count_languages(self._list_files(container_id, repo_path), STACK_LANGUAGES)[:5]

        package = self._read_package_json(container_id, repo_path)
        if package:
            deps = {**(package.get("dependencies") or {}), **(package.get("devDependencies") or {})}
            names.extend(normalize_name(dep) for dep in deps)

        requirements = self._read(container_id, f"{repo_path}/requirements.txt")
        if requirements:
            for line in requirements.splitlines():
                name = line.strip().split("==")[0]
                if name:
                    names.append(name)

        items = [map_to_stack_item(name) for name in names]
        stack = [item for item in items if item]
        if self.docker.path_exists(container_id, f"{repo_path}/Dockerfile"):
            stack.append(_item("docker"))
        return stack

    def build_stack(self, container_id: str, repo_path: str, repository: Optional[RepositoryRef]) -> List[StackItem]:
        from_github = self.stack_from_github(repository)
        from_checkout = self.stack_from_checkout(container_id, repo_path)
        stack = dedupe_stack(from_github + from_checkout)
        logger.info(
            "tech_stack_built",
            candidate_count=len(from_github) + len(from_checkout),
            tech_stack_count=len(stack),
            sample=[item.title for item in stack[:5]],
        )
        return stack

    def post_stack(self, project_id: str, stack: List[StackItem]) -> int:
        """POST each item; returns how many the backend accepted."""
        posted = 0
        for item in stack:
            if self.backend.post_stack_item(project_id, item):
                posted += 1
        return posted