"""Exception hierarchy for the pipeline."""

from typing import Optional


class PipelineError(Exception):
    """Base error for every failure raised by pipeline code."""


class CommandError(PipelineError):
    """A shell, docker or git command exited unsuccessfully."""

    def __init__(self, command: str, returncode: Optional[int], stderr: str = "", stdout: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        detail = (stderr or stdout or "").strip()
        super().__init__(detail or f"Command failed with exit code {returncode}: {command}")


class AgentResponseError(PipelineError):
    """An agent reply could not be parsed or did not match its schema."""

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message)


class RepositoryResolutionError(PipelineError):
    """Owner/repository could not be determined from the request."""


class MissingCredentialsError(PipelineError):
    """No GitHub token is available on the host."""


class PullRequestError(PipelineError):
    """GitHub refused to open the pull request."""

    def __init__(self, message: str, status: Optional[int] = None, no_commits: bool = False):
        self.status = status
        self.no_commits = no_commits
        super().__init__(message)
