"""
GitHub API client for repository metadata and pull request creation.
"""

from typing import Dict, List, Optional, Tuple

from github import Github, GithubException, Auth
from github.Repository import Repository
from github.PullRequest import PullRequest
import structlog

from autotest_pipeline.exceptions import PullRequestError

logger = structlog.get_logger()

NO_COMMITS_MARKER = "No commits between"


class GitHubClient:
    """Client for GitHub API operations."""

    def __init__(self, token: Optional[str] = None, api_url: str = "https://api.github.com"):
        """
        Initialize GitHub client.

        Args:
            token: GitHub Personal Access Token; anonymous access when empty
            api_url: GitHub API base URL (for Enterprise)
        """
        self.token = token
        self.api_url = api_url

        # Initialize PyGithub client with proper Auth
        kwargs = {"auth": Auth.Token(token)} if token else {}
        if api_url == "https://api.github.com":
            self.client = Github(**kwargs)
        else:
            self.client = Github(base_url=api_url, **kwargs)

    def get_repository(self, owner: str, name: str) -> Repository:
        """Get repository object."""
        try:
            repo = self.client.get_repo(f"{owner}/{name}")
            logger.info("repository_fetched", repo=f"{owner}/{name}")
            return repo
        except GithubException as e:
            logger.error("failed_to_fetch_repository", repo=f"{owner}/{name}", error=str(e))
            raise

    def get_about(self, owner: str, name: str) -> Tuple[Optional[str], List[str]]:
        """
        Get the repository "about" text and topics.

        Returns:
            Tuple of (description, topics); (None, []) when unavailable
        """
        try:
            repo = self.client.get_repo(f"{owner}/{name}")
            return repo.description, list(repo.get_topics())
        except GithubException as e:
            logger.warning("failed_to_fetch_about", repo=f"{owner}/{name}", status=e.status)
            return None, []

    def get_languages(self, owner: str, name: str) -> Dict[str, int]:
        """Bytes of code per language, largest first."""
        try:
            repo = self.client.get_repo(f"{owner}/{name}")
            languages = repo.get_languages()
        except GithubException as e:
            logger.warning("failed_to_fetch_languages", repo=f"{owner}/{name}", status=e.status)
            return {}
        return dict(sorted(languages.items(), key=lambda kv: kv[1], reverse=True))

    def create_pull_request(
        self,
        repo: Repository,
        title: str,
        body: str,
        head: str,
        base: str = "main",
    ) -> PullRequest:
        """
        Create a pull request.

        Args:
            repo: Repository object
            title: PR title
            body: PR description
            head: Head branch
            base: Base branch

        Returns:
            PullRequest object

        Raises:
            PullRequestError: GitHub rejected the request; `no_commits` is set
                when head and base point at the same history
        """
        try:
            pr = repo.create_pull(
                title=title,
                body=body,
                head=head,
                base=base,
                maintainer_can_modify=True,
            )
            logger.info("pull_request_created", pr_number=pr.number, url=pr.html_url)
            return pr
        except GithubException as e:
            detail = f"{e.data}" if e.data else str(e)
            logger.error("failed_to_create_pr", head=head, base=base, status=e.status, error=detail[:500])
            raise PullRequestError(
                f"GitHub PR creation failed: {e.status} {detail}",
                status=e.status,
                no_commits=e.status == 422 and NO_COMMITS_MARKER in detail,
            ) from e

    def add_comment(self, pr: PullRequest, body: str) -> bool:
        """Post a comment on the PR conversation; failures are logged, not raised."""
        try:
            pr.create_issue_comment(body)
            return True
        except GithubException as e:
            logger.warning("failed_to_comment_on_pr", pr_number=pr.number, status=e.status)
            return False

    def close(self):
        """Close the underlying HTTP session."""
        self.client.close()


def get_github_client(token: Optional[str] = None, api_url: str = "https://api.github.com") -> GitHubClient:
    """Create a new GitHub client."""
    return GitHubClient(token=token, api_url=api_url)
