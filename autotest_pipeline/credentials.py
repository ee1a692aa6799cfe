"""
GitHub token hand-off between the HTTP entry point and the pipeline.

The token is written to a credentials file on the host; the clone step copies
it into the container only for the duration of `git clone`.
"""

import os
from typing import List, Optional

import structlog
from dotenv import dotenv_values

from autotest_pipeline.exceptions import MissingCredentialsError

logger = structlog.get_logger()

CREDENTIALS_FILENAME = ".docker.credentials"
TOKEN_ENV_VARS = ("GITHUB_PAT", "GITHUB_TOKEN", "GH_TOKEN")


def credentials_candidates(cwd: Optional[str] = None, filename: str = CREDENTIALS_FILENAME) -> List[str]:
    """Primary location in the working directory, then two levels up."""
    cwd = cwd or os.getcwd()
    return [
        os.path.join(cwd, filename),
        os.path.abspath(os.path.join(cwd, "..", "..", filename)),
    ]


def write_docker_credentials(token: str, cwd: Optional[str] = None, filename: str = CREDENTIALS_FILENAME) -> str:
    """
    Persist the token as `GITHUB_PAT=<token>`.

    Returns:
        Path written

    Raises:
        OSError: neither location is writable
    """
    last_error: Optional[OSError] = None
    for path in credentials_candidates(cwd, filename):
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(f"GITHUB_PAT={token}\n")
            os.chmod(path, 0o600)
            logger.info("credentials_written", path=path)
            return path
        except OSError as e:
            logger.warning("credentials_write_failed", path=path, error=str(e))
            last_error = e
    raise last_error


def find_credentials_file(cwd: Optional[str] = None, filename: str = CREDENTIALS_FILENAME) -> Optional[str]:
    for path in credentials_candidates(cwd, filename):
        if os.path.isfile(path):
            return path
    return None


def read_token_from_file(path: str) -> Optional[str]:
    value = dotenv_values(path).get("GITHUB_PAT")
    return value.strip() if value else None


def get_github_token(cwd: Optional[str] = None) -> str:
    """
    Resolve the token from the environment, then the credentials file.

    Raises:
        MissingCredentialsError: no token anywhere
    """
    for var in TOKEN_ENV_VARS:
        value = os.getenv(var)
        if value:
            return value
    path = find_credentials_file(cwd)
    if path:
        token = read_token_from_file(path)
        if token:
            return token
    raise MissingCredentialsError(
        "GitHub token not found. Set GITHUB_PAT, GITHUB_TOKEN or GH_TOKEN, or provide .docker.credentials"
    )
