"""
Docker CLI wrapper for the sandbox container.

Every repository operation runs inside one long-lived container through
`docker exec ... bash -lc`, with files moved in via `docker cp`.
"""

import os
import tempfile
from typing import Optional

import structlog

from autotest_pipeline.exceptions import CommandError
from autotest_pipeline.utils.shell import CommandResult, run_command, shell_escape

logger = structlog.get_logger()

NOT_FOUND = "NOT_FOUND"

DOCKERFILE_TEMPLATE = """FROM {base_image}
RUN apt-get update && apt-get install -y git && rm -rf /var/lib/apt/lists/*
WORKDIR /app
CMD ["bash"]
"""


class DockerClient:
    """Client for the Docker CLI."""

    def __init__(self, docker_bin: str = "docker", exec_timeout: int = 120):
        self.docker_bin = docker_bin
        self.exec_timeout = exec_timeout

    def build_image(self, image: str, base_image: str = "ubuntu:22.04") -> None:
        """Build the sandbox image from an inline Dockerfile fed through stdin."""
        dockerfile = DOCKERFILE_TEMPLATE.format(base_image=base_image)
        logger.info("docker_build_start", image=image, base_image=base_image)
        run_command(f"{self.docker_bin} build -t {shell_escape(image)} -", input_text=dockerfile)
        logger.info("docker_build_complete", image=image)

    def remove_container(self, name: str) -> None:
        run_command(f"{self.docker_bin} rm -f {shell_escape(name)} || true", check=False)

    def run_detached(self, name: str, image: str) -> str:
        """Start a container that idles until removed."""
        result = run_command(
            f"{self.docker_bin} run -d --name {shell_escape(name)} {shell_escape(image)} tail -f /dev/null"
        )
        return result.output

    def inspect_id(self, name: str) -> str:
        result = run_command(f"{self.docker_bin} inspect -f '{{{{.Id}}}}' {shell_escape(name)}")
        return result.output

    def exec(
        self,
        container_id: str,
        command: str,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> CommandResult:
        """Run a raw shell command inside the container."""
        full = f"{self.docker_bin} exec {shell_escape(container_id)} bash -lc {shell_escape(command)}"
        return run_command(full, timeout=timeout or self.exec_timeout, check=check)

    def exec_in_repo(
        self,
        container_id: str,
        repo_path: str,
        command: str,
        timeout: Optional[float] = None,
        check: bool = True,
    ) -> CommandResult:
        return self.exec(container_id, f"cd {shell_escape(repo_path)} && {command}", timeout=timeout, check=check)

    def copy_to(self, container_id: str, local_path: str, container_path: str) -> None:
        run_command(f"{self.docker_bin} cp {shell_escape(local_path)} {shell_escape(container_id)}:{shell_escape(container_path)}")

    def write_file(self, container_id: str, container_path: str, content: str) -> int:
        """
        Write text into the container and verify it landed.

        Returns:
            Size in bytes reported by `wc -c` inside the container
        """
        tmp_dir = tempfile.mkdtemp(prefix="autotest-")
        local_path = os.path.join(tmp_dir, os.path.basename(container_path) or "payload")
        try:
            with open(local_path, "w", encoding="utf-8") as f:
                f.write(content)
            self.copy_to(container_id, local_path, container_path)
        finally:
            if os.path.exists(local_path):
                os.remove(local_path)
            os.rmdir(tmp_dir)

        quoted = shell_escape(container_path)
        check = self.exec(container_id, f"test -f {quoted} && wc -c < {quoted}")
        size = check.output
        if not size.isdigit():
            raise CommandError(f"verify {container_path}", None, stderr=f"Unexpected size output: {size!r}")
        logger.debug("container_file_written", path=container_path, size=int(size))
        return int(size)

    def read_file(self, container_id: str, container_path: str) -> Optional[str]:
        """Read a file from the container; None when it does not exist."""
        quoted = shell_escape(container_path)
        result = self.exec(container_id, f"test -f {quoted} && cat {quoted} || echo '{NOT_FOUND}'")
        if result.stdout.strip() == NOT_FOUND:
            return None
        return result.stdout

    def path_exists(self, container_id: str, path: str) -> bool:
        result = self.exec(container_id, f"test -e {shell_escape(path)} && echo YES || echo NO", check=False)
        return result.output == "YES"

    def find_repo_path(self, container_id: str, default: str = "/app") -> str:
        """First directory under /app holding a git checkout."""
        script = 'for d in /app/*; do if [ -d "$d/.git" ]; then echo "$d"; break; fi; done'
        try:
            result = self.exec(container_id, script)
        except CommandError as e:
            logger.warning("repo_path_lookup_failed", error=str(e))
            return default
        return result.output or default


# Global client instance
_docker_client: Optional[DockerClient] = None


def get_docker_client(exec_timeout: Optional[int] = None) -> DockerClient:
    """Get or create global Docker client instance."""
    global _docker_client
    if _docker_client is None:
        _docker_client = DockerClient(exec_timeout=exec_timeout or 120)
    return _docker_client
