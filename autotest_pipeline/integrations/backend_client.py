"""
Client for the project backend that receives pipeline results.

All calls are best-effort: they log and return False instead of raising.
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from autotest_pipeline.models.pipeline import CoverageReport, StackItem

logger = structlog.get_logger()


class BackendClient:
    """Posts project description, stack, PR URL and coverage."""

    def __init__(self, base_url: str = "http://localhost:3000", timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout)

    def _post(self, project_id: str, resource: str, payload: Dict[str, Any]) -> bool:
        url = f"{self.base_url}/api/projects/{project_id}/{resource}"
        try:
            response = self.client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.warning("backend_post_failed", resource=resource, project_id=project_id, error=str(e))
            return False

        if not response.is_success:
            logger.warning(
                "backend_post_rejected",
                resource=resource,
                project_id=project_id,
                status_code=response.status_code,
                detail=response.text[:300],
            )
            return False

        logger.info("backend_post_success", resource=resource, project_id=project_id)
        return True

    def post_description(self, project_id: str, description: str) -> bool:
        return self._post(project_id, "description", {"description": description})

    def post_stack_item(self, project_id: str, item: StackItem) -> bool:
        return self._post(project_id, "stack", item.to_payload())

    def post_pr_url(self, project_id: str, pr_url: str) -> bool:
        return self._post(project_id, "pr-url", {"prUrl": pr_url})

    def post_test_coverage(self, project_id: str, report: CoverageReport) -> bool:
        payload = {
            "coverage": report.coverage,
            "language": report.language,
            "framework": report.framework,
            "method": report.method,
            "stats": report.stats.to_payload(),
            "files": report.files,
        }
        return self._post(project_id, "test-coverage", payload)

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


_backend_client: Optional[BackendClient] = None


def get_backend_client(base_url: str = "http://localhost:3000", timeout: float = 30.0) -> BackendClient:
    """Get or create singleton backend client."""
    global _backend_client
    if _backend_client is None:
        _backend_client = BackendClient(base_url=base_url, timeout=timeout)
    return _backend_client
