"""
Alert events for the backend's progress feed.

Every step reports start, completion and failure as an AlertEvent. Sending
never raises: an unreachable alerts endpoint must not fail a pipeline run.
"""

import re
import threading
from datetime import datetime
from typing import Any, Dict, Literal, Optional

import httpx
import structlog
from pydantic import Field, ValidationError

from autotest_pipeline.models.base import CamelModel

logger = structlog.get_logger()

AlertLevel = Literal["debug", "info", "success", "warning", "error"]
AlertStatus = Literal["starting", "in_progress", "completed", "failed"]

DEFAULT_SOURCE = "pipeline-agent"


class AlertEvent(CamelModel):
    """Payload describing workflow and step lifecycle."""
    title: str = Field(min_length=1)
    subtitle: str = Field(min_length=1)
    level: AlertLevel = "info"
    source: str = DEFAULT_SOURCE
    project_id: Optional[str] = None
    run_id: Optional[str] = None
    step_id: Optional[str] = None
    status: Optional[AlertStatus] = None
    container_id: Optional[str] = None
    context_path: Optional[str] = None
    tool_call_count: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = None


_run_projects: Dict[str, str] = {}
_run_projects_lock = threading.Lock()


def associate_run_with_project(run_id: str, project_id: str) -> None:
    if run_id and project_id:
        with _run_projects_lock:
            _run_projects[run_id] = project_id


def get_project_id_for_run(run_id: Optional[str]) -> Optional[str]:
    if not run_id:
        return None
    with _run_projects_lock:
        return _run_projects.get(run_id)


def _join(main: str, detail: Optional[str] = None) -> str:
    return f"{main} — {detail}" if detail else main


def format_friendly_alert(title: Optional[str], subtitle: Optional[str]) -> str:
    """
    Turn a step title/subtitle pair into a short human-readable line.

    Unknown titles fall back to "title — subtitle".
    """
    raw_title = (title or "").strip()
    raw_subtitle = (subtitle or "").strip()
    t = raw_title.lower()

    if "docker setup completed" in t:
        match = re.search(r"\(([a-f0-9]{7,64})\)", raw_subtitle, re.I) or re.search(
            r"([a-f0-9]{12,64})", raw_subtitle, re.I
        )
        return f"Docker ready (container {match.group(1)[:12]})" if match else "Docker ready"
    if t == "docker setup":
        if re.search(r"building image", raw_subtitle, re.I):
            return "Setting up Docker — building image and starting container"
        return "Setting up Docker"
    if t == "cloning repository":
        return "Cloning repository into container"
    if t == "repository cloned":
        return "Repository cloned successfully"
    if t == "saving context to container":
        has_data = re.search(r"provided", raw_subtitle, re.I) is not None
        return f"Saving context to container — {'with data' if has_data else 'no data'}"
    if t == "context saved":
        match = re.search(r"Saved to\s+(.+)", raw_subtitle, re.I)
        return f"Context saved to {match.group(1).strip()}" if match else "Context saved"

    if t == "analyze repository completed":
        return _join("Repository analysis complete", re.sub(r"^Type:\s*", "type: ", raw_subtitle, flags=re.I).strip())
    if t == "analyze repository":
        return _join("Analyzing repository", raw_subtitle or "quick scan starting")
    if t == "analyze codebase completed":
        return _join("Codebase analysis complete", re.sub(r"^Frameworks:\s*", "frameworks: ", raw_subtitle, flags=re.I).strip())
    if t == "analyze codebase":
        return _join("Analyzing codebase", raw_subtitle or None)
    if t == "analyze build & deployment completed":
        return _join(
            "Build & deployment analysis complete",
            re.sub(r"^Build system:\s*", "build system: ", raw_subtitle, flags=re.I).strip(),
        )
    if t == "analyze build & deployment":
        return _join("Analyzing build & deployment", raw_subtitle or "DevOps scan starting")
    if t == "synthesize context completed":
        return "Context synthesized — executive summary generated"
    if t == "synthesize context":
        return _join("Synthesizing context", raw_subtitle or None)

    if t == "save unit test context":
        return _join("Saving unit test context", raw_subtitle or "writing agent.context.json")
    if t == "saved unit test context":
        msg = re.sub(r"^Path:\s*", "to ", raw_subtitle, flags=re.I).strip()
        if not re.match(r"^to\s+", msg, re.I):
            msg = f"to {msg}"
        return f"Unit test context saved {msg}"
    if t == "validate and summarize":
        return _join("Validating and summarizing", raw_subtitle or "final validation starting")
    if t == "validation completed":
        return _join("Validation complete", raw_subtitle or None)
    if t == "gather workflow start":
        return _join("Starting gather workflow", raw_subtitle or "planning and setup")
    if t == "gather workflow initialized":
        return _join("Gather workflow initialized", raw_subtitle or "plan logged")

    if t == "check saved plan":
        return _join("Checking for saved plan", raw_subtitle or None)
    if t == "saved plan found":
        return "Saved plan found — skipping planning"
    if t == "no saved plan":
        return "No saved plan — proceeding to plan"
    if t == "load context & plan":
        return _join("Planning test generation", raw_subtitle or "creating MVP plan")
    if t == "test generation completed":
        return _join("Test generation completed", raw_subtitle or "test file created")
    if t == "test generation failed":
        return _join("Test generation failed", raw_subtitle or None)
    if t == "finalize":
        return _join("Finalizing", raw_subtitle or "validation and recommendations")
    if t == "finalize completed":
        return _join("Finalized", raw_subtitle or None)

    if t.endswith("failed"):
        base = re.sub(r"\s*failed$", "", raw_title, flags=re.I).strip()
        return _join(f"Failed — {base}", raw_subtitle or None)

    if raw_title and raw_subtitle:
        return f"{raw_title} — {raw_subtitle}"
    return raw_title or raw_subtitle or "Update"


class AlertNotifier:
    """Posts alert events to the backend."""

    def __init__(self, alerts_url: str, timeout: float = 10.0):
        self.alerts_url = alerts_url
        self.client = httpx.Client(timeout=timeout)

    def send(self, payload: Dict[str, Any]) -> bool:
        """
        POST an alert event.

        Invalid payloads are still sent after a warning; transport errors
        and non-2xx responses are logged and swallowed.

        Returns:
            True when the backend accepted the event
        """
        try:
            body = AlertEvent.model_validate(payload).to_payload()
        except ValidationError as e:
            logger.warning("alert_payload_invalid", errors=e.errors(include_url=False))
            body = dict(payload)

        body["level"] = body.get("level") or "info"
        body["source"] = body.get("source") or DEFAULT_SOURCE
        body["timestamp"] = body.get("timestamp") or datetime.utcnow().isoformat() + "Z"
        body["message"] = format_friendly_alert(body.get("title"), body.get("subtitle"))
        body = {k: v for k, v in body.items() if v is not None}

        try:
            response = self.client.post(self.alerts_url, json=body)
        except httpx.HTTPError as e:
            logger.warning("alert_post_failed", url=self.alerts_url, error=str(e))
            return False

        if response.is_success:
            return True
        logger.warning("alert_rejected", status_code=response.status_code, detail=response.text[:300])
        return False

    def close(self):
        self.client.close()


_notifier: Optional[AlertNotifier] = None


def get_alert_notifier() -> AlertNotifier:
    """Get or create the global notifier from configuration."""
    global _notifier
    if _notifier is None:
        from autotest_pipeline.config import get_config

        _notifier = AlertNotifier(get_config().alerts_api_url)
    return _notifier


def send_alert_event(payload: Dict[str, Any]) -> bool:
    return get_alert_notifier().send(payload)


def notify_step_status(
    step_id: str,
    status: AlertStatus,
    run_id: Optional[str] = None,
    project_id: Optional[str] = None,
    container_id: Optional[str] = None,
    context_path: Optional[str] = None,
    tool_call_count: Optional[int] = None,
    level: Optional[AlertLevel] = None,
    title: Optional[str] = None,
    subtitle: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> bool:
    """Report a step lifecycle change, filling defaults from the step and status."""
    if level is None:
        level = "error" if status == "failed" else "success" if status == "completed" else "info"

    return send_alert_event({
        "title": title or f"[{step_id}] {status}",
        "subtitle": subtitle or f"Step {step_id} is {status}",
        "level": level,
        "source": DEFAULT_SOURCE,
        "projectId": project_id or get_project_id_for_run(run_id),
        "runId": run_id,
        "stepId": step_id,
        "status": status,
        "containerId": container_id,
        "contextPath": context_path,
        "toolCallCount": tool_call_count,
        "metadata": metadata,
    })
