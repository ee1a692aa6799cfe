"""In-memory task event log shared by the agents of a process."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from autotest_pipeline.tools.base import ToolDefinition, object_schema

logger = structlog.get_logger()

TASK_STATUSES = ("started", "completed", "failed", "planning", "coding", "validating")


@dataclass
class TaskEvent:
    agent_id: str
    task_id: str
    task_name: str
    status: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)


class TaskLog:
    """Append-only list of task events; later entries win on status lookups."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: List[TaskEvent] = []

    def log(
        self,
        agent_id: str,
        task_id: str,
        task_name: str,
        status: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if status not in TASK_STATUSES:
            raise ValueError(f"Invalid task status: {status}")
        event = TaskEvent(agent_id, task_id, task_name, status, metadata=metadata or {})
        with self._lock:
            self._events.append(event)
            event_id = len(self._events) - 1

        logger.info(
            "task_event",
            agent_id=agent_id,
            task_id=task_id,
            task_name=task_name,
            status=status,
            metadata=metadata or None,
        )
        return {
            "success": True,
            "message": f"Task event logged: {agent_id}/{task_id} - {status}",
            "eventId": event_id,
            "timestamp": event.timestamp.isoformat() + "Z",
        }

    def agent_tasks(self, agent_id: str) -> List[TaskEvent]:
        with self._lock:
            return [e for e in self._events if e.agent_id == agent_id]

    def task_status(self, task_id: str) -> Optional[TaskEvent]:
        with self._lock:
            matching = [e for e in self._events if e.task_id == task_id]
        return matching[-1] if matching else None

    def active_tasks(self, agent_id: str) -> List[TaskEvent]:
        latest: Dict[str, TaskEvent] = {}
        for event in self.agent_tasks(agent_id):
            latest[event.task_id] = event
        return [e for e in latest.values() if e.status not in ("completed", "failed")]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
        logger.info("task_history_cleared")


task_log = TaskLog()


def get_agent_tasks(agent_id: str) -> List[TaskEvent]:
    return task_log.agent_tasks(agent_id)


def get_task_status(task_id: str) -> Optional[TaskEvent]:
    return task_log.task_status(task_id)


def get_active_tasks_for_agent(agent_id: str) -> List[TaskEvent]:
    return task_log.active_tasks(agent_id)


def clear_task_history() -> None:
    task_log.clear()


def task_logging_tool() -> ToolDefinition:
    def handler(args: Dict[str, Any]) -> Dict[str, Any]:
        return task_log.log(
            args.get("agentId", ""),
            args.get("taskId", ""),
            args.get("taskName", ""),
            args.get("status", ""),
            metadata=args.get("metadata"),
        )

    return ToolDefinition(
        name="task_logging",
        description="Log agent task events for tracking and coordination",
        parameters=object_schema(
            {
                "agentId": {"type": "string", "description": "Unique identifier for the agent"},
                "taskId": {"type": "string", "description": "Unique identifier for the task"},
                "taskName": {"type": "string", "description": "Human-readable task name"},
                "status": {"type": "string", "enum": list(TASK_STATUSES), "description": "Current task status"},
                "metadata": {"type": "object", "description": "Additional task metadata"},
            },
            required=("agentId", "taskId", "taskName", "status"),
        ),
        handler=handler,
    )
