"""Tool definitions and the process-wide tool call counter."""

import json
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict


class ToolMetrics:
    """Counts tool invocations across every agent in the process."""

    def __init__(self):
        self._lock = threading.Lock()
        self._count = 0

    def increment(self) -> int:
        with self._lock:
            self._count += 1
            return self._count

    @property
    def call_count(self) -> int:
        with self._lock:
            return self._count

    def reset(self) -> None:
        with self._lock:
            self._count = 0


tool_metrics = ToolMetrics()


@dataclass
class ToolDefinition:
    """A single tool an agent can invoke.

    Attributes:
        name: Unique tool identifier used in function-calling schemas.
        description: Purpose shown to the LLM.
        parameters: JSON Schema describing the arguments.
        handler: Callable(args_dict) returning any JSON-serializable value.
    """

    name: str
    description: str
    parameters: Dict[str, Any]
    handler: Callable[[Dict[str, Any]], Any]

    def to_openai_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def execute(self, args: Dict[str, Any]) -> str:
        """Run the handler and render its result as text for the conversation."""
        result = self.handler(args)
        if isinstance(result, str):
            return result
        return json.dumps(result, default=str)


def object_schema(properties: Dict[str, Any], required=()) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": list(required)}
