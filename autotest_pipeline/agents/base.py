"""
Prompted LLM agent with an iterative tool-use loop.

The agent sends its instructions and the task prompt, executes any tool
calls the model requests, feeds the results back, and repeats until the
model answers in plain text or the step budget runs out.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

import structlog
from pydantic import BaseModel

from autotest_pipeline.integrations.openai_client import OpenAIClient
from autotest_pipeline.tools.base import ToolDefinition
from autotest_pipeline.utils.json_extraction import parse_agent_json

logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

MAX_TOOL_RESULT_CHARS = 20000

FINAL_TURN_PROMPT = (
    "You have used all available tool turns. "
    "Produce your FINAL answer now using the information you have gathered. "
    "Follow the output format specified in the task instructions EXACTLY."
)


@dataclass
class AgentRun:
    """Final text of an agent conversation and how it got there."""
    text: str
    turns: int
    tool_calls: int
    duration: float


class PromptAgent:
    """A named LLM persona: model, instructions and bound tools."""

    def __init__(
        self,
        agent_id: str,
        name: str,
        instructions: str,
        model: str,
        client: OpenAIClient,
        tools: Optional[Sequence[ToolDefinition]] = None,
        max_tool_result_chars: int = MAX_TOOL_RESULT_CHARS,
    ):
        self.agent_id = agent_id
        self.name = name
        self.instructions = instructions
        self.model = model
        self.client = client
        self.tools = {t.name: t for t in tools or []}
        self.max_tool_result_chars = max_tool_result_chars

    def _run_tool(self, name: str, args: Dict[str, Any]) -> str:
        tool = self.tools.get(name)
        if tool is None:
            return f"Error: unknown tool '{name}'. Available tools: {', '.join(sorted(self.tools))}"
        try:
            output = tool.execute(args)
        except Exception as e:
            logger.warning("agent_tool_error", agent=self.agent_id, tool=name, error=str(e))
            return f"Tool error: {e}"
        if len(output) > self.max_tool_result_chars:
            output = output[: self.max_tool_result_chars] + "\n... [truncated]"
        return output

    def generate(self, prompt: str, max_steps: int = 50) -> AgentRun:
        """
        Run the conversation to a final text answer.

        Args:
            prompt: Task prompt for this call
            max_steps: Maximum model turns; tools are withheld on the last one

        Returns:
            AgentRun with the final text
        """
        start_time = time.time()
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": self.instructions},
            {"role": "user", "content": prompt},
        ]
        schemas = [t.to_openai_schema() for t in self.tools.values()]
        tool_calls_made = 0
        max_steps = max(1, max_steps)

        logger.debug("agent_generate_start", agent=self.agent_id, prompt_length=len(prompt), max_steps=max_steps)

        for turn in range(max_steps):
            force_final = turn >= max_steps - 1
            if force_final and schemas:
                messages.append({"role": "user", "content": FINAL_TURN_PROMPT})

            response = self.client.chat(
                model=self.model,
                messages=messages,
                tools=None if force_final else schemas,
            )

            if not response.tool_calls:
                duration = time.time() - start_time
                logger.debug(
                    "agent_generate_complete",
                    agent=self.agent_id,
                    turns=turn + 1,
                    tool_calls=tool_calls_made,
                    response_length=len(response.content),
                    duration=duration,
                )
                return AgentRun(text=response.content, turns=turn + 1, tool_calls=tool_calls_made, duration=duration)

            messages.append(response.assistant_message())
            for call in response.tool_calls:
                tool_calls_made += 1
                logger.debug("agent_tool_call", agent=self.agent_id, tool=call.name)
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": self._run_tool(call.name, call.parsed_arguments),
                })

        # Model kept requesting tools on the final, tool-less turn
        return AgentRun(text="", turns=max_steps, tool_calls=tool_calls_made, duration=time.time() - start_time)

    def generate_json(self, prompt: str, model: Optional[Type[ModelT]] = None, max_steps: int = 50):
        """Run the conversation and parse its answer as JSON, validated against `model`."""
        run = self.generate(prompt, max_steps=max_steps)
        return parse_agent_json(run.text or "{}", model)
