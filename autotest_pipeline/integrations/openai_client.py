"""
OpenAI-compatible chat client with health checks, retry logic, and structured responses.
"""

import json
import time
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
import structlog

logger = structlog.get_logger()


@dataclass
class ToolCall:
    """A function call requested by the model."""
    id: str
    name: str
    arguments: str

    @property
    def parsed_arguments(self) -> Dict[str, Any]:
        try:
            value = json.loads(self.arguments or "{}")
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}


@dataclass
class LLMResponse:
    """Structured response from a chat completion."""
    content: str
    model: str
    finish_reason: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None

    @property
    def parsed_json(self) -> Optional[Dict[str, Any]]:
        """Parse content as JSON if possible."""
        try:
            return json.loads(self.content)
        except json.JSONDecodeError:
            return None

    def assistant_message(self) -> Dict[str, Any]:
        """The message to append to the conversation history."""
        message: Dict[str, Any] = {"role": "assistant", "content": self.content or None}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        return message


class OpenAIClient:
    """Client for OpenAI-compatible chat completion endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: int = 300,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.Client(
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"} if api_key else {},
        )

    def health_check(self) -> bool:
        """
        Check if the endpoint is reachable with the configured key.

        Returns:
            bool: True if healthy, False otherwise
        """
        try:
            response = self.client.get(f"{self.base_url}/models")
            if response.status_code == 200:
                logger.info("llm_health_check_passed")
                return True
            logger.error("llm_health_check_failed", status_code=response.status_code)
            return False
        except Exception as e:
            logger.error("llm_health_check_exception", error=str(e))
            return False

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.RequestError),
    )
    def chat(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: Optional[float] = None,
        timeout: Optional[int] = None,
    ) -> LLMResponse:
        """
        Run one chat completion.

        Args:
            model: Model name
            messages: Conversation so far
            tools: OpenAI function schemas the model may call
            temperature: Sampling temperature, model default when None

        Returns:
            LLMResponse: Structured response

        Raises:
            httpx.RequestError: If request fails after retries
            httpx.HTTPStatusError: On a non-2xx response
        """
        payload: Dict[str, Any] = {"model": model, "messages": messages}
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        if temperature is not None:
            payload["temperature"] = temperature

        start_time = time.time()
        request_timeout = timeout if timeout is not None else self.timeout

        try:
            response = self.client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                timeout=request_timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "llm_http_error",
                status_code=e.response.status_code,
                detail=e.response.text[:500],
            )
            raise

        data = response.json()
        choice = (data.get("choices") or [{}])[0]
        message = choice.get("message") or {}
        usage = data.get("usage") or {}

        tool_calls = [
            ToolCall(
                id=call.get("id", ""),
                name=(call.get("function") or {}).get("name", ""),
                arguments=(call.get("function") or {}).get("arguments", "{}"),
            )
            for call in message.get("tool_calls") or []
        ]

        logger.debug(
            "llm_chat_success",
            model=model,
            duration=time.time() - start_time,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            tool_calls=len(tool_calls),
        )

        return LLMResponse(
            content=message.get("content") or "",
            model=data.get("model", model),
            finish_reason=choice.get("finish_reason"),
            tool_calls=tool_calls,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# Singleton instance
_openai_client: Optional[OpenAIClient] = None


def get_openai_client(
    api_key: str = "",
    base_url: str = "https://api.openai.com/v1",
    timeout: int = 300,
) -> OpenAIClient:
    """Get or create singleton chat client."""
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAIClient(api_key=api_key, base_url=base_url, timeout=timeout)
    return _openai_client
