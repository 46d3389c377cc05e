"""
Reasoning service client: chat completions with function calling.
"""
import json
from typing import Any, Dict, List, Optional

import openai
import structlog
from pydantic import BaseModel, Field

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.exceptions import (
    ReasoningServiceError,
    ReasoningServiceRateLimitError,
    ReasoningServiceTimeoutError,
)
from fleetdesk.core.retry import create_async_retry_decorator, get_reasoning_retry_config

logger = structlog.get_logger(__name__)

_retry = create_async_retry_decorator(get_reasoning_retry_config(), service_name="Reasoning Service")


class RequestedToolCall(BaseModel):
    id: str
    name: str
    raw_arguments: str = "{}"

    def arguments(self) -> Dict[str, Any]:
        """
        Decoded arguments.

        Raises:
            ValueError: If the arguments are not a JSON object
        """
        decoded = json.loads(self.raw_arguments or "{}")
        if not isinstance(decoded, dict):
            raise ValueError("Tool arguments must be a JSON object")
        return decoded


class ReasoningReply(BaseModel):
    """Either final text, or tool calls to run before asking again."""
    text: Optional[str] = None
    tool_calls: List[RequestedToolCall] = Field(default_factory=list)
    tokens_used: int = 0

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)

    def as_assistant_message(self) -> Dict[str, Any]:
        """The assistant turn that must precede tool results in the next request."""
        message: Dict[str, Any] = {"role": "assistant", "content": self.text}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.raw_arguments},
                }
                for call in self.tool_calls
            ]
        return message


class ReasoningClient:
    """Thin wrapper around ``AsyncOpenAI`` chat completions."""

    def __init__(self, client: Optional[openai.AsyncOpenAI] = None, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.client = client or openai.AsyncOpenAI(
            api_key=settings.openai_api_key, timeout=settings.openai_timeout
        )
        self.model = settings.openai_model
        self.temperature = settings.openai_temperature
        self.max_tokens = settings.openai_max_tokens

    @_retry
    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "auto",
    ) -> ReasoningReply:
        """
        Submit one request.

        Raises:
            ReasoningServiceTimeoutError: If the API call times out
            ReasoningServiceRateLimitError: If rate limited
            ReasoningServiceError: For any other failure
        """
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = tool_choice

        try:
            response = await self.client.chat.completions.create(**request)

        except openai.RateLimitError as e:
            logger.error("Reasoning service rate limit exceeded", error=str(e))
            raise ReasoningServiceRateLimitError(f"Rate limit exceeded: {str(e)}")

        except openai.APITimeoutError as e:
            logger.error("Reasoning service timeout", error=str(e))
            raise ReasoningServiceTimeoutError(f"API timeout: {str(e)}")

        except openai.APIError as e:
            logger.error("Reasoning service API error", error=str(e))
            raise ReasoningServiceError(f"API error: {str(e)}")

        choice = response.choices[0].message
        tool_calls = [
            RequestedToolCall(id=call.id, name=call.function.name, raw_arguments=call.function.arguments or "{}")
            for call in (choice.tool_calls or [])
        ]
        tokens_used = response.usage.total_tokens if response.usage else 0

        logger.info(
            "Reasoning reply received",
            model=self.model,
            tool_calls=[call.name for call in tool_calls],
            tokens_used=tokens_used,
        )
        return ReasoningReply(
            text=(choice.content or "").strip() or None,
            tool_calls=tool_calls,
            tokens_used=tokens_used,
        )

    async def summarize(self, transcript: str, prior_summary: Optional[str] = None) -> str:
        """Condense older conversation turns into a short running summary."""
        prompt = (
            "Summarize this conversation between a fleet business owner and their assistant "
            "in at most 6 short bullet points. Keep names, ids, amounts and open requests."
        )
        if prior_summary:
            prompt += f"\n\nEarlier summary:\n{prior_summary}"
        reply = await self.complete([
            {"role": "system", "content": prompt},
            {"role": "user", "content": transcript},
        ])
        if not reply.text:
            raise ReasoningServiceError("Empty summary")
        return reply.text
