"""
Model client for OpenAI-compatible chat completion endpoints.

Works with the OpenAI API and with local servers implementing the same
interface (Ollama's /v1, vLLM, LM Studio, ...).
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import openai
from openai import AsyncOpenAI

from mcp_bridge.errors import ModelError
from mcp_bridge.models import ToolCallRequest

logger = logging.getLogger(__name__)


@dataclass
class LLMConfig:
    """Connection and sampling settings for the completion endpoint."""
    model: str = "qwen2.5-coder:7b-instruct"
    base_url: str = "http://localhost:11434/v1"
    api_key: str | None = None
    temperature: float = 0.7
    max_tokens: int = 1000
    request_timeout: float = 120.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LLMConfig":
        defaults = cls()
        return cls(
            model=data.get("model", defaults.model),
            base_url=data.get("baseUrl", data.get("base_url", defaults.base_url)),
            api_key=data.get("apiKey", data.get("api_key", defaults.api_key)),
            temperature=float(data.get("temperature", defaults.temperature)),
            max_tokens=int(data.get("maxTokens", data.get("max_tokens", defaults.max_tokens))),
            request_timeout=float(
                data.get("requestTimeout", data.get("request_timeout", defaults.request_timeout))
            ),
        )


@dataclass
class ModelResponse:
    """Either final text or a batch of requested tool calls."""
    content: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: str | None = None

    @property
    def is_tool_call(self) -> bool:
        return bool(self.tool_calls)


class ModelClient(ABC):
    """Anything that can complete a conversation with optional tools."""

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelResponse:
        ...


class OpenAIChatClient(ModelClient):
    """
    ModelClient backed by the Chat Completions API.

    A response counts as a tool call whenever it carries tool calls; some
    local servers report finish_reason "stop" even then.
    """

    def __init__(self, config: LLMConfig, client: AsyncOpenAI | None = None):
        self.config = config
        logger.debug(f"Initializing OpenAI client with base_url: {config.base_url}")
        self._client = client or AsyncOpenAI(
            api_key=config.api_key or "dummy-key",
            base_url=config.base_url,
            timeout=config.request_timeout,
        )

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> ModelResponse:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        if tools:
            kwargs["tools"] = tools

        logger.debug(f"Sending {len(messages)} messages and {len(tools or [])} tools to {self.config.model}")
        try:
            completion = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                self.config.request_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ModelError(
                f"Completion request timed out after {self.config.request_timeout:g} seconds"
            ) from e
        except openai.APIStatusError as e:
            logger.error(f"OpenAI API error: status={e.status_code} message={e.message}")
            raise ModelError(f"Completion request failed ({e.status_code}): {e.message}") from e
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise ModelError(f"Completion request failed: {e}") from e

        if not completion.choices:
            raise ModelError("Completion response contained no choices")

        choice = completion.choices[0]
        message = choice.message
        tool_calls = [
            ToolCallRequest(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "",
            )
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
        response = ModelResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason,
        )
        logger.debug(
            f"LLM response processed, finish_reason={choice.finish_reason}, "
            f"tool_calls={[c.name for c in tool_calls]}"
        )
        return response
