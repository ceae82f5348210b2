"""Claude (Anthropic) LLM client with forced tool use for structured output."""

from dataclasses import dataclass
from typing import Any

import anthropic
import structlog

from herdbook.config import get_settings

logger = structlog.get_logger(__name__)


@dataclass
class ClaudeResponse:
    """Response from Claude API."""

    content: str
    tool_calls: list[dict[str, Any]]
    stop_reason: str
    usage: dict[str, int]


class ClaudeClient:
    """Async client for Anthropic's Claude API with tool use support."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        self._api_key = api_key or settings.anthropic_api_key.get_secret_value()
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature if temperature is not None else settings.llm_temperature

        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        self._logger = logger.bind(client="claude", model=self._model)

    def _convert_tools_to_anthropic_format(
        self, tools: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Convert our tool format (name, description, input_schema) to Anthropic's."""
        anthropic_tools = []
        for tool in tools:
            anthropic_tools.append({
                "name": tool["name"],
                "description": tool["description"],
                "input_schema": tool["input_schema"],
            })
        return anthropic_tools

    def _convert_messages_to_anthropic_format(
        self, messages: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Convert conversation history to Anthropic's message format."""
        anthropic_messages = []

        for msg in messages:
            if msg["role"] in ("user", "assistant"):
                anthropic_messages.append({
                    "role": msg["role"],
                    "content": msg["content"],
                })
            else:
                self._logger.warning("unsupported_message_role", role=msg["role"])

        return anthropic_messages

    def _parse_response(self, response: anthropic.types.Message) -> ClaudeResponse:
        """Parse Anthropic response into our format."""
        content = ""
        tool_calls = []

        for block in response.content:
            if block.type == "text":
                content = block.text
            elif block.type == "tool_use":
                tool_calls.append({
                    "id": block.id,
                    "name": block.name,
                    "arguments": block.input,
                })

        return ClaudeResponse(
            content=content,
            tool_calls=tool_calls,
            stop_reason=response.stop_reason or "end_turn",
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )

    async def generate(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        force_tool: str | None = None,
    ) -> ClaudeResponse:
        """Generate a response from Claude.

        Args:
            system_prompt: The system prompt.
            messages: Conversation history as list of message dicts.
            tools: Optional list of tool definitions.
            force_tool: Name of a tool the model must call; used to get
                output that matches the tool's input schema.

        Returns:
            ClaudeResponse with content, tool calls, and usage info.
        """
        self._logger.debug(
            "generating_response",
            message_count=len(messages),
            tool_count=len(tools) if tools else 0,
        )

        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system_prompt,
            "messages": self._convert_messages_to_anthropic_format(messages),
            "temperature": self._temperature,
        }

        if tools:
            kwargs["tools"] = self._convert_tools_to_anthropic_format(tools)
            if force_tool:
                kwargs["tool_choice"] = {"type": "tool", "name": force_tool}

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise

        parsed = self._parse_response(response)

        self._logger.info(
            "response_generated",
            stop_reason=parsed.stop_reason,
            tool_calls=len(parsed.tool_calls),
            input_tokens=parsed.usage["input_tokens"],
            output_tokens=parsed.usage["output_tokens"],
        )

        return parsed
