"""
OpenAI-compatible ChatModel
===========================

Every built-in provider speaks the chat-completions wire format (natively or
through an OpenAI-compatible endpoint), so one client covers them all.

The execution's httpx transport, when present, is handed to the SDK through
an httpx.AsyncClient. That is how the token-mode proxy injects its headers
without the SDK knowing about it.
"""

import json
import re
from typing import Any

import httpx
from openai import AsyncOpenAI

from agentcore.providers.contracts import ProviderDefinition
from agentcore.types import (
    CompletionExecution,
    ImagePart,
    Message,
    MessageContent,
    RichMessage,
    StepResult,
    ToolCallInfo,
    ToolCallMessage,
    ToolResultMessage,
)
from agentcore.utils.logger import Logger

logger = Logger("OpenAIModel")

# Reasoning models (o3/o4, deepseek-reasoner, grok-*-reasoning) reject temperature
_REASONING_MODEL_RE = re.compile(r"\b(reasoning|reasoner)\b|^o[3-9](-|$)")


def is_reasoning_model(model_id: str) -> bool:
    return bool(_REASONING_MODEL_RE.search(model_id))


def _content_to_openai(content: MessageContent) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content
    parts: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, ImagePart):
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{part.mime_type};base64,{part.data}"},
            })
        else:
            parts.append({"type": "text", "text": part.text})
    return parts


def to_openai_messages(messages: list[RichMessage]) -> list[dict[str, Any]]:
    """
    Convert rich messages to chat-completions message dicts.

    Args:
        messages: Conversation including tool calls and results

    Returns:
        List of message dicts in OpenAI's expected format
    """
    payload: list[dict[str, Any]] = []
    for message in messages:
        if isinstance(message, ToolCallMessage):
            content = _content_to_openai(message.content)
            payload.append({
                "role": "assistant",
                "content": content or None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": call.invalid_arguments or json.dumps(call.args),
                        },
                    }
                    for call in message.tool_calls
                ],
            })
        elif isinstance(message, ToolResultMessage):
            payload.append({
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content,
            })
        elif isinstance(message, Message):
            payload.append({"role": message.role, "content": _content_to_openai(message.content)})
    return payload


def _parse_tool_call(tool_call: Any) -> ToolCallInfo:
    raw = tool_call.function.arguments or "{}"
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        logger.warn("Model sent unparseable tool arguments", {"tool": tool_call.function.name})
        return ToolCallInfo(id=tool_call.id, name=tool_call.function.name, invalid_arguments=raw)

    if not isinstance(args, dict):
        return ToolCallInfo(id=tool_call.id, name=tool_call.function.name, invalid_arguments=raw)
    return ToolCallInfo(id=tool_call.id, name=tool_call.function.name, args=args)


def parse_completion(response: Any) -> StepResult:
    """
    Convert a chat completion into a StepResult.

    Args:
        response: The OpenAI chat completion response

    Returns:
        StepResult with text, finish reason, tool calls and usage
    """
    if not response.choices:
        return StepResult(text="", finish_reason="unknown")

    choice = response.choices[0]
    message = choice.message
    tool_calls = [_parse_tool_call(tc) for tc in (message.tool_calls or [])]
    usage = response.usage.model_dump() if getattr(response, "usage", None) else None

    return StepResult(
        text=message.content or "",
        finish_reason=choice.finish_reason or "unknown",
        tool_calls=tool_calls,
        usage=usage,
    )


class OpenAIChatModel:
    """
    ChatModel over the OpenAI SDK for one resolved execution.

    Example:
        model = OpenAIChatModel(execution, provider)
        step = await model.complete(messages, tools, max_tokens=1024)
        await model.aclose()
    """

    def __init__(self, execution: CompletionExecution, provider: ProviderDefinition):
        self.model = execution.model_id
        self.provider = provider

        http_client = None
        if execution.transport is not None:
            http_client = httpx.AsyncClient(transport=execution.transport)

        # Retries are the loop's job (failover), not the SDK's
        self.client = AsyncOpenAI(
            api_key=execution.token,
            base_url=execution.base_url or provider.base_url,
            http_client=http_client,
            max_retries=0,
        )

    async def complete(
        self,
        messages: list[RichMessage],
        tools: list[dict[str, Any]] | None,
        *,
        max_tokens: int | None = None
    ) -> StepResult:
        """Make one chat-completions call."""
        reasoning = is_reasoning_model(self.model)
        request: dict[str, Any] = {
            "model": self.model,
            "messages": to_openai_messages(messages),
        }

        limit = max_tokens or self.provider.max_tokens
        if reasoning:
            request["max_completion_tokens"] = limit
        else:
            request["max_tokens"] = limit
            request["temperature"] = self.provider.temperature

        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        response = await self.client.chat.completions.create(**request)
        return parse_completion(response)

    async def aclose(self) -> None:
        await self.client.close()


def openai_transport(execution: CompletionExecution, provider: ProviderDefinition) -> OpenAIChatModel:
    """Transport factory used by every built-in provider."""
    return OpenAIChatModel(execution, provider)
