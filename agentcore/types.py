"""
Core Types
==========

Plain data shared by the context pipeline, the tool bridge, provider
resolution and the agent loop.

Message shapes:
    Message            system / user / assistant turn, text or parts
    ToolCallMessage    assistant turn that requested tools
    ToolResultMessage  role "tool", answers one tool call id

RichMessage is the union of the three. The loop only ever receives plain
Messages; the two tool variants are produced while stepping and handed back
so callers can persist the full tool chain.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, Union

import httpx

Role = Literal["system", "user", "assistant"]
ToolActionStatus = Literal["running", "done", "error"]


@dataclass(frozen=True)
class TextPart:
    """A text segment of a multi-part message."""
    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class ImagePart:
    """
    An inline image.

    Attributes:
        data: Base64-encoded image bytes
        mime_type: e.g. "image/png"
    """
    data: str
    mime_type: str = "image/png"
    type: Literal["image"] = "image"


MessagePart = Union[TextPart, ImagePart]
MessageContent = Union[str, list[MessagePart]]


@dataclass(frozen=True)
class Message:
    """One conversational turn."""
    role: Role
    content: MessageContent


@dataclass(frozen=True)
class ToolCallInfo:
    """
    A single tool call requested by the model.

    invalid_arguments holds the raw argument text when the model sent
    something that did not parse as a JSON object; args is then empty.
    """
    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    invalid_arguments: str | None = None


@dataclass(frozen=True)
class ToolCallMessage:
    """Assistant turn carrying tool calls (and any text emitted alongside)."""
    content: MessageContent
    tool_calls: list[ToolCallInfo]
    role: Literal["assistant"] = "assistant"


@dataclass(frozen=True)
class ToolResultMessage:
    """Serialized result for one tool call."""
    tool_call_id: str
    content: str
    role: Literal["tool"] = "tool"


RichMessage = Union[Message, ToolCallMessage, ToolResultMessage]


@dataclass
class AgentToolAction:
    """
    Lifecycle record of one tool invocation.

    Created with status "running" when the tool starts and mutated exactly
    once to "done" or "error" when it finishes.
    """
    id: str
    name: str
    description: str
    tool_id: str
    args: dict[str, Any]
    status: ToolActionStatus = "running"
    result: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class CompletionExecution:
    """
    A fully resolved attempt target.

    Attributes:
        provider_id: Registry id of the provider
        model_id: Model to call
        token: Bearer credential (a placeholder on the proxy path)
        base_url: Endpoint override
        transport: httpx transport override (the proxy path injects auth here)
        profile_id: Auth profile that produced the credential, for failure reports
    """
    provider_id: str
    model_id: str
    token: str
    base_url: str | None = None
    transport: httpx.AsyncBaseTransport | None = None
    profile_id: str | None = None


@dataclass
class StepResult:
    """What a single model call returned."""
    text: str = ""
    finish_reason: str = "stop"
    tool_calls: list[ToolCallInfo] = field(default_factory=list)
    usage: dict[str, Any] | None = None


@dataclass
class AgentLoopResult:
    """
    Final outcome of one agent loop invocation.

    Attributes:
        text: Answer (or fallback prose) for the user
        steps: Model calls made by the successful attempt
        tool_calls: Tool invocations completed across the run
        finish_reason: Provider reason on success, "error" or "abort" otherwise
        rich_messages: Tool chain appended during the run, for persistence
    """
    text: str
    steps: int
    tool_calls: int
    finish_reason: str
    rich_messages: list[RichMessage] = field(default_factory=list)
