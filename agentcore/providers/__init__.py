"""
Providers
=========

Credential and provider plumbing for the agent loop:
- contracts: Protocols and data the loop consumes
- resolution: request -> ordered CompletionExecution candidates
- registry: provider definitions with context limits and transports
- auth_router: in-memory reference AuthRouter
- openai_model: OpenAI-compatible ChatModel
"""

from agentcore.providers.auth_router import AuthProfileRouter
from agentcore.providers.contracts import (
    AuthProfile,
    AuthRequest,
    AuthResolution,
    AuthRouter,
    ChatModel,
    FailureReport,
    ProviderDefinition,
    ProviderLookup,
    ProviderModel,
    ProxyResolution,
    ProxyResolver,
)
from agentcore.providers.registry import ProviderRegistry, register_builtin_providers
from agentcore.providers.resolution import (
    ProxyAuthTransport,
    ResolutionDeps,
    ResolveRequest,
    resolve_executions,
)

__all__ = [
    "AuthProfile",
    "AuthRequest",
    "AuthResolution",
    "AuthRouter",
    "AuthProfileRouter",
    "ChatModel",
    "FailureReport",
    "ProviderDefinition",
    "ProviderLookup",
    "ProviderModel",
    "ProviderRegistry",
    "ProxyAuthTransport",
    "ProxyResolution",
    "ProxyResolver",
    "ResolutionDeps",
    "ResolveRequest",
    "register_builtin_providers",
    "resolve_executions",
]
