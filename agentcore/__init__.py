"""
AgentCore - Multi-Provider Agent Loop
=====================================

The core of a conversational agent: a multi-step loop that calls a model,
runs the tools it asks for, and fails over across providers and
credentials.

This package provides:
- Agent loop with failover, rate-limit skipping and cancellation
- Context pipeline that keeps conversations inside a token budget
- Provider resolution, including the token-mode proxy path
- Tool catalog and the bridge that exposes it to the model
"""

__version__ = "1.0.0"
