"""LLM client implementations for Herdbook."""

from herdbook.clients.claude import ClaudeClient, ClaudeResponse

__all__ = ["ClaudeClient", "ClaudeResponse"]
