"""
Quick Chat - a minimal streaming chat client for a hosted LLM API.

This package provides a chat endpoint that forwards conversations to the
model provider with three demo tools (weather, calculator, clock) and streams
the reply back, plus the client-side session state used by the chat UI.
"""

__version__ = "0.1.0"

from .agent import Agent, create_agent
from .errors import ErrorType, classify_error
from .session import ChatSession
from .tool_registry import ToolRegistry, callable_to_tool_schema

__all__ = [
    "Agent",
    "ChatSession",
    "ErrorType",
    "ToolRegistry",
    "callable_to_tool_schema",
    "classify_error",
    "create_agent",
]
