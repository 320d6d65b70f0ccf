"""Utility functions for rendering chat messages as text."""

import json

from .models import Message, TextPart, ToolInvocationPart


def format_tool_result(result) -> str:
    """Dump a tool result as indented JSON, the way the UI shows it."""
    return json.dumps(result, indent=2, ensure_ascii=False)


def render_part(part) -> str:
    """Render a single message part as plain text.

    Text is returned unchanged so whitespace survives; tool invocations show
    the tool name followed by their result.
    """
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, ToolInvocationPart):
        invocation = part.tool_invocation
        header = f"[Using {invocation.tool_name}]"
        if invocation.state != "result":
            return header
        return f"{header}\n{format_tool_result(invocation.result)}"
    return ""


def render_message(message: Message) -> str:
    return "\n".join(render_part(part) for part in message.iter_parts())
