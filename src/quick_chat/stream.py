"""
Response chunks and their line encoding.

Each chunk travels as one line of the form ``<code>:<json>``. The endpoint
encodes the chunks produced by the agent, and clients decode them back into
the same chunk objects.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Dict, NamedTuple, Optional, Union


class TextDelta(NamedTuple):
    text: str


class ToolCallChunk(NamedTuple):
    tool_call_id: str
    tool_name: str
    args: Dict[str, Any]


class ToolResultChunk(NamedTuple):
    tool_call_id: str
    result: Any


class ErrorChunk(NamedTuple):
    message: str


class StepFinishChunk(NamedTuple):
    finish_reason: str
    usage: Optional[Dict[str, int]] = None
    is_continued: bool = False


class FinishChunk(NamedTuple):
    finish_reason: str
    usage: Optional[Dict[str, int]] = None


Chunk = Union[
    TextDelta, ToolCallChunk, ToolResultChunk, ErrorChunk, StepFinishChunk, FinishChunk
]


class StreamProtocolError(ValueError):
    """Raised when a stream line cannot be decoded."""


def _usage_payload(usage: Optional[Dict[str, int]]) -> Dict[str, int]:
    usage = usage or {}
    return {
        "promptTokens": usage.get("promptTokens", 0),
        "completionTokens": usage.get("completionTokens", 0),
    }


def encode_chunk(chunk: Chunk) -> str:
    """Encode a chunk as a single newline-terminated stream line."""
    if isinstance(chunk, TextDelta):
        code, payload = "0", chunk.text
    elif isinstance(chunk, ToolCallChunk):
        code, payload = "9", {
            "toolCallId": chunk.tool_call_id,
            "toolName": chunk.tool_name,
            "args": chunk.args,
        }
    elif isinstance(chunk, ToolResultChunk):
        code, payload = "a", {"toolCallId": chunk.tool_call_id, "result": chunk.result}
    elif isinstance(chunk, ErrorChunk):
        code, payload = "3", chunk.message
    elif isinstance(chunk, StepFinishChunk):
        code, payload = "e", {
            "finishReason": chunk.finish_reason,
            "usage": _usage_payload(chunk.usage),
            "isContinued": chunk.is_continued,
        }
    elif isinstance(chunk, FinishChunk):
        code, payload = "d", {
            "finishReason": chunk.finish_reason,
            "usage": _usage_payload(chunk.usage),
        }
    else:
        raise TypeError(f"Unsupported chunk type: {type(chunk).__name__}")
    return f"{code}:{json.dumps(payload, ensure_ascii=False)}\n"


def decode_line(line: str) -> Optional[Chunk]:
    """Decode one stream line. Blank lines and unknown codes yield ``None``."""
    line = line.strip()
    if not line:
        return None

    code, sep, raw = line.partition(":")
    if not sep:
        raise StreamProtocolError(f"Malformed stream line: {line!r}")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StreamProtocolError(f"Malformed stream payload: {line!r}") from e

    try:
        return _decode_payload(code, payload)
    except (KeyError, TypeError, AttributeError) as e:
        raise StreamProtocolError(f"Malformed stream payload: {line!r}") from e


def _decode_payload(code: str, payload) -> Optional[Chunk]:
    if code in ("0", "3"):
        if not isinstance(payload, str):
            raise TypeError(f"expected a string, got {type(payload).__name__}")
        return TextDelta(payload) if code == "0" else ErrorChunk(payload)
    if code == "9":
        args = payload.get("args") or {}
        if not isinstance(args, dict):
            raise TypeError(f"expected an object, got {type(args).__name__}")
        return ToolCallChunk(_string(payload["toolCallId"]), _string(payload["toolName"]), args)
    if code == "a":
        return ToolResultChunk(_string(payload["toolCallId"]), payload.get("result"))
    if code == "e":
        return StepFinishChunk(
            payload.get("finishReason", "unknown"),
            payload.get("usage"),
            payload.get("isContinued", False),
        )
    if code == "d":
        return FinishChunk(payload.get("finishReason", "unknown"), payload.get("usage"))
    return None


def _string(value) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value


async def with_timeout(stream: AsyncIterator[Chunk], seconds: float) -> AsyncIterator[Chunk]:
    """Relay ``stream`` until ``seconds`` of wall-clock time have passed.

    The budget covers the whole stream, not each chunk. When it runs out the
    underlying stream is closed and ``TimeoutError`` is raised.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + seconds
    try:
        while True:
            remaining = deadline - loop.time()
            try:
                if remaining <= 0:
                    raise asyncio.TimeoutError
                chunk = await asyncio.wait_for(anext(stream), remaining)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError:
                raise TimeoutError(f"Response timed out after {seconds:g}s") from None
            yield chunk
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()
