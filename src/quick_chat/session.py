"""
Client-side chat session state.

``ChatSession`` holds everything the chat view needs for one conversation:
the history, the draft input, loading and typing flags, the last error, the
notifications raised so far and the submission cooldown. It talks to the
chat endpoint through a transport whose ``stream(messages)`` yields decoded
response chunks (see ``HttpChatTransport``).

Nothing is persisted; ``clear()`` throws the whole state away.
"""

import asyncio
import inspect
import logging
from contextlib import aclosing
from typing import Callable, List, NamedTuple, Optional

from .client import ChatClientError
from .models import Message, TextPart, ToolInvocation, ToolInvocationPart
from .stream import ErrorChunk, TextDelta, ToolCallChunk, ToolResultChunk

logger = logging.getLogger(__name__)

COOLDOWN_SECONDS = 3
TYPING_INDICATOR_SECONDS = 1.0


class Notification(NamedTuple):
    title: str
    description: str
    variant: str = "default"


ERROR_NOTIFICATIONS = {
    "quota": Notification(
        "Quota Exceeded",
        "Your API quota has been exceeded. Please check your billing plan.",
        "destructive",
    ),
    "rate_limit": Notification(
        "Rate Limited",
        "Please wait a moment before sending another message.",
        "destructive",
    ),
    "generic": Notification(
        "Error", "Something went wrong. Please try again.", "destructive"
    ),
}

ERROR_BANNERS = {
    "quota": "API quota exceeded. Please check your billing plan or try again later.",
    "rate_limit": "Rate limit exceeded. Please wait before sending another message.",
    "generic": "Unable to connect to AI service. Please check your internet connection and try again.",
}

COPIED = Notification("Copied to clipboard", "Message copied successfully")
COPY_FAILED = Notification(
    "Failed to copy", "Could not copy message to clipboard", "destructive"
)


def classify_client_error(message: str) -> str:
    """Pick the error category shown to the user (case-sensitive match)."""
    if "quota" in message:
        return "quota"
    if "rate limit" in message:
        return "rate_limit"
    return "generic"


class ChatSession:
    def __init__(
        self,
        transport,
        clipboard: Optional[Callable] = None,
        on_notify: Optional[Callable[[Notification], None]] = None,
        on_chunk: Optional[Callable] = None,
        cooldown_seconds: int = COOLDOWN_SECONDS,
        typing_seconds: float = TYPING_INDICATOR_SECONDS,
        sleep=asyncio.sleep,
    ):
        self.transport = transport
        self.clipboard = clipboard
        self.on_notify = on_notify
        self.on_chunk = on_chunk
        self.cooldown_seconds = cooldown_seconds
        self.typing_seconds = typing_seconds
        self._sleep = sleep

        self.messages: List[Message] = []
        self.input = ""
        self.is_loading = False
        self.is_typing = False
        self.error: Optional[ChatClientError] = None
        self.cooldown = 0
        self.notifications: List[Notification] = []
        self.streaming_parts: Optional[list] = None

        self._cooldown_task: Optional[asyncio.Task] = None
        self._typing_task: Optional[asyncio.Task] = None
        self._turn_task: Optional[asyncio.Task] = None

    # -- derived view state -------------------------------------------------

    @property
    def can_submit(self) -> bool:
        return bool(self.input.strip()) and self.cooldown == 0 and not self.is_loading

    @property
    def show_typing_indicator(self) -> bool:
        return self.is_loading or self.is_typing

    @property
    def placeholder(self) -> str:
        if self.cooldown > 0:
            return f"Wait {self.cooldown}s before sending..."
        return "Type your message here..."

    @property
    def error_banner(self) -> Optional[str]:
        if self.error is None:
            return None
        return ERROR_BANNERS[classify_client_error(self.error.message)]

    @property
    def display_messages(self) -> List[Message]:
        """History plus the assistant reply that is still streaming, if any."""
        if not self.streaming_parts:
            return list(self.messages)
        pending = Message(role="assistant", parts=tuple(self.streaming_parts))
        return [*self.messages, pending]

    # -- actions ------------------------------------------------------------

    def handle_input_change(self, value: str) -> None:
        self.input = value

    async def submit(self) -> bool:
        """Send the draft. Returns False when the submission was rejected."""
        if not self.input.strip() or self.cooldown > 0 or self.is_loading:
            return False

        content = self.input
        self.messages.append(
            Message(role="user", content=content, parts=(TextPart(text=content),))
        )
        self.input = ""
        self.is_typing = True
        self.start_cooldown(self.cooldown_seconds)
        self._typing_task = self._replace_task(self._typing_task, self._hide_typing())

        await self._run_turn()
        return True

    async def retry(self) -> bool:
        """Re-issue the last turn, dropping a trailing assistant reply."""
        if not self.messages or self.is_loading:
            return False
        if self.messages[-1].role == "assistant":
            self.messages.pop()
        await self._run_turn()
        return True

    def stop(self) -> None:
        """Abort the reply that is streaming; what arrived so far is kept."""
        if self._turn_task is not None:
            self._turn_task.cancel()

    async def copy_to_clipboard(self, text: str) -> bool:
        if self.clipboard is None:
            logger.warning("Clipboard write failed: no clipboard available")
            self._notify(COPY_FAILED)
            return False
        try:
            result = self.clipboard(text)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Clipboard write failed: {e!r}")
            self._notify(COPY_FAILED)
            return False
        self._notify(COPIED)
        return True

    async def copy_message(self, message_id: str) -> bool:
        for message in self.messages:
            if message.id == message_id:
                return await self.copy_to_clipboard(message.text)
        raise KeyError(f"Message '{message_id}' not found")

    def clear(self) -> None:
        """Discard all conversation state, as a page reload would."""
        for task in (self._cooldown_task, self._typing_task, self._turn_task):
            if task is not None:
                task.cancel()
        self._cooldown_task = self._typing_task = self._turn_task = None

        self.messages = []
        self.input = ""
        self.is_loading = False
        self.is_typing = False
        self.error = None
        self.cooldown = 0
        self.notifications = []
        self.streaming_parts = None

    async def close(self) -> None:
        tasks = [
            task
            for task in (self._cooldown_task, self._typing_task, self._turn_task)
            if task is not None and not task.done()
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # -- timers -------------------------------------------------------------

    def start_cooldown(self, seconds: int) -> None:
        self.cooldown = seconds
        self._cooldown_task = self._replace_task(self._cooldown_task, self._count_down())

    async def _count_down(self):
        while self.cooldown > 0:
            await self._sleep(1)
            self.cooldown -= 1

    async def _hide_typing(self):
        await self._sleep(self.typing_seconds)
        self.is_typing = False

    def _replace_task(self, task, coro) -> asyncio.Task:
        if task is not None:
            task.cancel()
        return asyncio.create_task(coro)

    # -- streaming ----------------------------------------------------------

    async def _run_turn(self) -> None:
        parts: list = []
        self.streaming_parts = parts
        self.is_loading = True
        self.error = None

        self._turn_task = asyncio.create_task(self._stream_reply(list(self.messages), parts))
        try:
            await self._turn_task
        except asyncio.CancelledError:
            if asyncio.current_task().cancelling():
                raise
            logger.info("Response stopped")
        except ChatClientError as e:
            self._handle_error(e)
        finally:
            # clear() may have reset the session while this turn was running
            if self.streaming_parts is parts:
                self._turn_task = None
                self.streaming_parts = None
                self.is_loading = False
                if parts:
                    self.messages.append(Message(role="assistant", parts=tuple(parts)))

    async def _stream_reply(self, history: List[Message], parts: list) -> None:
        async with aclosing(self.transport.stream(history)) as chunks:
            async for chunk in chunks:
                self._apply_chunk(parts, chunk)
                if self.on_chunk is not None:
                    self.on_chunk(chunk)

    def _apply_chunk(self, parts: list, chunk) -> None:
        if isinstance(chunk, TextDelta):
            if parts and isinstance(parts[-1], TextPart):
                parts[-1] = TextPart(text=parts[-1].text + chunk.text)
            else:
                parts.append(TextPart(text=chunk.text))

        elif isinstance(chunk, ToolCallChunk):
            parts.append(
                ToolInvocationPart(
                    tool_invocation=ToolInvocation(
                        tool_call_id=chunk.tool_call_id,
                        tool_name=chunk.tool_name,
                        args=chunk.args,
                    )
                )
            )

        elif isinstance(chunk, ToolResultChunk):
            for i, part in enumerate(parts):
                if (
                    isinstance(part, ToolInvocationPart)
                    and part.tool_invocation.tool_call_id == chunk.tool_call_id
                ):
                    invocation = part.tool_invocation.model_copy(
                        update={"state": "result", "result": chunk.result}
                    )
                    parts[i] = ToolInvocationPart(tool_invocation=invocation)
                    break

        elif isinstance(chunk, ErrorChunk):
            raise ChatClientError(chunk.message)

    def _handle_error(self, error: ChatClientError) -> None:
        logger.error(f"Chat error: {error.message}")
        self.error = error
        self._notify(ERROR_NOTIFICATIONS[classify_client_error(error.message)])

    def _notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if self.on_notify is not None:
            self.on_notify(notification)
