"""Line-based chat against a running Quick Chat server."""

import asyncio
import logging
import sys

from .client import HttpChatTransport
from .session import ChatSession
from .stream import TextDelta, ToolResultChunk
from .utils import format_tool_result

HELP = "Commands: /retry, /clear, /quit"


class ConsoleChat:
    def __init__(self, base_url: str, out=None):
        self.out = out or sys.stdout
        self.transport = HttpChatTransport(base_url=base_url)
        self.session = ChatSession(
            self.transport, on_notify=self._show_notification, on_chunk=self._show_chunk
        )
        self._tool_names = {}

    def _write(self, text: str) -> None:
        self.out.write(text)
        self.out.flush()

    def _show_notification(self, notification) -> None:
        self._write(f"\n! {notification.title}: {notification.description}\n")

    def _show_chunk(self, chunk) -> None:
        if isinstance(chunk, TextDelta):
            self._write(chunk.text)
        elif isinstance(chunk, ToolResultChunk):
            name = self._tool_name(chunk.tool_call_id)
            self._write(f"\n[Using {name}]\n{format_tool_result(chunk.result)}\n")

    def _tool_name(self, tool_call_id: str) -> str:
        for part in self.session.streaming_parts or ():
            invocation = getattr(part, "tool_invocation", None)
            if invocation is not None and invocation.tool_call_id == tool_call_id:
                return invocation.tool_name
        return "tool"

    async def handle_line(self, line: str) -> bool:
        """Process one line of input. Returns False when the user quits."""
        command = line.strip()
        if command == "/quit":
            return False
        if command == "/clear":
            self.session.clear()
            self._write("Conversation cleared.\n")
            return True
        if command == "/retry":
            if not await self.session.retry():
                self._write("Nothing to retry.\n")
            self._write("\n")
            return True

        self.session.handle_input_change(line)
        if self.session.cooldown > 0:
            self._write(f"{self.session.placeholder}\n")
            return True
        if await self.session.submit():
            self._write("\n")
        return True

    async def run(self) -> None:
        self._write(f"Quick Chat. {HELP}\n")
        try:
            while True:
                line = await asyncio.to_thread(input, "> ")
                if not await self.handle_line(line):
                    break
        except (EOFError, KeyboardInterrupt):
            pass
        finally:
            await self.session.close()
            await self.transport.aclose()


def run_console(base_url: str) -> None:
    logging.getLogger(__name__).info(f"Connecting to {base_url}")
    asyncio.run(ConsoleChat(base_url).run())
