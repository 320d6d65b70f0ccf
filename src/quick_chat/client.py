import json
import logging
from typing import AsyncIterator, List, Optional

import httpx

from .models import Message
from .stream import Chunk, StreamProtocolError, decode_line

logger = logging.getLogger(__name__)


class ChatClientError(Exception):
    """A chat request that failed before or while streaming.

    ``message`` is the raw response body for HTTP failures, which is what the
    UI matches its error categories against.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type


class HttpChatTransport:
    """Posts the conversation to the chat endpoint and decodes the streamed reply."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        api_path: str = "/api/chat",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self.api_path = api_path
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def stream(self, messages: List[Message]) -> AsyncIterator[Chunk]:
        payload = {
            "messages": [message.model_dump(mode="json", by_alias=True) for message in messages]
        }
        try:
            async with self.client.stream("POST", self.api_path, json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ChatClientError(
                        body or response.reason_phrase,
                        status_code=response.status_code,
                        error_type=_error_type(body),
                    )
                async for line in response.aiter_lines():
                    chunk = decode_line(line)
                    if chunk is not None:
                        yield chunk
        except httpx.HTTPError as e:
            logger.warning(f"Chat request failed: {e!r}")
            raise ChatClientError(str(e) or e.__class__.__name__) from e
        except StreamProtocolError as e:
            logger.warning(f"Unreadable chat stream: {e}")
            raise ChatClientError(str(e)) from e

    async def aclose(self) -> None:
        await self.client.aclose()


def _error_type(body: str) -> Optional[str]:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return None
    return data.get("type") if isinstance(data, dict) else None
