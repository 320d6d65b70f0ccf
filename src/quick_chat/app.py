import logging
import uuid
from pathlib import Path
from typing import AsyncIterator, Callable

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse, StreamingResponse

from .agent import RequestLoggerAdapter, create_agent
from .config import Settings
from .errors import ClassifiedError, classify_error, config_missing_error
from .models import ChatRequest
from .stream import Chunk, ErrorChunk, encode_chunk, with_timeout

load_dotenv()

app = FastAPI(title="Quick Chat")

# Get the templates directory (in the same package)
TEMPLATES_DIR = Path(__file__).parent / "templates"

logger = logging.getLogger(__name__)


def get_settings_loader() -> Callable[[], Settings]:
    return Settings.from_env


def get_agent_factory() -> Callable:
    return create_agent


def error_response(error: ClassifiedError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=error.body.model_dump(exclude_none=True),
    )


async def encode_stream(
    first: Chunk, chunks: AsyncIterator[Chunk], log: logging.LoggerAdapter
) -> AsyncIterator[str]:
    """Encode chunks as stream lines.

    Once the response has started its status can no longer change, so a
    failure from here on is classified and sent as an error line.
    """
    try:
        yield encode_chunk(first)
        async for chunk in chunks:
            yield encode_chunk(chunk)
    except Exception as e:
        log.error(f"Chat stream error: {e!r}")
        classified = classify_error(e)
        yield encode_chunk(ErrorChunk(classified.body.error))
    finally:
        await chunks.aclose()


@app.get("/")
async def get():
    return FileResponse(str(TEMPLATES_DIR / "index.html"))


@app.get("/healthz")
async def healthz():
    return {"ok": True}


@app.post("/api/chat")
async def chat(
    request: Request,
    load_settings: Callable[[], Settings] = Depends(get_settings_loader),
    agent_factory: Callable = Depends(get_agent_factory),
):
    request_id = uuid.uuid4().hex[:8]
    log = RequestLoggerAdapter(logger, request_id)

    try:
        settings = load_settings()
        chat_request = ChatRequest.model_validate(await request.json())

        if not settings.api_key:
            log.error("Chat API Error: API key not configured")
            return error_response(config_missing_error())

        agent = agent_factory(settings, request_id=request_id)
        chunks = with_timeout(agent.stream(chat_request.messages), settings.max_duration)

        # Pull the first chunk here so that failures before any output still
        # get a proper status code.
        try:
            first = await anext(chunks)
        except StopAsyncIteration:
            return StreamingResponse(iter(()), media_type="text/plain; charset=utf-8")
    except Exception as e:
        log.error(f"Chat API Error: {e!r}")
        return error_response(classify_error(e))

    return StreamingResponse(
        encode_stream(first, chunks, log), media_type="text/plain; charset=utf-8"
    )
