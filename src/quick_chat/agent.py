import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

from .config import Settings
from .errors import UpstreamError
from .models import Message, TextPart, ToolInvocationPart
from .plugins.calculator_plugin import CalculatorPlugin
from .plugins.clock_plugin import ClockPlugin
from .plugins.weather_plugin import WeatherPlugin
from .stream import (
    Chunk,
    FinishChunk,
    StepFinishChunk,
    TextDelta,
    ToolCallChunk,
    ToolResultChunk,
)
from .tool_registry import ToolExecution, ToolRegistry

logger = logging.getLogger(__name__)


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that automatically injects request_id into structured logs."""

    def __init__(self, logger, request_id):
        self.request_id = request_id
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        if "extra" in kwargs and "structured" in kwargs["extra"]:
            kwargs["extra"]["structured"]["request_id"] = self.request_id
        return f"[{self.request_id}] {msg}", kwargs


class Environment:
    """Environment owns the tools the model may call."""

    def __init__(self, plugins: list, logger: logging.LoggerAdapter):
        self.plugins = plugins
        self.logger = logger

        self.tool_registry = ToolRegistry()
        for plugin in plugins:
            if hasattr(plugin, "hook_provide_tools"):
                for method in plugin.hook_provide_tools():
                    self.tool_registry.register_callable(method)

    def tool_schemas(self) -> list:
        return self.tool_registry.get_schemas()

    def log_item(self, item_type: str, extra: dict):
        structured = {"log_type": item_type, **extra}
        self.logger.info(
            f"{item_type.replace('_', ' ').title()} received", extra={"structured": structured}
        )

    async def execute(self, item) -> ToolExecution:
        self.log_item(
            "tool_call",
            {"tool_name": item.name, "arguments": item.arguments, "call_id": item.call_id},
        )
        execution = await self.tool_registry.execute_function_call(item)
        self.log_item("tool_result", {"tool_name": item.name, "result": execution.result})
        return execution


def messages_to_input(messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert chat history into Responses API input items.

    Completed tool invocations of earlier assistant turns are replayed as
    ``function_call`` / ``function_call_output`` pairs so the model sees
    what it already looked up.
    """
    items: List[Dict[str, Any]] = []
    for message in messages:
        if message.role != "assistant":
            if message.text:
                items.append({"role": message.role, "content": message.text})
            continue

        pending_text: List[str] = []
        for part in message.iter_parts():
            if isinstance(part, TextPart):
                pending_text.append(part.text)
            elif isinstance(part, ToolInvocationPart) and part.tool_invocation.state == "result":
                if pending_text:
                    items.append({"role": "assistant", "content": "".join(pending_text)})
                    pending_text = []
                invocation = part.tool_invocation
                items.extend(
                    ToolExecution(
                        invocation.tool_call_id,
                        invocation.tool_name,
                        invocation.args,
                        invocation.result,
                    ).as_input_items()
                )
        if pending_text:
            items.append({"role": "assistant", "content": "".join(pending_text)})
    return items


def _usage(response) -> Optional[Dict[str, int]]:
    usage = getattr(response, "usage", None)
    if usage is None:
        return None
    return {
        "promptTokens": getattr(usage, "input_tokens", 0) or 0,
        "completionTokens": getattr(usage, "output_tokens", 0) or 0,
    }


def _add_usage(total: Dict[str, int], usage: Optional[Dict[str, int]]) -> None:
    if usage:
        for key, value in usage.items():
            total[key] = total.get(key, 0) + value


class Agent:
    """Streams model output for a conversation, running tool calls in between steps."""

    def __init__(
        self,
        settings: Settings,
        plugins: list,
        client: Optional[AsyncOpenAI] = None,
        request_id: Optional[str] = None,
    ):
        self.settings = settings
        self.client = client or AsyncOpenAI(api_key=settings.api_key, base_url=settings.base_url)
        self.plugins = plugins
        self.logger = RequestLoggerAdapter(logger, request_id or "-")
        self.env = Environment(plugins, self.logger)

    def _create_args(self, context: list) -> dict:
        create_args = {
            "model": self.settings.model_name,
            "input": context,
            "tools": self.env.tool_schemas(),
            "tool_choice": "auto",
            "store": False,
            "stream": True,
            "max_output_tokens": self.settings.max_output_tokens,
            "temperature": self.settings.temperature,
        }
        if self.settings.system_prompt:
            create_args["instructions"] = self.settings.system_prompt
        return create_args

    async def stream(self, messages: List[Message]) -> AsyncIterator[Chunk]:
        """Yield response chunks for ``messages``.

        The sequence is lazy: nothing is sent to the provider until the first
        chunk is requested, and closing the iterator closes the provider
        stream. Provider errors are raised as exceptions.
        """
        context = messages_to_input(messages)
        self.env.log_item("user_input", {"messages": len(messages)})

        total_usage: Dict[str, int] = {"promptTokens": 0, "completionTokens": 0}
        finish_reason = "stop"

        for step in range(self.settings.max_steps):
            text_parts: List[str] = []
            executions: List[ToolExecution] = []
            finish_reason = "stop"
            usage = None

            stream = await self.client.responses.create(**self._create_args(context))
            try:
                async for event in stream:
                    if event.type == "response.output_text.delta":
                        text_parts.append(event.delta)
                        yield TextDelta(event.delta)

                    elif event.type == "response.output_item.done":
                        if event.item.type != "function_call":
                            continue
                        execution = await self.env.execute(event.item)
                        executions.append(execution)
                        yield ToolCallChunk(execution.call_id, execution.name, execution.arguments)
                        yield ToolResultChunk(execution.call_id, execution.result)

                    elif event.type == "response.completed":
                        usage = _usage(event.response)

                    elif event.type == "response.incomplete":
                        usage = _usage(event.response)
                        finish_reason = "length"

                    elif event.type == "response.failed":
                        error = getattr(event.response, "error", None)
                        raise UpstreamError(
                            getattr(error, "message", None) or "Response failed"
                        )

                    elif event.type == "error":
                        raise UpstreamError(event.message or "Stream error")
            finally:
                close = getattr(stream, "close", None)
                if close is not None:
                    await close()

            if text_parts:
                context.append({"role": "assistant", "content": "".join(text_parts)})
            for execution in executions:
                context.extend(execution.as_input_items())

            _add_usage(total_usage, usage)
            if executions and finish_reason == "stop":
                finish_reason = "tool-calls"
            is_continued = finish_reason == "tool-calls" and step + 1 < self.settings.max_steps

            self.env.log_item(
                "step_finish",
                {"step": step, "finish_reason": finish_reason, "usage": usage},
            )
            yield StepFinishChunk(finish_reason, usage, is_continued)

            if not is_continued:
                break

        yield FinishChunk(finish_reason, total_usage)


def create_default_plugins(settings: Settings) -> list:
    return [
        WeatherPlugin(),
        CalculatorPlugin(),
        ClockPlugin(timezone_name=settings.timezone),
    ]


def create_agent(settings: Settings, request_id: Optional[str] = None) -> Agent:
    """Create the chat agent with the weather, calculator and clock tools."""
    return Agent(settings, create_default_plugins(settings), request_id=request_id)
