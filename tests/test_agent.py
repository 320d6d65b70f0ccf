"""Tests for the agent stream against a fake provider client."""
import json
from types import SimpleNamespace

import pytest

from conftest import completed, fake_openai, function_call, text_delta
from quick_chat.agent import Agent, create_default_plugins, messages_to_input
from quick_chat.config import Settings
from quick_chat.errors import UpstreamError
from quick_chat.models import Message, TextPart, ToolInvocation, ToolInvocationPart
from quick_chat.stream import (
    FinishChunk,
    StepFinishChunk,
    TextDelta,
    ToolCallChunk,
    ToolResultChunk,
    encode_chunk,
)

SETTINGS = Settings(api_key="test-key", timezone="UTC")


def make_agent(client, settings=SETTINGS):
    return Agent(settings, create_default_plugins(settings), client=client, request_id="test")


async def collect(agent, messages):
    return [chunk async for chunk in agent.stream(messages)]


def user(text):
    return Message(role="user", content=text)


class TestAgentStream:
    @pytest.mark.asyncio
    async def test_text_response(self):
        client = fake_openai([text_delta("Hello"), text_delta(" world"), completed(12, 4)])

        chunks = await collect(make_agent(client), [user("Hi")])

        assert chunks == [
            TextDelta("Hello"),
            TextDelta(" world"),
            StepFinishChunk("stop", {"promptTokens": 12, "completionTokens": 4}, False),
            FinishChunk("stop", {"promptTokens": 12, "completionTokens": 4}),
        ]

    @pytest.mark.asyncio
    async def test_request_parameters(self):
        client = fake_openai([completed()])

        await collect(make_agent(client), [user("Hi")])

        (call,) = client.responses.calls
        assert call["model"] == "gpt-4.1-mini"
        assert call["max_output_tokens"] == 1000
        assert call["temperature"] == 0.7
        assert call["stream"] is True
        assert call["input"] == [{"role": "user", "content": "Hi"}]
        assert [tool["name"] for tool in call["tools"]] == ["weather", "calculator", "currentTime"]
        assert "instructions" not in call

    @pytest.mark.asyncio
    async def test_system_prompt_is_sent_as_instructions(self):
        settings = Settings(api_key="k", system_prompt="Be brief.")
        client = fake_openai([completed()])

        await collect(make_agent(client, settings), [user("Hi")])

        assert client.responses.calls[0]["instructions"] == "Be brief."

    @pytest.mark.asyncio
    async def test_tool_call_then_answer(self):
        client = fake_openai(
            [function_call("calculator", '{"expression": "15 * 24"}', "call_1"), completed(10, 3)],
            [text_delta("It is 360."), completed(20, 5)],
        )

        chunks = await collect(make_agent(client), [user("Calculate 15 * 24")])

        assert chunks == [
            ToolCallChunk("call_1", "calculator", {"expression": "15 * 24"}),
            ToolResultChunk("call_1", {"result": 360}),
            StepFinishChunk("tool-calls", {"promptTokens": 10, "completionTokens": 3}, True),
            TextDelta("It is 360."),
            StepFinishChunk("stop", {"promptTokens": 20, "completionTokens": 5}, False),
            FinishChunk("stop", {"promptTokens": 30, "completionTokens": 8}),
        ]
        second_input = client.responses.calls[1]["input"]
        assert second_input[1] == {
            "type": "function_call",
            "call_id": "call_1",
            "name": "calculator",
            "arguments": '{"expression": "15 * 24"}',
        }
        assert second_input[2] == {
            "type": "function_call_output",
            "call_id": "call_1",
            "output": '{"result": 360}',
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "expression", ["1 +", "10**999*10**999*10**999*10**999*10**999", "((9**999)**999)**99"]
    )
    async def test_tool_error_does_not_abort_turn(self, expression):
        arguments = json.dumps({"expression": expression})
        client = fake_openai(
            [function_call("calculator", arguments, "call_1"), completed()],
            [text_delta("That expression is invalid."), completed()],
        )

        chunks = await collect(make_agent(client), [user(f"Calculate {expression}")])

        assert ToolResultChunk("call_1", {"error": "Invalid mathematical expression"}) in chunks
        assert len(client.responses.calls) == 2
        assert chunks[-1].finish_reason == "stop"
        for chunk in chunks:
            encode_chunk(chunk)

    @pytest.mark.asyncio
    async def test_steps_are_capped(self):
        settings = Settings(api_key="k", max_steps=2, timezone="UTC")
        client = fake_openai(
            [function_call("currentTime", "{}", "c1"), completed()],
            [function_call("currentTime", "{}", "c2"), completed()],
            [text_delta("never requested")],
        )

        chunks = await collect(make_agent(client, settings), [user("time?")])

        assert len(client.responses.calls) == 2
        step_finishes = [c for c in chunks if isinstance(c, StepFinishChunk)]
        assert [c.is_continued for c in step_finishes] == [True, False]
        assert chunks[-1] == FinishChunk("tool-calls", {"promptTokens": 20, "completionTokens": 10})

    @pytest.mark.asyncio
    async def test_incomplete_response_finishes_with_length(self):
        incomplete = SimpleNamespace(
            type="response.incomplete",
            response=SimpleNamespace(usage=SimpleNamespace(input_tokens=5, output_tokens=1000)),
        )
        client = fake_openai([text_delta("long..."), incomplete])

        chunks = await collect(make_agent(client), [user("essay")])

        assert chunks[-1].finish_reason == "length"

    @pytest.mark.asyncio
    async def test_error_event_raises_upstream_error(self):
        client = fake_openai(
            [text_delta("partial"), SimpleNamespace(type="error", message="rate limit reached", code=None)]
        )
        agent = make_agent(client)

        received = []
        with pytest.raises(UpstreamError, match="rate limit"):
            async for chunk in agent.stream([user("Hi")]):
                received.append(chunk)

        assert received == [TextDelta("partial")]
        assert client.responses.streams[0].closed

    @pytest.mark.asyncio
    async def test_failed_response_raises_upstream_error(self):
        failed = SimpleNamespace(
            type="response.failed",
            response=SimpleNamespace(error=SimpleNamespace(message="quota gone")),
        )
        client = fake_openai([failed])

        with pytest.raises(UpstreamError, match="quota gone"):
            await collect(make_agent(client), [user("Hi")])

    @pytest.mark.asyncio
    async def test_create_failure_propagates(self):
        client = fake_openai(RuntimeError("connection refused"))

        with pytest.raises(RuntimeError):
            await collect(make_agent(client), [user("Hi")])

    @pytest.mark.asyncio
    async def test_nothing_is_sent_before_iteration(self):
        client = fake_openai([completed()])

        stream = make_agent(client).stream([user("Hi")])

        assert client.responses.calls == []
        await stream.aclose()


class TestMessagesToInput:
    def test_plain_messages(self):
        messages = [
            Message(role="system", content="Be nice"),
            Message(role="user", content="Hi"),
            Message(role="assistant", content="Hello!"),
        ]
        assert messages_to_input(messages) == [
            {"role": "system", "content": "Be nice"},
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello!"},
        ]

    def test_assistant_tool_invocations_are_replayed(self):
        invocation = ToolInvocation(
            tool_call_id="c1",
            tool_name="weather",
            args={"location": "Tokyo"},
            state="result",
            result={"location": "Tokyo", "temperature": 70, "description": "sunny"},
        )
        message = Message(
            role="assistant",
            parts=(
                TextPart(text="Let me check. "),
                ToolInvocationPart(tool_invocation=invocation),
                TextPart(text="It is sunny."),
            ),
        )

        items = messages_to_input([message])

        assert items[0] == {"role": "assistant", "content": "Let me check. "}
        assert items[1]["type"] == "function_call"
        assert items[1]["name"] == "weather"
        assert items[2]["type"] == "function_call_output"
        assert items[3] == {"role": "assistant", "content": "It is sunny."}

    def test_unfinished_tool_calls_are_skipped(self):
        pending = ToolInvocation(tool_call_id="c1", tool_name="weather", args={})
        message = Message(role="assistant", parts=(ToolInvocationPart(tool_invocation=pending),))
        assert messages_to_input([message]) == []

    def test_empty_user_message_is_skipped(self):
        assert messages_to_input([Message(role="user", content="")]) == []
