"""Pytest configuration and shared fixtures."""
import asyncio
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from quick_chat.app import app, get_agent_factory, get_settings_loader
from quick_chat.config import Settings


class FakeAPIError(Exception):
    """Stand-in for a provider SDK error carrying a status code."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class FakeAgent:
    """Agent whose stream follows a script.

    Script items are yielded as chunks, except numbers (sleep that long) and
    exceptions (raised).
    """

    def __init__(self, script):
        self.script = script
        self.received = None

    async def stream(self, messages):
        self.received = messages
        for item in self.script:
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, (int, float)):
                await asyncio.sleep(item)
                continue
            yield item


class FakeEventStream:
    """Async iterable of Responses API stream events."""

    def __init__(self, events):
        self.events = events
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for event in self.events:
            yield event

    async def close(self):
        self.closed = True


class FakeResponses:
    def __init__(self, *turns):
        self.turns = list(turns)
        self.calls = []
        self.streams = []

    async def create(self, **kwargs):
        self.calls.append({**kwargs, "input": list(kwargs["input"])})
        turn = self.turns.pop(0)
        if isinstance(turn, BaseException):
            raise turn
        stream = FakeEventStream(turn)
        self.streams.append(stream)
        return stream


def fake_openai(*turns):
    return SimpleNamespace(responses=FakeResponses(*turns))


def text_delta(text):
    return SimpleNamespace(type="response.output_text.delta", delta=text)


def function_call(name, arguments, call_id):
    return SimpleNamespace(
        type="response.output_item.done",
        item=SimpleNamespace(type="function_call", name=name, arguments=arguments, call_id=call_id),
    )


def completed(input_tokens=10, output_tokens=5):
    return SimpleNamespace(
        type="response.completed",
        response=SimpleNamespace(
            usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens)
        ),
    )


class ManualClock:
    """Replacement for ``asyncio.sleep`` driven by ``advance()``."""

    def __init__(self):
        self.now = 0.0
        self._waiters = []

    async def sleep(self, seconds):
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((self.now + seconds, future))
        await future

    async def advance(self, seconds=1.0):
        target = self.now + seconds
        while True:
            due = [waiter for waiter in self._waiters if waiter[0] <= target]
            if not due:
                break
            waiter = min(due, key=lambda w: w[0])
            self._waiters.remove(waiter)
            self.now = waiter[0]
            if not waiter[1].done():
                waiter[1].set_result(None)
            await settle()
        self.now = target
        await settle()


async def settle(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settings():
    return Settings(api_key="test-key", max_duration=5)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def chat_client(settings):
    """Return a factory building a TestClient whose agent follows a script."""
    created = []

    def make(script=(), settings_override=None):
        agent = FakeAgent(list(script))

        def factory(settings, request_id=None):
            created.append(agent)
            return agent

        def load_settings():
            return settings_override or settings

        app.dependency_overrides[get_settings_loader] = lambda: load_settings
        app.dependency_overrides[get_agent_factory] = lambda: factory
        client = TestClient(app)
        client.created_agents = created
        return client

    yield make
    app.dependency_overrides.clear()
