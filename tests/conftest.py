"""Shared fixtures for hearsay tests."""

import asyncio
from typing import List

import pytest

from hearsay.context import Context
from hearsay.message import Message


class FakeAdapter:
    """In-memory adapter: tests put inbound messages, read sent ones."""

    def __init__(self):
        self.inbound: "asyncio.Queue[Message]" = asyncio.Queue()
        self.sent: List[Message] = []

    def receive(self) -> "asyncio.Queue[Message]":
        return self.inbound

    async def send(self, ctx: Context, message: Message) -> None:
        self.sent.append(message)

    @property
    def texts(self) -> List[str]:
        return [m.text for m in self.sent]


class OtherAdapter(FakeAdapter):
    """Second adapter type, so the two carry different labels."""


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def other_adapter():
    return OtherAdapter()


@pytest.fixture
def wait_until():
    """Poll `predicate` until true, failing after `timeout` seconds."""
    async def _wait_until(predicate, timeout: float = 1.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)
    return _wait_until
