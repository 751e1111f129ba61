"""Tests for the dispatch loop."""

import asyncio
import re

import pytest

from hearsay.context import Context
from hearsay.dispatch import Dispatcher, LoopState, loop
from hearsay.handler import BaseHandler, new_background_handler
from hearsay.message import Message
from hearsay.metrics import MESSAGES_RX
from hearsay.mux import Mux
from hearsay.web import new_web_hook_handler


class Everything(BaseHandler):
    """Raw, hears and command capabilities on one handler."""

    def __init__(self, pattern=r"^ping$", raw_fails=False):
        super().__init__("everything", "all three capabilities")
        self.pattern = re.compile(pattern)
        self.raw_fails = raw_fails
        self.raw, self.heard_texts, self.commands = [], [], []

    async def process_message(self, ctx, w, m):
        self.raw.append(m.text)
        if self.raw_fails:
            raise RuntimeError("raw handler exploded")

    def hears(self):
        return self.pattern

    async def heard(self, ctx, w, m, submatches):
        self.heard_texts.append(m.text)

    async def command(self, ctx, w, m):
        self.commands.append(list(m.args))
        await w.write(f"ack {m.text}", ctx)


async def _start(ctx, handler, *adapters):
    dispatcher = Dispatcher(ctx, handler, *adapters)
    task = asyncio.create_task(dispatcher.run())
    await asyncio.sleep(0)
    return dispatcher, task


async def _stop(ctx, task):
    ctx.cancel()
    await asyncio.wait_for(task, 1)


@pytest.mark.asyncio
async def test_all_capabilities_fire_for_one_message(adapter, wait_until):
    h = Everything()
    ctx = Context.background()
    dispatcher, task = await _start(ctx, h, adapter)
    assert dispatcher.state is LoopState.RUNNING

    await adapter.inbound.put(Message(channel="general", sender="alice", text="ping"))
    await wait_until(lambda: h.raw and h.heard_texts and h.commands)

    assert h.raw == ["ping"]
    assert h.heard_texts == ["ping"]
    assert h.commands == [["ping"]]
    await wait_until(lambda: adapter.texts == ["ack ping"])
    assert adapter.sent[0].channel == "general"
    await _stop(ctx, task)


@pytest.mark.asyncio
async def test_hears_does_not_fire_without_match(adapter, wait_until):
    h = Everything()
    ctx = Context.background()
    _, task = await _start(ctx, h, adapter)

    await adapter.inbound.put(Message(text="pingpong"))
    await wait_until(lambda: h.raw and h.commands)
    await asyncio.sleep(0.02)
    assert h.heard_texts == []
    await _stop(ctx, task)


@pytest.mark.asyncio
async def test_panicking_raw_handler_does_not_stop_others(adapter, wait_until):
    h = Everything(pattern=r".*", raw_fails=True)
    ctx = Context.background()
    _, task = await _start(ctx, h, adapter)

    await adapter.inbound.put(Message(text="first"))
    await adapter.inbound.put(Message(text="second"))
    await wait_until(lambda: len(h.commands) == 2 and len(h.heard_texts) == 2)

    assert h.raw == ["first", "second"]
    assert sorted(h.heard_texts) == ["first", "second"]
    assert not task.done()
    await _stop(ctx, task)


@pytest.mark.asyncio
async def test_messages_from_one_adapter_keep_their_order(adapter, wait_until):
    h = Everything()
    ctx = Context.background()
    _, task = await _start(ctx, h, adapter)

    for i in range(5):
        await adapter.inbound.put(Message(text=str(i)))
    await wait_until(lambda: len(h.raw) == 5)
    assert h.raw == ["0", "1", "2", "3", "4"]
    await _stop(ctx, task)


@pytest.mark.asyncio
async def test_replies_go_back_to_originating_adapter(adapter, other_adapter, wait_until):
    MESSAGES_RX.reset()
    h = Everything()
    ctx = Context.background()
    _, task = await _start(ctx, h, adapter, other_adapter)

    await adapter.inbound.put(Message(channel="c1", sender="alice", text="a1"))
    await other_adapter.inbound.put(Message(channel="c2", sender="bob", text="b1"))
    await wait_until(lambda: adapter.sent and other_adapter.sent)

    assert adapter.texts == ["ack a1"]
    assert other_adapter.texts == ["ack b1"]
    assert MESSAGES_RX.value("FakeAdapter", "c1", "alice") == 1
    assert MESSAGES_RX.value("OtherAdapter", "c2", "bob") == 1
    await _stop(ctx, task)


@pytest.mark.asyncio
async def test_concurrent_capabilities_get_their_own_message_copies(adapter, wait_until):
    seen = {}

    class Mutating(Everything):
        async def process_message(self, ctx, w, m):
            m.text = "mutated by raw"
            w.set_channel("elsewhere")

        async def command(self, ctx, w, m):
            await asyncio.sleep(0.01)
            seen["text"] = m.text
            await w.write("reply", ctx)

    h = Mutating()
    ctx = Context.background()
    _, task = await _start(ctx, h, adapter)
    await adapter.inbound.put(Message(channel="general", text="original"))
    await wait_until(lambda: adapter.sent)
    assert seen["text"] == "original"
    assert adapter.sent[0].channel == "general"
    await _stop(ctx, task)


@pytest.mark.asyncio
async def test_cancellation_does_not_wait_for_handlers(adapter, wait_until):
    release = asyncio.Event()
    started = []

    class Blocking(Everything):
        async def command(self, ctx, w, m):
            started.append(m.text)
            await release.wait()

    h = Blocking()
    ctx = Context.background()
    dispatcher, task = await _start(ctx, h, adapter)
    await adapter.inbound.put(Message(text="block"))
    await wait_until(lambda: started)

    await _stop(ctx, task)
    assert dispatcher.state is LoopState.DRAINING
    assert dispatcher.in_flight >= 1
    await wait_until(lambda: all(f.done() for f in dispatcher._forwarders))

    release.set()
    await wait_until(lambda: dispatcher.in_flight == 0)


@pytest.mark.asyncio
async def test_idle_loop_stops_on_cancel(adapter, other_adapter):
    ctx = Context.background()
    dispatcher, task = await _start(ctx, Everything(), adapter, other_adapter)
    await _stop(ctx, task)
    assert dispatcher.state is LoopState.DRAINING


@pytest.mark.asyncio
async def test_messages_after_cancel_are_not_dispatched(adapter):
    h = Everything()
    ctx = Context.background()
    _, task = await _start(ctx, h, adapter)
    await _stop(ctx, task)
    await adapter.inbound.put(Message(text="late"))
    await asyncio.sleep(0.02)
    assert h.raw == []


@pytest.mark.asyncio
async def test_background_and_web_hook_bound_to_primary_adapter(adapter, other_adapter, wait_until):
    started = []

    async def bg(ctx, w):
        started.append(w.sender)
        await ctx.wait()

    async def hook(request):
        raise NotImplementedError

    mux = Mux("bot")
    mux.handle(new_background_handler("bg", "", bg))
    web_hook = new_web_hook_handler("hook", "", hook)
    mux.handle(web_hook)

    ctx = Context.background()
    _, task = await _start(ctx, mux, adapter, other_adapter)
    await wait_until(lambda: started)

    assert started == [adapter]
    assert web_hook.adapter is adapter
    await _stop(ctx, task)


@pytest.mark.asyncio
async def test_loop_helper_returns_dispatcher(adapter):
    ctx = Context.background()
    task = asyncio.create_task(loop(ctx, Everything(), adapter))
    await asyncio.sleep(0)
    ctx.cancel()
    dispatcher = await asyncio.wait_for(task, 1)
    assert dispatcher.state is LoopState.DRAINING
