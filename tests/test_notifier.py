import asyncio

import pytest

from backend.app.main import sse_messages


class TestChangeNotifier:

    @pytest.mark.asyncio
    async def test_every_listener_receives_in_order(self, notifier):
        first = notifier.subscribe()
        second = notifier.subscribe()

        notifier.publish({"type": "metrics_update", "n": 1})
        notifier.publish({"type": "metrics_update", "n": 2})

        for subscription in (first, second):
            assert (await subscription.get())["n"] == 1
            assert (await subscription.get())["n"] == 2

    @pytest.mark.asyncio
    async def test_late_listener_gets_no_replay(self, notifier):
        notifier.publish({"type": "metrics_update"})
        late = notifier.subscribe()

        assert late.queue.empty()

    @pytest.mark.asyncio
    async def test_full_inbox_drops_without_unsubscribing(self, notifier):
        slow = notifier.subscribe()
        fast = notifier.subscribe()

        for n in range(5):
            notifier.publish({"type": "metrics_update", "n": n})
            await fast.get()

        assert slow.queue.qsize() == 3
        assert slow.dropped == 2
        assert notifier.listener_count() == 2
        assert [(await slow.get())["n"] for _ in range(3)] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_unsubscribed_listener_stops_receiving(self, notifier):
        subscription = notifier.subscribe()
        notifier.unsubscribe(subscription)

        assert notifier.publish({"type": "metrics_update"}) == 0
        assert subscription.queue.empty()

    @pytest.mark.asyncio
    async def test_sse_framing(self, notifier):
        subscription = notifier.subscribe()
        stream = sse_messages(subscription)

        ping = await stream.__anext__()
        notifier.publish({"type": "metrics_update"})
        update = await asyncio.wait_for(stream.__anext__(), timeout=1)
        await stream.aclose()

        assert ping.startswith("event: ping\ndata: ")
        assert update == 'data: {"type": "metrics_update"}\n\n'

    @pytest.mark.asyncio
    async def test_idle_stream_yields_keepalive(self, notifier):
        subscription = notifier.subscribe()
        stream = sse_messages(subscription, keepalive_seconds=0.01)

        await stream.__anext__()
        idle = await asyncio.wait_for(stream.__anext__(), timeout=1)
        notifier.publish({"type": "metrics_update"})
        chunks = [await asyncio.wait_for(stream.__anext__(), timeout=1) for _ in range(2)]
        await stream.aclose()

        assert idle == ": keepalive\n\n"
        assert 'data: {"type": "metrics_update"}\n\n' in chunks
