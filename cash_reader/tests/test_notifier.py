"""
Tests for the event notifier and the WebSocket sink.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from application.notifier import EventNotifier, WebSocketEventSink
from core.exceptions import NotifierDeliveryError


class TestEventNotifier:
    """Tests for EventNotifier."""

    @pytest.mark.asyncio
    async def test_delivers_in_order(self, sink):
        notifier = EventNotifier(sink, event_name="cashreader")

        for i in range(5):
            notifier.notify({"event_name": f"E{i}"})
        assert await notifier.drain(1.0)

        assert sink.event_names == ["E0", "E1", "E2", "E3", "E4"]
        assert all(event == "cashreader" for event, _ in sink.sent)
        assert notifier.delivered == 5
        await notifier.close()

    @pytest.mark.asyncio
    async def test_failed_delivery_is_dropped(self, sink_factory):
        sink = sink_factory(fail_first=2)
        notifier = EventNotifier(sink)

        for name in ("A", "B", "C"):
            notifier.notify({"event_name": name})
        await notifier.drain(1.0)

        assert sink.event_names == ["C"]
        assert notifier.dropped == 2
        assert notifier.delivered == 1
        await notifier.close()

    @pytest.mark.asyncio
    async def test_unexpected_sink_error_is_dropped(self):
        sink = MagicMock()
        sink.send = AsyncMock(side_effect=[RuntimeError("boom"), None])
        notifier = EventNotifier(sink)

        notifier.notify({"event_name": "A"})
        notifier.notify({"event_name": "B"})
        await notifier.drain(1.0)

        assert notifier.dropped == 1
        assert sink.send.await_count == 2
        await notifier.close()

    @pytest.mark.asyncio
    async def test_notify_does_not_wait_for_sink(self):
        release = asyncio.Event()

        class SlowSink:
            async def send(self, event, data):
                await release.wait()

        notifier = EventNotifier(SlowSink())
        notifier.notify({"event_name": "A"})
        notifier.notify({"event_name": "B"})

        assert notifier.is_running
        assert not await notifier.drain(0.02)

        release.set()
        assert await notifier.drain(1.0)
        assert notifier.pending == 0
        await notifier.close()

    @pytest.mark.asyncio
    async def test_drain_on_empty_queue(self, sink):
        notifier = EventNotifier(sink)
        assert await notifier.drain(0.01)
        assert not notifier.is_running

    @pytest.mark.asyncio
    async def test_close_stops_consumer(self, sink):
        notifier = EventNotifier(sink)
        notifier.notify({"event_name": "A"})

        await notifier.close(1.0)

        assert not notifier.is_running
        assert sink.event_names == ["A"]


class TestWebSocketEventSink:
    """Tests for WebSocketEventSink."""

    @pytest.mark.asyncio
    async def test_sends_json_envelope(self):
        ws = MagicMock()
        ws.send = AsyncMock()
        connection = MagicMock()
        connection.__aenter__ = AsyncMock(return_value=ws)
        connection.__aexit__ = AsyncMock(return_value=False)

        with patch("application.notifier.websockets.connect", return_value=connection) as connect:
            sink = WebSocketEventSink("ws://kiosk:8005/ws", open_timeout=1.0)
            await sink.send("cashreader", {"event_name": "CREDIT_NOTE", "channel": 2})

        connect.assert_called_once_with("ws://kiosk:8005/ws", open_timeout=1.0)
        message = json.loads(ws.send.await_args.args[0])
        assert message == {
            "event": "cashreader",
            "data": {"event_name": "CREDIT_NOTE", "channel": 2},
        }

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        with patch(
            "application.notifier.websockets.connect",
            side_effect=OSError("connection refused"),
        ):
            sink = WebSocketEventSink("ws://kiosk:8005/ws")
            with pytest.raises(NotifierDeliveryError) as exc_info:
                await sink.send("cashreader", {"event_name": "SLAVE_RESET"})

        assert exc_info.value.details["event"] == "SLAVE_RESET"
