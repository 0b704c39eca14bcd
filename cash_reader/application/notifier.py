"""
Event notifier for the cash reader.

Session notifications are queued without blocking the poll loop and
delivered in order by a consumer task. A failed delivery is logged and
dropped; it never reaches the session.
"""

import asyncio
import json
from typing import Any, Optional

import websockets
from websockets.exceptions import WebSocketException

from configs import WS_EVENT_NAME, WS_URL
from core.exceptions import NotifierDeliveryError
from core.interfaces import EventSink
from loggers import logger


class WebSocketEventSink:
    """
    Sends notifications to the kiosk WebSocket server.

    One short-lived connection per message, as the frontend expects.

    Attributes:
        ws_url: WebSocket URL to connect to.
        open_timeout: Connection timeout in seconds.
    """

    def __init__(self, ws_url: str = WS_URL, open_timeout: float = 5.0) -> None:
        self.ws_url = ws_url
        self.open_timeout = open_timeout

    async def send(self, event: str, data: dict[str, Any]) -> None:
        """
        Send one message.

        Example:
            await sink.send('cashreader', {'event_name': 'CREDIT_NOTE', ...})

        Raises:
            NotifierDeliveryError: Connection or send failed.
        """
        message = {"event": event, "data": data}

        try:
            async with websockets.connect(self.ws_url, open_timeout=self.open_timeout) as ws:
                await ws.send(json.dumps(message, default=str))
        except (WebSocketException, OSError, asyncio.TimeoutError) as e:
            raise NotifierDeliveryError(
                f"WebSocket delivery to {self.ws_url} failed: {e}",
                details={"event": data.get("event_name")},
            ) from e

        logger.debug(f"WebSocket message sent: {data.get('event_name')}")


class EventNotifier:
    """
    Queue plus consumer task in front of an EventSink.

    Attributes:
        sink: Delivery target.
        event_name: Envelope event name passed to the sink.
    """

    def __init__(
        self,
        sink: EventSink,
        event_name: str = WS_EVENT_NAME,
        queue: Optional[asyncio.Queue] = None,
    ) -> None:
        self.sink = sink
        self.event_name = event_name
        self._queue: asyncio.Queue = queue or asyncio.Queue()
        self._consume_task: Optional[asyncio.Task] = None
        self.delivered = 0
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return self._consume_task is not None and not self._consume_task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Start the consumer task. Must run inside the event loop."""
        if self.is_running:
            return
        self._consume_task = asyncio.create_task(self._consume_loop())

    def notify(self, payload: dict[str, Any]) -> None:
        """Enqueue a payload; never blocks."""
        self._queue.put_nowait(payload)
        if not self.is_running:
            self.start()

    async def _deliver(self, payload: dict[str, Any]) -> None:
        try:
            await self.sink.send(self.event_name, payload)
        except NotifierDeliveryError as e:
            self.dropped += 1
            logger.warning(f"Notification dropped: {e.message}")
            return
        except Exception as e:
            self.dropped += 1
            logger.error(f"Notification dropped, sink error: {e}")
            return
        self.delivered += 1

    async def _consume_loop(self) -> None:
        """Deliver queued payloads in order until cancelled."""
        while True:
            payload = await self._queue.get()
            try:
                await self._deliver(payload)
            finally:
                self._queue.task_done()

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued payload was handled.

        Returns:
            False if the timeout expired first.
        """
        if self._queue.empty():
            return True
        if not self.is_running:
            self.start()
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Notifier drain timed out with {self.pending} pending")
            return False
        return True

    async def close(self, timeout: Optional[float] = None) -> None:
        """Drain, then stop the consumer."""
        await self.drain(timeout)

        if self._consume_task:
            self._consume_task.cancel()
            try:
                await self._consume_task
            except asyncio.CancelledError:
                pass
            self._consume_task = None
