"""
Live update broadcaster.

Keeps one sink per connected recipient and fans task events out to them.
Sinks are queues drained by the SSE endpoint; each sink also gets a
heartbeat task so dead connections are noticed and pruned.
"""

import json
import asyncio
import logging
import threading
from typing import Any, Dict, Optional, AsyncGenerator, List, Tuple

from taskdesk.errors import require_identifier

logger = logging.getLogger(__name__)

HEARTBEAT_EVENT = "heartbeat"


class SinkError(Exception):
    """A sink can no longer accept frames."""


class SinkClosed(SinkError):
    pass


class SinkFull(SinkError):
    pass


def make_frame(event: str, payload: Any) -> Dict[str, str]:
    """SSE frame as consumed by sse-starlette."""
    return {"event": event, "data": json.dumps(payload, default=str)}


class QueueSink:
    """Bounded per-connection buffer owned by one event loop."""

    def __init__(self, recipient_id: str, loop: asyncio.AbstractEventLoop, maxsize: int = 100):
        self.recipient_id = recipient_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self._loop = loop
        self._heartbeat: Optional[asyncio.Task] = None

    def _in_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _deliver(self, frame: Dict[str, str]):
        if self.closed:
            return
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(f"Live sink for {self.recipient_id} overflowed, closing it")
            self.close()

    def write(self, frame: Dict[str, str]):
        """Queue a frame; raises SinkError when the sink is closed or full."""
        if self.closed:
            raise SinkClosed(f"Sink for {self.recipient_id} is closed")
        if self.queue.full():
            raise SinkFull(f"Sink for {self.recipient_id} is full")

        if self._in_loop():
            try:
                self.queue.put_nowait(frame)
            except asyncio.QueueFull as e:
                raise SinkFull(f"Sink for {self.recipient_id} is full") from e
            return

        if self._loop.is_closed():
            self.closed = True
            raise SinkClosed(f"Event loop for {self.recipient_id} is gone")
        self._loop.call_soon_threadsafe(self._deliver, frame)

    def _wake(self):
        # Make room for the end-of-stream marker
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(None)

    def close(self):
        if self.closed and self._heartbeat is None:
            return
        self.closed = True
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._heartbeat = None

        if self._in_loop():
            self._wake()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._wake)

    async def frames(self) -> AsyncGenerator[Dict[str, str], None]:
        """Yield queued frames until the sink is closed."""
        while True:
            frame = await self.queue.get()
            if frame is None:
                return
            yield frame


class Broadcaster:
    """
    In-memory recipient registry.

    The lock only guards the registry dict; frames are written outside it.
    """

    def __init__(self, heartbeat_interval: float = 30.0, queue_size: int = 100):
        self.heartbeat_interval = heartbeat_interval
        self.queue_size = queue_size
        self._sinks: Dict[str, QueueSink] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sinks)

    def is_connected(self, recipient_id: str) -> bool:
        with self._lock:
            return recipient_id in self._sinks

    def subscribe(self, recipient_id: str) -> QueueSink:
        """
        Register a sink for a recipient.

        Must be called from the event loop that will drain the sink. A previous
        sink for the same recipient is replaced and closed.
        """
        recipient_id = require_identifier(recipient_id, "user_id")
        loop = asyncio.get_running_loop()
        sink = QueueSink(recipient_id, loop, maxsize=self.queue_size)

        with self._lock:
            previous = self._sinks.get(recipient_id)
            self._sinks[recipient_id] = sink

        if previous is not None:
            logger.info(f"Replacing live connection for {recipient_id}")
            previous.close()

        if self.heartbeat_interval and self.heartbeat_interval > 0:
            sink._heartbeat = loop.create_task(self._run_heartbeat(sink))

        logger.info(f"Live client connected: {recipient_id}")
        return sink

    def unsubscribe(self, recipient_id: str, sink: Optional[QueueSink] = None) -> bool:
        """
        Remove a recipient's sink.

        With ``sink`` given only that exact sink is removed, so a stale
        connection cannot drop a newer one. Returns True if the registry changed.
        """
        with self._lock:
            current = self._sinks.get(recipient_id)
            removed = current is not None and (sink is None or current is sink)
            if removed:
                del self._sinks[recipient_id]

        target = current if removed else sink
        if target is not None:
            target.close()
        if removed:
            logger.info(f"Live client disconnected: {recipient_id}")
        return removed

    def publish(self, event: str, payload: Any, target_recipient_id: Optional[str] = None) -> int:
        """
        Send an event to one recipient or to everyone.

        Returns the number of sinks written. An unknown target is a no-op.
        Sinks that fail to accept the frame are deregistered.
        """
        if event == HEARTBEAT_EVENT:
            raise ValueError(f"'{HEARTBEAT_EVENT}' is reserved for keep-alive frames")

        frame = make_frame(event, payload)

        with self._lock:
            if target_recipient_id is not None:
                sink = self._sinks.get(target_recipient_id)
                recipients: List[Tuple[str, QueueSink]] = [(target_recipient_id, sink)] if sink else []
            else:
                recipients = list(self._sinks.items())

        delivered = 0
        for recipient_id, sink in recipients:
            try:
                sink.write(frame)
                delivered += 1
            except SinkError as e:
                logger.warning(f"Pruning live sink for {recipient_id}: {e}")
                self.unsubscribe(recipient_id, sink)

        logger.debug(f"Published {event} to {delivered} client(s)")
        return delivered

    async def _run_heartbeat(self, sink: QueueSink):
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                sink.write(make_frame(HEARTBEAT_EVENT, {"recipient": sink.recipient_id}))
            except SinkError as e:
                logger.warning(f"Heartbeat failed for {sink.recipient_id}: {e}")
                # Already running inside this task, nothing left to cancel
                sink._heartbeat = None
                self.unsubscribe(sink.recipient_id, sink)
                return

    def close_all(self):
        """Close every sink (application shutdown)."""
        with self._lock:
            sinks = list(self._sinks.values())
            self._sinks.clear()
        for sink in sinks:
            sink.close()
        logger.info(f"Closed {len(sinks)} live connection(s)")
