"""Live task updates over server-sent events."""

from taskdesk.realtime.broadcaster import Broadcaster, QueueSink, SinkError, HEARTBEAT_EVENT

__all__ = [
    "Broadcaster",
    "QueueSink",
    "SinkError",
    "HEARTBEAT_EVENT",
]
