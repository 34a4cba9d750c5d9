"""
In-process loopback broker.

Stands in for a real broker when none is reachable (``--loopback``) and in
tests.  Messages are handed to subscribers on a dedicated delivery thread so
handlers run outside the publisher's thread, as they do with paho.
"""

import logging
import queue
import threading
import time
from typing import Dict, List, Tuple

from paho.mqtt.client import topic_matches_sub

from .errors import CloseError, PublishError, SubscriptionError
from .session import MessageHandler

log = logging.getLogger(__name__)

_STOP = object()


class LoopbackSession:
    def __init__(self, broker: "LoopbackBroker", identity: str):
        self.broker   = broker
        self.identity = identity
        self.closed   = False

    def publish(self, topic: str, qos: int, payload: bytes) -> None:
        if self.closed:
            raise PublishError(f"{self.identity}: session is closed")
        self.broker._route(topic, bytes(payload))

    def subscribe(self, topic: str, qos: int, on_message: MessageHandler) -> None:
        self.broker._subscribe(self, topic, on_message)

    def close(self) -> None:
        if self.closed:
            raise CloseError(f"{self.identity}: already closed")
        self.closed = True
        self.broker._detach(self)


class LoopbackBroker:
    """Routes publishes to matching subscriptions after *latency_s* seconds."""

    session_class = LoopbackSession

    def __init__(self, latency_s: float = 0.0):
        self.latency_s = latency_s
        self._lock  = threading.Lock()
        self._subs: Dict["LoopbackSession", List[Tuple[str, MessageHandler]]] = {}
        self._pending: queue.Queue = queue.Queue()
        self._thread = threading.Thread(target=self._run, name="loopback-delivery",
                                        daemon=True)
        self._thread.start()

    # -- session factory ---
    def __call__(self, endpoint, identity: str, keepalive: int,
                 clean_start: bool) -> "LoopbackSession":
        session = self.session_class(self, identity)
        with self._lock:
            self._subs[session] = []
        log.debug("loopback session %s opened", identity)
        return session

    @property
    def open_sessions(self) -> List[str]:
        with self._lock:
            return [s.identity for s in self._subs]

    # -- routing ---
    def _subscribe(self, session, topic: str, handler: MessageHandler):
        with self._lock:
            if session not in self._subs:
                raise SubscriptionError(f"{session.identity}: session is closed")
            self._subs[session] = [(t, h) for t, h in self._subs[session] if t != topic]
            self._subs[session].append((topic, handler))

    def _route(self, topic: str, payload: bytes):
        self._pending.put((time.monotonic() + self.latency_s, topic, payload))

    def _detach(self, session) -> bool:
        with self._lock:
            return self._subs.pop(session, None) is not None

    def _run(self):
        while True:
            item = self._pending.get()
            if item is _STOP:
                return
            due, topic, payload = item
            delay = due - time.monotonic()
            if delay > 0:
                time.sleep(delay)
            with self._lock:
                handlers = [h for subs in self._subs.values()
                            for t, h in subs if topic_matches_sub(t, topic)]
            for handler in handlers:
                try:
                    handler(topic, payload)
                except Exception:
                    log.exception("loopback handler failed on %s", topic)

    def stop(self):
        self._pending.put(_STOP)
        self._thread.join(timeout=1.0)
