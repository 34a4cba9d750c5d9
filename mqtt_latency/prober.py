"""
Round-trip prober: one batch of N timestamped messages at one QoS.

Each payload is the publisher's wall clock in nanoseconds as decimal text.
The subscriber's delivery callback subtracts it from its own clock on arrival
and hands the duration to the driving thread through a bounded queue.  The
driving thread alone owns the sample list and the completion count, so the
only object shared between threads is the queue.
"""

import logging
import queue
import time
from dataclasses import replace
from typing import Callable, List, Optional

from .config import BENCH
from .errors import (
    BatchTimeout,
    CloseError,
    MalformedBudgetExceeded,
    MalformedPayload,
    PublishError,
    SubscriptionError,
)
from .session import SessionPair
from .stats import Result, reduce_samples

log = logging.getLogger(__name__)


def parse_timestamp(payload: bytes) -> int:
    """Decode a decimal nanosecond timestamp; MalformedPayload otherwise."""
    try:
        text = bytes(payload).decode("ascii").strip()
        if not text or not text.lstrip("-").isdigit():
            raise ValueError(text)
        return int(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedPayload(bytes(payload)) from e


class RoundTripProber:
    """
    Measures publish-to-delivery latency through one SessionPair.

    ``timeout`` bounds the wait for outstanding deliveries once the last
    message is published; ``0`` waits forever.  ``max_malformed`` fails the
    batch once more than that many payloads have been dropped.  Options left
    as ``None`` come from BENCH.
    """

    def __init__(self, pair: SessionPair,
                 topic: Optional[str] = None,
                 pace_s: Optional[float] = None,
                 timeout: Optional[float] = None,
                 max_malformed: Optional[int] = None,
                 queue_size: Optional[int] = None,
                 clock: Callable[[], int] = time.time_ns):
        self.pair          = pair
        self.topic         = topic or BENCH["topic"]
        self.pace_s        = BENCH["pace_s"] if pace_s is None else pace_s
        self.timeout       = BENCH["timeout"] if timeout is None else timeout
        self.max_malformed = (BENCH["max_malformed"] if max_malformed is None
                              else max_malformed)
        self.queue_size    = queue_size or BENCH["queue_size"]
        self.clock         = clock
        self.teardown_error: Optional[CloseError] = None

    def run(self, count: int, qos: int) -> Result:
        """Publish *count* messages at *qos* and reduce their round trips."""
        if count < 1:
            raise ValueError("count must be at least 1")
        self.teardown_error = None
        self.pair.open()
        batch = _Batch(count, self.max_malformed)
        inbox: queue.Queue = queue.Queue(maxsize=self.queue_size)

        def on_message(topic: str, payload: bytes):
            now = self.clock()
            try:
                item = now - parse_timestamp(payload)
            except MalformedPayload as e:
                log.warning("dropping delivery on %s: %s", topic, e)
                item = e
            try:
                inbox.put_nowait(item)
            except queue.Full:
                log.error("delivery queue full, sample lost on %s", topic)

        try:
            self.pair.subscriber.subscribe(self.topic, qos, on_message)
            for _ in range(count):
                payload = str(self.clock()).encode("ascii")
                self.pair.publisher.publish(self.topic, qos, payload)
                batch.drain(inbox, time.monotonic() + self.pace_s)
        except (SubscriptionError, PublishError):
            self._teardown()
            raise

        batch.wait(inbox, self.timeout)

        log.info("%s QoS %d: %d samples, %d dropped, %d extra",
                 self.pair.target.name, qos, len(batch.samples),
                 batch.dropped, batch.extra)
        return replace(reduce_samples(batch.samples), dropped=batch.dropped)

    def _teardown(self):
        """Close the pair after a failed batch; a close failure is kept in
        ``teardown_error`` so the batch error itself still propagates."""
        try:
            self.pair.close()
        except CloseError as e:
            log.error("closing %s after failed batch: %s", self.pair.target.name, e)
            self.teardown_error = e


class _Batch:
    """Completion state for one batch; touched only by the driving thread."""

    def __init__(self, expected: int, max_malformed: Optional[int]):
        self.expected      = expected
        self.max_malformed = max_malformed
        self.samples: List[int] = []
        self.dropped = 0
        self.extra   = 0

    @property
    def pending(self) -> int:
        return self.expected - len(self.samples)

    def take(self, item):
        if isinstance(item, MalformedPayload):
            self.dropped += 1
            if self.max_malformed is not None and self.dropped > self.max_malformed:
                raise MalformedBudgetExceeded(self.dropped, self.max_malformed)
        elif self.pending > 0:
            self.samples.append(item)
        else:
            self.extra += 1

    def drain(self, inbox: queue.Queue, until: float):
        """Consume deliveries until the monotonic deadline *until*."""
        while True:
            remaining = until - time.monotonic()
            try:
                if remaining > 0:
                    item = inbox.get(timeout=remaining)
                else:
                    item = inbox.get_nowait()
            except queue.Empty:
                return
            self.take(item)

    def wait(self, inbox: queue.Queue, timeout: Optional[float]):
        """Block until every expected sample arrived or *timeout* elapses."""
        deadline = time.monotonic() + timeout if timeout else None
        while self.pending > 0:
            if deadline is None:
                self.take(inbox.get())
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise BatchTimeout(len(self.samples), self.expected, timeout)
            try:
                self.take(inbox.get(timeout=remaining))
            except queue.Empty:
                raise BatchTimeout(len(self.samples), self.expected, timeout) from None
