"""
Exception hierarchy for the latency benchmark.

Everything raised on purpose derives from BenchError so the entry point can
turn it into a one-line message and a non-zero exit status.
"""


class BenchError(Exception):
    """Base class for benchmark failures."""


class BrokerConnectionError(BenchError, ConnectionError):
    """A session could not be opened (socket, handshake or CONNACK)."""


class SubscriptionError(BenchError):
    """SUBSCRIBE was rejected or never acknowledged."""


class PublishError(BenchError):
    """PUBLISH was rejected by the client or never acknowledged."""


class MalformedPayload(BenchError, ValueError):
    """A delivered payload did not carry an integer nanosecond timestamp."""

    def __init__(self, payload: bytes):
        self.payload = payload
        super().__init__(f"payload is not an integer timestamp: {payload[:32]!r}")


class EmptySampleSet(BenchError, ValueError):
    """Statistics were requested for zero samples."""


class CloseError(BenchError):
    """A session failed to disconnect cleanly."""


class SessionStateError(BenchError):
    """A session pair is half-open."""


class BatchTimeout(BenchError, TimeoutError):
    """Not every expected delivery arrived within the batch timeout."""

    def __init__(self, received: int, expected: int, timeout: float):
        self.received = received
        self.expected = expected
        self.timeout  = timeout
        super().__init__(
            f"received {received}/{expected} messages within {timeout:g}s")


class MalformedBudgetExceeded(BenchError):
    """More malformed payloads were dropped than the batch tolerates."""

    def __init__(self, dropped: int, budget: int):
        self.dropped = dropped
        self.budget  = budget
        super().__init__(
            f"dropped {dropped} malformed payloads (budget {budget})")
