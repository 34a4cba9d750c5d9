"""Round-trip latency benchmark for MQTT brokers."""

from .bench import Bench
from .config import Target
from .prober import RoundTripProber
from .session import SessionPair
from .stats import Result, dur_str, reduce_samples

__all__ = [
    "Bench",
    "Result",
    "RoundTripProber",
    "SessionPair",
    "Target",
    "dur_str",
    "reduce_samples",
]
