"""
Latency reduction: min / max / mean / p95 / p99 over nanosecond samples.

Percentiles use linear interpolation between closest ranks (Hyndman & Fan
type 7).  For sorted samples x[0..n-1] and percentile p the rank is
h = (n - 1) * p / 100 and the value is

    x[floor(h)] + (h - floor(h)) * (x[floor(h) + 1] - x[floor(h)])

so {10, 20, 30, 40, 50} gives p95 = 48 and p99 = 49.6.
"""

import statistics
from dataclasses import dataclass
from typing import Iterable, Tuple

import numpy as np

from .errors import EmptySampleSet

PERCENTILE_METHOD = "linear"

NS_PER_US = 1_000
NS_PER_MS = 1_000_000
NS_PER_S  = 1_000_000_000


@dataclass(frozen=True)
class Result:
    """Summary of one (target, QoS) batch.  All durations in nanoseconds."""
    min:     float
    max:     float
    mean:    float
    p95:     float
    p99:     float
    count:   int = 0
    dropped: int = 0


def percentiles(samples, *ps: float) -> Tuple[float, ...]:
    """Linear-interpolated percentiles; independent of sample order."""
    if len(samples) == 0:
        raise EmptySampleSet("cannot compute percentiles of zero samples")
    values = np.percentile(np.asarray(samples, dtype=np.float64), ps,
                           method=PERCENTILE_METHOD)
    return tuple(float(v) for v in values)


def reduce_samples(samples: Iterable[float]) -> Result:
    """Reduce raw durations to a Result.  Raises EmptySampleSet on no input."""
    data = list(samples)
    if not data:
        raise EmptySampleSet("cannot reduce an empty sample set")

    p95, p99 = percentiles(data, 95.0, 99.0)
    return Result(
        min=float(min(data)),
        max=float(max(data)),
        mean=float(statistics.mean(data)),
        p95=p95,
        p99=p99,
        count=len(data),
    )


def _unit_for(ns: int) -> Tuple[int, str]:
    if ns < NS_PER_US:
        return 1, "ns"
    if ns < NS_PER_MS:
        return NS_PER_US, "µs"
    if ns < NS_PER_S:
        return NS_PER_MS, "ms"
    return NS_PER_S, "s"


def dur_str(ns: float) -> str:
    """
    Fixed-width display form of a duration, e.g. 2_900_000 -> '  2.90 ms'.

    The unit follows the magnitude (ns, µs, ms, s).  The fractional part is
    truncated to two digits, never rounded.
    """
    value = int(round(ns))
    sign = "-" if value < 0 else ""
    value = abs(value)
    unit_ns, unit = _unit_for(value)
    whole, rest = divmod(value, unit_ns)
    frac = rest * 100 // unit_ns
    return f"{sign + str(whole):>3}.{frac:02d} {unit}"
