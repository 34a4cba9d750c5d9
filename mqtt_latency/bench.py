"""
Benchmark orchestration across all configured targets.
"""

import logging
from typing import Dict, Optional, Sequence, Tuple

from .config import BENCH, Target
from .errors import BenchError, CloseError
from .prober import RoundTripProber
from .report import log_fail, log_warn, print_batch
from .session import SessionFactory, SessionPair, open_paho_session
from .stats import Result

log = logging.getLogger(__name__)

ResultKey = Tuple[str, int]


class Bench:
    """
    Runs QoS 0 then QoS 1 batches against each target in order.

    By default the first error aborts the whole run.  With ``isolate=True``
    a failing target is recorded in ``failures`` and the run moves on.
    """

    def __init__(self, targets: Sequence[Target],
                 times: Optional[int] = None,
                 factory: SessionFactory = open_paho_session,
                 qos_levels: Optional[Sequence[int]] = None,
                 isolate: bool = False,
                 verbose: bool = True,
                 **prober_opts):
        self.targets     = list(targets)
        self.times       = BENCH["count"] if times is None else times
        self.factory     = factory
        self.qos_levels  = tuple(qos_levels or BENCH["qos_levels"])
        self.isolate     = isolate
        self.verbose     = verbose
        self.prober_opts = prober_opts
        self.failures: Dict[str, BenchError] = {}
        self.close_errors: Dict[str, CloseError] = {}

    def run(self) -> Dict[ResultKey, Result]:
        results: Dict[ResultKey, Result] = {}
        for target in self.targets:
            try:
                results.update(self.run_target(target))
            except BenchError as e:
                if not self.isolate:
                    raise
                log_fail(f"{target.name}: {e}")
                self.failures[target.name] = e
        return results

    def run_target(self, target: Target) -> Dict[ResultKey, Result]:
        pair = SessionPair(target, self.factory)
        prober = RoundTripProber(pair, **self.prober_opts)
        results: Dict[ResultKey, Result] = {}
        try:
            pair.open()
            for qos in self.qos_levels:
                r = prober.run(self.times, qos)
                results[(target.name, qos)] = r
                if self.verbose:
                    print_batch(target.name, target.pub_addr, target.sub_addr, qos, r)
        finally:
            self._close(pair, prober.teardown_error)
        return results

    def _close(self, pair: SessionPair, earlier: Optional[CloseError] = None):
        """Close *pair*; record the first close failure, including one the
        prober hit while tearing down a failed batch."""
        error = earlier
        try:
            pair.close()
        except CloseError as e:
            error = error or e
        if error is None:
            return
        log.error("closing %s: %s", pair.target.name, error)
        self.close_errors[pair.target.name] = error
        if self.verbose:
            log_warn(f"{pair.target.name}: teardown failed: {error}")
