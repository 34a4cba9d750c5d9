"""Tests for the benchmark orchestrator."""

import pytest

from mqtt_latency.bench import Bench
from mqtt_latency.config import Target
from mqtt_latency.errors import BatchTimeout, BrokerConnectionError, CloseError, PublishError

from conftest import ScriptedFactory

A = Target(name="a", pub_addr="localhost:1883", sub_addr="localhost:1883")
B = Target(name="b", pub_addr="broker.b:1883", sub_addr="broker.b:1884")


def _bench(targets, factory, **kw):
    kw.setdefault("pace_s", 0)
    kw.setdefault("timeout", 5.0)
    return Bench(targets, times=3, factory=factory, verbose=False, **kw)


class TestBench:
    """Per-target QoS 0 / QoS 1 runs."""

    def test_results_keyed_by_target_and_qos_in_order(self, loopback):
        results = _bench([A, B], loopback).run()

        assert list(results) == [("a", 0), ("a", 1), ("b", 0), ("b", 1)]
        assert all(r.count == 3 for r in results.values())

    def test_pairs_closed_after_each_target(self, loopback):
        _bench([A, B], loopback).run()
        assert loopback.open_sessions == []

    def test_open_failure_aborts_run(self):
        factory = ScriptedFactory(fail_on={"a-pub"})

        with pytest.raises(BrokerConnectionError):
            _bench([A, B], factory).run()

        assert factory.opened == []

    def test_subscriber_open_failure_releases_publisher(self):
        factory = ScriptedFactory(fail_on={"a-sub"})

        with pytest.raises(BrokerConnectionError):
            _bench([A], factory).run()

        assert factory.session("a-pub").closed

    def test_batch_failure_still_closes_pair(self, target):
        factory = ScriptedFactory()

        with pytest.raises(BatchTimeout):
            _bench([target], factory, timeout=0.05).run()

        assert [s.closed for s in factory.opened] == [True, True]

    def test_close_failure_keeps_results(self, loopback):
        class BrokenClose:
            def __init__(self, inner):
                self.inner = inner

            def __call__(self, *args):
                session = self.inner(*args)
                original = session.close

                def close():
                    original()
                    raise RuntimeError("socket already gone")

                session.close = close
                return session

        bench = _bench([A, B], BrokenClose(loopback))
        results = bench.run()

        assert len(results) == 4
        assert set(bench.close_errors) == {"a", "b"}

    def test_close_failure_after_failed_batch_is_recorded(self):
        class FailingPublish(ScriptedFactory):
            def __call__(self, *args):
                session = super().__call__(*args)
                if session.identity.endswith("-pub"):
                    session.publish_error = PublishError("no connection")
                return session

        bench = _bench([A], FailingPublish(close_error=True))

        with pytest.raises(PublishError):
            bench.run()

        assert isinstance(bench.close_errors["a"], CloseError)

    def test_isolation_continues_past_failing_target(self, loopback):
        def factory(endpoint, identity, keepalive, clean_start):
            if identity.startswith("a-"):
                raise BrokerConnectionError(f"{identity}: refused")
            return loopback(endpoint, identity, keepalive, clean_start)

        bench = _bench([A, B], factory, isolate=True)
        results = bench.run()

        assert list(results) == [("b", 0), ("b", 1)]
        assert list(bench.failures) == ["a"]
        assert isinstance(bench.failures["a"], BrokerConnectionError)

    def test_custom_qos_levels(self, loopback):
        results = _bench([A], loopback, qos_levels=(1,)).run()
        assert list(results) == [("a", 1)]
