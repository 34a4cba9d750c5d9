#!/usr/bin/env python3
"""
MQTT round-trip latency benchmark.

Publishes timestamped messages through each configured target at QoS 0 and
QoS 1 and reports min / max / avg / p95 / p99 delivery latency.

Usage:
    python -m mqtt_latency                                  # localhost:1883
    python -m mqtt_latency --count 200
    python -m mqtt_latency --target "remote vm=remote.net:1883"
    python -m mqtt_latency --target "cluster=localhost:1884,remote.net:1884"
    python -m mqtt_latency --targets-file targets.example.json --isolate-targets
    python -m mqtt_latency --loopback                       # no broker needed
"""

import argparse
import logging
import sys
import time

from pydantic import ValidationError

from .bench import Bench
from .config import BENCH, DEFAULT_TARGETS, LOG_LEVEL, load_targets, parse_target
from .errors import BenchError
from .loopback import LoopbackBroker
from .report import C, log_fail, log_warn, render_table, result_rows
from .session import open_paho_session

log = logging.getLogger("mqtt_latency")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="mqtt-latency",
        description="Round-trip latency benchmark for MQTT brokers")
    p.add_argument("--count",       type=int, default=BENCH["count"],
                   help="Messages per batch")
    p.add_argument("--target",      action="append", default=[],
                   metavar="NAME=PUB[,SUB]",
                   help="Target as name=host:port[,host:port] (repeatable)")
    p.add_argument("--targets-file", metavar="PATH",
                   help='JSON file: {"targets": [{"name", "pub_addr", "sub_addr"}]}')
    p.add_argument("--topic",       default=BENCH["topic"])
    p.add_argument("--pace-ms",     type=float, default=BENCH["pace_s"] * 1000,
                   help="Delay between publishes in milliseconds")
    p.add_argument("--timeout",     type=float, default=BENCH["timeout"],
                   help="Seconds to wait for outstanding deliveries; 0 waits forever")
    p.add_argument("--max-malformed", type=int, default=BENCH["max_malformed"],
                   help="Fail a batch after this many unparseable payloads")
    p.add_argument("--isolate-targets", action="store_true",
                   help="Keep going when a target fails instead of aborting the run")
    p.add_argument("--loopback",    action="store_true",
                   help="Use the in-process loopback broker instead of the network")
    p.add_argument("--loopback-latency-ms", type=float, default=0.0)
    p.add_argument("--log-level",   default=LOG_LEVEL,
                   choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    return p


def resolve_targets(p: argparse.ArgumentParser, args):
    try:
        targets = load_targets(args.targets_file) if args.targets_file else []
        targets += [parse_target(t) for t in args.target]
    except (OSError, ValueError, ValidationError) as e:
        p.error(str(e))
    return targets or list(DEFAULT_TARGETS)


def main(argv=None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    if args.count < 1:
        p.error("--count must be at least 1")

    logging.basicConfig(level=getattr(logging, args.log_level, logging.WARNING),
                        format="%(asctime)s %(levelname)s %(message)s",
                        datefmt="%H:%M:%S")

    BENCH["count"]         = args.count
    BENCH["topic"]         = args.topic
    BENCH["pace_s"]        = args.pace_ms / 1000.0
    BENCH["timeout"]       = args.timeout
    BENCH["max_malformed"] = args.max_malformed

    targets = resolve_targets(p, args)

    broker = None
    factory = open_paho_session
    if args.loopback:
        broker = factory = LoopbackBroker(args.loopback_latency_ms / 1000.0)

    print(f"Number of messages: {BENCH['count']}")
    if BENCH["timeout"] > 0:
        log_warn(f"Batches fail after {BENCH['timeout']:g}s without all deliveries "
                 f"(--timeout 0 waits forever)")
    if BENCH["max_malformed"] is not None:
        log_warn(f"Batches fail after {BENCH['max_malformed']} malformed payloads")

    bench = Bench(targets, factory=factory, isolate=args.isolate_targets)
    start = time.perf_counter()
    try:
        results = bench.run()
    except BenchError as e:
        log.debug("run aborted", exc_info=True)
        log_fail(str(e))
        return 1
    finally:
        if broker is not None:
            broker.stop()

    render_table(result_rows(results))
    print(f"\nFinished run in: {time.perf_counter() - start:.3f}s")

    if bench.failures:
        print(f"{C.FAIL}{len(bench.failures)} target(s) failed: "
              f"{', '.join(bench.failures)}{C.END}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
