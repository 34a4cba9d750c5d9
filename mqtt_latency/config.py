"""
Run configuration: targets, benchmark defaults and environment overrides.
"""

import os
from pathlib import Path
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --------------------------------------------------------------------------- #
# Environment
# --------------------------------------------------------------------------- #
LOG_LEVEL = os.environ.get("MQTT_LATENCY_LOG_LEVEL", "WARNING").upper()

# Benchmark parameters
BENCH = {
    "count":          int(os.environ.get("MQTT_LATENCY_COUNT", "1000")),
    "qos_levels":     (0, 1),
    "topic":          "scox/bench",
    "pace_s":         0.010,     # delay between publishes
    "timeout":        float(os.environ.get("MQTT_LATENCY_TIMEOUT", "30.0")),
    "max_malformed":  None,      # None = tolerate any number of drops
    "keepalive":      5,
    "clean_start":    True,
    "connect_timeout": 10.0,
    "queue_size":     1024,
}


# --------------------------------------------------------------------------- #
# Targets
# --------------------------------------------------------------------------- #
def split_endpoint(addr: str) -> Tuple[str, int]:
    """'host:port' -> (host, port).  IPv6 hosts may be bracketed."""
    host, sep, port = addr.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"expected host:port, got {addr!r}")
    port_num = int(port)
    if not 0 < port_num < 65536:
        raise ValueError(f"port out of range in {addr!r}")
    return host.strip("[]"), port_num


class Target(BaseModel):
    """One broker topology under test."""
    model_config = ConfigDict(frozen=True)

    name:     str = Field(..., min_length=1)
    pub_addr: str
    sub_addr: str

    @field_validator("pub_addr", "sub_addr")
    @classmethod
    def _check_addr(cls, v: str) -> str:
        split_endpoint(v)
        return v

    @property
    def pub_endpoint(self) -> Tuple[str, int]:
        return split_endpoint(self.pub_addr)

    @property
    def sub_endpoint(self) -> Tuple[str, int]:
        return split_endpoint(self.sub_addr)


class TargetsFile(BaseModel):
    targets: List[Target] = Field(..., min_length=1)


DEFAULT_TARGETS: List[Target] = [
    # Measure connections over the loopback device
    Target(name="local", pub_addr="localhost:1883", sub_addr="localhost:1883"),
]


def load_targets(path) -> List[Target]:
    """Read a JSON targets file: {"targets": [{"name", "pub_addr", "sub_addr"}]}."""
    raw = Path(path).read_text(encoding="utf-8")
    return TargetsFile.model_validate_json(raw).targets


def parse_target(spec: str) -> Target:
    """Parse the CLI form NAME=PUB[,SUB]; SUB defaults to PUB."""
    name, sep, addrs = spec.partition("=")
    if not sep:
        raise ValueError(f"expected NAME=PUB[,SUB], got {spec!r}")
    pub, _, sub = addrs.partition(",")
    return Target(name=name.strip(), pub_addr=pub.strip(),
                  sub_addr=(sub or pub).strip())
