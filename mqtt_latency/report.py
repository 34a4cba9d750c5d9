"""
Console output: coloured status lines and the latency comparison table.
"""

import sys
from typing import Dict, List, Tuple

from .stats import Result, dur_str

HEADERS = ("Configuration", "QoS", "Min", "Max", "Avg", "P95", "P99")

Row = Tuple[str, str, str, str, str, str, str]


# --------------------------------------------------------------------------- #
# Pretty Printing
# --------------------------------------------------------------------------- #
class C:
    OK   = "\033[92m"
    FAIL = "\033[91m"
    WARN = "\033[93m"
    INFO = "\033[94m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    DIM  = "\033[2m"
    END  = "\033[0m"


def log_warn(m):   print(f"{C.WARN}⚠️   {m}{C.END}")
def log_fail(m):   print(f"{C.FAIL}❌ FAIL{C.END}  {m}", file=sys.stderr)
def log_metric(m): print(f"{C.CYAN}📊  {m}{C.END}")
def log_header(m): print(f"\n{C.BOLD}{'='*70}\n  {m}\n{'='*70}{C.END}")
def log_sub(m):    print(f"{C.DIM}    ↳ {m}{C.END}")


def print_batch(name: str, pub_addr: str, sub_addr: str, qos: int, r: Result):
    log_metric(f"{name}: (pub: {pub_addr}, sub: {sub_addr}, QoS: {qos})")
    log_sub(f"min: {dur_str(r.min)}")
    log_sub(f"max: {dur_str(r.max)}")
    log_sub(f"avg: {dur_str(r.mean)}")
    if r.dropped:
        log_sub(f"dropped: {r.dropped} malformed")


# --------------------------------------------------------------------------- #
# Comparison table
# --------------------------------------------------------------------------- #
def result_rows(results: Dict[Tuple[str, int], Result]) -> List[Row]:
    """One row per (target, QoS) in insertion order; repeated names blanked."""
    rows: List[Row] = []
    last = None
    for (name, qos), r in results.items():
        label = "" if name == last else name
        last = name
        rows.append((label, str(qos), dur_str(r.min), dur_str(r.max),
                     dur_str(r.mean), dur_str(r.p95), dur_str(r.p99)))
    return rows


def format_table(rows: List[Row]) -> List[str]:
    widths = [len(h) for h in HEADERS]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def line(cells):
        return "| " + " | ".join(f"{c:<{w}}" for c, w in zip(cells, widths)) + " |"

    sep = "|" + "|".join("-" * (w + 2) for w in widths) + "|"
    return [line(HEADERS), sep] + [line(row) for row in rows]


def render_table(rows: List[Row]):
    log_header("Latency Comparison Table")
    for text in format_table(rows):
        print(f"  {text}")
