from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import Dict, Union

from ..errors import ParseError

Number = Union[int, float]

@dataclass(frozen=True)
class MetricSample:
    name: str
    value: Number
    ts_ms: int
    labels: Dict[str, str]
    start_ts_ms: int = 0

@dataclass(frozen=True)
class KeyspaceEntry:
    db: str
    keys: int
    expires: int
    avg_ttl: int

@dataclass(frozen=True)
class CommandStat:
    command: str
    calls: int = 0
    usec: int = 0
    usec_per_call: float = 0.0
    rejected_calls: int = 0
    failed_calls: int = 0

@dataclass(frozen=True)
class LatencyStat:
    command: str
    stats: Dict[str, float] = field(default_factory=dict)

"""Redis INFO parser

The scraper asks for three INFO sections (default, commandstats, latencystats)
and joins them with the client's line delimiter, so everything below sees one
continuous text stream:

    # Server
    uptime_in_seconds:104946
    ...
    # Keyspace
    db0:keys=1,expires=2,avg_ttl=3
    # Commandstats
    cmdstat_get:calls=2,usec=4,usec_per_call=2.00,rejected_calls=0,failed_calls=0
    # Latencystats
    latency_percentiles_usec_get:p50=1.003,p99=3.007,p99.9=4.015

Top level lines are lenient: headers, blanks and anything without a colon are
dropped silently. The per-entry value grammars (keyspace, commandstat,
latencystats) are strict and raise ParseError so the caller can skip exactly
one entry.

Keyspace is the strictest: the schema is fixed to keys/expires/avg_ttl and
all three must be present. Commandstat tolerates unknown well-formed fields
(newer servers add them) but still rejects pairs without '='.
"""

CRLF = "\r\n"
LF = "\n"

KEYSPACE_FIELDS = ("keys", "expires", "avg_ttl")
COMMANDSTAT_INT_FIELDS = ("calls", "usec", "rejected_calls", "failed_calls")
COMMANDSTAT_PREFIX = "cmdstat_"
LATENCYSTATS_PREFIX = "latency_percentiles_usec_"
INT_RE = re.compile(r"[+-]?[0-9]+")
FLOAT_RE = re.compile(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?|[+-]?(inf|infinity|nan)", re.IGNORECASE)


def parse_info(text: str, delimiter: str = CRLF) -> Dict[str, str]:
    """Split an INFO blob into {field: raw value}.

    The first colon separates name from value; the remainder (further colons
    included) is the value. A name seen twice keeps the later value.
    """
    out: Dict[str, str] = {}
    if not text:
        return out
    for line in text.split(delimiter):
        if not line or line.startswith('#'):
            continue
        name, sep, value = line.partition(':')
        if not sep or not name:
            continue
        out[name] = value
    return out


def _split_pair(pair: str, kind: str) -> tuple[str, str]:
    parts = pair.split('=')
    if len(parts) != 2:
        raise ParseError(f"unexpected {kind} pair '{pair}'")
    return parts[0], parts[1]


def parse_int_value(raw: str) -> int:
    if not INT_RE.fullmatch(raw):
        raise ParseError(f"invalid integer literal '{raw}'")
    return int(raw)


def parse_float_value(raw: str) -> float:
    if not FLOAT_RE.fullmatch(raw):
        raise ParseError(f"invalid float literal '{raw}'")
    return float(raw)


def parse_keyspace(db: int, value: str) -> KeyspaceEntry:
    """Decode `keys=1,expires=2,avg_ttl=3` for database `db`."""
    found: Dict[str, int] = {}
    for pair in value.split(','):
        key, raw = _split_pair(pair, 'keyspace')
        if key not in KEYSPACE_FIELDS:
            raise ParseError(f"unexpected keyspace field '{key}'")
        found[key] = parse_int_value(raw)
    missing = [k for k in KEYSPACE_FIELDS if k not in found]
    if missing:
        raise ParseError(f"keyspace entry db{db} missing fields {missing}")
    return KeyspaceEntry(str(db), found['keys'], found['expires'], found['avg_ttl'])


def parse_commandstat(command: str, value: str) -> CommandStat:
    """Decode `calls=..,usec=..,usec_per_call=..,rejected_calls=..,failed_calls=..`.

    Unknown keys are ignored; a pair without exactly one '=' fails the whole line.
    """
    fields: Dict[str, Number] = {}
    for pair in value.split(','):
        key, raw = _split_pair(pair, 'commandstat')
        if key in COMMANDSTAT_INT_FIELDS:
            fields[key] = parse_int_value(raw)
        elif key == 'usec_per_call':
            fields[key] = parse_float_value(raw)
    return CommandStat(command=command, **fields)


def parse_latencystats(command: str, value: str) -> LatencyStat:
    """Decode `p50=10.123,p99=110.234,p99.9=120.234` into {label: usec}."""
    stats: Dict[str, float] = {}
    for pair in value.split(','):
        label, raw = _split_pair(pair, 'latencystats')
        if not label:
            raise ParseError(f"unexpected latencystats pair '{pair}'")
        if label in stats:
            raise ParseError(
                f"multiple stats in one command '{command}' for the same percentile '{label}'"
            )
        stats[label] = parse_float_value(raw)
    return LatencyStat(command, stats)


__all__ = [
    "MetricSample",
    "KeyspaceEntry",
    "CommandStat",
    "LatencyStat",
    "CRLF",
    "LF",
    "COMMANDSTAT_PREFIX",
    "LATENCYSTATS_PREFIX",
    "parse_info",
    "parse_keyspace",
    "parse_commandstat",
    "parse_latencystats",
]
