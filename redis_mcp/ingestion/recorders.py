from __future__ import annotations
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict

from ..errors import ParseError
from .info_parser import parse_float_value, parse_int_value
from .metrics_builder import MetricsBuilder


@dataclass(frozen=True)
class Recorder(ABC):
    """A simple INFO field bound to one metric identity (plus fixed attributes)."""
    metric: str
    attributes: Dict[str, str] = field(default_factory=dict)

    @abstractmethod
    def parse(self, raw: str):
        ...

    @abstractmethod
    def record(self, builder: MetricsBuilder, ts_ms: int, raw: str) -> None:
        ...


@dataclass(frozen=True)
class IntegerMetric(Recorder):
    def parse(self, raw: str) -> int:
        return parse_int_value(raw)

    def record(self, builder: MetricsBuilder, ts_ms: int, raw: str) -> None:
        builder.record_int(self.metric, ts_ms, self.parse(raw), self.attributes or None)


@dataclass(frozen=True)
class FloatMetric(Recorder):
    def parse(self, raw: str) -> float:
        return parse_float_value(raw)

    def record(self, builder: MetricsBuilder, ts_ms: int, raw: str) -> None:
        builder.record_double(self.metric, ts_ms, self.parse(raw), self.attributes or None)


# INFO field -> recorder. Order follows the field names alphabetically.
DATA_POINT_RECORDERS: "OrderedDict[str, Recorder]" = OrderedDict([
    ("blocked_clients", IntegerMetric("redis.clients.blocked")),
    ("client_recent_max_input_buffer", IntegerMetric("redis.clients.max_input_buffer")),
    ("client_recent_max_output_buffer", IntegerMetric("redis.clients.max_output_buffer")),
    ("connected_clients", IntegerMetric("redis.clients.connected")),
    ("connected_slaves", IntegerMetric("redis.slaves.connected")),
    ("evicted_keys", IntegerMetric("redis.keys.evicted")),
    ("expired_keys", IntegerMetric("redis.keys.expired")),
    ("instantaneous_ops_per_sec", IntegerMetric("redis.commands")),
    ("keyspace_hits", IntegerMetric("redis.keyspace.hits")),
    ("keyspace_misses", IntegerMetric("redis.keyspace.misses")),
    ("latest_fork_usec", IntegerMetric("redis.latest_fork")),
    ("master_repl_offset", IntegerMetric("redis.replication.offset")),
    ("maxmemory", IntegerMetric("redis.maxmemory")),
    ("mem_fragmentation_ratio", FloatMetric("redis.memory.fragmentation_ratio")),
    ("rdb_changes_since_last_save", IntegerMetric("redis.rdb.changes_since_last_save")),
    ("rejected_connections", IntegerMetric("redis.connections.rejected")),
    ("second_repl_offset", IntegerMetric("redis.replication.backlog_first_byte_offset")),
    ("total_commands_processed", IntegerMetric("redis.commands.processed")),
    ("total_connections_received", IntegerMetric("redis.connections.received")),
    ("total_net_input_bytes", IntegerMetric("redis.net.input")),
    ("total_net_output_bytes", IntegerMetric("redis.net.output")),
    ("uptime_in_seconds", IntegerMetric("redis.uptime")),
    ("used_cpu_sys", FloatMetric("redis.cpu.time", {"state": "sys"})),
    ("used_cpu_sys_children", FloatMetric("redis.cpu.time", {"state": "sys_children"})),
    ("used_cpu_user", FloatMetric("redis.cpu.time", {"state": "user"})),
    ("used_cpu_user_children", FloatMetric("redis.cpu.time", {"state": "user_children"})),
    ("used_memory", IntegerMetric("redis.memory.used")),
    ("used_memory_lua", IntegerMetric("redis.memory.lua")),
    ("used_memory_peak", IntegerMetric("redis.memory.peak")),
    ("used_memory_rss", IntegerMetric("redis.memory.rss")),
])


def record_fields(recorders: "OrderedDict[str, Recorder]", builder: MetricsBuilder, ts_ms: int,
                  info: Dict[str, str], on_error=None) -> int:
    """Record every registered field present in `info`; returns how many were recorded.

    A value that does not parse as the recorder's numeric kind is reported via
    on_error(key, raw, exc) and skipped. Unregistered fields are ignored.
    """
    recorded = 0
    for key, raw in info.items():
        recorder = recorders.get(key)
        if recorder is None:
            continue
        try:
            recorder.record(builder, ts_ms, raw)
        except ParseError as e:
            if on_error is not None:
                on_error(key, raw, e)
            continue
        recorded += 1
    return recorded


__all__ = ["Recorder", "IntegerMetric", "FloatMetric", "DATA_POINT_RECORDERS", "record_fields"]
