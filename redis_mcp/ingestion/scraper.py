"""One scrape cycle: INFO text -> data points.

RedisScraper owns the only state that survives between cycles, the uptime
seen last time. Cycles must not overlap; run_scrape_loop (or the lock held by
the MCP tools) provides that serialization, the scraper itself does not.
"""
from __future__ import annotations
import threading
import time
from typing import Callable, Dict, List, Optional

from .info_parser import (
    MetricSample, COMMANDSTAT_PREFIX, LATENCYSTATS_PREFIX,
    parse_info, parse_keyspace, parse_commandstat, parse_latencystats, parse_int_value,
)
from .metrics_builder import MetricsBuilder
from .recorders import DATA_POINT_RECORDERS, record_fields
from ..errors import MissingUptimeError, ParseError, RedisScrapeError, RetrievalError, ScrapeCancelled
from ..debug_util import dbg, warn

REDIS_MAX_DBS = 16  # db0..db15
UPTIME_FIELD = "uptime_in_seconds"

# Only these percentile labels become metrics; others are parsed and dropped.
LATENCY_METRICS: Dict[str, str] = {
    "p50": "redis.latencystat.p50",
    "p90": "redis.latencystat.p90",
    "p99": "redis.latencystat.p99",
    "p99.9": "redis.latencystat.p99.9",
    "p99.99": "redis.latencystat.p99.99",
    "p100": "redis.latencystat.p100",
}


def uptime_seconds(info: Dict[str, str]) -> int:
    raw = info.get(UPTIME_FIELD)
    if raw is None:
        raise MissingUptimeError(f"INFO reply has no '{UPTIME_FIELD}' field")
    try:
        return parse_int_value(raw)
    except ParseError as e:
        raise MissingUptimeError(f"invalid '{UPTIME_FIELD}' value: {e}") from e


class RedisScraper:
    def __init__(self, client, builder: Optional[MetricsBuilder] = None, recorders=DATA_POINT_RECORDERS,
                 clock: Callable[[], float] = time.time):
        self.client = client
        self.clock = clock
        endpoint = getattr(client, 'endpoint', None)
        self.mb = builder or MetricsBuilder(
            resource_labels={'server_address': endpoint} if endpoint else None, clock=clock
        )
        self.recorders = recorders
        self.uptime_s = 0  # 0 = nothing observed yet
        self.cycles = 0
        self.parse_errors = 0

    def scrape(self, cancel: Optional[threading.Event] = None) -> List[MetricSample]:
        """Run one cycle and return its data points as one batch.

        Raises RetrievalError (or ScrapeCancelled) when the INFO text cannot be
        fetched and MissingUptimeError when it lacks a usable uptime; nothing is
        emitted in either case. Malformed individual entries are logged and skipped.
        """
        if cancel is not None and cancel.is_set():
            raise ScrapeCancelled("scrape cancelled before retrieval")
        try:
            text = self.client.retrieve_info()
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(f"failed to retrieve INFO: {e.__class__.__name__}: {e}") from e
        if cancel is not None and cancel.is_set():
            raise ScrapeCancelled("scrape cancelled during retrieval")

        info = parse_info(text, self.client.delimiter)
        now_ms = int(self.clock() * 1000)
        current_uptime = uptime_seconds(info)

        # A shrinking uptime means the server restarted and its counters began again.
        if self.uptime_s == 0 or self.uptime_s > current_uptime:
            self.mb.reset(now_ms - current_uptime * 1000)
            dbg(f'scrape_reset_start_time previous_uptime={self.uptime_s} uptime={current_uptime} start_ts_ms={self.mb.start_ts_ms}')
        self.uptime_s = current_uptime

        self.record_common_metrics(now_ms, info)
        self.record_keyspace_metrics(now_ms, info)
        self.record_commandstats_metrics(now_ms, info)
        self.record_latencystats_metrics(now_ms, info)

        batch = self.mb.emit()
        self.cycles += 1
        dbg(f'scrape_done cycle={self.cycles} fields={len(info)} points={len(batch)} uptime={current_uptime}')
        return batch

    def _skip(self, what: str, key: str, value: str, err: Exception) -> None:
        self.parse_errors += 1
        warn('failed to parse %s key=%s val=%r err=%s', what, key, value, err)

    def record_common_metrics(self, ts_ms: int, info: Dict[str, str]) -> int:
        return record_fields(self.recorders, self.mb, ts_ms, info,
                             on_error=lambda k, v, e: self._skip('info value', k, v, e))

    def record_keyspace_metrics(self, ts_ms: int, info: Dict[str, str]) -> None:
        """db0, db1, ... up to the first missing index; a gap hides every higher db."""
        for db in range(REDIS_MAX_DBS):
            key = f"db{db}"
            value = info.get(key)
            if value is None:
                break
            try:
                keyspace = parse_keyspace(db, value)
            except ParseError as e:
                self._skip('keyspace string', key, value, e)
                continue
            labels = {'db': keyspace.db}
            self.mb.record_int("redis.db.keys", ts_ms, keyspace.keys, labels)
            self.mb.record_int("redis.db.expires", ts_ms, keyspace.expires, labels)
            self.mb.record_int("redis.db.avg_ttl", ts_ms, keyspace.avg_ttl, labels)

    def record_commandstats_metrics(self, ts_ms: int, info: Dict[str, str]) -> None:
        for key, value in info.items():
            if not key.startswith(COMMANDSTAT_PREFIX):
                continue
            try:
                stat = parse_commandstat(key, value)
            except ParseError as e:
                self._skip('commandstat string', key, value, e)
                continue
            labels = {'command': stat.command}
            self.mb.record_int("redis.command.calls", ts_ms, stat.calls, labels)
            self.mb.record_int("redis.command.usec", ts_ms, stat.usec, labels)
            self.mb.record_double("redis.command.usec_per_call", ts_ms, stat.usec_per_call, labels)
            self.mb.record_int("redis.command.rejected_calls", ts_ms, stat.rejected_calls, labels)
            self.mb.record_int("redis.command.failed_calls", ts_ms, stat.failed_calls, labels)

    def record_latencystats_metrics(self, ts_ms: int, info: Dict[str, str]) -> None:
        for key, value in info.items():
            if not key.startswith(LATENCYSTATS_PREFIX) or len(key) <= len(LATENCYSTATS_PREFIX):
                continue
            command = key[len(LATENCYSTATS_PREFIX):]
            try:
                latency = parse_latencystats(command, value)
            except ParseError as e:
                self._skip('latency stats string', key, value, e)
                continue
            for percentile, usec in latency.stats.items():
                metric = LATENCY_METRICS.get(percentile)
                if metric:
                    self.mb.record_double(metric, ts_ms, usec, {'command': command})


def run_scrape_loop(scraper: RedisScraper, sink, interval_s: float, stop_event: threading.Event,
                    max_cycles: Optional[int] = None) -> int:
    """Scrape every interval_s seconds on the calling thread until stop_event is set.

    Each successful batch goes to sink.add() then sink.flush(). A failed cycle
    is logged and the loop carries on; there is no retry inside a cycle.
    Returns the number of cycles attempted.
    """
    cycles = 0
    while not stop_event.is_set():
        started = time.monotonic()
        try:
            batch = scraper.scrape(cancel=stop_event)
        except ScrapeCancelled:
            break
        except RedisScrapeError as e:
            warn('scrape cycle failed: %s', e)
        else:
            for sample in batch:
                sink.add(sample)
            sink.flush()
        cycles += 1
        if max_cycles is not None and cycles >= max_cycles:
            break
        stop_event.wait(max(0.0, interval_s - (time.monotonic() - started)))
    return cycles


__all__ = ["RedisScraper", "run_scrape_loop", "uptime_seconds", "LATENCY_METRICS", "REDIS_MAX_DBS"]
