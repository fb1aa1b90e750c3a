"""TimescaleWriter: sink that coalesces data points into rows and writes them with psycopg.

Surface shared with MemorySink:
 methods: add(sample), flush(), stats()

Samples with the same table, timestamp, server and local labels collapse into
one logical row (e.g. all five redis.command.* points of cmdstat_get land in
one redis_command row).
"""
from __future__ import annotations
import os
import time
from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime, timezone

from ..ingestion.info_parser import MetricSample
from .schema_spec import SCHEMA_SPEC, TableGroup, lookup_metric
from ..debug_util import dbg, warn

GLOBAL_COLUMN_NAMES = ('ts', 'start_ts', 'metric_category', 'server_address')


@dataclass
class _PendingRow:
    table: str
    key: Tuple[Any, ...]  # composite key identifying a coalesced logical row
    values: Dict[str, Any]  # column -> value


def _iso(ts_ms: Optional[int]) -> Optional[str]:
    if not ts_ms:
        return None
    return datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).isoformat()


class TimescaleWriter:
    def __init__(self, batch_size: int = 2000, dsn: Optional[str] = None, use_copy: Optional[bool] = None):
        """Accumulate coalesced rows and write them in batches.

        Parameters:
            batch_size: logical rows kept in memory before an automatic flush.
            dsn: PostgreSQL/Timescale connection string (falls back to TIMESCALE_DSN).
            use_copy: use COPY FROM STDIN instead of INSERT. If None, reads
                REDIS_MCP_USE_COPY (default: False).
        """
        if 'REDIS_MCP_BATCH_SIZE' in os.environ and batch_size == 2000:  # only override default, not explicit caller value
            try:
                batch_size = int(os.environ['REDIS_MCP_BATCH_SIZE'])
            except ValueError:
                pass
        self.batch_size = max(1, batch_size)
        if use_copy is None:
            use_copy = os.environ.get('REDIS_MCP_USE_COPY', '').lower() in ('true', '1', 'yes')
        self.use_copy = use_copy

        self._pending: Dict[Tuple[Any, ...], _PendingRow] = {}
        self._last_key: Optional[Tuple[Any, ...]] = None
        self.total_samples_added = 0
        self.total_rows_added = 0
        self.total_flushes = 0
        self.total_rows_flushed = 0
        self.total_flush_failures = 0
        self.unknown_metrics = 0
        self.last_flush_ms: Optional[int] = None
        self.dsn = dsn or os.environ.get('TIMESCALE_DSN')
        self._conn = None
        self._ensure_connection()

    def _ensure_connection(self):
        if self.dsn and self._conn is None:
            try:
                import psycopg
                self._conn = psycopg.connect(self.dsn)
                dbg('timescale_connect_ok')
            except Exception as e:
                warn('timescale connect failed: %s: %s', e.__class__.__name__, e)
                self._conn = None

    def add(self, sample: MetricSample):
        grp, meta = lookup_metric(sample.name)
        if not grp or not meta:
            self.unknown_metrics += 1
            return
        self.total_samples_added += 1
        labels = sample.labels or {}
        iso_ts = _iso(sample.ts_ms)
        key_parts = [grp.table, iso_ts, labels.get('server_address')]
        for lbl in grp.local_labels:
            key_parts.append(labels.get(lbl))
        key = tuple(key_parts)
        pending = self._pending.get(key)
        # Flush only when starting a NEW logical row AND batch size threshold reached.
        if pending is None and len(self._pending) >= self.batch_size and self._last_key != key:
            self.flush()
        if pending is None:
            base: Dict[str, Any] = {
                'ts': iso_ts,
                'start_ts': _iso(sample.start_ts_ms),
                'metric_category': grp.category,
                'server_address': labels.get('server_address'),
            }
            for lbl in grp.local_labels:
                base[lbl] = labels.get(lbl)
            for m in grp.metrics.values():
                base.setdefault(m.column, None)
            pending = _PendingRow(grp.table, key, base)
            self._pending[key] = pending
            self.total_rows_added += 1
        pending.values[meta.column] = sample.value
        self._last_key = key

    def rows_by_table(self) -> Dict[str, List[_PendingRow]]:
        grouped: Dict[str, List[_PendingRow]] = {}
        for row in self._pending.values():
            grouped.setdefault(row.table, []).append(row)
        return grouped

    @staticmethod
    def _columns(grp: TableGroup) -> List[str]:
        return list(GLOBAL_COLUMN_NAMES) + list(grp.local_labels) + [m.column for m in grp.metrics.values()]

    def _flush_with_copy(self, table: str, rows: List[_PendingRow], col_list: List[str]) -> None:
        with self._conn.cursor() as cur:
            with cur.copy(f"COPY {table} ({','.join(col_list)}) FROM STDIN") as copy:
                for r in rows:
                    copy.write_row([r.values.get(c) for c in col_list])
        dbg(f'timescale_copy_ok table={table} rows={len(rows)}')

    def _flush_with_insert(self, table: str, rows: List[_PendingRow], col_list: List[str]) -> None:
        placeholders = ','.join(['%s'] * len(col_list))
        sql = f"INSERT INTO {table} ({','.join(col_list)}) VALUES ({placeholders}) ON CONFLICT DO NOTHING"
        with self._conn.cursor() as cur:
            cur.executemany(sql, [tuple(r.values.get(c) for c in col_list) for r in rows])
        dbg(f'timescale_insert_ok table={table} rows={len(rows)}')

    def flush(self):
        if not self._pending:
            return
        started = time.monotonic()
        tables = {g.table: g for g in SCHEMA_SPEC.values()}
        for table, rows in self.rows_by_table().items():
            self.total_rows_flushed += len(rows)
            grp = tables[table]
            col_list = self._columns(grp)
            if self._conn is None:
                continue
            try:
                if self.use_copy:
                    self._flush_with_copy(table, rows, col_list)
                else:
                    self._flush_with_insert(table, rows, col_list)
                self._conn.commit()
            except Exception as e:
                self.total_flush_failures += 1
                warn('timescale flush failed table=%s err=%s: %s', table, e.__class__.__name__, e)
                try:
                    self._conn.rollback()
                except Exception as rb_err:
                    dbg(f'timescale_rollback_fail err={rb_err}')
        self.total_flushes += 1
        self._pending.clear()
        self._last_key = None
        self.last_flush_ms = int((time.monotonic() - started) * 1000)
        dbg(f'timescale_flush_done rows={self.total_rows_flushed} ms={self.last_flush_ms}')

    def close(self):
        self.flush()
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def stats(self) -> Dict[str, Any]:
        return {
            'total_samples_added': self.total_samples_added,
            'total_rows_added': self.total_rows_added,
            'total_rows_flushed': self.total_rows_flushed,
            'total_flushes': self.total_flushes,
            'total_flush_failures': self.total_flush_failures,
            'unknown_metrics': self.unknown_metrics,
            'connected': bool(self._conn),
            'insert_method': 'COPY' if self.use_copy else 'INSERT',
            'batch_size': self.batch_size,
            'last_flush_ms': self.last_flush_ms,
        }

__all__ = ["TimescaleWriter"]
