"""Timescale bootstrap: create the redis_* tables, hypertables, views and indexes.

Safe to run repeatedly: DDL uses IF NOT EXISTS / OR REPLACE and individual
failures roll back without stopping the rest.
"""
from __future__ import annotations
import os
import psycopg
from .schema_spec import generate_all_ddls
from ..debug_util import dbg

def bootstrap_timescale(dsn: str | None = None, create_hypertables: bool = True) -> dict:
    dsn = dsn or os.environ.get('TIMESCALE_DSN')
    if not dsn:
        return {'enabled': False, 'reason': 'no_dsn'}
    ddls = generate_all_ddls()
    created: list[str] = []
    failed: list[str] = []

    def _run(cur, conn, stmt: str) -> bool:
        try:
            cur.execute(stmt)
            conn.commit()
            return True
        except psycopg.Error as e:
            conn.rollback()
            dbg(f'timescale_bootstrap_stmt_fail stmt={stmt.splitlines()[0]} err={e}')
            failed.append(stmt.splitlines()[0])
            return False

    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            _run(cur, conn, "CREATE EXTENSION IF NOT EXISTS timescaledb")
            for stmt in ddls['tables']:
                if _run(cur, conn, stmt):
                    created.append(stmt.split()[5])  # CREATE TABLE IF NOT EXISTS <name>
            if create_hypertables:
                for stmt in ddls['tables']:
                    tbl = stmt.split()[5]
                    _run(cur, conn, f"SELECT create_hypertable('{tbl}','ts', if_not_exists => TRUE)")
            for v in ddls['views']:
                _run(cur, conn, v)
            for idx in ddls['indexes']:
                _run(cur, conn, idx)
    return {'enabled': True, 'created': created, 'failed': failed}

__all__ = ["bootstrap_timescale"]
