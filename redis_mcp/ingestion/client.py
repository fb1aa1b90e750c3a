"""INFO text sources consumed by the scraper.

A source exposes `retrieve_info() -> str` and a fixed `delimiter`. Live Redis
replies are CRLF delimited; captured files (tests, offline replays) use LF.
The parser never guesses: it splits on whatever the source declares.
"""
from __future__ import annotations
import os
from typing import List, Optional, Protocol

import redis

from .info_parser import CRLF, LF
from ..debug_util import dbg

INFO_SECTIONS: List[Optional[str]] = [None, "commandstats", "latencystats"]


class InfoClient(Protocol):
    delimiter: str

    def retrieve_info(self) -> str:
        ...


def _raw_info(response, **options):
    # keep the reply text as-is instead of redis-py's dict conversion
    return response


class RedisInfoClient:
    """Wraps a redis-py client and returns default + commandstats + latencystats INFO text."""

    delimiter = CRLF

    def __init__(self, endpoint: str = "localhost:6379", password: Optional[str] = None, transport: str = "tcp",
                 tls: bool = False, tls_ca_file: Optional[str] = None, timeout_s: float = 5.0):
        self.endpoint = endpoint
        self.transport = transport
        if tls_ca_file and not os.path.isfile(tls_ca_file):
            raise ValueError(f"failed to load TLS config: CA file not found: {tls_ca_file}")
        kwargs = dict(
            password=password,
            decode_responses=True,
            socket_timeout=timeout_s,
            socket_connect_timeout=timeout_s,
        )
        if transport == "unix":
            self._client = redis.Redis(unix_socket_path=endpoint, **kwargs)
        elif transport == "tcp":
            host, _, port = endpoint.rpartition(':')
            if tls:
                kwargs.update(ssl=True, ssl_ca_certs=tls_ca_file)
            self._client = redis.Redis(host=host or "localhost", port=int(port or 6379), **kwargs)
        else:
            raise ValueError(f"unsupported transport '{transport}' (expected tcp or unix)")
        self._client.set_response_callback("INFO", _raw_info)
        dbg(f'redis_client_init endpoint={endpoint} transport={transport} tls={tls}')

    def retrieve_info(self) -> str:
        parts = []
        for section in INFO_SECTIONS:
            args = ("INFO",) if section is None else ("INFO", section)
            reply = self._client.execute_command(*args)
            if isinstance(reply, bytes):
                reply = reply.decode("utf-8", errors="replace")
            parts.append(reply)
        return self.delimiter.join(parts)

    def close(self) -> None:
        self._client.close()


class FileInfoClient:
    """Reads a captured INFO text file on every call."""

    delimiter = LF

    def __init__(self, path: str, delimiter: str = LF):
        self.path = path
        self.delimiter = delimiter
        self.endpoint = None

    def retrieve_info(self) -> str:
        with open(self.path, 'r', encoding='utf-8') as fh:
            return fh.read()


def create_client(settings) -> InfoClient:
    """Build the client described by ScraperSettings (file replay wins over a live endpoint)."""
    if settings.info_file:
        return FileInfoClient(settings.info_file)
    return RedisInfoClient(
        endpoint=settings.endpoint,
        password=settings.password,
        transport=settings.transport,
        tls=settings.tls,
        tls_ca_file=settings.tls_ca_file,
        timeout_s=settings.timeout_s,
    )


__all__ = ["InfoClient", "RedisInfoClient", "FileInfoClient", "create_client", "INFO_SECTIONS"]
