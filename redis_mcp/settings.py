"""Environment driven settings for the scraper and its sinks.

Explicit constructor values win; from_env() only fills what the caller left
unset, the same precedence the Timescale writer applies to its overrides.
"""
from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional

_TRUE = ('1', 'true', 'yes')


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUE


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


@dataclass(frozen=True)
class ScraperSettings:
    endpoint: str = "localhost:6379"
    password: Optional[str] = None
    transport: str = "tcp"  # tcp | unix
    tls: bool = False
    tls_ca_file: Optional[str] = None
    timeout_s: float = 5.0
    collection_interval_s: float = 10.0
    info_file: Optional[str] = None  # replay a captured INFO text instead of a live server
    timescale_dsn: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> "ScraperSettings":
        values = dict(
            endpoint=os.environ.get('REDIS_ENDPOINT', cls.endpoint),
            password=os.environ.get('REDIS_PASSWORD') or None,
            transport=os.environ.get('REDIS_TRANSPORT', cls.transport).strip().lower(),
            tls=_env_bool('REDIS_TLS'),
            tls_ca_file=os.environ.get('REDIS_TLS_CA_FILE') or None,
            timeout_s=_env_float('REDIS_TIMEOUT_SECONDS', cls.timeout_s),
            collection_interval_s=_env_float('REDIS_COLLECTION_INTERVAL_SECONDS', cls.collection_interval_s),
            info_file=os.environ.get('REDIS_INFO_FILE') or None,
            timescale_dsn=os.environ.get('TIMESCALE_DSN') or None,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


__all__ = ["ScraperSettings"]
