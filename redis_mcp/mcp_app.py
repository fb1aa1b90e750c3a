import os, threading
from typing import List, Optional, Dict, Any

from .settings import ScraperSettings
from .errors import RedisScrapeError
from .ingestion.client import create_client
from .ingestion.metrics_builder import MemorySink
from .ingestion.scraper import RedisScraper, run_scrape_loop
from .timescale.bootstrap import bootstrap_timescale
from .timescale.writer import TimescaleWriter
from .timescale.schema_spec import SCHEMA_SPEC, lookup_metric, view_name
from .debug_util import dbg
from fastmcp import FastMCP

# ----------------- System Prompt Guidance -----------------
SYSTEM_PROMPT = (
    "Workflow:\n"
    "1. scrape_now() runs one INFO scrape against the configured Redis server and returns a summary.\n"
    "2. last_scrape(metric_prefix=optional) returns the data points of the most recent successful scrape.\n"
    "3. metric_catalog() lists every metric with kind (sum|gauge), unit and labels.\n"
    "4. metric_schema(metric_name) gives the Timescale view, columns and an example query.\n"
    "5. Cumulative (sum) metrics carry start_ts; it moves forward whenever the server restarts (uptime went down).\n"
    "6. Keyspace metrics are labelled by db, command and latency metrics by command.\n"
)

mcp = FastMCP("redis-info-mcp")
SETTINGS: Optional[ScraperSettings] = None
SCRAPER: Optional[RedisScraper] = None
MEMORY_SINK = MemorySink()
TIMESCALE_WRITER: Optional[TimescaleWriter] = None
LAST_ERROR: Optional[Dict[str, str]] = None
_SCRAPE_LOCK = threading.Lock()  # scrape cycles must never overlap
_LOOP_STOP = threading.Event()
_LOOP_THREAD: Optional[threading.Thread] = None


class _SerializedScraper:
    """Routes the background loop through the same lock the tools use."""

    def scrape(self, cancel=None):
        with _SCRAPE_LOCK:
            return SCRAPER.scrape(cancel=cancel)


class _FanOutSink:
    def add(self, sample):
        MEMORY_SINK.add(sample)
        if TIMESCALE_WRITER is not None:
            TIMESCALE_WRITER.add(sample)

    def flush(self):
        MEMORY_SINK.flush()
        if TIMESCALE_WRITER is not None:
            TIMESCALE_WRITER.flush()


def init_server(client=None, settings: Optional[ScraperSettings] = None) -> dict:
    """Build the scraper (and the Timescale sink when a DSN is configured).

    `client` overrides the INFO source, mainly for tests. Returns a status dict.
    """
    global SETTINGS, SCRAPER, TIMESCALE_WRITER, LAST_ERROR
    SETTINGS = settings or ScraperSettings.from_env()
    status: Dict[str, Any] = {}
    with _SCRAPE_LOCK:
        SCRAPER = RedisScraper(client or create_client(SETTINGS))
        LAST_ERROR = None
    status['source'] = {
        'endpoint': getattr(SCRAPER.client, 'endpoint', None),
        'file': getattr(SCRAPER.client, 'path', None),
        'delimiter': repr(SCRAPER.client.delimiter),
    }
    if SETTINGS.timescale_dsn:
        try:
            status['timescale'] = bootstrap_timescale(SETTINGS.timescale_dsn)
            TIMESCALE_WRITER = TimescaleWriter(dsn=SETTINGS.timescale_dsn)
        except Exception as e:
            status['timescale'] = {'enabled': True, 'error': str(e)}
    else:
        TIMESCALE_WRITER = None
        status['timescale'] = {'enabled': False, 'reason': 'no_dsn'}
    dbg(f'init_server status={status}')
    return status


def _sample_dict(s) -> dict:
    return {'name': s.name, 'value': s.value, 'ts_ms': s.ts_ms, 'start_ts_ms': s.start_ts_ms, 'labels': dict(s.labels)}


def scrape_once() -> dict:
    """Run one serialized scrape cycle and push the batch to every sink."""
    global LAST_ERROR
    if SCRAPER is None:
        init_server()
    sink = _FanOutSink()
    try:
        batch = _SerializedScraper().scrape()
    except RedisScrapeError as e:
        LAST_ERROR = {'error': e.__class__.__name__, 'detail': str(e)}
        return dict(LAST_ERROR)
    for sample in batch:
        sink.add(sample)
    sink.flush()
    LAST_ERROR = None
    by_metric: Dict[str, int] = {}
    for s in batch:
        by_metric[s.name] = by_metric.get(s.name, 0) + 1
    return {
        'points': len(batch),
        'uptime_s': SCRAPER.uptime_s,
        'start_ts_ms': SCRAPER.mb.start_ts_ms,
        'cycles': SCRAPER.cycles,
        'parse_errors': SCRAPER.parse_errors,
        'by_metric': by_metric,
    }


def health() -> dict:
    return {
        'status': 'ok' if LAST_ERROR is None else 'degraded',
        'initialized': SCRAPER is not None,
        'cycles': SCRAPER.cycles if SCRAPER else 0,
        'last_error': LAST_ERROR,
        'background_loop': bool(_LOOP_THREAD and _LOOP_THREAD.is_alive()),
        'memory_sink': MEMORY_SINK.stats(),
        'timescale': TIMESCALE_WRITER.stats() if TIMESCALE_WRITER else None,
    }


def last_batch(metric_prefix: Optional[str] = None, limit: int = 500) -> dict:
    batch = MEMORY_SINK.last_batch
    if metric_prefix:
        batch = [s for s in batch if s.name.startswith(metric_prefix)]
    return {
        'count': len(batch),
        'truncated': len(batch) > limit,
        'points': [_sample_dict(s) for s in batch[:limit]],
    }


def start_background_loop(interval_s: Optional[float] = None) -> bool:
    """Scrape on a fixed interval in one daemon thread. Returns False if already running."""
    global _LOOP_THREAD
    if _LOOP_THREAD and _LOOP_THREAD.is_alive():
        return False
    if SCRAPER is None:
        init_server()
    interval = interval_s if interval_s is not None else SETTINGS.collection_interval_s
    _LOOP_STOP.clear()
    _LOOP_THREAD = threading.Thread(
        target=run_scrape_loop, args=(_SerializedScraper(), _FanOutSink(), interval, _LOOP_STOP),
        name='redis-scrape-loop', daemon=True,
    )
    _LOOP_THREAD.start()
    return True


def stop_background_loop(timeout_s: float = 5.0) -> None:
    _LOOP_STOP.set()
    if _LOOP_THREAD is not None:
        _LOOP_THREAD.join(timeout_s)


@mcp.tool()
def scrape_now() -> dict:
    """Scrape the configured Redis server once.

    Returns {points, uptime_s, start_ts_ms, cycles, parse_errors, by_metric} or {'error','detail'}."""
    return scrape_once()


@mcp.tool()
def last_scrape(metric_prefix: Optional[str] = None, limit: int = 500) -> dict:
    """Data points of the most recent successful scrape, optionally filtered by metric name prefix."""
    return last_batch(metric_prefix, limit)


@mcp.tool()
def metric_catalog() -> List[dict]:
    """Every metric the scraper can emit: name, kind, value_type, unit, labels, description."""
    out = []
    for grp in SCHEMA_SPEC.values():
        for name, meta in grp.metrics.items():
            out.append({
                'metric_name': name, 'kind': meta.kind, 'value_type': meta.value_type, 'unit': meta.unit,
                'category': grp.category, 'labels': list(grp.local_labels), 'description': meta.description,
            })
    return out


@mcp.tool()
def metric_schema(metric_name: str) -> dict:
    """Timescale view + columns + example SQL for one metric, or {'error':'metric_not_found'}."""
    grp, meta = lookup_metric(metric_name.strip())
    if not grp:
        return {'error': 'metric_not_found', 'metric_name': metric_name}
    cols = [
        {'name': 'ts', 'role': 'timestamp', 'type': 'TIMESTAMPTZ', 'description': 'Scrape timestamp (UTC)'},
        {'name': 'start_ts', 'role': 'timestamp', 'type': 'TIMESTAMPTZ', 'description': 'Start of the cumulative window (server start)'},
        {'name': 'value', 'role': 'value', 'type': 'BIGINT' if meta.value_type == 'int' else 'DOUBLE PRECISION', 'description': meta.description},
        {'name': 'metric_category', 'role': 'global', 'type': 'TEXT', 'description': 'Table group (server, cpu, keyspace, command, latency)'},
        {'name': 'server_address', 'role': 'global', 'type': 'TEXT', 'description': 'Redis endpoint the point was scraped from'},
    ]
    for lbl in grp.local_labels:
        cols.append({'name': lbl, 'role': 'local_label', 'type': 'TEXT', 'description': f'Local label: {lbl}'})
    view = view_name(meta)
    example = (
        "-- Fill {start_ms},{end_ms}\n"
        f"SELECT time_bucket('1 minute', ts) AS bucket, avg(value) AS avg_value\n"
        f"FROM {view}\n"
        "WHERE ts BETWEEN to_timestamp({start_ms}/1000.0) AND to_timestamp({end_ms}/1000.0)\n"
        "GROUP BY 1 ORDER BY 1;"
    )
    return {
        'metric_name': metric_name.strip(), 'view': view, 'table': grp.table, 'category': grp.category,
        'kind': meta.kind, 'unit': meta.unit, 'columns': cols, 'description': meta.description,
        'example_query': example,
    }


@mcp.tool()
def healthz() -> dict:
    """Scraper health: last error, cycles run, sink statistics."""
    return health()


if __name__ == '__main__':
    print('Initializing server...')
    print(init_server())
    if os.environ.get('REDIS_MCP_BACKGROUND', '1').lower() in ('1', 'true', 'yes'):
        start_background_loop()
    host = os.environ.get('HOST','0.0.0.0')
    port = int(os.environ.get('PORT','8000'))
    print(f'Starting FastMCP on {host}:{port}')
    mcp.run(transport="http", host=host, port=port, stateless_http=True)
