"""Exception types raised by the INFO parsers and the scraper."""


class RedisScrapeError(Exception):
    """Base class for every error surfaced by a scrape cycle."""


class RetrievalError(RedisScrapeError):
    """Fetching the INFO text failed; the whole cycle is abandoned."""


class ScrapeCancelled(RetrievalError):
    """The caller's cancel event was set before the cycle could finish retrieval."""


class MissingUptimeError(RedisScrapeError):
    """uptime_in_seconds is absent or not an integer."""


class ParseError(RedisScrapeError, ValueError):
    """A single keyspace / commandstat / latencystats entry violates its grammar.

    Recovered by the scraper at entry granularity: the entry is logged and skipped.
    """


__all__ = [
    "RedisScrapeError",
    "RetrievalError",
    "ScrapeCancelled",
    "MissingUptimeError",
    "ParseError",
]
