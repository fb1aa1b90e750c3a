import os, logging, sys

logger = logging.getLogger("redis_mcp")

def _ensure_logger():
    """Attach a basic StreamHandler if none present.

    Done lazily so importing the module does not override host application
    logging configuration. Only when a debug message is actually emitted
    (DEBUG_VERBOSE=1) do we make sure a handler exists so the user sees output.
    """
    if logger.handlers:
        return
    logger.setLevel(logging.INFO)
    h = logging.StreamHandler(stream=sys.stdout)
    fmt = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    h.setFormatter(fmt)
    logger.addHandler(h)

def dbg(msg: str):
    """Emit a debug info line when DEBUG_VERBOSE=1.

    Export DEBUG_VERBOSE=1 before starting the MCP server, or set it in
    os.environ of a running process and trigger a scrape again.
    """
    if os.environ.get('DEBUG_VERBOSE') == '1':
        _ensure_logger()
        logger.info('[debug] %s', msg)

def warn(msg: str, *args):
    """Non-fatal problems (skipped entries, failed cycles) are always logged."""
    logger.warning(msg, *args)
