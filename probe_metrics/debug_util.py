import os, logging, sys

logger = logging.getLogger("probe_metrics")

def _ensure_logger():
    """Attach a basic StreamHandler if none present.

    Done lazily so importing the package does not override the host
    application's logging configuration. Only when a debug message is
    actually emitted (DEBUG_VERBOSE=1) do we make sure a handler exists.
    """
    if logger.handlers:
        return
    logger.setLevel(logging.INFO)
    h = logging.StreamHandler(stream=sys.stdout)
    fmt = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
    h.setFormatter(fmt)
    logger.addHandler(h)

def debug_enabled() -> bool:
    return os.environ.get('DEBUG_VERBOSE') == '1'

def parser_trace_enabled() -> bool:
    """Per-line parser tracing; noisy, so it needs its own switch on top of DEBUG_VERBOSE."""
    return debug_enabled() and os.environ.get('DEBUG_PAYLOAD_PARSER') == '1'

def dbg(msg: str):
    """Emit a debug info line when DEBUG_VERBOSE=1."""
    if debug_enabled():
        _ensure_logger()
        logger.info('[debug] %s', msg)
