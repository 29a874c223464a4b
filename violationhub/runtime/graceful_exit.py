import signal
import sys
import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger("violationhub.runtime")


class GracefulShutdown(Exception):
    pass


def _signal_handler(signum, frame):
    raise GracefulShutdown(f"Received signal {signum}")


def install_signal_handlers() -> bool:
    """
    Turn SIGINT/SIGTERM into GracefulShutdown in the main thread.

    Returns False where handlers cannot be installed (non-main thread,
    platforms without SIGTERM).
    """
    if threading.current_thread() is not threading.main_thread():
        logger.debug("Not main thread; skipping signal handler installation")
        return False

    try:
        signal.signal(signal.SIGINT, _signal_handler)
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, _signal_handler)
    except (ValueError, AttributeError) as e:
        # ValueError: signal only works in main thread
        logger.warning(f"Could not install signal handlers: {e}")
        return False
    return True


@contextmanager
def graceful_execution_context():
    """
    Exits with status 0 on GracefulShutdown. Any other exception propagates.
    """
    try:
        yield
    except GracefulShutdown as e:
        logger.info(f"Graceful shutdown initiated ({e})")
        sys.exit(0)
