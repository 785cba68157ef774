import logging
import signal
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from .constants import APP_NAME, DEFAULT_MAX_LOG_SIZE, ERROR_BACKOFF_SECONDS
from .sync import SyncOrchestrator

logger = logging.getLogger(APP_NAME)


class DaemonLoop:
    """Runs sync cycles forever until cancelled.

    Exactly one cycle runs at a time. A successful cycle is followed by the
    configured interval; a failed one by a short fixed backoff. Cancellation is
    checked before each cycle and during every sleep, never mid-cycle.

    Attributes:
        orchestrator (SyncOrchestrator): Performs each sync cycle.
        error_backoff (float): Seconds to wait after a failed cycle.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        error_backoff: float = ERROR_BACKOFF_SECONDS,
    ):
        self.orchestrator = orchestrator
        self.error_backoff = error_backoff

    def run(self, interval: float, cancel: threading.Event) -> None:
        """Loops until `cancel` is set.

        Args:
            interval (float): Seconds between successful cycles.
            cancel (threading.Event): Set to request shutdown.
        """
        logger.info(f"Daemon started. Sync interval: {interval} seconds")

        while not cancel.is_set():
            delay = self.run_cycle(interval)
            # Event.wait returns True as soon as cancellation is requested.
            if cancel.wait(delay):
                break

        logger.info("Daemon stopped")

    def run_cycle(self, interval: float) -> float:
        """Runs one sync and returns how long to sleep before the next.

        Args:
            interval (float): The delay after a successful cycle.

        Returns:
            float: `interval` on success, the error backoff otherwise.
        """
        try:
            outcome = self.orchestrator.sync()
        except Exception:
            logger.exception("Error in daemon loop")
            return self.error_backoff

        if not outcome.succeeded:
            kind = outcome.failure.value if outcome.failure else "unknown"
            logger.error(
                f"Sync failed ({kind}): {outcome.message}. "
                f"Retrying in {self.error_backoff} seconds"
            )
            return self.error_backoff

        logger.info(f"Next sync in {interval} seconds")
        return interval


@contextmanager
def shutdown_on_signals(cancel: threading.Event) -> Iterator[threading.Event]:
    """Sets `cancel` on SIGINT/SIGTERM while the block runs.

    Previous handlers are restored on exit.

    Args:
        cancel (threading.Event): The event to set.

    Yields:
        threading.Event: The same event.
    """

    def handler(_signum: int, _frame: FrameType | None) -> None:
        if not cancel.is_set():
            logger.info("Shutdown requested")
        cancel.set()

    watched = [signal.SIGINT, signal.SIGTERM]
    previous = {sig: signal.signal(sig, handler) for sig in watched}
    try:
        yield cancel
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    max_bytes: int = DEFAULT_MAX_LOG_SIZE,
    interactive: bool = True,
) -> None:
    """Configures the logging subsystem.

    Args:
        level (str): Level name for the application logger.
        log_file (Path | None): If set, also log to this file with rotation.
        max_bytes (int): Size at which the log file rotates.
        interactive (bool): If True, logs to stdout; otherwise to stderr
                            (captured by systemd/docker).
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)

    stream_handler = logging.StreamHandler(sys.stdout if interactive else sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
