"""Logging helpers.

The library only creates module loggers (``logging.getLogger(__name__)``);
handlers are configured by the command-line tools through setup_logging().

RateLimitedLogger keeps a per-key timestamp so a warning that fires on every
sample (e.g. a stream of invalid readings) is emitted at most once per
interval. The interval is measured on sample timestamps, not wall-clock
time, so replaying a recording produces the same log.
"""

import logging
import sys
from typing import Dict, Optional

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"


def setup_logging(level: str = "INFO", fmt: str = DEFAULT_FORMAT) -> None:
    """Configure the root logger with a single stderr handler."""
    numeric_level = getattr(logging, str(level).upper().strip(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")
    logging.basicConfig(
        level=numeric_level,
        format=fmt,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


class RateLimitedLogger:
    """Emit each message key at most once per ``interval_ms``.

    Suppressed occurrences are counted and reported with the next emission
    of the same key.

    Args:
        logger: Underlying logger.
        interval_ms: Minimum spacing between two emissions of one key.
    """

    def __init__(self, logger: logging.Logger, interval_ms: float = 5000.0):
        self.logger = logger
        self.interval_ms = float(interval_ms)
        self._last_emit: Dict[str, float] = {}
        self._suppressed: Dict[str, int] = {}

    def log(self, level: int, key: str, t_ms: Optional[float], msg: str, *args) -> bool:
        """Log ``msg % args`` unless ``key`` was emitted less than interval_ms ago.

        A ``t_ms`` of None always emits. Returns True when the record was
        passed to the logger.
        """
        if t_ms is not None:
            last = self._last_emit.get(key)
            if last is not None and 0.0 <= t_ms - last < self.interval_ms:
                self._suppressed[key] = self._suppressed.get(key, 0) + 1
                return False
            self._last_emit[key] = t_ms

        suppressed = self._suppressed.pop(key, 0)
        if suppressed:
            msg = msg + " (%d similar messages suppressed)"
            args = args + (suppressed,)
        self.logger.log(level, msg, *args)
        return True

    def warning(self, key: str, t_ms: Optional[float], msg: str, *args) -> bool:
        return self.log(logging.WARNING, key, t_ms, msg, *args)

    def info(self, key: str, t_ms: Optional[float], msg: str, *args) -> bool:
        return self.log(logging.INFO, key, t_ms, msg, *args)

    def reset(self) -> None:
        self._last_emit.clear()
        self._suppressed.clear()
