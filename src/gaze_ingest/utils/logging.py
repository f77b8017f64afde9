import logging
import time


class ThrottledLogger:
    """
    Emits at most one warning per interval, prefixed with how many were seen.

    Meant for ingestion loops that may hit the same failure hundreds of times
    per second.
    """

    def __init__(self, logger: logging.Logger, interval_sec: float = 5.0) -> None:
        self._logger = logger
        self._interval = interval_sec
        self._last_log_time = float("-inf")
        self._counter = 0

    def warning(self, message: str, *args) -> None:
        self._counter += 1
        now = time.monotonic()

        if now - self._last_log_time >= self._interval:
            self._logger.warning("[%d] " + message, self._counter, *args)
            self._last_log_time = now
            self._counter = 0
