# -*- coding: utf-8 -*-
"""
pwj_speed/utils.py

Utilities shared by the speed optimizer modules:
- SCRIPT_VERSION: package identifier used in log headers
- setup_logging: console (+ optional file) logging configuration
- Timer: elapsed wall time in milliseconds for stage timing logs
- lerp: scalar linear interpolation
"""

import logging
import sys
import time
from datetime import datetime
from typing import Optional

SCRIPT_VERSION = "pwj_speed_v1"

LOG_FORMAT = "[%(threadName)-10.10s:%(name)-20.20s] [%(levelname)-6.6s]  %(message)s"


def setup_logging(main_logger: Optional[logging.Logger] = None, debug: bool = False,
                  log_path: Optional[str] = None) -> logging.Logger:
    level = logging.DEBUG if debug else logging.INFO

    logging.getLogger("matplotlib").setLevel(logging.INFO)

    log_formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler(stream=sys.stdout)
    console_handler.setFormatter(log_formatter)
    root_logger = logging.getLogger("")
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_path is not None:
        file_handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
        file_handler.setFormatter(log_formatter)
        root_logger.addHandler(file_handler)
        root_logger.info(f"Log - {SCRIPT_VERSION}, {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    if main_logger is not None:
        main_logger.setLevel(level)
        return main_logger
    return root_logger


class Timer:
    """
    Context manager measuring elapsed milliseconds.

    >>> with Timer() as timer:
    ...     pass
    >>> timer.elapsed_ms >= 0.0
    True
    """

    def __init__(self):
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
        return False


def lerp(x0: float, t0: float, x1: float, t1: float, t: float) -> float:
    """Linear interpolation of (t0, x0)-(t1, x1) at t. Degenerate span returns x0."""
    if abs(t1 - t0) <= 1e-10:
        return x0
    r = (t - t0) / (t1 - t0)
    return x0 + r * (x1 - x0)
