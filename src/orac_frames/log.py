from __future__ import annotations

import logging
import os
import time

from rich.logging import RichHandler


LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def resolve_level(level: str | None = None) -> str:
    """Level name from ``level``, else ``ORAC_LOG_LEVEL``, else ``INFO``.

    Unknown names fall back to ``INFO``.
    """

    if level is None:
        level = os.environ.get("ORAC_LOG_LEVEL", "INFO")
    name = str(level).upper().strip()
    return name if name in LEVELS else "INFO"


def setup_logging(level: str | None = None, *, astropy_level: str = "WARNING") -> str:
    """Route every log record (and Python warnings) to one rich console handler.

    astropy keeps its own ``astropy`` logger and reports FITS verification
    problems as warnings; both end up on the same console. Safe to call more
    than once. Returns the level in effect.
    """

    name = resolve_level(level)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = RichHandler(
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        show_path=False,
        omit_repeated_times=False,
        log_time_format="[%H:%M:%S]",
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel(name)

    logging.getLogger("astropy").setLevel(resolve_level(astropy_level))
    logging.captureWarnings(True)
    return name


class timer:
    """Log the duration of a block at debug level.

    Example:
        with timer("configure ufti 20040919/10", log) as t:
            frame.configure("20040919", 10)
        t.elapsed
    """

    def __init__(self, name: str, logger: logging.Logger | None = None):
        self.name = name
        self.logger = logger or logging.getLogger("orac_frames")
        self.elapsed = 0.0
        self._t0 = 0.0

    def __enter__(self) -> "timer":
        self._t0 = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.elapsed = time.perf_counter() - self._t0
        if exc is None:
            self.logger.debug("%s (%.3f s)", self.name, self.elapsed)
        else:
            self.logger.error("%s failed after %.3f s: %s", self.name, self.elapsed, exc)
        return False
