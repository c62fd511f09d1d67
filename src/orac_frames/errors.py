from __future__ import annotations

"""Error kinds raised by the frame layer.

Only usage errors propagate to callers as hard failures. Container I/O errors
are raised by the store and converted to defaults (zero sub-frames, empty
headers) at the resolver / frame boundary. Lookup misses are never errors:
they are reported through sentinel values (``-1``, a dummy flag name).
"""

from pathlib import Path
from typing import Any


class FrameUsageError(RuntimeError):
    """Raised when a frame operation is called with an invalid argument shape.

    Example: ``configure(prefix, obsnum)`` for an instrument that only accepts
    explicit raw filenames.
    """

    def __init__(
        self,
        message: str,
        *,
        instrument: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.instrument = instrument
        self.context = context or {}
        base = message
        if self.instrument:
            base += f" | instrument={self.instrument}"
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in list(self.context.items())[:8])
            base += f" | ctx: {ctx}"
        super().__init__(base)


class ContainerIOError(OSError):
    """Raised when a container or raw file cannot be opened, read or written."""

    def __init__(self, message: str, *, path: str | Path | None = None, component: str | None = None):
        self.path = str(path) if path is not None else None
        self.component = component
        base = message
        if self.path:
            base += f" | path={self.path}"
        if self.component:
            base += f" | component={self.component}"
        super().__init__(base)
