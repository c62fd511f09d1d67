"""Frame identity and header normalization for ORAC-style pipelines.

Public entry points:

* :class:`orac_frames.frame.Frame` - one observation (raw files, sub-frames,
  working filenames, raw and canonical headers).
* :func:`orac_frames.instrument_db.get_instrument` - per-instrument records.
* :func:`orac_frames.instruments.translate` - raw -> canonical headers.
"""

from .errors import ContainerIOError, FrameUsageError
from .version import __version__

__all__ = ["__version__", "ContainerIOError", "FrameUsageError"]
