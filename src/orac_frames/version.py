"""Version helpers.

``__version__`` is the Python package version (PEP 440); ``as_header_cards``
returns the provenance cards written into containers created by the store.
"""

from __future__ import annotations

from typing import Any


__version__ = "1.4.0"


def as_header_cards(prefix: str = "ORACFR") -> dict[str, Any]:
    """Return FITS-compatible cards identifying the writer of a file."""

    return {f"{prefix}V": __version__}
