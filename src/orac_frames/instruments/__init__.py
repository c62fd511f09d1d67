"""Instrument-specific header translation.

Each instrument record names a translator family; the family translator maps
raw header keywords onto the canonical (``ORAC_*``) vocabulary.

Main entrypoint: :func:`orac_frames.instruments.translate`.
"""

from __future__ import annotations

from typing import Any, Mapping

from orac_frames.headers import CanonicalHeaders, HeaderSet
from orac_frames.instrument_db import InstrumentSpec, get_instrument

from . import gemini, ingrid, jcmt, ukirt  # noqa: F401  (register families)
from .base import HeaderTranslator, apply_direct_mapping, get_translator, register_translator
from .meta import grpmem_one, grpmem_true_flag


def translator_for(spec: InstrumentSpec | str) -> HeaderTranslator:
    return get_translator(get_instrument(spec).translator)


def translate(raw: Mapping[str, Any] | HeaderSet, spec: InstrumentSpec | str) -> CanonicalHeaders:
    """Canonical headers for ``raw`` using the instrument's translator family."""

    spec = get_instrument(spec)
    return get_translator(spec.translator).translate(raw, spec)


__all__ = [
    "HeaderTranslator",
    "apply_direct_mapping",
    "get_translator",
    "grpmem_one",
    "grpmem_true_flag",
    "register_translator",
    "translate",
    "translator_for",
]
