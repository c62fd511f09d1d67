from __future__ import annotations

"""UKIRT family translator (IRCAM, UFTI, CGS4, Michelle, UIST)."""

from typing import Any, Mapping

from orac_frames.headers import CanonicalHeaders
from orac_frames.instrument_db import InstrumentSpec

from .base import HeaderTranslator, register_translator
from .meta import norm_str, reference_pixel, to_float, ut_date_from_iso


def _utdate(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str | None:
    v = h.get(spec.direct.get("UTDATE", "UTDATE"))
    if isinstance(v, (list, tuple)):
        # early data repeat DATE with a blank second value
        v = v[0] if v else None
    if v is None and "DATE-OBS" in h:
        return ut_date_from_iso(h["DATE-OBS"])
    if v is None:
        return None
    s = norm_str(v).replace("-", "")[:8]
    return s if s.isdigit() and len(s) == 8 else None


def _dec_base(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    v = h.get(spec.direct.get("DEC_BASE", "DECBASE"))
    if isinstance(v, str) and v.lstrip().startswith("="):
        # value written from column 10 is parsed as "= <value> / comment"
        v = v.replace("=", "", 1).split()[0]
    return to_float(v)


def _ra_base(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    v = h.get(spec.direct.get("RA_BASE", "RABASE"))
    if isinstance(v, str) and v.lstrip().startswith("="):
        v = v.replace("=", "", 1).split()[0]
    ra = to_float(v)
    if ra is None:
        return None
    return ra * 15.0 if spec.constant("ra_base_in_hours", False) else ra


def _ref_pixel(axis: str):
    def _fn(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> int | float:
        explicit = h.get(f"CRPIX{1 if axis == 'X' else 2}") if spec.constant("use_explicit_reference_pixel") else None
        return reference_pixel(
            explicit,
            h.get(f"RDOUT_{axis}1"),
            h.get(f"RDOUT_{axis}2"),
            spec.constant(f"{axis.lower()}_reference_default", 512),
        )

    return _fn


@register_translator
class UKIRTTranslator(HeaderTranslator):
    family = "ukirt"
    overrides = {
        "UTDATE": _utdate,
        "DEC_BASE": _dec_base,
        "RA_BASE": _ra_base,
        "X_REFERENCE_PIXEL": _ref_pixel("X"),
        "Y_REFERENCE_PIXEL": _ref_pixel("Y"),
    }
