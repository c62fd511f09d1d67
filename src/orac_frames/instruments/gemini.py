from __future__ import annotations

"""Gemini family translator (NIRI, GMOS).

Gemini headers carry a full CD matrix, so rotation and pixel scales are
derived from it rather than looked up.
"""

from typing import Any, Mapping

from orac_frames.headers import CanonicalHeaders
from orac_frames.instrument_db import InstrumentSpec

from .base import HeaderTranslator, register_translator
from .meta import (
    _get,
    cd_matrix_rotation,
    cd_matrix_scales,
    cosdeg,
    hms_to_hours,
    norm_str,
    telescope_offset,
    to_float,
    ut_date_from_iso,
)


_CD_KEYS = ("CD1_1", "CD1_2", "CD2_1", "CD2_2")


def _cd(h: Mapping[str, Any]) -> tuple[float, float, float, float] | None:
    """CD matrix elements (missing ones 0.0); None without any CD keyword."""
    if not any(k in h for k in _CD_KEYS):
        return None
    return (
        to_float(h.get("CD1_1"), 0.0),
        to_float(h.get("CD1_2"), 0.0),
        to_float(h.get("CD2_1"), 0.0),
        to_float(h.get("CD2_2"), 0.0),
    )


def _rotation(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    cd = _cd(h)
    return None if cd is None else cd_matrix_rotation(*cd)


def _ra_scale(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    cd = _cd(h)
    return None if cd is None else cd_matrix_scales(*cd)[0]


def _dec_scale(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    cd = _cd(h)
    return None if cd is None else cd_matrix_scales(*cd)[1]


def _ra_base(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float:
    return to_float(h.get("CRVAL1"), 0.0)


def _dec_offset(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float:
    return telescope_offset(h.get("DECOFFSE"), h.get("DEC"), h.get("CRVAL2"))


def _ra_offset(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float:
    dec = to_float(h.get("DEC"))
    return telescope_offset(
        h.get("RAOFFSET"),
        h.get("RA"),
        h.get("CRVAL1"),
        cos_dec=cosdeg(dec) if dec is not None else None,
    )


def _observation_type(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str | None:
    t = h.get("OBSTYPE")
    if t is None:
        return None
    t = norm_str(t)
    return "OBJECT" if t in {"SCI", "OBJECT-OBS"} else t


def _filter(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str:
    f1, f2, f3 = (norm_str(h.get(k)) for k in ("FILTER1", "FILTER2", "FILTER3"))
    filt = ""
    if "open" in f1:
        filt = f2
    if "open" in f2:
        filt = f1
    if "blank" in f1 or "blank" in f2 or "blank" in f3:
        filt = "blank"
    return filt


def _utdate(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str | None:
    if "DATE-OBS" not in h:
        return None
    return ut_date_from_iso(h["DATE-OBS"])


def _utstart(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    ut = _get(h, "UTSTART", "UT")
    if ut is None:
        return None
    return hms_to_hours(ut)


def _utend(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    if h.get("UTEND") is not None:
        return hms_to_hours(h["UTEND"])
    ut = h.get("UT")
    if ut is None:
        return None
    return hms_to_hours(ut) + to_float(h.get("EXPTIME"), 0.0) / 3600.0


@register_translator
class GeminiTranslator(HeaderTranslator):
    family = "gemini"
    overrides = {
        "UTDATE": _utdate,
        "UTSTART": _utstart,
        "UTEND": _utend,
        "ROTATION": _rotation,
        "RA_SCALE": _ra_scale,
        "DEC_SCALE": _dec_scale,
        "RA_BASE": _ra_base,
        "RA_TELESCOPE_OFFSET": _ra_offset,
        "DEC_TELESCOPE_OFFSET": _dec_offset,
        "OBSERVATION_TYPE": _observation_type,
        "FILTER": _filter,
    }
