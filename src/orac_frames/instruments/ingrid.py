from __future__ import annotations

"""INGRID (WHT) translator.

Positions are sexagesimal strings; the telescope offsets are reconstructed
from the catalogue (``CAT-RA``/``CAT-DEC``) and pointing (``RA``/``DEC``)
positions and measure the place on the sky, so their sense is reversed with
respect to UKIRT.
"""

import logging
import re
from typing import Any, Mapping

from orac_frames.headers import CanonicalHeaders
from orac_frames.instrument_db import InstrumentSpec

from .base import HeaderTranslator, register_translator
from .meta import (
    cosdeg,
    norm_str,
    parse_section,
    reference_pixel,
    sexagesimal_to_degrees,
    to_float,
    ut_date_from_iso,
    ut_hours_from_hms,
)


log = logging.getLogger(__name__)

_DITHER_RE = re.compile(r"D-\d+/\d+")


def bounds(h: Mapping[str, Any], spec: InstrumentSpec) -> tuple[int, int, int, int]:
    """Detector section ``(x1, x2, y1, y2)``; the full array by default."""

    x1, x2, y1, y2 = (int(v) for v in spec.constant("array_bounds", (1, 1024, 1, 1024)))
    if "RTDATSEC" in h:
        try:
            return parse_section(h["RTDATSEC"])
        except ValueError as e:
            log.debug("%s: ignoring RTDATSEC (%s)", spec.name, e)
    return x1, x2, y1, y2


def _positions(h: Mapping[str, Any]) -> tuple[float, float, float, float] | None:
    if not all(k in h for k in ("CAT-RA", "CAT-DEC", "RA", "DEC")):
        return None
    refra = sexagesimal_to_degrees(h["CAT-RA"], hours=True)
    refdec = sexagesimal_to_degrees(h["CAT-DEC"])
    ra = sexagesimal_to_degrees(h["RA"], hours=True)
    dec = sexagesimal_to_degrees(h["DEC"])
    return refra, refdec, ra, dec


def _dec_offset(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float:
    pos = _positions(h)
    if pos is None:
        return 0.0
    _, refdec, _, dec = pos
    return -3600.0 * (dec - refdec)


def _ra_offset(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float:
    pos = _positions(h)
    if pos is None:
        return 0.0
    refra, refdec, ra, _ = pos
    return -3600.0 * (ra - refra) * cosdeg(refdec)


def _ra_base(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    return sexagesimal_to_degrees(h["CAT-RA"], hours=True) if "CAT-RA" in h else None


def _dec_base(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    return sexagesimal_to_degrees(h["CAT-DEC"]) if "CAT-DEC" in h else None


def _scale(pixel_key: str, sign: float, default_key: str):
    def _fn(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float:
        pix = to_float(h.get(pixel_key))
        plate = to_float(h.get("INGPSCAL"))
        if pix is not None and plate is not None:
            return pix * sign * 1000.0 * plate
        return float(spec.constant(default_key, sign * 0.2387))

    return _fn


def _gain(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float:
    return to_float(h.get("GAIN"), float(spec.constant("gain_default", 4.1)))


def _equinox(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float:
    default = float(spec.constant("equinox_default", 2000.0))
    if "CAT-EQUI" not in h:
        return default
    return to_float(re.sub(r"[BJ]", "", norm_str(h["CAT-EQUI"]), count=1), default)


def _observation_type(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str | None:
    if "OBSTYPE" not in h:
        return None
    t = norm_str(h["OBSTYPE"]).upper()
    return "OBJECT" if t == "TARGET" else t


def _object(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str | None:
    obj = h.get("OBJECT")
    if obj is None:
        return None
    obj = str(obj)
    # jitter patterns are named "D-<n>/<m>: <object>"
    if _DITHER_RE.search(obj) and ":" in obj:
        obj = obj[obj.index(":") + 2:]
    return obj


def _utdate(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str | None:
    return ut_date_from_iso(h["DATE-OBS"]) if "DATE-OBS" in h else None


def _utstart(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    return ut_hours_from_hms(h["UTSTART"]) if "UTSTART" in h else None


def _utend(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    if "UTSTART" not in h:
        return None
    return ut_hours_from_hms(h["UTSTART"]) + to_float(h.get("EXPTIME"), 0.0) / 3600.0


def _bound(i: int):
    def _fn(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> int:
        return bounds(h, spec)[i]

    return _fn


def _ref_pixel(axis: str):
    lo_i, hi_i = (0, 1) if axis == "X" else (2, 3)

    def _fn(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> int | float:
        b = bounds(h, spec)
        full = tuple(spec.constant("array_bounds", (1, 1024, 1, 1024)))
        return reference_pixel(
            None,
            b[lo_i],
            b[hi_i],
            spec.constant(f"{axis.lower()}_reference_default", 512),
            full=(full[lo_i], full[hi_i]),
        )

    return _fn


@register_translator
class INGRIDTranslator(HeaderTranslator):
    family = "ingrid"
    overrides = {
        "UTDATE": _utdate,
        "UTSTART": _utstart,
        "UTEND": _utend,
        "RA_BASE": _ra_base,
        "DEC_BASE": _dec_base,
        "RA_TELESCOPE_OFFSET": _ra_offset,
        "DEC_TELESCOPE_OFFSET": _dec_offset,
        "RA_SCALE": _scale("CCDXPIXE", -1.0, "ra_scale_default"),
        "DEC_SCALE": _scale("CCDYPIXE", 1.0, "dec_scale_default"),
        "GAIN": _gain,
        "EQUINOX": _equinox,
        "OBSERVATION_TYPE": _observation_type,
        "OBJECT": _object,
        "X_LOWER_BOUND": _bound(0),
        "X_UPPER_BOUND": _bound(1),
        "Y_LOWER_BOUND": _bound(2),
        "Y_UPPER_BOUND": _bound(3),
        "X_REFERENCE_PIXEL": _ref_pixel("X"),
        "Y_REFERENCE_PIXEL": _ref_pixel("Y"),
        "WAVEPLATE_ANGLE": lambda h, spec, out: 0.0,
    }
