from __future__ import annotations

"""Shared helpers for header translation.

Every function here is pure: it takes raw header values (already looked up)
and returns a derived value. The family translators in this package wire them
to concrete keywords.
"""

import math
import re
from typing import Any, Mapping, Sequence


_HMS_RE = re.compile(r"^\s*([-+])?\s*(\d{1,2})[: ]([0-5]?\d)[: ]([0-5]?\d)(\.\d{1,3})?")
_SECTION_RE = re.compile(r"^\s*\[?\s*(-?\d+)\s*:\s*(-?\d+)\s*,\s*(-?\d+)\s*:\s*(-?\d+)\s*\]?\s*$")

RTOD = 45.0 / math.atan2(1.0, 1.0)


# -----------------------------
# Normalization helpers
# -----------------------------


def norm_str(v: Any) -> str:
    """Trim a string-like header value."""

    if v is None:
        return ""
    return re.sub(r"\s+", " ", str(v).strip())


def _get(h: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in h:
            return h.get(k)
    return None


def to_float(v: Any, default: float | None = None) -> float | None:
    if v is None or isinstance(v, bool):
        return default
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def nint(x: float) -> int:
    """Nearest integer, halves rounded away from zero."""

    x = float(x)
    if x >= 0:
        return int(math.floor(x + 0.5))
    return -int(math.floor(-x + 0.5))


def cosdeg(deg: float) -> float:
    return math.cos(math.radians(float(deg)))


# -----------------------------
# Angles and times
# -----------------------------


def hms_to_hours(value: Any) -> float:
    """Sexagesimal ``[-]hh:mm:ss[.sss]`` (or space separated) to decimal units.

    Numeric input is returned unchanged. Raises ``ValueError`` for anything
    else.
    """

    num = to_float(value)
    if num is not None:
        return num
    m = _HMS_RE.match(str(value))
    if not m:
        raise ValueError(f"not a sexagesimal value: {value!r}")
    sign, h, mi, s, frac = m.groups()
    secs = float(s) + (float(frac) if frac else 0.0)
    out = float(h) + float(mi) / 60.0 + secs / 3600.0
    return -out if sign == "-" else out


def sexagesimal_to_degrees(value: Any, *, hours: bool = False) -> float:
    """``"dd:mm:ss.s"`` to degrees; ``hours=True`` for right ascension."""

    deg = hms_to_hours(value)
    return deg * 15.0 if hours else deg


def ut_date_from_iso(value: Any) -> str:
    """``"YYYY-MM-DD..."`` to ``"YYYYMMDD"`` by fixed character offsets."""

    s = str(value)
    out = s[0:4] + s[5:7] + s[8:10]
    if len(out) != 8 or not out.isdigit():
        raise ValueError(f"not an ISO date: {value!r}")
    return out


def ut_hours_from_hms(value: Any) -> float:
    """``"hh:mm:ss..."`` to decimal hours by fixed character offsets.

    Fractional seconds are ignored.
    """

    s = str(value)
    secs = int(s[0:2]) * 3600 + int(s[3:5]) * 60 + int(s[6:8])
    return secs / 3600.0


def approximate_utend(start_hours: float, exptime_seconds: float) -> float:
    return float(start_hours) + float(exptime_seconds) / 3600.0


# -----------------------------
# Astrometry
# -----------------------------


def cd_matrix_rotation(cd11: float, cd12: float, cd21: float, cd22: float) -> float:
    """Rotation angle in degrees from a CD matrix.

    A flipped first axis (negative determinant, the usual east-left sky
    orientation) is unflipped first. One estimate comes from each column of
    the matrix, ``atan2(cd21, cd11)`` and ``atan2(-cd12, cd22)``, and the two
    are averaged on the circle. The identity gives 0; ``cd12=-1, cd21=1``
    gives 90.
    """

    cd11, cd12, cd21, cd22 = (float(v) for v in (cd11, cd12, cd21, cd22))
    sgn = -1.0 if (cd11 * cd22 - cd12 * cd21) < 0 else 1.0
    rot1 = math.atan2(sgn * cd21 / RTOD, sgn * cd11 / RTOD)
    rot2 = math.atan2(-cd12 / RTOD, cd22 / RTOD)
    if abs(rot1 - rot2) > math.pi:
        if rot1 < rot2:
            rot1 += 2.0 * math.pi
        else:
            rot2 += 2.0 * math.pi
    rot = RTOD * 0.5 * (rot1 + rot2)
    if rot > 180.0:
        rot -= 360.0
    return rot


def cd_matrix_cdelt(cd11: float, cd12: float, cd21: float, cd22: float) -> tuple[float, float]:
    """CDELT-equivalents ``(cdelt1, cdelt2)`` carrying the determinant sign."""

    det = cd11 * cd22 - cd12 * cd21
    sgn = -1.0 if det < 0 else 1.0
    return sgn * math.hypot(cd11, cd21), sgn * math.hypot(cd22, cd12)


def cd_matrix_scales(cd11: float, cd12: float, cd21: float, cd22: float) -> tuple[float, float]:
    """Unsigned ``(ra_scale, dec_scale)`` in CD units."""

    return math.hypot(cd12, cd22), math.hypot(cd11, cd21)


def telescope_offset(
    direct: Any,
    position: Any,
    base: Any,
    *,
    cos_dec: float | None = None,
) -> float:
    """Offset in arcsec: the direct header when present, else derived.

    The derived value is ``3600 * (position - base)``, scaled by ``cos_dec``
    for right ascension. Returns 0.0 when neither is available.
    """

    d = to_float(direct)
    if d is not None:
        return d
    p = to_float(position)
    b = to_float(base)
    if p is None or b is None:
        return 0.0
    off = 3600.0 * (p - b)
    if cos_dec is not None:
        off *= cos_dec
    return off


def parse_section(value: Any) -> tuple[int, int, int, int]:
    """``"[x1:x2,y1:y2]"`` -> ``(x1, x2, y1, y2)``."""

    m = _SECTION_RE.match(str(value))
    if not m:
        raise ValueError(f"not a detector section: {value!r}")
    x1, x2, y1, y2 = (int(g) for g in m.groups())
    return x1, x2, y1, y2


def reference_pixel(
    explicit: Any,
    lower: Any,
    upper: Any,
    default: int | float,
    *,
    full: Sequence[int] | None = None,
) -> int | float:
    """Reference pixel along one axis.

    1. ``explicit`` when given and inside ``[lower, upper]`` (or when no
       bounds are known);
    2. the rounded mean of the bounds, when a section is known (and, if
       ``full`` is given, differs from the full array);
    3. ``default``.
    """

    lo = to_float(lower)
    hi = to_float(upper)
    ex = to_float(explicit)
    if ex is not None and (lo is None or hi is None or lo <= ex <= hi):
        return ex
    if lo is not None and hi is not None:
        if full is None or lo > full[0] or hi < full[1]:
            return nint((lo + hi) / 2.0)
    return default


def select_epoch_key(utdate: Any, table: Sequence[Any]) -> str | None:
    """Raw key in force on ``utdate`` (YYYYMMDD).

    ``table`` entries carry ``since`` and ``key``; the latest entry whose
    ``since`` is not after ``utdate`` wins. An unknown date selects the most
    recent key.
    """

    if not table:
        return None
    entries = sorted(table, key=lambda e: str(e.since))
    digits = "".join(ch for ch in str(utdate or "") if ch.isdigit())[:8]
    if len(digits) != 8:
        return entries[-1].key
    chosen = None
    for e in entries:
        if str(e.since) <= digits:
            chosen = e.key
    return chosen if chosen is not None else entries[0].key


# -----------------------------
# Group membership
# -----------------------------


def grpmem_true_flag(value: Any) -> bool:
    """Single-extension convention: member when GRPMEM is absent or ``T``."""

    if value is None or value is True:
        return True
    return norm_str(value).upper() == "T"


def grpmem_one(value: Any) -> bool:
    """Multi-extension convention: member when GRPMEM is absent or ``1``.

    The FITS reader turns logical ``T`` into a boolean, hence ``True`` counts.
    """

    if value is None or value is True:
        return True
    return norm_str(value) == "1"
