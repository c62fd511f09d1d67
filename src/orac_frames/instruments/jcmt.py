from __future__ import annotations

"""JCMT heterodyne translators (DAS/GSD, ACSIS quick-look, RxH3)."""

import re
from typing import Any, Mapping

from orac_frames.headers import CanonicalHeaders
from orac_frames.instrument_db import InstrumentSpec

from .base import HeaderTranslator, register_translator
from .meta import to_float, ut_date_from_iso


_ISO_TIME_RE = re.compile(r"T(\d\d):(\d\d):(\d\d)")


def _iso_hours(value: Any) -> float | None:
    m = _ISO_TIME_RE.search(str(value))
    if not m:
        return None
    h, mi, s = (int(g) for g in m.groups())
    return h + mi / 60.0 + s / 3600.0


def _das_utdate(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str | None:
    # C3DAT is yyyy.mmdd
    if "C3DAT" not in h:
        return None
    s = str(h["C3DAT"]).strip()
    year, _, rest = s.partition(".")
    return year + rest.ljust(4, "0")


def _das_utstart(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    return to_float(h.get("C3UT"))


@register_translator
class DASTranslator(HeaderTranslator):
    family = "jcmt_das"
    overrides = {
        "UTDATE": _das_utdate,
        "UTSTART": _das_utstart,
    }


def _acsis_utdate(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str | None:
    return ut_date_from_iso(h["DATE-OBS"]) if "DATE-OBS" in h else None


def _acsis_utstart(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    return _iso_hours(h["DATE-OBS"]) if "DATE-OBS" in h else None


def _acsis_utend(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> float | None:
    return _iso_hours(h["DATE-END"]) if "DATE-END" in h else None


@register_translator
class ACSISTranslator(HeaderTranslator):
    family = "acsis"
    overrides = {
        "UTDATE": _acsis_utdate,
        "UTSTART": _acsis_utstart,
        "UTEND": _acsis_utend,
    }


def _rxh3_utdate(h: Mapping[str, Any], spec: InstrumentSpec, out: CanonicalHeaders) -> str | None:
    for key in ("DATE-OBS", "DATE"):
        if key in h:
            return ut_date_from_iso(h[key])
    return None


@register_translator
class RxH3Translator(HeaderTranslator):
    family = "rxh3"
    overrides = {
        "UTDATE": _rxh3_utdate,
        "UTSTART": _acsis_utstart,
    }
