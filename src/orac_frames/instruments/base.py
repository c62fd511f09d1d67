from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

from orac_frames.headers import CanonicalHeaders, HeaderSet, canonical_key
from orac_frames.instrument_db import InstrumentSpec

from .meta import approximate_utend, select_epoch_key, to_float


log = logging.getLogger(__name__)

# (raw view, instrument record, canonical values derived so far) -> value | None
Override = Callable[[Mapping[str, Any], InstrumentSpec, CanonicalHeaders], Any]


def apply_direct_mapping(raw: Mapping[str, Any], mapping: Mapping[str, str]) -> CanonicalHeaders:
    """Copy ``raw[raw_key]`` to each canonical key whose raw key is present."""

    out = CanonicalHeaders()
    for ckey, rkey in mapping.items():
        if rkey in raw and raw[rkey] is not None:
            out[ckey] = raw[rkey]
    return out


class HeaderTranslator:
    """Raw header -> canonical header translation for one instrument family.

    Subclasses list computed keys in ``overrides`` (evaluated in order, after
    the direct key mapping). A failing override leaves its key absent; the
    translation itself never raises for missing or malformed raw values.
    """

    family = "generic"
    overrides: dict[str, Override] = {}

    def raw_view(self, raw: Mapping[str, Any] | HeaderSet) -> dict[str, Any]:
        return HeaderSet.from_mapping(raw).translation_view()

    def translate(self, raw: Mapping[str, Any] | HeaderSet, spec: InstrumentSpec) -> CanonicalHeaders:
        h = self.raw_view(raw)
        out = apply_direct_mapping(h, spec.direct)

        for key, fn in self.overrides.items():
            self._apply(out, key, fn, h, spec)

        for key, table in spec.epoch_keys.items():
            rkey = select_epoch_key(out.get("UTDATE"), table)
            if rkey is not None and rkey in h and h[rkey] is not None:
                out[key] = h[rkey]
            else:
                out.pop(canonical_key(key), None)

        if "UTEND" not in out:
            start = to_float(out.get("UTSTART"))
            exptime = to_float(out.get("EXPOSURE_TIME"))
            if start is not None and exptime is not None:
                out["UTEND"] = approximate_utend(start, exptime)

        return out

    def _apply(
        self,
        out: CanonicalHeaders,
        key: str,
        fn: Override,
        h: Mapping[str, Any],
        spec: InstrumentSpec,
    ) -> None:
        try:
            val = fn(h, spec, out)
        except Exception as e:
            log.debug("%s: cannot derive %s (%s: %s)", spec.name, key, type(e).__name__, e)
            out.pop(canonical_key(key), None)
            return
        if val is None:
            out.pop(canonical_key(key), None)
        else:
            out[key] = val

    def reverse(self, key: str, value: Any, spec: InstrumentSpec) -> dict[str, Any]:
        """Raw keyword(s) for a canonical value of a direct-mapped key."""

        ckey = canonical_key(key)
        rkey = spec.direct.get(ckey)
        if rkey is None:
            return {}
        return {rkey: value}


_REGISTRY: dict[str, HeaderTranslator] = {}


def register_translator(cls: type[HeaderTranslator]) -> type[HeaderTranslator]:
    _REGISTRY[cls.family] = cls()
    return cls


def get_translator(family: str) -> HeaderTranslator:
    try:
        return _REGISTRY[family]
    except KeyError:
        raise KeyError(f"Unknown translator family {family!r}; known: {sorted(_REGISTRY)}") from None


register_translator(HeaderTranslator)
