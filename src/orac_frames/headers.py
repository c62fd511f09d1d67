from __future__ import annotations

"""Raw and canonical header containers.

Raw headers of a container observation are two-level: one primary mapping
(the administrative ``HEADER`` component, or the primary HDU) plus an ordered
list of per-sub-frame mappings. Lookups through :meth:`HeaderSet.merged`
apply the sub-frame on top of the primary, so a sub-frame value always wins.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping


CANONICAL_PREFIX = "ORAC_"

CANONICAL_KEYS: tuple[str, ...] = (
    "AIRMASS_END",
    "AIRMASS_START",
    "CHOP_ANGLE",
    "CHOP_THROW",
    "DEC_BASE",
    "DEC_SCALE",
    "DEC_TELESCOPE_OFFSET",
    "DETECTOR_BIAS",
    "DETECTOR_READ_TYPE",
    "EQUINOX",
    "EXPOSURE_TIME",
    "FILTER",
    "GAIN",
    "INSTRUMENT",
    "NUMBER_OF_EXPOSURES",
    "NUMBER_OF_OFFSETS",
    "NUMBER_OF_READS",
    "OBJECT",
    "OBSERVATION_MODE",
    "OBSERVATION_NUMBER",
    "OBSERVATION_TYPE",
    "RA_BASE",
    "RA_SCALE",
    "RA_TELESCOPE_OFFSET",
    "RECIPE",
    "ROTATION",
    "SPEED_GAIN",
    "STANDARD",
    "UTDATE",
    "UTEND",
    "UTSTART",
    "WAVEPLATE_ANGLE",
    "X_LOWER_BOUND",
    "X_REFERENCE_PIXEL",
    "X_UPPER_BOUND",
    "Y_LOWER_BOUND",
    "Y_REFERENCE_PIXEL",
    "Y_UPPER_BOUND",
)

# Keys describing the start of an observation are taken from the first
# sub-frame; everything else from the last one.
START_KEYS: frozenset[str] = frozenset({"UTSTART", "RUTSTART", "UT", "DATE-OBS", "AMSTART"})


def canonical_key(name: str) -> str:
    """``"ORAC_UTDATE"`` and ``"UTDATE"`` both map to ``"UTDATE"``."""
    key = str(name).strip().upper()
    if key.startswith(CANONICAL_PREFIX):
        key = key[len(CANONICAL_PREFIX):]
    return key


@dataclass
class HeaderSet:
    """Primary header plus ordered per-sub-frame headers (1-based)."""

    primary: dict[str, Any] = field(default_factory=dict)
    subframes: list[dict[str, Any]] = field(default_factory=list)

    def __contains__(self, key: object) -> bool:
        return key in self.primary

    def __iter__(self) -> Iterator[str]:
        return iter(self.primary)

    def __len__(self) -> int:
        return len(self.primary)

    def __bool__(self) -> bool:
        return bool(self.primary) or bool(self.subframes)

    @property
    def nsubs(self) -> int:
        return len(self.subframes)

    def get(self, key: str, default: Any = None) -> Any:
        return self.primary.get(key, default)

    def sub(self, i: int) -> dict[str, Any]:
        if i < 1 or i > len(self.subframes):
            raise IndexError(f"sub-frame index {i} out of range 1..{len(self.subframes)}")
        return self.subframes[i - 1]

    def merged(self, i: int | None = None) -> dict[str, Any]:
        """Primary values overridden by sub-frame ``i`` (when it exists)."""
        out = dict(self.primary)
        if i is not None and 1 <= i <= len(self.subframes):
            out.update(self.subframes[i - 1])
        return out

    def translation_view(self) -> dict[str, Any]:
        """Flat mapping used for canonical translation.

        Start-of-observation keys come from the first sub-frame, all others
        from the last.
        """
        if not self.subframes:
            return dict(self.primary)
        out = self.merged(len(self.subframes))
        first = self.subframes[0]
        for k in START_KEYS:
            if k in first:
                out[k] = first[k]
        return out

    def update(self, key: str, value: Any, *, subframe: int | None = None) -> None:
        if subframe is None:
            self.primary[key] = value
        else:
            self.sub(subframe)[key] = value

    def copy(self) -> "HeaderSet":
        return HeaderSet(primary=dict(self.primary), subframes=[dict(s) for s in self.subframes])

    def without(self, *keys: str) -> "HeaderSet":
        """Copy with ``keys`` removed from the primary and from every sub-frame."""
        drop = set(keys)
        return HeaderSet(
            primary={k: v for k, v in self.primary.items() if k not in drop},
            subframes=[{k: v for k, v in s.items() if k not in drop} for s in self.subframes],
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | "HeaderSet" | None) -> "HeaderSet":
        if isinstance(raw, HeaderSet):
            return raw
        return cls(primary=dict(raw or {}))


class CanonicalHeaders(dict):
    """Canonical (``ORAC_*``) header values.

    Keys are stored without the ``ORAC_`` prefix; item access accepts both
    spellings. Absent keys mean "no value could be derived".
    """

    def __getitem__(self, key: str) -> Any:
        return super().__getitem__(canonical_key(key))

    def __setitem__(self, key: str, value: Any) -> None:
        super().__setitem__(canonical_key(key), value)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and super().__contains__(canonical_key(key))

    def get(self, key: str, default: Any = None) -> Any:
        return super().get(canonical_key(key), default)

    def prefixed(self) -> dict[str, Any]:
        """Mapping with ``ORAC_`` prefixed keys, as written into headers."""
        return {f"{CANONICAL_PREFIX}{k}": v for k, v in self.items()}
