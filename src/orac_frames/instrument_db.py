from __future__ import annotations

"""Per-instrument configuration records.

Instruments differ mostly in constants (fixed filename part, suffix, padding
width, header key names, default pixel scales and reference pixels). Those
live in ``resources/instruments/oracdr_instruments.yaml`` and are validated
here; the few places where logic really differs are selected by name
(``template``, ``flag_rule``, ``translator``, ``group.rule``).

Shared key maps are expressed with YAML anchors / merge keys, so an
instrument "inherits" a family map and overrides single entries.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .headers import CANONICAL_KEYS, canonical_key


Template = Literal["underscore", "semester", "number_only", "subscan"]
RawFormat = Literal["ndf", "hds", "mef", "fits", "gsd"]
FlagRule = Literal["dot_ok", "raw_ok", "obsnum_ok", "discover"]


class NumberRule(BaseModel):
    """How the observation number is recovered.

    Either a regex applied to the raw filename (``group`` selects the
    numeric run), or a header keyword whose value is cut at ``separator``
    before the regex is applied to it.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    regex: str = r"(\d+)(\.\w+)?$"
    group: int = 1
    header: str | None = None
    separator: str | None = None


class ConditionalKeys(BaseModel):
    """Append ``keys`` to a synthesized group name when ``key == equals``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: str
    equals: str
    keys: tuple[str, ...] = ()


class GroupRule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    rule: Literal["grpnum", "drgroup", "keys"] = "grpnum"
    header: str = "GRPNUM"
    membership: Literal["grpmem_true_flag", "grpmem_one"] | None = None
    keys: tuple[str, ...] = ()
    conditional: tuple[ConditionalKeys, ...] = ()
    reject: tuple[str, ...] = ()


class RecipeRule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    keys: tuple[str, ...] = ("RECIPE",)
    default: str = "QUICK_LOOK"


class EpochKey(BaseModel):
    """Raw key valid for observations on or after UT date ``since`` (YYYYMMDD)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    since: str = "00000000"
    key: str

    @field_validator("since", mode="before")
    @classmethod
    def _since_digits(cls, v: Any) -> str:
        s = "".join(ch for ch in str(v) if ch.isdigit())
        if len(s) != 8:
            raise ValueError(f"epoch threshold must be a YYYYMMDD date, got {v!r}")
        return s


class InstrumentSpec(BaseModel):
    """One instrument record of the shipped database."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    label: str = ""
    fixed_part: str = ""
    suffix: str = ".sdf"
    pad_width: int = Field(default=5, ge=4, le=5)
    template: Template = "underscore"
    raw_format: RawFormat = "ndf"
    container_type: str = "ORAC_HDS"
    flag_rule: FlagRule = "dot_ok"
    flag_glob: str | None = None
    number: NumberRule = Field(default_factory=NumberRule)
    inout_drop: Literal["standard", "always"] = "standard"
    configure_pair: bool = True
    group: GroupRule = Field(default_factory=GroupRule)
    recipe: RecipeRule = Field(default_factory=RecipeRule)
    translator: str = "generic"
    direct: dict[str, str] = Field(default_factory=dict)
    constants: dict[str, Any] = Field(default_factory=dict)
    epoch_keys: dict[str, tuple[EpochKey, ...]] = Field(default_factory=dict)

    @field_validator("direct", "epoch_keys")
    @classmethod
    def _canonical_keys(cls, v: dict[str, Any]) -> dict[str, Any]:
        unknown = sorted(k for k in v if canonical_key(k) not in CANONICAL_KEYS)
        if unknown:
            raise ValueError(f"not canonical header keys: {unknown}")
        return {canonical_key(k): val for k, val in v.items()}

    @property
    def display_name(self) -> str:
        return self.label or self.name.upper()

    @property
    def is_container(self) -> bool:
        return self.raw_format in {"hds", "mef"}

    def constant(self, key: str, default: Any = None) -> Any:
        return self.constants.get(key, default)


def _resource_path(*parts: str) -> Path:
    # resources live alongside this module inside the installed package
    here = Path(__file__).resolve().parent
    return here / "resources" / Path(*parts)


def parse_instrument_records(raw: Mapping[str, Any] | None) -> dict[str, InstrumentSpec]:
    """Validate the ``instruments`` list of a loaded YAML document.

    Other top-level keys (``families``) only hold YAML anchors and are
    ignored. Raises ``ValueError`` naming the instrument on a bad record.
    """
    raw = raw or {}
    items = raw.get("instruments") if isinstance(raw, Mapping) else None
    if not isinstance(items, list):
        raise ValueError("instrument database must contain an 'instruments' list")

    out: dict[str, InstrumentSpec] = {}
    for it in items:
        if not isinstance(it, Mapping):
            continue
        key = str(it.get("name") or "").strip().lower()
        if not key:
            continue
        data = dict(it)
        data["name"] = key
        try:
            out[key] = InstrumentSpec.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"invalid instrument record {key!r}: {e}") from e
    return out


@lru_cache(maxsize=1)
def load_instrument_db() -> dict[str, InstrumentSpec]:
    """Load the instrument database shipped with the package."""
    p = _resource_path("instruments", "oracdr_instruments.yaml")
    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    return parse_instrument_records(raw)


def get_instrument(name: str | InstrumentSpec) -> InstrumentSpec:
    """Return the record for ``name`` (case-insensitive)."""
    if isinstance(name, InstrumentSpec):
        return name
    db = load_instrument_db()
    key = str(name).strip().lower()
    try:
        return db[key]
    except KeyError:
        raise KeyError(f"Unknown instrument {name!r}; known: {sorted(db)}") from None


def guess_instrument_from_header(hdr: Mapping[str, Any]) -> InstrumentSpec | None:
    """Best-effort lookup from the INSTRUME keyword (or a label match)."""
    val = str(hdr.get("INSTRUME") or hdr.get("INSTRUMENT") or "").strip().lower()
    if not val:
        return None
    db = load_instrument_db()
    if val in db:
        return db[val]
    for spec in db.values():
        if spec.label and spec.label.strip().lower() == val:
            return spec
    return None
