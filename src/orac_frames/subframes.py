from __future__ import annotations

"""Sub-frame enumeration inside container files.

Named-component containers
    Components named ``I<n>`` are plain sub-frames and ``I<n>BEAMA`` /
    ``I<n>BEAMB`` are chopped sub-frames. If any chopped component exists
    only chopped components count, and a ``BEAMB`` component is dropped when
    the ``BEAMA`` component of the same index exists. ``HEADER`` never counts.

Multi-extension FITS
    Every extension is a sub-frame (``count = HDUs - 1``); each sub-frame
    header is the primary header (without ``END``) overridden by the
    extension header.

A container without a ``HEADER`` component uses its own (primary) header
instead. An unreadable container, or one without any header keywords,
gives ``ok is False`` (and ``count == 0`` when it cannot be opened); the
caller decides what to report.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from .container import ContainerStore, has_user_keywords
from .errors import ContainerIOError
from .headers import HeaderSet


log = logging.getLogger(__name__)

_PLAIN_RE = re.compile(r"^I(\d+)$")
_CHOP_RE = re.compile(r"^I(\d+)BEAM([AB])$")

ADMIN_COMPONENTS = frozenset({"HEADER"})


@dataclass
class SubFrameSet:
    names: list[str] = field(default_factory=list)
    headers: list[dict[str, Any]] = field(default_factory=list)
    primary: dict[str, Any] = field(default_factory=dict)
    ok: bool = True

    @property
    def count(self) -> int:
        return len(self.names)

    def header_set(self) -> HeaderSet:
        return HeaderSet(primary=self.primary, subframes=self.headers).copy()


def classify_components(names: Iterable[str]) -> list[str]:
    """Ordered sub-frame component names (see module docstring)."""

    names = [str(n).strip().upper() for n in names]
    plain = [n for n in names if _PLAIN_RE.match(n)]
    chopped = [n for n in names if _CHOP_RE.match(n)]
    if not chopped:
        return plain

    with_a = {_CHOP_RE.match(n).group(1) for n in chopped if n.endswith("BEAMA")}
    out = []
    for n in chopped:
        idx, beam = _CHOP_RE.match(n).groups()
        if beam == "B" and idx in with_a:
            continue
        out.append(n)
    return out


def header_component_for(name: str, available: Iterable[str] = ()) -> str:
    """Component to read a sub-frame header from.

    Chopped components share the header of the matching plain ``I<n>``
    component when one exists.
    """

    m = _CHOP_RE.match(name.upper())
    if not m:
        return name.upper()
    plain = f"I{m.group(1)}"
    return plain if plain in {a.upper() for a in available} else name.upper()


def resolve_hds(store: ContainerStore, root: str | Path, *, read_headers: bool = True) -> SubFrameSet:
    """Enumerate the sub-frames of a named-component container."""

    try:
        with store.open(root, "READ") as h:
            children = store.enumerate_children(h)
    except ContainerIOError as e:
        log.error("Cannot enumerate sub-frames of %s: %s", root, e)
        return SubFrameSet(ok=False)

    names = [n for n in classify_components(children) if n not in ADMIN_COMPONENTS]
    out = SubFrameSet(names=names)
    if not read_headers:
        return out

    try:
        # without a HEADER component the container's own header is the primary
        out.primary = store.read_header(root, "HEADER" if "HEADER" in children else None)
        for n in names:
            out.headers.append(store.read_header(root, header_component_for(n, children)))
    except ContainerIOError as e:
        log.error("Cannot read sub-frame headers of %s: %s", root, e)
        out.headers = []
        out.ok = False
        return out

    if not has_user_keywords(out.primary) and not any(has_user_keywords(h) for h in out.headers):
        log.warning("No header keywords found in %s", root)
        out.ok = False
    return out


def resolve_mef(store: ContainerStore, path: str | Path) -> SubFrameSet:
    """Split a multi-extension FITS file into sub-frame headers."""

    try:
        hdrs = store.hdu_headers(path)
    except ContainerIOError as e:
        log.error("Cannot enumerate extensions of %s: %s", path, e)
        return SubFrameSet(ok=False)
    if not hdrs:
        return SubFrameSet(ok=False)

    primary = HeaderSet(primary=hdrs[0]).without("END").primary
    out = SubFrameSet(primary=primary)
    for i, ext in enumerate(hdrs[1:], start=1):
        out.names.append(str(ext.get("EXTNAME", f"HDU{i}")).strip() or f"HDU{i}")
        out.headers.append({**primary, **ext})
    return out
