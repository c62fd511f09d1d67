from __future__ import annotations

"""Filename construction and parsing.

Raw filenames are built from ``(prefix, obsnum)`` with a per-instrument
template:

=============  ==========================================  ======================
template       form                                        example
=============  ==========================================  ======================
underscore     fixed + prefix + "_" + num + suffix         ``c20040919_00010.sdf``
semester       fixed + prefix + "S" + num + suffix         ``N20040919S0010.fits``
number_only    fixed + num + suffix                        ``obs_het_0010.dat``
subscan        fixed + prefix + "_" + num + "_NN_NN" + sfx ``ac20040919_00010_01_01.sdf``
=============  ==========================================  ======================

``subscan`` observations are split over several files whose trailing
sub-scan indices are not known in advance, so only a matcher exists for them.

Working filenames are split into underscore tokens and a container member
(everything after the first ``.``), see :func:`split_fname`.
"""

import os
import re
from typing import Any, Mapping

from .errors import FrameUsageError
from .instrument_db import InstrumentSpec


_SDF_RE = re.compile(r"\.sdf(\.gz|\.Z)?$")
_TEMPLATE_NUM_RE = re.compile(r"_(\d+)_")


def pad_obsnum(obsnum: int | str, width: int) -> str:
    """Zero-pad ``obsnum`` to ``width`` digits.

    Numbers wider than ``width`` are returned unpadded (never truncated).
    """
    n = int(str(obsnum).strip())
    if n < 0:
        raise ValueError(f"observation number must be non-negative, got {obsnum!r}")
    return str(n).zfill(width)


def observation_stem(spec: InstrumentSpec, prefix: str, obsnum: int | str) -> str:
    """Name of the observation without suffix (and without sub-scan indices)."""
    num = pad_obsnum(obsnum, spec.pad_width)
    if spec.template == "semester":
        return f"{spec.fixed_part}{prefix}S{num}"
    if spec.template == "number_only":
        return f"{spec.fixed_part}{num}"
    return f"{spec.fixed_part}{prefix}_{num}"


def derive_raw_name(spec: InstrumentSpec, prefix: str, obsnum: int | str) -> str:
    if spec.template == "subscan":
        raise FrameUsageError(
            "raw filename is not derivable from (prefix, obsnum) for sub-scan data; use match_pattern",
            instrument=spec.name,
            context={"prefix": prefix, "obsnum": obsnum},
        )
    return observation_stem(spec, prefix, obsnum) + spec.suffix


def match_pattern(spec: InstrumentSpec, prefix: str, obsnum: int | str) -> re.Pattern[str]:
    """Compiled matcher for file basenames belonging to the observation."""
    stem = re.escape(observation_stem(spec, prefix, obsnum))
    subscan = r"_\d\d_\d\d" if spec.template == "subscan" else ""
    return re.compile(f"^{stem}{subscan}{re.escape(spec.suffix)}$")


def derive_flag_name(spec: InstrumentSpec, prefix: str, obsnum: int | str) -> str:
    """Flag (observation complete) filename.

    ``dot_ok``: ``.<raw without suffix>.ok``; ``raw_ok``: the raw name with
    the fixed part replaced by ``.`` and ``.ok`` appended
    (``.20040919_00010.fits.ok``); ``obsnum_ok``: ``.<obsnum>_ok``.

    For ``discover`` instruments this is the dummy name returned when no
    flag file could be associated with the observation.
    """
    if spec.flag_rule == "obsnum_ok":
        return f".{int(str(obsnum).strip())}_ok"
    if spec.flag_rule == "raw_ok":
        raw = derive_raw_name(spec, prefix, obsnum)
        return f".{raw[len(spec.fixed_part):]}.ok"
    return f".{observation_stem(spec, prefix, obsnum)}.ok"


def parse_obsnum(spec: InstrumentSpec, name: str) -> int:
    """Observation number encoded in ``name``; -1 when there is none."""
    base = os.path.basename(str(name))
    m = re.search(spec.number.regex, base)
    if not m:
        return -1
    try:
        return int(m.group(spec.number.group))
    except (IndexError, TypeError, ValueError):
        return -1


def observation_number(spec: InstrumentSpec, name: str | None, headers: Mapping[str, Any] | None = None) -> int:
    """Observation number of a frame; -1 when it cannot be determined.

    Instruments with a header rule read the number from that keyword (cut at
    the configured separator) and never from the filename.
    """
    rule = spec.number
    if rule.header:
        val = (headers or {}).get(rule.header)
        if val is None:
            return -1
        text = str(val)
        if rule.separator:
            text = text.split(rule.separator, 1)[0]
        m = re.search(rule.regex, text.strip())
        if not m:
            return -1
        try:
            return int(m.group(rule.group))
        except (IndexError, TypeError, ValueError):
            return -1
    if not name:
        return -1
    return parse_obsnum(spec, name)


def strip_suffix(name: str) -> str:
    """Drop a trailing ``.sdf`` (optionally compressed) extension."""
    return _SDF_RE.sub("", str(name))


def split_fname(name: str) -> tuple[list[str], str]:
    """Split into underscore tokens and the container member.

    ``"dir/c20040919_00010_ff.i1"`` -> ``(["dir/c20040919", "00010", "ff"], "i1")``
    """
    head, base = os.path.split(str(name))
    root, _, member = base.partition(".")
    tokens = root.split("_")
    if head:
        tokens[0] = os.path.join(head, tokens[0])
    return tokens, member


def join_fname(tokens: list[str], member: str = "") -> str:
    root = "_".join(tokens)
    return f"{root}.{member}" if member else root


def derive_output_name(name: str, suffix: str, *, drop: str = "standard") -> tuple[str, str]:
    """Return ``(output_root, member)`` for a processing step suffix.

    ``standard`` drops the last token only when more than two tokens exist and
    the last one is not purely numeric, so an observation number in last
    position survives. ``always`` drops the last token whenever another token
    remains.
    """
    tokens, member = split_fname(name)
    if drop == "always":
        if len(tokens) > 1:
            tokens = tokens[:-1]
    elif len(tokens) > 2 and not tokens[-1].isdigit():
        tokens = tokens[:-1]
    suffix = str(suffix)
    if suffix.startswith("_"):
        suffix = suffix[1:]
    tokens.append(suffix)
    return join_fname(tokens), member


def apply_template(template: str, number: int) -> str:
    """Replace the first ``_<digits>_`` run with ``number`` at the same width."""

    def _sub(m: re.Match[str]) -> str:
        return f"_{pad_obsnum(number, len(m.group(1)))}_"

    return _TEMPLATE_NUM_RE.sub(_sub, template, count=1)
