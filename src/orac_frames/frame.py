from __future__ import annotations

"""The :class:`Frame` aggregate.

A frame is one observation: its raw file(s), the working filename of every
sub-frame, raw and canonical headers, group and recipe identity.

Lifecycle::

    EMPTY --configure()--> CONFIGURED --set_file()/input_output_names(rename=True)--> RENAMED ...

Design contract
---------------
* Usage errors (bad ``configure`` arity) raise :class:`FrameUsageError`.
* I/O problems while configuring are logged; the frame stays usable with
  empty headers and zero sub-frames (``frame.ok`` is False).
* Lookup misses use sentinels: ``observation_number() == -1`` and a dummy
  flag name.
"""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

from .container import ContainerStore, FitsContainerStore, has_user_keywords
from .errors import ContainerIOError, FrameUsageError
from .flags import FlagFileCache, FlagFileDiscovery, flag_name_for
from .headers import CanonicalHeaders, HeaderSet
from .instrument_db import InstrumentSpec, get_instrument
from .instruments import get_translator
from .instruments.meta import grpmem_one, grpmem_true_flag, norm_str
from .log import timer
from .naming import (
    apply_template,
    derive_output_name,
    derive_raw_name,
    join_fname,
    match_pattern,
    observation_number,
    split_fname,
    strip_suffix,
)
from .subframes import SubFrameSet, resolve_hds, resolve_mef


log = logging.getLogger(__name__)

_MEMBERSHIP = {
    "grpmem_true_flag": grpmem_true_flag,
    "grpmem_one": grpmem_one,
}


class FrameState(str, Enum):
    EMPTY = "EMPTY"
    CONFIGURED = "CONFIGURED"
    RENAMED = "RENAMED"


class Frame:
    """One observation of one instrument.

    Parameters
    ----------
    instrument
        Instrument name from the shipped database, or an
        :class:`~orac_frames.instrument_db.InstrumentSpec`.
    *source
        Optional arguments forwarded to :meth:`configure`.
    store
        Container I/O implementation (default: :class:`FitsContainerStore`).
    flag_cache
        Shared flag-file cache for instruments that discover flag files.
    data_dir
        Directory holding raw data and flag files; names built from
        ``(prefix, obsnum)`` are placed there.
    flag_glob
        Flag-file pattern replacing the instrument's ``flag_glob`` when flag
        files are discovered.
    container_suffix
        Suffix of container files for the default store (``.sdf``).
    """

    def __init__(
        self,
        instrument: str | InstrumentSpec,
        *source: Any,
        store: ContainerStore | None = None,
        flag_cache: FlagFileCache | None = None,
        data_dir: str | Path | None = None,
        flag_glob: str | None = None,
        container_suffix: str | None = None,
    ):
        self.spec = get_instrument(instrument)
        self.store = store or FitsContainerStore(suffix=container_suffix or ".sdf")
        self.flag_cache = flag_cache if flag_cache is not None else FlagFileCache()
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self.flag_glob = flag_glob

        self.raw: list[str] = []
        self.files: list[str] = []
        self.headers = HeaderSet()
        self.uhdr = CanonicalHeaders()
        self.subframes = SubFrameSet()
        self.nsubs = 0
        self.group: Any = None
        self.recipe: str | None = None
        self.children: list[Frame] = []
        self.tags: dict[str, list[str]] = {}
        self.state = FrameState.EMPTY
        self.ok = True

        if source:
            self.configure(*source)

    def __repr__(self) -> str:
        return f"<Frame {self.spec.name} state={self.state.value} files={self.files!r}>"

    # ---------------------------------------------------------- configure

    def configure(self, *source: Any) -> "Frame":
        """Populate the frame from raw filenames or ``(prefix, obsnum)``.

        ``configure(name)`` / ``configure([name, ...])`` or
        ``configure(prefix, obsnum)``.
        """

        if len(source) == 1:
            arg = source[0]
            raws = [str(x) for x in arg] if isinstance(arg, (list, tuple)) else [str(arg)]
            if not raws:
                raise FrameUsageError("configure() needs at least one raw file", instrument=self.spec.name)
        elif len(source) == 2:
            if not self.spec.configure_pair:
                raise FrameUsageError(
                    f"configure() for {self.spec.display_name} cannot take two arguments",
                    instrument=self.spec.name,
                    context={"args": source},
                )
            prefix, obsnum = source
            raws = [self._in_data_dir(derive_raw_name(self.spec, str(prefix), obsnum))]
        else:
            raise FrameUsageError(
                "Wrong number of arguments to configure: 1 or 2 args only",
                instrument=self.spec.name,
                context={"nargs": len(source)},
            )

        with timer(f"configure {self.spec.name} {raws[0]}", log):
            self._reset()
            self.raw = raws
            fmt = self.spec.raw_format
            if fmt == "hds":
                self._configure_hds(raws[0])
            elif fmt == "mef":
                self._configure_mef(raws[0])
            else:
                self._configure_flat(raws)

            self.uhdr = get_translator(self.spec.translator).translate(self.headers, self.spec)
            self.find_group()
            self.find_recipe()
            self.state = FrameState.CONFIGURED
        return self

    def _reset(self) -> None:
        self.files = []
        self.headers = HeaderSet()
        self.uhdr = CanonicalHeaders()
        self.subframes = SubFrameSet()
        self.nsubs = 0
        self.children = []
        self.tags = {}
        self.ok = True

    def _in_data_dir(self, name: str) -> str:
        return str(self.data_dir / name) if self.data_dir is not None else name

    def _configure_hds(self, raw: str) -> None:
        root = strip_suffix(raw)
        sub = resolve_hds(self.store, root)
        self.subframes = sub
        self.ok = sub.ok
        self.headers = sub.header_set()
        self.nsubs = sub.count
        self.files = [f"{root}.{n.lower()}" for n in sub.names] or [root]

    def _configure_mef(self, raw: str) -> None:
        sub = resolve_mef(self.store, raw)
        self.subframes = sub
        self.ok = sub.ok
        self.headers = sub.header_set()
        self.nsubs = sub.count
        self.files = [raw]
        self.children = [
            Frame._child(self, i, hdr) for i, hdr in enumerate(sub.headers, start=1)
        ]
        if sub.ok and not self.children:
            # a simple FITS file is its own only sub-frame
            self.children = [self]

    @classmethod
    def _child(cls, parent: "Frame", index: int, header: dict[str, Any]) -> "Frame":
        child = cls(
            parent.spec,
            store=parent.store,
            flag_cache=parent.flag_cache,
            data_dir=parent.data_dir,
            flag_glob=parent.flag_glob,
        )
        child.raw = list(parent.raw)
        child.files = [f"{parent.raw[0]}[{index}]"]
        child.headers = HeaderSet(primary=dict(header))
        child.uhdr = get_translator(parent.spec.translator).translate(child.headers, parent.spec)
        child.nsubs = 1
        child.find_group()
        child.find_recipe()
        child.state = FrameState.CONFIGURED
        return child

    def _configure_flat(self, raws: Sequence[str]) -> None:
        if self.spec.raw_format == "ndf":
            self.files = [strip_suffix(r) for r in raws]
        else:
            self.files = list(raws)
        self.nsubs = len(raws)
        try:
            self.headers = HeaderSet(primary=self.store.read_header(raws[0]))
        except ContainerIOError as e:
            log.error("Cannot read header of %s: %s", raws[0], e)
            self.headers = HeaderSet()
            self.ok = False
            return
        if not has_user_keywords(self.headers.primary):
            log.warning("No header keywords found in %s", raws[0])
            self.ok = False

    # ------------------------------------------------------------ identity

    def find_nsubs(self) -> int:
        if not self.spec.is_container or not self.raw:
            self.nsubs = len(self.raw)
        elif self.spec.raw_format == "hds":
            self.nsubs = resolve_hds(self.store, strip_suffix(self.raw[0]), read_headers=False).count
        else:
            self.nsubs = resolve_mef(self.store, self.raw[0]).count
        return self.nsubs

    def find_group(self) -> Any:
        rule = self.spec.group
        h = self.headers.translation_view()

        if rule.rule == "grpnum":
            value = h.get(rule.header)
            if rule.membership is not None:
                member = _MEMBERSHIP[rule.membership](h.get("GRPMEM"))
                if not value or not member:
                    value = 0
            self.group = value
            return value

        if rule.rule == "drgroup":
            value = h.get(rule.header)
            text = norm_str(value)
            if value is not None and text not in rule.reject and re.search(r"\w", text):
                self.group = value
                return value

        self.group = self._synthesize_group(h)
        return self.group

    def _synthesize_group(self, h: dict[str, Any]) -> str:
        rule = self.spec.group
        parts = [h.get(k) for k in rule.keys]
        for cond in rule.conditional:
            if norm_str(h.get(cond.key)) == cond.equals:
                parts.extend(h.get(k) for k in cond.keys)
        return "".join(str(p) for p in parts if p is not None)

    def find_recipe(self) -> str:
        h = self.headers.translation_view()
        for key in self.spec.recipe.keys:
            v = norm_str(h.get(key))
            if v and v.upper() != "UNKNOWN":
                self.recipe = v
                return v
        v = norm_str(self.uhdr.get("RECIPE"))
        self.recipe = v if v and v.upper() != "UNKNOWN" else self.spec.recipe.default
        return self.recipe

    def observation_number(self) -> int:
        """Observation number, or -1 when none can be determined."""

        name = self.raw[0] if self.raw else None
        return observation_number(self.spec, name, self.headers.translation_view())

    @property
    def number(self) -> int:
        return self.observation_number()

    # --------------------------------------------------------------- names

    def raw_name(self, prefix: str, obsnum: int | str) -> str:
        return derive_raw_name(self.spec, prefix, obsnum)

    def pattern(self, prefix: str, obsnum: int | str) -> re.Pattern[str]:
        return match_pattern(self.spec, prefix, obsnum)

    def flag_name(self, prefix: str, obsnum: int | str) -> str:
        discovery = None
        if self.spec.flag_rule == "discover":
            discovery = FlagFileDiscovery(
                self.data_dir or Path.cwd(),
                self.spec,
                cache=self.flag_cache,
                store=self.store,
                pattern=self.flag_glob,
            )
        return flag_name_for(self.spec, prefix, int(obsnum), discovery=discovery)

    # --------------------------------------------------------------- files

    @property
    def nfiles(self) -> int:
        return len(self.files)

    def file(self, i: int = 1) -> str:
        if i < 1 or i > len(self.files):
            raise IndexError(f"file index {i} out of range 1..{len(self.files)}")
        return self.files[i - 1]

    def set_file(self, i: int, name: str) -> None:
        if i == len(self.files) + 1:
            self.files.append(str(name))
        else:
            self.file(i)
            self.files[i - 1] = str(name)
        if self.state is not FrameState.EMPTY:
            self.state = FrameState.RENAMED

    def _disk_path(self, name: str) -> Path:
        p = Path(name)
        if p.exists() or self.spec.raw_format not in {"ndf", "hds"}:
            return p
        return self.store.path_for(p)

    def file_exists(self, i: int = 1) -> bool:
        name = self.file(i)
        tokens, member = split_fname(name)
        if member and self.spec.raw_format == "hds":
            root = join_fname(tokens)
            if not self.store.exists(root):
                return False
            with self.store.open(root, "READ") as h:
                return self.store.has_component(h, member)
        return self._disk_path(name).exists()

    def erase(self, i: int = 1) -> None:
        """Delete working file ``i`` (a single component for container members)."""

        name = self.file(i)
        tokens, member = split_fname(name)
        if member and self.spec.raw_format == "hds":
            with self.store.open(join_fname(tokens), "UPDATE") as h:
                self.store.erase_component(h, member)
            return
        self.store.delete(self._disk_path(name))

    def input_output_names(self, suffix: str, index: int = 1, *, rename: bool = False) -> tuple[str, str]:
        """Derive the output name of a processing step from working file ``index``.

        When the working file is a container member and the frame holds more
        than one working file, the output container is created (with the
        ``HEADER`` component of the input container) or the stale member is
        erased, so it exists and is ready for writing when this returns. With
        a single working file nothing is touched on disk.
        """

        infile = self.file(index)
        out_root, member = derive_output_name(infile, suffix, drop=self.spec.inout_drop)
        in_container = bool(member) and self.nfiles > 1
        outfile = f"{out_root}.{member}" if in_container else out_root

        if outfile == infile:
            # never erase the input member
            log.warning("input_output_names: output filename equals input filename (%s)", outfile)
        elif in_container:
            src_root = join_fname(split_fname(infile)[0])
            self._prepare_output_container(src_root, out_root, member)

        if rename:
            self.set_file(index, outfile)
        return infile, outfile

    inout = input_output_names

    def _prepare_output_container(self, src_root: str, out_root: str, member: str) -> None:
        if self.store.exists(out_root):
            with self.store.open(out_root, "UPDATE") as h:
                if self.store.has_component(h, member):
                    self.store.erase_component(h, member)
            return

        self.store.create_container(out_root, self.spec.container_type)
        try:
            self.store.copy_component(src_root, out_root, "HEADER")
        except ContainerIOError as e:
            log.error("Cannot propagate HEADER from %s to %s: %s", src_root, out_root, e)

    def template(self, template: str, i: int = 1) -> str:
        """Rename working file ``i`` after ``template`` with this frame's number."""

        num = self.observation_number()
        name = template if num < 0 else apply_template(template, num)
        self.set_file(i, name)
        return name

    def gui_id(self, i: int = 1) -> str:
        """Short display identifier of working file ``i``."""

        tokens, _ = split_fname(self.file(i))
        ident = tokens[-1]
        if ident.isdigit():
            ident = "num"
        if self.nfiles > 1:
            ident = f"s{i}{ident}"
        return ident

    def tagset(self, tag: str) -> None:
        self.tags[tag] = list(self.files)

    def tagretrieve(self, tag: str) -> bool:
        """Restore working files saved under ``tag`` (current ones become ``PREVIOUS``)."""

        if tag not in self.tags:
            return False
        if tag != "PREVIOUS":
            self.tagset("PREVIOUS")
        self.files = list(self.tags[tag])
        return True

    # ------------------------------------------------------------- headers

    def canonical_header(self, key: str, default: Any = None) -> Any:
        return self.uhdr.get(key, default)

    def raw_header(self, key: str, subframe: int | None = None, default: Any = None) -> Any:
        if subframe is None:
            return self.headers.get(key, default)
        return self.headers.merged(subframe).get(key, default)

    def translate_hdr(self, key: str) -> dict[str, Any]:
        """Raw keyword/value for a canonical key (direct-mapped keys only)."""

        if key not in self.uhdr:
            return {}
        return get_translator(self.spec.translator).reverse(key, self.uhdr[key], self.spec)

    def subframe(self, i: int) -> "Frame":
        if i < 1 or i > len(self.children):
            raise IndexError(f"sub-frame index {i} out of range 1..{len(self.children)}")
        return self.children[i - 1]
