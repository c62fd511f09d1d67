from __future__ import annotations

"""Flag (observation complete) files.

Most instruments derive the flag name from the raw name
(:func:`orac_frames.naming.derive_flag_name`). Instruments whose flag names
cannot be derived (``flag_rule: discover``) find them by scanning the data
directory: each flag file holds one line naming the raw data file, whose
header gives the observation number and UT date.

Associations are kept in a :class:`FlagFileCache`. The cache is append-only:
flagged files are assumed immutable, so entries are never invalidated.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .container import ContainerStore, FitsContainerStore
from .errors import ContainerIOError
from .instrument_db import InstrumentSpec
from .naming import derive_flag_name


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlagEntry:
    flag: str
    prefix: str
    obsnum: int
    raw: str


class FlagFileCache:
    """Thread-safe, append-only ``flag name -> FlagEntry`` map.

    Construct one per pipeline run and pass it to every frame; tests use a
    fresh instance (or :meth:`clear`).
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, FlagEntry] = {}
        self._by_obs: dict[tuple[str, int], str] = {}
        self._seen: set[str] = set()

    def __contains__(self, flag: object) -> bool:
        with self._lock:
            return flag in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[FlagEntry]:
        with self._lock:
            return iter(list(self._entries.values()))

    def add(self, entry: FlagEntry) -> None:
        with self._lock:
            if entry.flag in self._entries:
                return
            self._entries[entry.flag] = entry
            self._by_obs.setdefault((entry.prefix, int(entry.obsnum)), entry.flag)
            self._seen.add(entry.flag)

    def get(self, flag: str) -> FlagEntry | None:
        with self._lock:
            return self._entries.get(flag)

    def find(self, prefix: str, obsnum: int) -> str | None:
        with self._lock:
            return self._by_obs.get((str(prefix), int(obsnum)))

    def seen(self, flag: str) -> bool:
        with self._lock:
            return flag in self._seen

    def mark_seen(self, flag: str) -> None:
        with self._lock:
            self._seen.add(flag)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._by_obs.clear()
            self._seen.clear()


def _digits(value: object) -> str:
    return "".join(ch for ch in str(value) if ch.isdigit())


class FlagFileDiscovery:
    """Flag lookup by directory scan for instruments without a naming rule."""

    def __init__(
        self,
        directory: str | Path,
        spec: InstrumentSpec,
        *,
        cache: FlagFileCache,
        store: ContainerStore | None = None,
        pattern: str | None = None,
    ):
        self.directory = Path(directory)
        self.spec = spec
        self.cache = cache
        self.store = store or FitsContainerStore(suffix=spec.suffix)
        self._pattern = pattern

    @property
    def pattern(self) -> str:
        """Glob of candidate flag files: the override, else the instrument's."""
        return self._pattern or self.spec.flag_glob or f".{self.spec.fixed_part}*.ok"

    def flag_name(self, prefix: str, obsnum: int) -> str:
        """Flag filename for ``(prefix, obsnum)``; a dummy name on a miss."""

        hit = self.cache.find(prefix, obsnum)
        if hit is not None:
            return hit
        self.scan()
        hit = self.cache.find(prefix, obsnum)
        if hit is not None:
            return hit
        dummy = derive_flag_name(self.spec, prefix, obsnum)
        log.debug("No flag file for %s/%s in %s; using %s", prefix, obsnum, self.directory, dummy)
        return dummy

    def scan(self) -> int:
        """Read every unseen flag file in the directory; return the number added."""

        added = 0
        if not self.directory.is_dir():
            log.debug("Flag directory %s does not exist", self.directory)
            return 0
        for path in sorted(self.directory.glob(self.pattern)):
            name = path.name
            if self.cache.seen(name):
                continue
            self.cache.mark_seen(name)
            entry = self._read_flag(path)
            if entry is not None:
                self.cache.add(entry)
                added += 1
        return added

    def _read_flag(self, path: Path) -> FlagEntry | None:
        try:
            with path.open("r", encoding="utf-8") as fh:
                line = fh.readline().strip()
        except OSError as e:
            log.warning("Cannot read flag file %s: %s", path, e)
            return None
        if not line:
            log.debug("Flag file %s is empty", path)
            return None

        raw = Path(line)
        if not raw.is_absolute():
            raw = self.directory / raw
        try:
            hdr = self.store.read_header(raw)
        except ContainerIOError as e:
            log.warning("Flag %s names unreadable file %s: %s", path.name, raw, e)
            return None

        obsnum = hdr.get("OBSNUM")
        utdate = hdr.get("UTDATE") or hdr.get("DATE-OBS") or hdr.get("DATE")
        if obsnum is None or utdate is None:
            log.warning("Flag %s: %s lacks OBSNUM/UTDATE", path.name, raw)
            return None
        try:
            num = int(obsnum)
        except (TypeError, ValueError):
            log.warning("Flag %s: bad OBSNUM %r", path.name, obsnum)
            return None
        return FlagEntry(flag=path.name, prefix=_digits(utdate)[:8], obsnum=num, raw=str(raw))


def flag_name_for(
    spec: InstrumentSpec,
    prefix: str,
    obsnum: int,
    *,
    discovery: FlagFileDiscovery | None = None,
) -> str:
    """Flag filename under the instrument's flag rule."""

    if spec.flag_rule == "discover" and discovery is not None:
        return discovery.flag_name(prefix, obsnum)
    return derive_flag_name(spec, prefix, obsnum)
