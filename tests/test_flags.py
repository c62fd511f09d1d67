from __future__ import annotations

import threading
from pathlib import Path

import pytest

fits = pytest.importorskip("astropy.io.fits")

from orac_frames.flags import FlagEntry, FlagFileCache, FlagFileDiscovery, flag_name_for
from orac_frames.instrument_db import get_instrument


def _raw(path: Path, **cards) -> Path:
    hdu = fits.PrimaryHDU()
    for k, v in cards.items():
        hdu.header[k] = v
    hdu.writeto(path, overwrite=True)
    return path


def _flag(path: Path, target: str) -> Path:
    path.write_text(target + "\n", encoding="utf-8")
    return path


def test_discovery_associates_flag_with_header_identity(tmp_path: Path):
    spec = get_instrument("rxh3")
    _raw(tmp_path / "rxh3_scan_a.sdf", OBSNUM=10, **{"DATE-OBS": "2004-09-19T10:00:00"})
    _raw(tmp_path / "rxh3_scan_b.sdf", OBSNUM=11, **{"DATE-OBS": "2004-09-19T10:20:00"})
    _flag(tmp_path / ".rxh3_scan_a.ok", "rxh3_scan_a.sdf")
    _flag(tmp_path / ".rxh3_scan_b.ok", str(tmp_path / "rxh3_scan_b.sdf"))

    cache = FlagFileCache()
    disc = FlagFileDiscovery(tmp_path, spec, cache=cache)
    assert disc.flag_name("20040919", 10) == ".rxh3_scan_a.ok"
    assert disc.flag_name("20040919", 11) == ".rxh3_scan_b.ok"
    assert len(cache) == 2
    entry = cache.get(".rxh3_scan_a.ok")
    assert entry.prefix == "20040919"
    assert entry.obsnum == 10


def test_discovery_miss_returns_dummy_and_later_finds_new_flags(tmp_path: Path):
    spec = get_instrument("rxh3")
    cache = FlagFileCache()
    disc = FlagFileDiscovery(tmp_path, spec, cache=cache)

    assert disc.flag_name("20040919", 12) == ".rxh320040919_00012.ok"

    _raw(tmp_path / "late.sdf", OBSNUM=12, UTDATE="20040919")
    _flag(tmp_path / ".rxh3_late.ok", "late.sdf")
    assert disc.flag_name("20040919", 12) == ".rxh3_late.ok"


def test_flag_files_are_read_once(tmp_path: Path):
    spec = get_instrument("rxh3")
    _raw(tmp_path / "a.sdf", OBSNUM=1, UTDATE="20040919")
    _flag(tmp_path / ".rxh3_a.ok", "a.sdf")
    _flag(tmp_path / ".rxh3_broken.ok", "does_not_exist.sdf")
    (tmp_path / ".rxh3_empty.ok").write_text("")

    cache = FlagFileCache()
    disc = FlagFileDiscovery(tmp_path, spec, cache=cache)
    assert disc.scan() == 1
    assert cache.seen(".rxh3_broken.ok")
    assert cache.seen(".rxh3_empty.ok")
    assert ".rxh3_broken.ok" not in cache
    assert disc.scan() == 0


def test_missing_directory_is_not_an_error(tmp_path: Path):
    disc = FlagFileDiscovery(tmp_path / "nowhere", get_instrument("rxh3"), cache=FlagFileCache())
    assert disc.scan() == 0
    assert disc.flag_name("20040919", 1) == ".rxh320040919_00001.ok"


def test_flag_name_for_derived_rules():
    assert flag_name_for(get_instrument("ufti"), "20040919", 10) == ".20040919_00010.fits.ok"
    assert flag_name_for(get_instrument("cgs4"), "20040919", 10) == ".10_ok"
    # discover instruments without a directory get the dummy name
    assert flag_name_for(get_instrument("rxh3"), "20040919", 10) == ".rxh320040919_00010.ok"


def test_cache_is_append_only():
    cache = FlagFileCache()
    cache.add(FlagEntry(".a.ok", "20040919", 1, "a.sdf"))
    cache.add(FlagEntry(".a.ok", "20040920", 2, "b.sdf"))
    assert cache.get(".a.ok").raw == "a.sdf"
    assert cache.find("20040919", 1) == ".a.ok"
    assert cache.find("20040920", 2) is None
    assert [e.flag for e in cache] == [".a.ok"]
    cache.clear()
    assert len(cache) == 0


def test_cache_concurrent_adds():
    cache = FlagFileCache()

    def worker(start: int):
        for i in range(start, start + 200):
            cache.add(FlagEntry(f".{i}.ok", "20040919", i, f"{i}.sdf"))

    threads = [threading.Thread(target=worker, args=(k * 100,)) for k in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # ranges overlap; every flag is stored exactly once
    assert len(cache) == 500
    assert cache.find("20040919", 250) == ".250.ok"
