from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

fits = pytest.importorskip("astropy.io.fits")

from orac_frames.container import FitsContainerStore, has_user_keywords, header_to_dict
from orac_frames.errors import ContainerIOError
from orac_frames.subframes import (
    classify_components,
    header_component_for,
    resolve_hds,
    resolve_mef,
)


def _write_container(path: Path, components: dict[str, dict], primary: dict | None = None) -> Path:
    phdu = fits.PrimaryHDU()
    phdu.header["CONTTYPE"] = "UKIRT_HDS"
    for k, v in (primary or {}).items():
        phdu.header[k] = v
    hdus = [phdu]
    for name, cards in components.items():
        data = None if name == "HEADER" else np.zeros((4, 4), dtype=np.float32)
        hdu = fits.ImageHDU(data=data, name=name)
        for k, v in cards.items():
            hdu.header[k] = v
        hdus.append(hdu)
    fits.HDUList(hdus).writeto(path, overwrite=True)
    return path


def test_plain_components():
    assert classify_components(["HEADER", "I1", "I2", "I3"]) == ["I1", "I2", "I3"]
    assert classify_components(["header", "i1"]) == ["I1"]


def test_chopped_components_win_and_beam_b_is_dropped():
    names = ["HEADER", "I1BEAMA", "I1BEAMB", "I2BEAMA", "I2BEAMB"]
    assert classify_components(names) == ["I1BEAMA", "I2BEAMA"]
    assert classify_components(["I1", "I2", "I1BEAMA"]) == ["I1BEAMA"]
    # a lone B beam still counts
    assert classify_components(["I1BEAMB"]) == ["I1BEAMB"]


def test_chopped_header_comes_from_plain_component():
    assert header_component_for("I1BEAMA", ["I1", "I1BEAMA"]) == "I1"
    assert header_component_for("I1BEAMA", ["I1BEAMA"]) == "I1BEAMA"
    assert header_component_for("i2") == "I2"


def test_resolve_hds_counts_and_headers(tmp_path: Path):
    root = tmp_path / "f20040919_00010"
    _write_container(
        tmp_path / "f20040919_00010.sdf",
        {
            "HEADER": {"OBJECT": "M31", "GRPNUM": 10},
            "I1": {"UTSTART": 10.0},
            "I2": {"UTSTART": 10.1},
            "I3": {"UTSTART": 10.2},
        },
    )
    sub = resolve_hds(FitsContainerStore(), root)
    assert sub.ok
    assert sub.count == 3
    assert sub.names == ["I1", "I2", "I3"]
    assert sub.primary["OBJECT"] == "M31"
    assert [h["UTSTART"] for h in sub.headers] == [10.0, 10.1, 10.2]

    hs = sub.header_set()
    assert hs.nsubs == 3
    assert hs.merged(2)["UTSTART"] == 10.1
    assert hs.merged(2)["OBJECT"] == "M31"


def test_resolve_hds_beams(tmp_path: Path):
    _write_container(
        tmp_path / "m20040919_00010.sdf",
        {"HEADER": {}, "I1BEAMA": {}, "I1BEAMB": {}, "I2BEAMA": {}, "I2BEAMB": {}},
    )
    sub = resolve_hds(FitsContainerStore(), tmp_path / "m20040919_00010", read_headers=False)
    assert sub.count == 2
    assert sub.headers == []


def test_resolve_hds_missing_container(tmp_path: Path):
    sub = resolve_hds(FitsContainerStore(), tmp_path / "nothing")
    assert sub.ok is False
    assert sub.count == 0


def test_resolve_mef(tmp_path: Path):
    p = tmp_path / "N20040919S0010.fits"
    primary = fits.PrimaryHDU()
    primary.header["OBJECT"] = "NGC 253"
    primary.header["UT"] = "10:30:00"
    e1 = fits.ImageHDU(np.zeros((2, 2)), name="SCI")
    e1.header["UT"] = "10:31:00"
    e2 = fits.ImageHDU(np.zeros((2, 2)), name="SCI2")
    fits.HDUList([primary, e1, e2]).writeto(p)

    sub = resolve_mef(FitsContainerStore(suffix=".fits"), p)
    assert sub.ok
    assert sub.count == 2
    assert sub.names == ["SCI", "SCI2"]
    assert sub.headers[0]["UT"] == "10:31:00"
    assert sub.headers[1]["UT"] == "10:30:00"
    assert sub.headers[1]["OBJECT"] == "NGC 253"
    assert "END" not in sub.primary


def test_header_to_dict_drops_commentary_cards():
    h = fits.Header()
    h["OBJECT"] = "M31"
    h["HISTORY"] = "reduced"
    h["COMMENT"] = "hello"
    assert header_to_dict(h) == {"OBJECT": "M31"}


def test_create_copy_and_erase_components(tmp_path: Path):
    store = FitsContainerStore()
    _write_container(tmp_path / "src.sdf", {"HEADER": {"OBJECT": "M31"}, "I1": {}})

    dst = store.create_container(tmp_path / "dst", "UKIRT_HDS")
    assert dst == tmp_path / "dst.sdf"
    assert store.read_header(tmp_path / "dst")["CONTTYPE"] == "UKIRT_HDS"
    with pytest.raises(ContainerIOError):
        store.create_container(tmp_path / "dst", "UKIRT_HDS")

    store.copy_component(tmp_path / "src", tmp_path / "dst", "HEADER")
    assert store.read_header(tmp_path / "dst", "HEADER")["OBJECT"] == "M31"
    # copying again replaces rather than duplicates
    store.copy_component(tmp_path / "src", tmp_path / "dst", "HEADER")
    with store.open(tmp_path / "dst") as h:
        assert store.enumerate_children(h) == ["HEADER"]

    store.copy_component(tmp_path / "src", tmp_path / "dst", "I1")
    with store.open(tmp_path / "dst", "READ") as h:
        with pytest.raises(ContainerIOError):
            store.erase_component(h, "I1")
    with store.open(tmp_path / "dst", "UPDATE") as h:
        store.erase_component(h, "I1")
    with store.open(tmp_path / "dst") as h:
        assert not store.has_component(h, "I1")
        assert store.has_component(h, "header")


def test_store_errors(tmp_path: Path):
    store = FitsContainerStore()
    with pytest.raises(ContainerIOError) as ei:
        store.read_header(tmp_path / "missing")
    assert "missing" in str(ei.value)

    _write_container(tmp_path / "c.sdf", {"HEADER": {}})
    with pytest.raises(ContainerIOError):
        store.read_header(tmp_path / "c", "I9")
    with pytest.raises(ContainerIOError):
        store.copy_component(tmp_path / "c", tmp_path / "c", "I9")

    junk = tmp_path / "junk.sdf"
    junk.write_text("not a container")
    with pytest.raises(ContainerIOError):
        store.read_header(junk)


def test_resolve_hds_without_header_component_reads_primary(tmp_path: Path):
    _write_container(
        tmp_path / "c20040919_00010.sdf",
        {"I1": {"UTSTART": 10.0}, "I2": {"UTSTART": 10.1}},
        primary={"OBJECT": "M31", "GRPNUM": 10},
    )
    sub = resolve_hds(FitsContainerStore(), tmp_path / "c20040919_00010")
    assert sub.ok
    assert sub.count == 2
    assert sub.primary["OBJECT"] == "M31"
    assert sub.primary["CONTTYPE"] == "UKIRT_HDS"
    assert sub.header_set().merged(1)["GRPNUM"] == 10


def test_resolve_hds_without_keywords_is_not_ok(tmp_path: Path):
    path = tmp_path / "c20040919_00011.sdf"
    fits.HDUList([fits.PrimaryHDU(), fits.ImageHDU(np.zeros((2, 2)), name="I1")]).writeto(path)
    sub = resolve_hds(FitsContainerStore(), tmp_path / "c20040919_00011")
    assert sub.count == 1
    assert sub.ok is False


def test_has_user_keywords():
    assert not has_user_keywords({"SIMPLE": True, "BITPIX": 8, "NAXIS": 0, "EXTEND": True})
    assert not has_user_keywords({"XTENSION": "IMAGE", "NAXIS1": 2, "PCOUNT": 0, "GCOUNT": 1, "EXTNAME": "I1"})
    assert has_user_keywords({"NAXIS": 0, "OBJECT": "M31"})
    assert not has_user_keywords({})
