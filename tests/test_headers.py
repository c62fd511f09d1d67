from __future__ import annotations

import pytest

from orac_frames.headers import CANONICAL_KEYS, HeaderSet, canonical_key


def _headers() -> HeaderSet:
    return HeaderSet(
        primary={"OBJECT": "M31", "UTSTART": 9.0},
        subframes=[{"UTSTART": 10.0, "EXPTIME": 5.0}, {"UTSTART": 10.5, "EXPTIME": 6.0}],
    )


def test_subframe_values_override_primary():
    hs = _headers()
    assert hs.nsubs == 2
    assert hs.get("UTSTART") == 9.0
    assert hs.merged(1)["UTSTART"] == 10.0
    assert hs.merged(2)["OBJECT"] == "M31"
    # out-of-range merges give the primary alone
    assert hs.merged(5) == hs.primary
    with pytest.raises(IndexError):
        hs.sub(0)


def test_translation_view_mixes_first_and_last_subframe():
    view = _headers().translation_view()
    assert view["UTSTART"] == 10.0
    assert view["EXPTIME"] == 6.0
    assert HeaderSet(primary={"A": 1}).translation_view() == {"A": 1}


def test_explicit_updates():
    hs = _headers()
    hs.update("OBJECT", "M32")
    hs.update("EXPTIME", 7.0, subframe=2)
    assert hs.get("OBJECT") == "M32"
    assert hs.sub(2)["EXPTIME"] == 7.0
    with pytest.raises(IndexError):
        hs.update("X", 1, subframe=3)


def test_from_mapping():
    hs = _headers()
    assert HeaderSet.from_mapping(hs) is hs
    assert HeaderSet.from_mapping({"A": 1}).primary == {"A": 1}
    assert not HeaderSet.from_mapping(None)


def test_canonical_key_spelling():
    assert canonical_key("ORAC_UTDATE") == "UTDATE"
    assert canonical_key(" utdate ") == "UTDATE"
    assert "ROTATION" in CANONICAL_KEYS


def test_copy_is_independent():
    hs = _headers()
    cp = hs.copy()
    cp.update("OBJECT", "M32")
    cp.update("EXPTIME", 1.0, subframe=1)
    assert hs.get("OBJECT") == "M31"
    assert hs.sub(1)["EXPTIME"] == 5.0
    assert cp.nsubs == 2


def test_without_drops_keys_everywhere():
    hs = HeaderSet(primary={"A": 1, "END": None}, subframes=[{"B": 2, "END": None}])
    out = hs.without("END")
    assert out.primary == {"A": 1}
    assert out.subframes == [{"B": 2}]
    # the original is untouched
    assert "END" in hs.primary
    assert hs.without().primary == hs.primary
