from __future__ import annotations

from pathlib import Path

import pytest
import yaml

fits = pytest.importorskip("astropy.io.fits")

from orac_frames.cli import main
from orac_frames.config import RunConfig, load_config, load_run_config, write_config
from orac_frames.version import __version__, as_header_cards


def test_load_config_resolves_data_dir(tmp_path: Path):
    cfg_path = tmp_path / "run.yaml"
    cfg_path.write_text("instrument: ufti\ndata_dir: raw\nextra_key: 1\n", encoding="utf-8")

    cfg = load_config(cfg_path)
    assert cfg["config_dir"] == str(tmp_path.resolve())
    assert cfg["data_dir"] == str((tmp_path / "raw").resolve())

    rc = load_run_config(cfg_path)
    assert isinstance(rc, RunConfig)
    assert rc.instrument == "ufti"
    assert rc.log_level == "INFO"
    assert rc.model_extra["extra_key"] == 1


def test_data_dir_falls_back_to_environment(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("ORAC_DATA_IN", str(tmp_path / "incoming"))
    cfg_path = tmp_path / "run.yaml"
    cfg_path.write_text("instrument: niri\n", encoding="utf-8")
    assert load_config(cfg_path)["data_dir"] == str((tmp_path / "incoming").resolve())


def test_bad_configs(tmp_path: Path):
    p = tmp_path / "list.yaml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(p)

    p = tmp_path / "typed.yaml"
    p.write_text("log_level: [1, 2]\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Invalid run config"):
        load_run_config(p)


def test_write_config_drops_derived_keys(tmp_path: Path):
    cfg = load_config(_write(tmp_path / "a.yaml", "instrument: ufti\ndata_dir: raw\n"))
    out = write_config(cfg, tmp_path / "out" / "b.yaml")
    data = yaml.safe_load(out.read_text(encoding="utf-8"))
    assert "config_path" not in data
    assert "config_dir" not in data
    assert data["instrument"] == "ufti"

    out = write_config(RunConfig(instrument="niri"), tmp_path / "c.yaml")
    assert yaml.safe_load(out.read_text(encoding="utf-8"))["instrument"] == "niri"


def _write(p: Path, text: str) -> Path:
    p.write_text(text, encoding="utf-8")
    return p


def test_version_cards():
    assert as_header_cards() == {"ORACFRV": __version__}


def test_cli_instruments(capsys):
    assert main(["instruments"]) == 0
    out = capsys.readouterr().out
    assert "ufti" in out
    assert "niri" in out


def test_cli_names(capsys):
    assert main(["names", "--instrument", "ufti", "--prefix", "20040919", "--obsnum", "10"]) == 0
    out = capsys.readouterr().out
    assert "f20040919_00010.fits" in out
    assert ".20040919_00010.fits.ok" in out


def test_cli_names_subscan_instrument(capsys):
    assert main(["names", "--instrument", "acsis_ql", "--prefix", "20040919", "--obsnum", "10"]) == 0
    assert "not derivable" in capsys.readouterr().out


def test_cli_inspect(tmp_path: Path, capsys):
    hdu = fits.PrimaryHDU()
    hdu.header["OBJECT"] = "FS 1"
    hdu.header["GRPNUM"] = 7
    raw = tmp_path / "ro20040919_00007.sdf"
    hdu.writeto(raw)

    assert main(["inspect", "--instrument", "ircam", str(raw)]) == 0
    out = capsys.readouterr().out
    assert "ORAC_OBJECT" in out
    assert "FS 1" in out


def test_cli_instrument_from_config(tmp_path: Path, capsys):
    cfg = _write(tmp_path / "run.yaml", "instrument: cgs4\nlog_level: WARNING\n")
    assert main(["--config", str(cfg), "names", "--prefix", "20040919", "--obsnum", "10"]) == 0
    assert ".10_ok" in capsys.readouterr().out


def test_cli_requires_instrument():
    with pytest.raises(SystemExit):
        main(["names", "--prefix", "20040919", "--obsnum", "10"])


def test_log_level_resolution(monkeypatch):
    from orac_frames.log import resolve_level

    monkeypatch.delenv("ORAC_LOG_LEVEL", raising=False)
    assert resolve_level(None) == "INFO"
    assert resolve_level("debug") == "DEBUG"
    assert resolve_level("chatty") == "INFO"
    monkeypatch.setenv("ORAC_LOG_LEVEL", "warning")
    assert resolve_level(None) == "WARNING"


def test_setup_logging_installs_single_handler():
    import logging

    from orac_frames.log import setup_logging

    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    try:
        assert setup_logging("DEBUG") == "DEBUG"
        setup_logging("ERROR")
        assert len(root.handlers) == 1
        assert root.level == logging.ERROR
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        for h in saved[0]:
            root.addHandler(h)
        root.setLevel(saved[1])
        logging.captureWarnings(False)


def test_timer_records_elapsed(caplog):
    import logging

    from orac_frames.log import timer

    with caplog.at_level(logging.DEBUG, logger="orac_frames"):
        with timer("step") as t:
            pass
    assert t.elapsed >= 0.0
    assert "step" in caplog.text


def test_cli_inspect_guesses_instrument_from_header(tmp_path: Path, capsys):
    hdu = fits.PrimaryHDU()
    hdu.header["INSTRUME"] = "UFTI"
    hdu.header["OBJECT"] = "FS 2"
    raw = tmp_path / "f20040919_00010.fits"
    hdu.writeto(raw)

    assert main(["inspect", str(raw)]) == 0
    out = capsys.readouterr().out
    assert "UFTI" in out
    assert "FS 2" in out


def test_cli_inspect_without_instrument_or_guess(tmp_path: Path):
    hdu = fits.PrimaryHDU()
    hdu.header["OBJECT"] = "FS 2"
    raw = tmp_path / "unknown.fits"
    hdu.writeto(raw)
    with pytest.raises(SystemExit):
        main(["inspect", str(raw)])


def test_cli_flag_glob_from_config(tmp_path: Path, capsys):
    hdu = fits.PrimaryHDU()
    hdu.header["OBSNUM"] = 10
    hdu.header["UTDATE"] = "20040919"
    hdu.writeto(tmp_path / "scan_a.sdf")
    (tmp_path / ".scan_a.done").write_text("scan_a.sdf\n")

    cfg = _write(
        tmp_path / "run.yaml",
        f"instrument: rxh3\ndata_dir: {tmp_path}\nflag_glob: '.scan_*.done'\n",
    )
    assert main(["--config", str(cfg), "names", "--prefix", "20040919", "--obsnum", "10"]) == 0
    assert ".scan_a.done" in capsys.readouterr().out
