from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError


log = logging.getLogger(__name__)


class RunConfig(BaseModel):
    """Settings for one pipeline run that uses the frame layer.

    Extra keys are allowed so that the same YAML file can carry settings for
    the surrounding pipeline.
    """

    model_config = ConfigDict(extra="allow")

    instrument: str | None = None
    data_dir: str | None = None
    log_level: str = "INFO"
    flag_glob: str | None = None
    container_suffix: str | None = None


def _norm_path_str(p: str) -> str:
    """Normalize path separators to forward slashes for YAML round-trips."""
    return str(p).replace("\\", "/")


def resolve_path(p: str | Path, *, base_dir: Path) -> Path:
    pp = Path(_norm_path_str(str(p))).expanduser()
    return pp if pp.is_absolute() else (base_dir / pp).resolve()


def load_config(cfg_path: str | Path) -> dict[str, Any]:
    """Load YAML run config + resolve relative paths.

    Adds:
      - config_path (absolute)
      - config_dir (absolute)

    ``data_dir`` is resolved relative to the config file directory. When it
    is absent the ``ORAC_DATA_IN`` environment variable is used, matching
    the way the pipeline is launched from a shell.
    """
    cfg_path = Path(cfg_path).expanduser().resolve()
    cfg_dir = cfg_path.parent
    cfg = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config root must be a mapping: {cfg_path}")

    cfg["config_path"] = str(cfg_path)
    cfg["config_dir"] = str(cfg_dir)

    if cfg.get("data_dir"):
        cfg["data_dir"] = str(resolve_path(cfg["data_dir"], base_dir=cfg_dir))
    elif os.environ.get("ORAC_DATA_IN"):
        cfg["data_dir"] = str(Path(os.environ["ORAC_DATA_IN"]).expanduser().resolve())

    return cfg


def load_run_config(cfg_path: str | Path) -> RunConfig:
    """Load and validate a run config.

    Raises ``ValueError`` with the pydantic error summary when validation
    fails.
    """
    cfg = load_config(cfg_path)
    try:
        return RunConfig.model_validate(cfg)
    except ValidationError as e:
        raise ValueError(f"Invalid run config {cfg_path}: {e}") from e


def write_config(cfg: dict[str, Any] | RunConfig, cfg_path: str | Path) -> Path:
    """Write a run config as YAML, dropping the keys added by :func:`load_config`."""
    if isinstance(cfg, RunConfig):
        data = cfg.model_dump(exclude_none=True)
    else:
        data = dict(cfg)
    for k in ("config_path", "config_dir"):
        data.pop(k, None)
    if data.get("data_dir"):
        data["data_dir"] = _norm_path_str(data["data_dir"])

    p = Path(cfg_path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8")
    log.debug("Wrote run config %s", p)
    return p
