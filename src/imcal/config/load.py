from __future__ import annotations
from .schemas import Config
from pathlib import Path
from typing import Optional

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def load_config(path: str | Path) -> Config:
    """Parse a TOML run config; TOML syntax errors are reported with the file name."""
    p = Path(path)
    try:
        data = tomllib.loads(p.read_text())
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"{p}: {e}") from e
    return Config.model_validate(data)

def apply_overrides(
    cfg: Config,
    *,
    input_kind: Optional[str] = None,
    enable_eta_bounds: Optional[bool] = None,
) -> Config:
    """
    Return a re-validated copy of cfg with command-line overrides applied.
    None leaves the TOML value in place.
    """
    data = cfg.model_dump()
    if input_kind is not None:
        data["io"]["input_kind"] = input_kind
    if enable_eta_bounds is not None:
        data["reco"]["enable_eta_bounds"] = enable_eta_bounds
    return Config.model_validate(data)

def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()
