from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Literal, Optional, List

from imcal.clustering.weights import WEIGHT_METHODS

# Internal units throughout: mm, GeV, ns, rad

class RunCfg(BaseModel):
    """
    Global run controls.
    """

    # Diagnostics
    diagnostics_level: int = 1  # 0=off, 1=minimal, 2=verbose

    # Limits
    max_events: Optional[int] = None

    @field_validator("diagnostics_level")
    def _diag_range(cls, v: int) -> int:
        if v not in (0, 1, 2):
            raise ValueError("diagnostics_level must be 0, 1, or 2")
        return v

class IOCfg(BaseModel):
    """
    I/O paths.

    TOML:

    [io]
    input_path  = "..."
    input_kind  = "raw"          # "raw" (ADC hits + /geometry) | "hits"
    output_path = "..."
    """

    input_path: str
    input_kind: Literal["raw", "hits"] = "hits"
    output_path: str
    write_hit_labels: bool = True

class GeometryCfg(BaseModel):
    """
    Readout description used to decode layer/sector from cell ids.

    TOML:

    [geometry]
    readout = "system:8,sector:4,layer:8,x:-16,y:-16"
    layer_field = "layer"
    sector_field = "sector"

    When readout is empty, layer/sector come from the /geometry table.
    """

    readout: str = ""
    layer_field: str = "layer"
    sector_field: str = "sector"

class PixelCfg(BaseModel):
    """Digitization parameters for raw -> reconstructed hit conversion."""
    capacity_adc: int = 8096
    pedestal_mean: float = 400.0
    dynamic_range_adc: float = 0.1   # GeV
    pedestal_sigma: float = 3.2
    threshold_factor: float = 3.0
    sampling_fraction: float = 1.0
    length_unit: float = 1.0         # geometry length unit, in mm

    @field_validator("capacity_adc")
    def _positive_capacity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("capacity_adc must be positive")
        return v

    @field_validator("sampling_fraction", "length_unit")
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

def _two_values(v: List[float]) -> List[float]:
    if len(v) != 2:
        raise ValueError(f"expected exactly 2 values, got {len(v)}")
    return [float(x) for x in v]

class TopoCfg(BaseModel):
    """
    Topological grouping of imaging-calorimeter hits.

    TOML:

    [topo]
    neighbour_layers_range = 1
    local_dist_xy = [1.0, 1.0]         # mm, same sector and layer
    layer_dist_eta_phi = [0.01, 0.01]  # (eta, rad), same sector, nearby layers
    sector_dist = 10.0                 # mm, different sectors
    min_cluster_hit_edep = 0.0         # GeV, participation threshold
    min_cluster_center_edep = 0.0      # GeV, seed threshold
    min_cluster_edep = 0.0005          # GeV, keep group
    min_cluster_nhits = 10
    """

    neighbour_layers_range: int = 1
    local_dist_xy: List[float] = Field(default_factory=lambda: [1.0, 1.0])
    layer_dist_eta_phi: List[float] = Field(default_factory=lambda: [0.01, 0.01])
    sector_dist: float = 10.0

    min_cluster_hit_edep: float = 0.0
    min_cluster_center_edep: float = 0.0
    min_cluster_edep: float = 0.5e-3
    min_cluster_nhits: int = 10

    @field_validator("local_dist_xy", "layer_dist_eta_phi")
    def _pair(cls, v: List[float]) -> List[float]:
        return _two_values(v)

class RecoCfg(BaseModel):
    """
    Center-of-gravity cluster reconstruction.

    energy_weight is one of "none" | "linear" | "log" (case-insensitive).
    """

    sampling_fraction: float = 1.0
    log_weight_base: float = 3.6
    energy_weight: str = "log"
    enable_eta_bounds: bool = False

    @field_validator("sampling_fraction")
    def _positive_sf(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("sampling_fraction must be positive")
        return v

    @field_validator("energy_weight")
    def _known_weight(cls, v: str) -> str:
        key = v.lower()
        if key not in WEIGHT_METHODS:
            raise ValueError(
                f"unknown energy_weight {v!r}, choose one from [{', '.join(WEIGHT_METHODS)}]"
            )
        return key

class Config(BaseModel):
    """
    Top-level TOML configuration.
    """

    run: RunCfg = Field(default_factory=RunCfg)
    io: IOCfg
    geometry: GeometryCfg = Field(default_factory=GeometryCfg)
    pixel: PixelCfg = Field(default_factory=PixelCfg)
    topo: TopoCfg = Field(default_factory=TopoCfg)
    reco: RecoCfg = Field(default_factory=RecoCfg)
