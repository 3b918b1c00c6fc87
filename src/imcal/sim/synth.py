from __future__ import annotations
import math
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from imcal.config.schemas import PixelCfg
from imcal.geometry.cellid import CellIDDecoder
from imcal.geometry.service import TableGeometry
from imcal.physics.pixel_reco import RawHit

TOY_READOUT = "system:8,sector:6,layer:8,x:-16,y:-16"
TOY_SYSTEM = 1

@dataclass
class ToyCalorimeter:
    """
    Barrel imaging calorimeter for synthetic runs.

    n_sectors flat staves around z, each with n_layers pixel planes at
    radius r0 + layer * layer_gap [mm]. Pixels sit on an nx x ny grid of
    the given pitch; local x runs along phi, local y along z.
    """
    n_sectors: int = 12
    n_layers: int = 6
    nx: int = 15
    ny: int = 15
    pitch: float = 1.0
    r0: float = 1000.0
    layer_gap: float = 20.0

    def __post_init__(self):
        self.decoder = CellIDDecoder(TOY_READOUT)

    def _ix(self, i: int) -> int:
        return i - (self.nx - 1) // 2

    def _iy(self, j: int) -> int:
        return j - (self.ny - 1) // 2

    def cell_id(self, sector: int, layer: int, i: int, j: int) -> int:
        return self.decoder.encode(system=TOY_SYSTEM, sector=sector, layer=layer,
                                   x=self._ix(i), y=self._iy(j))

    def local_of(self, i: int, j: int) -> np.ndarray:
        return np.array([self._ix(i) * self.pitch, self._iy(j) * self.pitch, 0.0])

    def global_of(self, sector: int, layer: int, i: int, j: int) -> np.ndarray:
        phi_s = 2.0 * math.pi * sector / self.n_sectors
        R = self.r0 + layer * self.layer_gap
        lx, ly, _ = self.local_of(i, j)
        radial = np.array([math.cos(phi_s), math.sin(phi_s), 0.0])
        along_phi = np.array([-math.sin(phi_s), math.cos(phi_s), 0.0])
        return R * radial + lx * along_phi + np.array([0.0, 0.0, ly])

    def geometry(self) -> TableGeometry:
        ids, pos, loc = [], [], []
        for s in range(self.n_sectors):
            for l in range(self.n_layers):
                for i in range(self.nx):
                    for j in range(self.ny):
                        ids.append(self.cell_id(s, l, i, j))
                        pos.append(self.global_of(s, l, i, j))
                        loc.append(self.local_of(i, j))
        return TableGeometry(ids, np.array(pos), np.array(loc), decoder=self.decoder)

def _amplitude(e_gev: float, cfg: PixelCfg, rng: np.random.Generator) -> int:
    """Inverse of ImagingPixelReco.energy plus pedestal noise."""
    adc = cfg.pedestal_mean + e_gev * cfg.sampling_fraction / cfg.dynamic_range_adc * cfg.capacity_adc
    adc += rng.normal(0.0, cfg.pedestal_sigma)
    return int(np.clip(round(adc), 0, cfg.capacity_adc))

def synth_shower(
    calo: ToyCalorimeter,
    energy_gev: float,
    sector: int,
    center: Tuple[int, int],
    rng: np.random.Generator,
    cfg: PixelCfg | None = None,
    sigma_px: float = 1.2,
    t0_ns: float = 10.0,
) -> List[RawHit]:
    """
    Deposit one shower in a single sector: energy shared over layers with a
    falling longitudinal profile, Gaussian transverse spread (sigma in pixels).
    """
    cfg = cfg or PixelCfg()
    prof = np.exp(-0.5 * np.arange(calo.n_layers))
    prof /= prof.sum()
    ci, cj = center
    reach = int(math.ceil(3 * sigma_px))
    raw: List[RawHit] = []
    for layer in range(calo.n_layers):
        e_layer = energy_gev * prof[layer]
        for i in range(max(0, ci - reach), min(calo.nx, ci + reach + 1)):
            for j in range(max(0, cj - reach), min(calo.ny, cj + reach + 1)):
                frac = math.exp(-0.5 * ((i - ci) ** 2 + (j - cj) ** 2) / sigma_px ** 2)
                frac /= 2.0 * math.pi * sigma_px ** 2
                ts = int(round((t0_ns + 0.05 * layer) * 1.0e6))
                raw.append(RawHit(calo.cell_id(sector, layer, i, j),
                                  _amplitude(e_layer * frac, cfg, rng), ts))
    return raw

def synth_raw_events(
    n_events: int,
    calo: ToyCalorimeter | None = None,
    rng: np.random.Generator | None = None,
    cfg: PixelCfg | None = None,
    max_showers: int = 2,
    energy_range_gev: Tuple[float, float] = (0.5, 5.0),
    noise_hits: int = 5,
) -> List[List[RawHit]]:
    """
    Events of 1..max_showers showers in distinct sectors plus pedestal-only
    noise pixels scattered over the detector.
    """
    calo = calo or ToyCalorimeter()
    rng = rng or np.random.default_rng()
    cfg = cfg or PixelCfg()
    events: List[List[RawHit]] = []
    for _ in range(n_events):
        n_sh = int(rng.integers(1, max_showers + 1))
        sectors = rng.choice(calo.n_sectors, size=min(n_sh, calo.n_sectors), replace=False)
        raw: List[RawHit] = []
        for s in sectors:
            e = float(rng.uniform(*energy_range_gev))
            center = (int(rng.integers(3, calo.nx - 3)), int(rng.integers(3, calo.ny - 3)))
            raw.extend(synth_shower(calo, e, int(s), center, rng, cfg))
        for _ in range(noise_hits):
            cid = calo.cell_id(int(rng.integers(calo.n_sectors)), int(rng.integers(calo.n_layers)),
                               int(rng.integers(calo.nx)), int(rng.integers(calo.ny)))
            raw.append(RawHit(cid, _amplitude(0.0, cfg, rng), int(rng.integers(0, 50_000_000))))
        events.append(raw)
    return events
