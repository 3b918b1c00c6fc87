from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List

from imcal.config.schemas import PixelCfg
from imcal.geometry.service import GeometryService
from imcal.physics.hits import Hit
from imcal.utils.logger import logger

@dataclass(frozen=True, slots=True)
class RawHit:
    """Digitized pixel. timestamp is in TDC counts; time [ns] = timestamp * 1e-6."""
    cell_id: int
    amplitude: int
    timestamp: int

class ImagingPixelReco:
    """
    Convert digitized imaging-calorimeter pixels into Hits.

    Pixels below threshold_factor * pedestal_sigma above the pedestal are
    dropped. Energy is the pedestal-subtracted ADC scaled by
    dynamic_range_adc / capacity_adc and corrected by the sampling
    fraction; geometry comes from the injected service.
    """

    def __init__(self, geometry: GeometryService, cfg: PixelCfg | None = None):
        if geometry is None:
            raise ValueError("Unable to locate geometry service; ImagingPixelReco needs one")
        self.geometry = geometry
        self.cfg = cfg or PixelCfg()

    def energy(self, amplitude: float) -> float:
        c = self.cfg
        return (amplitude - c.pedestal_mean) / float(c.capacity_adc) * c.dynamic_range_adc / c.sampling_fraction

    def passes_threshold(self, amplitude: float) -> bool:
        c = self.cfg
        return (amplitude - c.pedestal_mean) >= c.threshold_factor * c.pedestal_sigma

    def run(self, raw_hits: Iterable[RawHit]) -> List[Hit]:
        lu = self.cfg.length_unit
        hits: List[Hit] = []
        n_in = 0
        for rh in raw_hits:
            n_in += 1
            # did not pass the threshold
            if not self.passes_threshold(rh.amplitude):
                continue
            cid = int(rh.cell_id)
            hits.append(Hit(
                cell_id=cid,
                position=self.geometry.position(cid) / lu,
                local=self.geometry.local_position(cid) / lu,
                layer=int(self.geometry.layer_of(cid)),
                sector=int(self.geometry.sector_of(cid)),
                energy=float(self.energy(rh.amplitude)),
                time=float(rh.timestamp) * 1.0e-6,
                time_error=0.0,
            ))
        logger.debug("pixel reco: %d raw hits -> %d hits", n_in, len(hits))
        return hits
