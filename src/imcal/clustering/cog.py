from __future__ import annotations
import math
from typing import Iterable, List

import numpy as np

from imcal.config.schemas import RecoCfg
from imcal.clustering.weights import make_weight_function
from imcal.geometry import vectors
from imcal.physics.clusters import Cluster
from imcal.physics.hits import HitGroup, ProtoCluster
from imcal.utils.logger import logger


class ClusterRecoCoG:
    """
    Reconstruct clusters with the center-of-gravity method.

    Logarithmic weighting (the default) mimics the transverse energy
    profile of a shower. The weighting method is resolved here, so an
    unknown name fails at construction rather than per event.
    """

    def __init__(self, cfg: RecoCfg | None = None):
        cfg = cfg or RecoCfg()
        if cfg.sampling_fraction <= 0:
            raise ValueError("sampling_fraction must be positive")
        self.sampling_fraction = float(cfg.sampling_fraction)
        self.log_weight_base = float(cfg.log_weight_base)
        self.enable_eta_bounds = bool(cfg.enable_eta_bounds)
        self.weight_name = cfg.energy_weight.lower()
        self.weight_func = make_weight_function(self.weight_name)
        logger.info(
            "CoG reconstruction: weighting=%s (log base %.3f), sampling fraction=%.4f, eta bounds=%s",
            self.weight_name, self.log_weight_base, self.sampling_fraction, self.enable_eta_bounds,
        )

    def reconstruct(self, pcl: ProtoCluster) -> Cluster:
        hits, weights = pcl.hits, pcl.weights
        n = len(hits)
        logger.debug("hit size = %d", n)
        if n == 0:
            return Cluster()

        # total energy and the eta envelope of the contributing hits
        total_e = 0.0
        min_eta, max_eta = math.inf, -math.inf
        for hit, w in zip(hits, weights):
            total_e += hit.energy * w
            h_eta = hit.eta
            min_eta = min(min_eta, h_eta)
            max_eta = max(max_eta, h_eta)

        # center of gravity
        cog_w = np.array(
            [self.weight_func(hit.energy * w, total_e, self.log_weight_base, 0)
             for hit, w in zip(hits, weights)],
            dtype=np.float64,
        )
        tw = float(cog_w.sum())
        if tw == 0.0:
            logger.warning(
                "zero total weights encountered, you may want to adjust your weighting parameter."
            )
            position = np.zeros(3, dtype=np.float64)
        else:
            # normalized first, so a lone contributing hit lands exactly on itself
            position = (cog_w / tw) @ np.array([hit.position for hit in hits], dtype=np.float64)

        if self.enable_eta_bounds and tw != 0.0:
            position = self._bound_eta(position, min_eta, max_eta)

        radius_params: tuple = ()
        if n > 1:
            d2 = sum(float((position - hit.position) @ (position - hit.position)) for hit in hits)
            # skewness not yet calculated
            radius_params = (math.sqrt(d2 / (n - 1.0)), 0.0)

        return Cluster(
            n_hits=n,
            energy=total_e / self.sampling_fraction,
            energy_error=0.0,
            time=float(hits[0].time),
            time_error=float(hits[0].time_error),
            position=position,
            position_error=np.zeros(3, dtype=np.float64),
            intrinsic_theta=vectors.angle_polar(position),
            intrinsic_phi=vectors.angle_azimuthal(position),
            shape_parameters=radius_params,
        )

    @staticmethod
    def _bound_eta(position: np.ndarray, min_eta: float, max_eta: float) -> np.ndarray:
        """Move the centroid back onto the hits' eta envelope, keeping r and phi."""
        c_eta = vectors.eta(position)
        overflow = c_eta > max_eta
        underflow = c_eta < min_eta
        if not (overflow or underflow):
            return position
        new_theta = vectors.eta_to_angle(max_eta if overflow else min_eta)
        new_r = vectors.magnitude(position)
        new_phi = vectors.angle_azimuthal(position)
        logger.debug(
            "Bound cluster position to contributing hits due to %s",
            "overflow" if overflow else "underflow",
        )
        return vectors.spherical_to_vector(new_r, new_theta, new_phi)

    def run(self, protos: Iterable[ProtoCluster | HitGroup]) -> List[Cluster]:
        clusters: List[Cluster] = []
        for pcl in protos:
            if isinstance(pcl, HitGroup):
                pcl = pcl.to_proto()
            cl = self.reconstruct(pcl)
            logger.debug(
                "%d hits: %.6f GeV, (%.2f, %.2f, %.2f)",
                cl.n_hits, cl.energy, *cl.position,
            )
            clusters.append(cl)
        return clusters
