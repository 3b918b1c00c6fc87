"""
imcal.clustering.topo

Topological grouping of imaging-calorimeter hits.

Hits are connected when they are neighbours under a rule that depends on
where they sit relative to each other:

- different sectors: global distance <= sector_dist
- same sector, same layer: |dx|, |dy| in the local layer frame each
  within local_dist_xy
- same sector, |dlayer| <= neighbour_layers_range: |deta|, |dphi| each
  within layer_dist_eta_phi
- anything else: not neighbours

Groups are grown depth-first from seed hits (energy >= min_cluster_center_edep).
A reached hit below min_cluster_hit_edep is consumed (marked visited) but
neither kept nor expanded, so it never bridges two showers.
Reference: https://arxiv.org/pdf/1603.02934.pdf
"""
from __future__ import annotations
import math
from typing import List, Sequence, Tuple

import numpy as np

from imcal.config.schemas import TopoCfg
from imcal.physics.hits import Hit, HitGroup
from imcal.utils.logger import logger


class ImagingTopoCluster:
    def __init__(self, cfg: TopoCfg | None = None):
        cfg = cfg or TopoCfg()
        # TopoCfg validates lengths on construction; re-check for hand-built objects
        if len(cfg.local_dist_xy) != 2:
            raise ValueError("Expected 2 values (x_dist, y_dist) for local_dist_xy")
        if len(cfg.layer_dist_eta_phi) != 2:
            raise ValueError("Expected 2 values (eta_dist, phi_dist) for layer_dist_eta_phi")

        self.neighbour_layers_range = int(cfg.neighbour_layers_range)
        self.local_dist_xy = (float(cfg.local_dist_xy[0]), float(cfg.local_dist_xy[1]))
        self.layer_dist_eta_phi = (float(cfg.layer_dist_eta_phi[0]), float(cfg.layer_dist_eta_phi[1]))
        self.sector_dist = float(cfg.sector_dist)
        self.min_cluster_hit_edep = float(cfg.min_cluster_hit_edep)
        self.min_cluster_center_edep = float(cfg.min_cluster_center_edep)
        self.min_cluster_edep = float(cfg.min_cluster_edep)
        self.min_cluster_nhits = int(cfg.min_cluster_nhits)

        logger.info(
            "Local clustering (same sector and same layer): "
            "Local [x, y] distance between hits <= [%.4f mm, %.4f mm].",
            *self.local_dist_xy,
        )
        logger.info(
            "Neighbour layers clustering (same sector and layer id within +- %d): "
            "Global [eta, phi] distance between hits <= [%.4f, %.4f rad].",
            self.neighbour_layers_range, *self.layer_dist_eta_phi,
        )
        logger.info(
            "Neighbour sectors clustering (different sector): "
            "Global distance between hits <= %.4f mm.",
            self.sector_dist,
        )

    # --- adjacency ----------------------------------------------------------

    def is_neighbor(self, h1: Hit, h2: Hit) -> bool:
        # different sectors, simple distance check
        if h1.sector != h2.sector:
            d = h1.position - h2.position
            return math.sqrt(float(d @ d)) <= self.sector_dist

        ldiff = abs(h1.layer - h2.layer)
        # same layer, check local positions
        if ldiff == 0:
            return (abs(h1.local[0] - h2.local[0]) <= self.local_dist_xy[0]
                    and abs(h1.local[1] - h2.local[1]) <= self.local_dist_xy[1])
        if ldiff <= self.neighbour_layers_range:
            return (abs(h1.eta - h2.eta) <= self.layer_dist_eta_phi[0]
                    and abs(h1.phi - h2.phi) <= self.layer_dist_eta_phi[1])

        # not in adjacent layers
        return False

    # --- grouping -----------------------------------------------------------

    def _dfs_group(self, seed: int, hits: Sequence[Hit], visits: np.ndarray) -> List[int]:
        """
        Collect the indices reachable from `seed`, in depth-first order.

        Frames are [hit index, next scan position]; resuming a frame after
        its child returns reproduces the recursive traversal exactly.
        """
        group: List[int] = []
        visits[seed] = True
        # not a qualified hit to participate in clustering, stop here
        if hits[seed].energy < self.min_cluster_hit_edep:
            return group
        group.append(seed)
        stack = [[seed, 0]]
        n = len(hits)
        while stack:
            frame = stack[-1]
            cur = hits[frame[0]]
            j = frame[1]
            while j < n and (visits[j] or not self.is_neighbor(cur, hits[j])):
                j += 1
            if j >= n:
                stack.pop()
                continue
            frame[1] = j + 1
            visits[j] = True
            if hits[j].energy < self.min_cluster_hit_edep:
                continue
            group.append(j)
            stack.append([j, 0])
        return group

    def group_indices(self, hits: Sequence[Hit]) -> List[List[int]]:
        """Connected components seeded by energetic hits, before the size/energy filter."""
        visits = np.zeros(len(hits), dtype=bool)
        groups: List[List[int]] = []
        for i, h in enumerate(hits):
            # already in a group, or not energetic enough to form a cluster
            if visits[i] or h.energy < self.min_cluster_center_edep:
                continue
            idx = self._dfs_group(i, hits, visits)
            if idx:
                groups.append(idx)
        logger.debug("we have %d groups of hits", len(groups))
        return groups

    def _passes(self, members: Sequence[Hit]) -> bool:
        if len(members) < self.min_cluster_nhits:
            return False
        return sum(h.energy for h in members) >= self.min_cluster_edep

    def _emitted(self, hits: Sequence[Hit]) -> List[List[int]]:
        return [idx for idx in self.group_indices(hits) if self._passes([hits[i] for i in idx])]

    def run(self, hits: Sequence[Hit]) -> List[HitGroup]:
        """Group one event's hits; groups failing min_cluster_nhits/min_cluster_edep are dropped."""
        return self.run_with_labels(hits)[0]

    def run_with_labels(self, hits: Sequence[Hit]) -> Tuple[List[HitGroup], np.ndarray]:
        """
        Groups as in run(), plus the per-hit cluster id (-1 for hits not in
        an emitted group). Labels follow hit positions, not hit objects.
        """
        hits = list(hits)
        labels = np.full(len(hits), -1, dtype=np.int32)
        groups: List[HitGroup] = []
        for cid, idx in enumerate(self._emitted(hits)):
            labels[idx] = cid
            groups.append(HitGroup(hits=[hits[i] for i in idx], cluster_id=cid))
        return groups, labels

    def label_hits(self, hits: Sequence[Hit]) -> np.ndarray:
        """Per-hit cluster id for one event, matching the cluster_id of run()."""
        return self.run_with_labels(hits)[1]
