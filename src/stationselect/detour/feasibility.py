"""
Per-slot filtering of detour combinations against actual demand.

A globally feasible combination is only useful in a (scenario, time_id) slot
when requests of that slot can realise both of its legs:

* same-source ``(j, k, l)``: some OD pair of the slot has ``(j, k)`` among its
  candidate pairs and some *other* OD pair of the slot has ``(j, l)``;
* same-dest ``(j, k, l, dt)``: some OD pair at ``t`` has ``(j, l)`` and some OD
  pair at ``t + dt`` has ``(k, l)``. The shifted slot must exist, and with
  ``dt == 0`` the two OD pairs must differ.

Both legs of a combination realised in one slot must come from two distinct
OD pairs, so repeated requests of a single OD pair never pool with each other.
This is stricter than asking only for demand in the slot. Without a walking
limit every station pair is a candidate of every OD pair, so a slot qualifies
once it holds two distinct OD pairs (same-dest with ``dt > 0`` only needs the
shifted slot to exist). Results are computed once per slot and
kept on an explicit :class:`SlotFeasibilityCache`.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from stationselect.core_types import DemandIndex, ODPair
from stationselect.detour.combinations import Quadruplet, Triplet

logger = logging.getLogger(__name__)

Slot = Tuple[int, int]


@dataclass
class _PairCoverage:
    """How many OD pairs of a slot cover each station pair, and the lowest one."""
    count: np.ndarray
    first: np.ndarray


def _slot_coverage(demand_index: DemandIndex, ods: Sequence[ODPair]) -> _PairCoverage:
    n = demand_index.n_stations
    count = np.zeros((n, n), dtype=np.int32)
    first = np.full((n, n), np.iinfo(np.int32).max, dtype=np.int32)
    for position, (o, d) in enumerate(ods):
        pairs = demand_index.get_candidate_pairs(o, d)
        if not pairs:
            continue
        js, ks = np.asarray(pairs, dtype=int).T
        count[js, ks] += 1
        np.minimum.at(first, (js, ks), position)
    return _PairCoverage(count=count, first=first)


def _two_distinct_ods(cov_a: _PairCoverage, ja, ka, cov_b: _PairCoverage, jb, kb) -> np.ndarray:
    """Both legs covered, and not only by one and the same OD pair."""
    count_a = cov_a.count[ja, ka]
    count_b = cov_b.count[jb, kb]
    covered = (count_a > 0) & (count_b > 0)
    same_single = (count_a == 1) & (count_b == 1) & (cov_a.first[ja, ka] == cov_b.first[jb, kb])
    return covered & ~same_single


class SlotFeasibilityCache:
    """
    Lazily computed per-slot feasible combination indices.

    Indices refer to positions in the ``same_source`` and ``same_dest`` lists
    the cache was built with. Each slot is computed on first access only.
    """

    def __init__(
        self,
        demand_index: DemandIndex,
        same_source: Sequence[Triplet],
        same_dest: Sequence[Quadruplet]
    ):
        self.demand_index = demand_index
        self.same_source = list(same_source)
        self.same_dest = list(same_dest)
        self._same_source: Dict[Slot, List[int]] = {}
        self._same_dest: Dict[Slot, List[int]] = {}

        self._ss = np.asarray(self.same_source, dtype=int).reshape(-1, 3)
        self._sd = np.asarray(self.same_dest, dtype=int).reshape(-1, 4)

    def _ods(self, s: int, t: int) -> List[ODPair]:
        return self.demand_index.omega[s].get(t, [])

    def same_source_indices(self, s: int, t: int) -> List[int]:
        key = (s, t)
        if key not in self._same_source:
            self._same_source[key] = self._compute_same_source(s, t)
        return self._same_source[key]

    def same_dest_indices(self, s: int, t: int) -> List[int]:
        key = (s, t)
        if key not in self._same_dest:
            self._same_dest[key] = self._compute_same_dest(s, t)
        return self._same_dest[key]

    def _compute_same_source(self, s: int, t: int) -> List[int]:
        ods = self._ods(s, t)
        if len(self._ss) == 0 or not ods:
            return []

        if not self.demand_index.has_walking_limit():
            return list(range(len(self._ss))) if len(ods) >= 2 else []

        cov = _slot_coverage(self.demand_index, ods)
        j, k, l = self._ss[:, 0], self._ss[:, 1], self._ss[:, 2]
        mask = _two_distinct_ods(cov, j, k, cov, j, l)
        return np.flatnonzero(mask).tolist()

    def _compute_same_dest(self, s: int, t: int) -> List[int]:
        ods = self._ods(s, t)
        if len(self._sd) == 0 or not ods:
            return []

        omega_s = self.demand_index.omega[s]
        dts = self._sd[:, 3]
        shifted_exists = np.array([(t + dt) in omega_s for dt in dts], dtype=bool)

        if not self.demand_index.has_walking_limit():
            mask = shifted_exists & ((dts > 0) | (len(ods) >= 2))
            return np.flatnonzero(mask).tolist()

        cov_now = _slot_coverage(self.demand_index, ods)
        mask = np.zeros(len(self._sd), dtype=bool)
        for dt in np.unique(dts[shifted_exists]):
            rows = np.flatnonzero(shifted_exists & (dts == dt))
            j, k, l = self._sd[rows, 0], self._sd[rows, 1], self._sd[rows, 2]
            if dt == 0:
                mask[rows] = _two_distinct_ods(cov_now, j, l, cov_now, k, l)
            else:
                cov_later = _slot_coverage(self.demand_index, omega_s[t + int(dt)])
                mask[rows] = (cov_now.count[j, l] > 0) & (cov_later.count[k, l] > 0)
        return np.flatnonzero(mask).tolist()

    def compute_all(self) -> None:
        """Fill the cache for every slot of the demand index."""
        for s, t in self.demand_index.slots():
            self.same_source_indices(s, t)
            self.same_dest_indices(s, t)


@dataclass
class FeasibleDetours:
    """Per-slot feasible combinations, as indices into the global lists."""
    same_source: List[Triplet]
    same_dest: List[Quadruplet]
    same_source_by_slot: Dict[Slot, List[int]] = field(default_factory=dict)
    same_dest_by_slot: Dict[Slot, List[int]] = field(default_factory=dict)

    def get_feasible_same_source_indices(self, s: int, t: int) -> List[int]:
        return self.same_source_by_slot.get((s, t), [])

    def get_feasible_same_dest_indices(self, s: int, t: int) -> List[int]:
        return self.same_dest_by_slot.get((s, t), [])

    def get_feasible_same_source(self, s: int, t: int) -> List[Triplet]:
        return [self.same_source[i] for i in self.get_feasible_same_source_indices(s, t)]

    def get_feasible_same_dest(self, s: int, t: int) -> List[Quadruplet]:
        return [self.same_dest[i] for i in self.get_feasible_same_dest_indices(s, t)]

    def n_same_source(self) -> int:
        return sum(len(v) for v in self.same_source_by_slot.values())

    def n_same_dest(self) -> int:
        return sum(len(v) for v in self.same_dest_by_slot.values())


def compute_feasible_detours(
    demand_index: DemandIndex,
    same_source: Sequence[Triplet],
    same_dest: Sequence[Quadruplet],
    cache: Optional[SlotFeasibilityCache] = None
) -> FeasibleDetours:
    """Filter the global combinations for every (scenario, time_id) slot."""
    if cache is None:
        cache = SlotFeasibilityCache(demand_index, same_source, same_dest)
    cache.compute_all()

    slots = demand_index.slots()
    result = FeasibleDetours(
        same_source=cache.same_source,
        same_dest=cache.same_dest,
        same_source_by_slot={slot: cache.same_source_indices(*slot) for slot in slots},
        same_dest_by_slot={slot: cache.same_dest_indices(*slot) for slot in slots},
    )
    logger.info(
        f"Per-slot feasible detours over {len(slots)} slots: "
        f"{result.n_same_source()} same-source, {result.n_same_dest()} same-dest"
    )
    return result
