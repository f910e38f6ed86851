"""
Projection of a coarse (untimed) solution onto the pooling index space.

A coarse model chooses one (pickup, dropoff) pair per (scenario, OD pair). The
projector repeats that choice in every time bucket where the OD pair occurs,
derives the vehicle flows those assignments imply, and marks a pooling
combination as used only when the projected assignments realise both of its
legs. The result is a best-effort hint for a solver, never a guaranteed
feasible start.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

import numpy as np

from stationselect.core_types import DemandIndex, ODPair, ScenarioODIndex, StationPair
from stationselect.detour.combinations import Quadruplet, Triplet
from stationselect.detour.feasibility import FeasibleDetours, compute_feasible_detours

logger = logging.getLogger(__name__)


@dataclass
class CoarseSolution:
    """
    Assignment decisions of a coarse model, one per (scenario, OD pair).

    Attributes:
        assignments: ``assignments[s][(o, d)]`` -> chosen (pickup, dropoff)
            station indices, or ``None`` when the OD pair is unassigned.
        built_stations: Optional per-station values, passed through unchanged.
        active_stations: Optional per-(station, scenario) values, passed through.
    """
    assignments: List[Dict[ODPair, Optional[StationPair]]]
    built_stations: Optional[np.ndarray] = None
    active_stations: Optional[np.ndarray] = None

    @classmethod
    def from_candidate_positions(
        cls,
        od_index: ScenarioODIndex,
        positions: Sequence[Dict[ODPair, Optional[int]]],
        built_stations: Optional[np.ndarray] = None,
        active_stations: Optional[np.ndarray] = None
    ) -> 'CoarseSolution':
        """Build from positions in the coarse index's candidate lists.

        ``positions[s][(o, d)]`` is the index of the chosen pair in
        ``od_index.get_candidate_pairs(o, d)``.
        """
        if len(positions) != od_index.n_scenarios:
            raise ValueError(
                f"Expected positions for {od_index.n_scenarios} scenarios, got {len(positions)}"
            )
        assignments = []
        for scenario_positions in positions:
            chosen = {}
            for (o, d), position in scenario_positions.items():
                if position is None:
                    chosen[(o, d)] = None
                    continue
                candidates = od_index.get_candidate_pairs(o, d)
                if not 0 <= position < len(candidates):
                    raise ValueError(
                        f"Candidate position {position} out of range for OD pair {(o, d)} "
                        f"({len(candidates)} candidates)"
                    )
                chosen[(o, d)] = candidates[position]
            assignments.append(chosen)
        return cls(assignments=assignments, built_stations=built_stations, active_stations=active_stations)


@dataclass
class WarmStart:
    """
    Initial values aligned with the fine-grained pooling structures.

    Attributes:
        assignments: ``assignments[s][t][(o, d)]`` -> position of the assigned
            pair in the OD pair's candidate list, or ``None`` (no hint).
        assigned_pairs: Same keys, holding the assigned (pickup, dropoff) pair.
        flows: ``flows[s][t]`` -> set of station pairs with an active vehicle flow.
        same_source: ``same_source[s][t]`` -> 0/1 array aligned with the slot's
            feasible same-source combination indices.
        same_dest: ``same_dest[s][t]`` -> 0/1 array aligned with the slot's
            feasible same-dest combination indices.
    """
    assignments: List[Dict[int, Dict[ODPair, Optional[int]]]]
    assigned_pairs: List[Dict[int, Dict[ODPair, Optional[StationPair]]]]
    flows: List[Dict[int, Set[StationPair]]]
    same_source: List[Dict[int, np.ndarray]] = field(default_factory=list)
    same_dest: List[Dict[int, np.ndarray]] = field(default_factory=list)
    built_stations: Optional[np.ndarray] = None
    active_stations: Optional[np.ndarray] = None

    def flow_values(self, demand_index: DemandIndex, s: int, t: int) -> Dict[StationPair, float]:
        """0/1 flow value for every flow pair of the slot (sparse under a walking limit)."""
        active = self.flows[s].get(t, set())
        if demand_index.has_walking_limit():
            return {pair: float(pair in active) for pair in demand_index.get_valid_f_pairs(s, t)}
        return {pair: 1.0 for pair in sorted(active)}

    def n_assigned(self) -> int:
        return sum(
            position is not None
            for per_time in self.assignments
            for cell in per_time.values()
            for position in cell.values()
        )

    def n_pooled(self) -> int:
        return int(
            sum(v.sum() for per_time in self.same_source for v in per_time.values())
            + sum(v.sum() for per_time in self.same_dest for v in per_time.values())
        )


def project_warm_start(
    coarse_solution: CoarseSolution,
    demand_index: DemandIndex,
    same_source: Sequence[Triplet],
    same_dest: Sequence[Quadruplet],
    feasible_detours: Optional[FeasibleDetours] = None
) -> WarmStart:
    """
    Lift a coarse solution into warm-start values for the pooling structures.

    Args:
        coarse_solution: One chosen (pickup, dropoff) pair per (scenario, OD).
        demand_index: Fine-grained, time-bucketed demand index.
        same_source: Global same-source combinations.
        same_dest: Global same-dest combinations.
        feasible_detours: Per-slot feasible combinations; computed when omitted.

    Returns:
        WarmStart with assignment, flow and pooling hints.
    """
    if len(coarse_solution.assignments) != demand_index.n_scenarios:
        raise ValueError(
            f"Coarse solution has {len(coarse_solution.assignments)} scenarios, "
            f"demand index has {demand_index.n_scenarios}"
        )
    if feasible_detours is None:
        feasible_detours = compute_feasible_detours(demand_index, same_source, same_dest)

    assignments = []
    assigned_pairs = []
    flows = []
    missing = 0
    for s in range(demand_index.n_scenarios):
        chosen = coarse_solution.assignments[s]
        positions_s, pairs_s, flows_s = {}, {}, {}
        for t in demand_index.time_ids(s):
            positions_t, pairs_t = {}, {}
            for od in demand_index.omega[s][t]:
                pair = chosen.get(od)
                position = demand_index.candidate_position(od, pair) if pair is not None else None
                if pair is not None and position is None:
                    missing += 1
                positions_t[od] = position
                pairs_t[od] = pair if position is not None else None
            positions_s[t] = positions_t
            pairs_s[t] = pairs_t
            flows_s[t] = {pair for pair in pairs_t.values() if pair is not None}
        assignments.append(positions_s)
        assigned_pairs.append(pairs_s)
        flows.append(flows_s)

    if missing:
        logger.warning(f"{missing} projected assignments are not candidates of the fine index; left unset")

    same_source_ws = []
    same_dest_ws = []
    for s in range(demand_index.n_scenarios):
        source_s, dest_s = {}, {}
        for t in demand_index.time_ids(s):
            used_now = flows[s][t]

            indices = feasible_detours.get_feasible_same_source_indices(s, t)
            values = np.zeros(len(indices))
            for local, g in enumerate(indices):
                j, k, l = same_source[g]
                if (j, k) in used_now and (j, l) in used_now:
                    values[local] = 1.0
            source_s[t] = values

            indices = feasible_detours.get_feasible_same_dest_indices(s, t)
            values = np.zeros(len(indices))
            for local, g in enumerate(indices):
                j, k, l, dt = same_dest[g]
                used_later = flows[s].get(t + dt)
                if used_later is None:
                    continue
                if (j, l) in used_now and (k, l) in used_later:
                    values[local] = 1.0
            dest_s[t] = values
        same_source_ws.append(source_s)
        same_dest_ws.append(dest_s)

    warm_start = WarmStart(
        assignments=assignments,
        assigned_pairs=assigned_pairs,
        flows=flows,
        same_source=same_source_ws,
        same_dest=same_dest_ws,
        built_stations=coarse_solution.built_stations,
        active_stations=coarse_solution.active_stations,
    )
    logger.info(
        f"Warm start: {warm_start.n_assigned()} assignments projected, "
        f"{warm_start.n_pooled()} pooling combinations marked used"
    )
    return warm_start
