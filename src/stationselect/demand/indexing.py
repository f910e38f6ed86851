"""
Time-bucketed demand indexing.

Requests of every scenario are bucketed into ``time_id`` slots of
``time_window`` seconds and aggregated per exact (origin, destination) pair.
With a walking limit, each OD pair also receives its sparse candidate set: the
(pickup, dropoff) pairs reachable on foot from the origin and to the
destination. Candidate sets depend only on the OD pair, so they are computed
once and shared by every slot.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from stationselect.core_types import (
    DemandIndex,
    ODPair,
    Scenario,
    ScenarioODIndex,
    StationIndex,
    StationPair,
)
from stationselect.costs.table import CostTable
from stationselect.errors import ConfigurationError

logger = logging.getLogger(__name__)


def validate_time_window(time_window: float) -> None:
    if time_window is None or time_window <= 0:
        raise ConfigurationError(f"time_window must be positive. Got: {time_window}")


def validate_walking_limit(
    max_walking_distance: Optional[float],
    walking_costs: Optional[CostTable],
    station_index: StationIndex
) -> None:
    if max_walking_distance is None:
        return
    if max_walking_distance < 0:
        raise ConfigurationError(
            f"max_walking_distance must be non-negative. Got: {max_walking_distance}"
        )
    if walking_costs is None:
        raise ConfigurationError("A walking cost table is required when max_walking_distance is set")
    if walking_costs.station_index.ids != station_index.ids:
        raise ConfigurationError("Walking cost table stations do not match the station index")


def compute_time_ids(scenario: Scenario, time_window: float) -> pd.Series:
    """Time bucket of every request: ``floor(seconds since start / time_window)``."""
    validate_time_window(time_window)
    requests = scenario.requests
    reference = scenario.reference_time
    if reference is None:
        return pd.Series([], dtype=int, index=requests.index, name='Time_ID')

    elapsed = (pd.to_datetime(requests['Request_Time']) - reference).dt.total_seconds()
    time_ids = np.floor(elapsed.to_numpy(dtype=float) / time_window).astype(int)
    return pd.Series(time_ids, index=requests.index, name='Time_ID')


def _od_indices(requests: pd.DataFrame, station_index: StationIndex) -> pd.DataFrame:
    """Origin/destination station indices of each request."""
    known = list(station_index.ids)
    unknown = set(requests.loc[~requests['Origin_ID'].isin(known), 'Origin_ID'])
    unknown |= set(requests.loc[~requests['Destination_ID'].isin(known), 'Destination_ID'])
    if unknown:
        sample = sorted(unknown)[:5]
        logger.error(f"Requests reference {len(unknown)} unknown stations, e.g. {sample}")
        raise ValueError(f"Requests reference unknown station ids: {sample}")

    return pd.DataFrame({
        'Origin': requests['Origin_ID'].map(station_index.id_to_idx).astype(int),
        'Destination': requests['Destination_ID'].map(station_index.id_to_idx).astype(int),
    }, index=requests.index)


def compute_time_to_od_count_mapping(
    scenario: Scenario,
    station_index: StationIndex,
    time_window: float
) -> Dict[int, Dict[ODPair, int]]:
    """``{time_id: {(o, d): count}}`` for one scenario, by exact OD equality."""
    validate_time_window(time_window)
    if scenario.requests.empty:
        logger.warning(f"Scenario {scenario.label} has no requests")
        return {}

    cells = _od_indices(scenario.requests, station_index)
    cells['Time_ID'] = compute_time_ids(scenario, time_window)
    counts = cells.groupby(['Time_ID', 'Origin', 'Destination']).size()

    mapping: Dict[int, Dict[ODPair, int]] = {}
    for (time_id, o, d), count in counts.items():
        mapping.setdefault(int(time_id), {})[(int(o), int(d))] = int(count)
    return mapping


def compute_scenario_od_count(
    scenario: Scenario,
    station_index: StationIndex
) -> Dict[ODPair, int]:
    """``{(o, d): count}`` for one scenario, ignoring request times."""
    if scenario.requests.empty:
        return {}
    cells = _od_indices(scenario.requests, station_index)
    counts = cells.groupby(['Origin', 'Destination']).size()
    return {(int(o), int(d)): int(c) for (o, d), c in counts.items()}


def compute_valid_jk_pairs(
    od_pairs: Iterable[ODPair],
    walking_costs: CostTable,
    max_walking_distance: float
) -> Dict[ODPair, List[StationPair]]:
    """
    Sparse candidate (pickup, dropoff) pairs for each OD pair.

    A pickup ``j`` is feasible for origin ``o`` when ``walk(o, j) <= limit`` and
    a dropoff ``k`` is feasible for destination ``d`` when
    ``walk(k, d) <= limit``; the candidate set is their product. Missing
    walking costs compare as infeasible. OD pairs without any candidate map to
    an empty list.
    """
    if max_walking_distance < 0:
        raise ConfigurationError(
            f"max_walking_distance must be non-negative. Got: {max_walking_distance}"
        )
    walk = walking_costs.matrix
    with np.errstate(invalid='ignore'):
        pickup_ok = walk <= max_walking_distance      # [o, j]
        dropoff_ok = walk.T <= max_walking_distance   # [d, k]

    pickups: Dict[int, np.ndarray] = {}
    dropoffs: Dict[int, np.ndarray] = {}
    valid_pairs: Dict[ODPair, List[StationPair]] = {}
    for o, d in sorted(set(od_pairs)):
        if o not in pickups:
            pickups[o] = np.flatnonzero(pickup_ok[o])
        if d not in dropoffs:
            dropoffs[d] = np.flatnonzero(dropoff_ok[d])
        valid_pairs[(o, d)] = [(int(j), int(k)) for j in pickups[o] for k in dropoffs[d]]

    infeasible = [od for od, pairs in valid_pairs.items() if not pairs]
    if infeasible:
        logger.warning(
            f"{len(infeasible)} OD pairs have no (pickup, dropoff) pair within walking limit "
            f"{max_walking_distance}"
        )
    logger.debug(
        f"Candidate sets for {len(valid_pairs)} OD pairs: "
        f"{sum(len(p) for p in valid_pairs.values())} (pickup, dropoff) pairs"
    )
    return valid_pairs


def compute_valid_f_pairs(
    omega: Sequence[Dict[int, List[ODPair]]],
    candidate_pairs: Dict[ODPair, List[StationPair]]
) -> List[Dict[int, List[StationPair]]]:
    """Union of the candidate pairs of every OD pair present in each slot."""
    valid_f_pairs = []
    for scenario_omega in omega:
        per_time = {}
        for time_id, ods in scenario_omega.items():
            pairs = set()
            for od in ods:
                pairs.update(candidate_pairs.get(od, ()))
            per_time[time_id] = sorted(pairs)
        valid_f_pairs.append(per_time)
    return valid_f_pairs


def build_demand_index(
    scenarios: Sequence[Scenario],
    station_index: StationIndex,
    time_window: float,
    walking_costs: Optional[CostTable] = None,
    max_walking_distance: Optional[float] = None
) -> DemandIndex:
    """
    Bucket every scenario's requests and build the candidate-pair indices.

    Args:
        scenarios: Scenarios in the order they will be indexed (``s = 0..S-1``).
        station_index: Station id <-> index mapping shared by every structure.
        time_window: Width of a time bucket in seconds.
        walking_costs: Walking cost table; required with a walking limit.
        max_walking_distance: Walking limit, or ``None`` for no limit (every
            station pair is then a candidate for every OD pair).

    Returns:
        DemandIndex with ``omega``, ``q`` and, under a limit, ``candidate_pairs``
        and ``valid_f_pairs``.
    """
    validate_time_window(time_window)
    validate_walking_limit(max_walking_distance, walking_costs, station_index)

    logger.info(f"Indexing demand of {len(scenarios)} scenarios (time window {time_window}s)")
    omega = []
    q = []
    for scenario in scenarios:
        counts = compute_time_to_od_count_mapping(scenario, station_index, time_window)
        q.append(counts)
        omega.append({t: sorted(cell) for t, cell in counts.items()})
        logger.debug(f"Scenario {scenario.label}: {scenario.n_requests} requests in {len(counts)} time buckets")

    index = DemandIndex(
        station_index=station_index,
        scenario_labels=[scenario.label for scenario in scenarios],
        time_window=time_window,
        omega=omega,
        q=q,
        max_walking_distance=max_walking_distance,
    )

    if max_walking_distance is not None:
        index.candidate_pairs = compute_valid_jk_pairs(index.od_pairs(), walking_costs, max_walking_distance)
        index.valid_f_pairs = compute_valid_f_pairs(omega, index.candidate_pairs)

    logger.info(
        f"Demand index: {len(index.slots())} (scenario, time) slots, {len(index.od_pairs())} distinct OD pairs"
    )
    return index


def build_scenario_od_index(
    scenarios: Sequence[Scenario],
    station_index: StationIndex,
    walking_costs: Optional[CostTable] = None,
    max_walking_distance: Optional[float] = None
) -> ScenarioODIndex:
    """Untimed per-scenario OD demand with candidate sets (coarse index space)."""
    validate_walking_limit(max_walking_distance, walking_costs, station_index)

    q = [compute_scenario_od_count(scenario, station_index) for scenario in scenarios]
    omega = [sorted(counts) for counts in q]
    index = ScenarioODIndex(
        station_index=station_index,
        scenario_labels=[scenario.label for scenario in scenarios],
        omega=omega,
        q=q,
        max_walking_distance=max_walking_distance,
    )
    if max_walking_distance is not None:
        all_ods = set().union(*omega) if omega else set()
        index.candidate_pairs = compute_valid_jk_pairs(all_ods, walking_costs, max_walking_distance)
    logger.debug(f"Scenario OD index: {sum(len(o) for o in omega)} (scenario, OD) entries")
    return index
