"""
Core data structures shared by the precomputation components.

Station ids are the identifiers found in the input tables; every combinatorial
structure produced by this package is expressed in *array indices*
``0..n-1`` of a :class:`StationIndex`. Use ``StationIndex.ids`` to translate
back to ids when exporting results.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np
import pandas as pd

ODPair = Tuple[int, int]
StationPair = Tuple[int, int]

STATION_COLUMNS = ['Station_ID', 'Longitude', 'Latitude']
REQUEST_COLUMNS = ['Request_ID', 'Origin_ID', 'Destination_ID', 'Request_Time']


@dataclass(frozen=True)
class StationIndex:
    """Bidirectional mapping between station ids and array indices."""
    ids: Tuple[int, ...]
    id_to_idx: Dict[int, int]

    @classmethod
    def from_ids(cls, station_ids: Iterable[int]) -> 'StationIndex':
        ids = tuple(int(s) for s in station_ids)
        id_to_idx = {station_id: idx for idx, station_id in enumerate(ids)}
        if len(id_to_idx) != len(ids):
            raise ValueError("Duplicate station ids found; station ids must be unique")
        return cls(ids=ids, id_to_idx=id_to_idx)

    @classmethod
    def from_stations(cls, stations: pd.DataFrame) -> 'StationIndex':
        if 'Station_ID' not in stations.columns:
            raise ValueError("stations must have a 'Station_ID' column")
        return cls.from_ids(stations['Station_ID'].tolist())

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, station_id) -> bool:
        return station_id in self.id_to_idx

    def index_of(self, station_id: int) -> int:
        try:
            return self.id_to_idx[station_id]
        except KeyError:
            raise ValueError(f"Unknown station id: {station_id}") from None

    def id_of(self, idx: int) -> int:
        return self.ids[idx]

    def indices_of(self, station_ids: Iterable[int]) -> np.ndarray:
        return np.array([self.index_of(s) for s in station_ids], dtype=int)


@dataclass
class Scenario:
    """A labelled subset of requests falling inside ``[start_time, end_time)``."""
    label: str
    requests: pd.DataFrame
    start_time: Optional[pd.Timestamp] = None
    end_time: Optional[pd.Timestamp] = None

    @property
    def n_requests(self) -> int:
        return len(self.requests)

    @property
    def reference_time(self) -> Optional[pd.Timestamp]:
        """Start of time bucket 0: the scenario start, else its earliest request."""
        if self.start_time is not None:
            return self.start_time
        if self.requests.empty:
            return None
        return pd.Timestamp(self.requests['Request_Time'].min())


class _CandidatePairLookup:
    """Candidate (pickup, dropoff) lookup shared by the OD indices."""

    def has_walking_limit(self) -> bool:
        return self.max_walking_distance is not None

    def all_station_pairs(self) -> List[StationPair]:
        if self._all_pairs is None:
            n = len(self.station_index)
            self._all_pairs = [(j, k) for j in range(n) for k in range(n)]
        return self._all_pairs

    def get_candidate_pairs(self, o: int, d: int) -> List[StationPair]:
        """Valid (j, k) pairs for OD ``(o, d)``; every pair when no limit is set."""
        if self.has_walking_limit():
            return self.candidate_pairs.get((o, d), [])
        return self.all_station_pairs()

    def candidate_position(self, od: ODPair, pair: StationPair) -> Optional[int]:
        """Position of ``pair`` in the candidate list of ``od``, or ``None``."""
        if not self.has_walking_limit():
            n = len(self.station_index)
            j, k = pair
            if 0 <= j < n and 0 <= k < n:
                return j * n + k
            return None
        positions = self._positions.get(od)
        if positions is None:
            positions = {p: i for i, p in enumerate(self.candidate_pairs.get(od, []))}
            self._positions[od] = positions
        return positions.get(pair)


@dataclass
class DemandIndex(_CandidatePairLookup):
    """
    Time-bucketed demand for every scenario.

    Attributes:
        omega: ``omega[s][time_id]`` -> sorted list of OD pairs with positive demand.
        q: ``q[s][time_id][(o, d)]`` -> number of requests in that cell.
        candidate_pairs: ``(o, d)`` -> valid (pickup, dropoff) pairs; only
            populated when ``max_walking_distance`` is set. An empty list marks
            an OD pair that cannot be served under the limit.
        valid_f_pairs: ``valid_f_pairs[s][time_id]`` -> union of the candidate
            pairs of the slot's OD pairs; only populated with a walking limit.
    """
    station_index: StationIndex
    scenario_labels: List[str]
    time_window: float
    omega: List[Dict[int, List[ODPair]]]
    q: List[Dict[int, Dict[ODPair, int]]]
    max_walking_distance: Optional[float] = None
    candidate_pairs: Dict[ODPair, List[StationPair]] = field(default_factory=dict)
    valid_f_pairs: List[Dict[int, List[StationPair]]] = field(default_factory=list)
    _all_pairs: Optional[List[StationPair]] = field(default=None, init=False, repr=False)
    _positions: Dict[ODPair, Dict[StationPair, int]] = field(default_factory=dict, init=False, repr=False)

    @property
    def n_scenarios(self) -> int:
        return len(self.scenario_labels)

    @property
    def n_stations(self) -> int:
        return len(self.station_index)

    def time_ids(self, s: int) -> List[int]:
        return sorted(self.omega[s])

    def slots(self) -> List[Tuple[int, int]]:
        """All (scenario, time_id) cells, in scenario then time order."""
        return [(s, t) for s in range(self.n_scenarios) for t in self.time_ids(s)]

    def od_pairs(self) -> Set[ODPair]:
        pairs = set()
        for scenario_omega in self.omega:
            for ods in scenario_omega.values():
                pairs.update(ods)
        return pairs

    def scenario_total(self, s: int) -> int:
        return sum(sum(counts.values()) for counts in self.q[s].values())

    def get_valid_f_pairs(self, s: int, time_id: int) -> List[StationPair]:
        if self.has_walking_limit():
            if s >= len(self.valid_f_pairs):
                return []
            return self.valid_f_pairs[s].get(time_id, [])
        return self.all_station_pairs()


@dataclass
class ScenarioODIndex(_CandidatePairLookup):
    """Untimed OD demand per scenario (the coarse index space of clustering models)."""
    station_index: StationIndex
    scenario_labels: List[str]
    omega: List[List[ODPair]]
    q: List[Dict[ODPair, int]]
    max_walking_distance: Optional[float] = None
    candidate_pairs: Dict[ODPair, List[StationPair]] = field(default_factory=dict)
    _all_pairs: Optional[List[StationPair]] = field(default=None, init=False, repr=False)
    _positions: Dict[ODPair, Dict[StationPair, int]] = field(default_factory=dict, init=False, repr=False)

    @property
    def n_scenarios(self) -> int:
        return len(self.scenario_labels)


@dataclass
class ClusterAssignment:
    """Station-to-zone assignment with one medoid per zone.

    ``labels[i]`` is the cluster id (``1..n_clusters``) of station index ``i``;
    ``medoids[c - 1]`` is the station index of the medoid of cluster ``c``.
    """
    labels: np.ndarray
    medoids: List[int]
    method: str = ''

    @property
    def n_clusters(self) -> int:
        return len(self.medoids)

    def members(self, cluster_id: int) -> List[int]:
        return np.flatnonzero(self.labels == cluster_id).tolist()

    def cluster_station_sets(self) -> List[List[int]]:
        return [self.members(c) for c in range(1, self.n_clusters + 1)]

    def medoid_of(self, cluster_id: int) -> int:
        return self.medoids[cluster_id - 1]


@dataclass
class CorridorData:
    """Corridors ``g = (a, b)`` over all ordered cluster pairs with their costs."""
    corridor_indices: List[Tuple[int, int]]
    corridor_costs: np.ndarray
    cluster_station_sets: List[List[int]]

    @property
    def n_clusters(self) -> int:
        return len(self.cluster_station_sets)

    def cost(self, a: int, b: int) -> float:
        return float(self.corridor_costs[(a - 1) * self.n_clusters + (b - 1)])


@dataclass
class ZonePairDemand:
    """
    Demand aggregated over active zone pairs ``g = (a, b)`` (anchors).

    Attributes:
        active_anchors: Sorted ``(a, b)`` zone pairs with at least one request.
        anchor_scenarios: ``anchor_scenarios[g]`` -> sorted scenario positions
            in which anchor ``g`` has demand.
        pickup_counts: ``pickup_counts[g][s]`` -> {origin station index: requests}.
        dropoff_counts: ``dropoff_counts[g][s]`` -> {destination station index: requests}.
        station_pairs: ``station_pairs[g]`` -> every ``(j, k)`` with ``j`` in
            zone ``a`` and ``k`` in zone ``b``.
        trip_totals: ``trip_totals[(g, s)]`` -> requests of anchor ``g`` in scenario ``s``.
    """
    active_anchors: List[Tuple[int, int]]
    anchor_scenarios: List[List[int]]
    pickup_counts: List[Dict[int, Dict[int, int]]]
    dropoff_counts: List[Dict[int, Dict[int, int]]]
    station_pairs: List[List[StationPair]]
    trip_totals: Dict[Tuple[int, int], int]

    @property
    def n_anchors(self) -> int:
        return len(self.active_anchors)

    def anchor_position(self, a: int, b: int) -> Optional[int]:
        try:
            return self.active_anchors.index((a, b))
        except ValueError:
            return None

    def pickup_stations(self, g: int, s: int) -> List[int]:
        return sorted(self.pickup_counts[g].get(s, {}))

    def dropoff_stations(self, g: int, s: int) -> List[int]:
        return sorted(self.dropoff_counts[g].get(s, {}))
