"""
Zone clustering of stations and inter-zone corridors.

Stations are grouped either under a maximum routing-cost diameter or into a
fixed number of clusters. Routing costs may be asymmetric, so clustering works
on the symmetrised matrix ``max(c(i, j), c(j, i))``; a pair without a cost is
treated as infinitely far apart.

Once stations are clustered, demand is aggregated per ordered zone pair
(an *anchor*) and every ordered zone pair gets a corridor cost.
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from kmedoids import KMedoids
from sklearn.cluster import AgglomerativeClustering

from stationselect.core_types import ClusterAssignment, CorridorData, Scenario, StationIndex, ZonePairDemand
from stationselect.costs.table import CostTable
from stationselect.demand.indexing import _od_indices
from stationselect.errors import ConfigurationError

logger = logging.getLogger(__name__)


def _symmetric_distances(routing_costs: Union[CostTable, np.ndarray]) -> np.ndarray:
    """Symmetrised distances with ``inf`` for missing costs and a zero diagonal."""
    if isinstance(routing_costs, CostTable):
        costs = np.array(routing_costs.matrix, dtype=float)
    else:
        costs = np.array(routing_costs, dtype=float)
    if costs.ndim != 2 or costs.shape[0] != costs.shape[1]:
        raise ValueError(f"Routing cost matrix must be square. Got shape: {costs.shape}")
    dist = np.maximum(costs, costs.T)   # NaN propagates
    dist[np.isnan(dist)] = np.inf
    np.fill_diagonal(dist, 0.0)
    return dist


def finite_distances(dist: np.ndarray, floor: float = 0.0) -> np.ndarray:
    """Replace missing or infinite distances by a value larger than any real one."""
    dist = np.array(dist, dtype=float)
    bad = ~np.isfinite(dist)
    if bad.any():
        finite = dist[~bad]
        largest = max(float(finite.max()) if finite.size else 0.0, floor)
        dist[bad] = 2.0 * largest + 1.0
    return dist


def _diameter(dist: np.ndarray, members: List[int]) -> float:
    if len(members) <= 1:
        return 0.0
    return float(dist[np.ix_(members, members)].max())


def compute_cluster_diameter(
    members: Sequence[int],
    routing_costs: Union[CostTable, np.ndarray]
) -> float:
    """Maximum pairwise routing cost among ``members``; 0.0 for a single station."""
    members = list(members)
    if len(members) <= 1:
        return 0.0
    return _diameter(_symmetric_distances(routing_costs), members)


def _medoid(dist: np.ndarray, members: List[int]) -> int:
    """Member with the smallest total distance to the other members."""
    sub = finite_distances(dist[np.ix_(members, members)])
    return members[int(np.argmin(sub.sum(axis=1)))]


def _build_assignment(dist: np.ndarray, groups: List[List[int]], method: str) -> ClusterAssignment:
    """Labels ``1..C`` ordered by each group's smallest station index."""
    groups = sorted((sorted(g) for g in groups if g), key=lambda g: g[0])
    labels = np.zeros(dist.shape[0], dtype=int)
    medoids = []
    for cluster_id, members in enumerate(groups, start=1):
        labels[members] = cluster_id
        medoids.append(_medoid(dist, members))
    return ClusterAssignment(labels=labels, medoids=medoids, method=method)


def _dissolve_small_clusters(dist: np.ndarray, groups: List[List[int]], max_diameter: float) -> List[List[int]]:
    """
    Greedily empty small clusters into others without breaking the diameter.

    Clusters are visited smallest first. A cluster is dissolved only if every
    one of its members fits into some remaining cluster; members are placed
    one by one into the first cluster (largest first) that stays within bound.
    """
    groups = [list(g) for g in groups]
    changed = True
    while changed and len(groups) > 1:
        changed = False
        for idx in sorted(range(len(groups)), key=lambda i: (len(groups[i]), min(groups[i]))):
            others = [list(g) for i, g in enumerate(groups) if i != idx]
            order = sorted(range(len(others)), key=lambda i: (-len(others[i]), min(others[i])))
            placed = True
            for station in groups[idx]:
                target = next(
                    (i for i in order if dist[station, others[i]].max() <= max_diameter),
                    None
                )
                if target is None:
                    placed = False
                    break
                others[target].append(station)
            if placed:
                logger.debug(f"Dissolved cluster of size {len(groups[idx])} into neighbouring clusters")
                groups = others
                changed = True
                break
    return groups


def cluster_stations_by_diameter(
    routing_costs: Union[CostTable, np.ndarray],
    max_diameter: float
) -> ClusterAssignment:
    """
    Few clusters whose routing-cost diameter is at most ``max_diameter``.

    Complete-linkage agglomeration never merges two groups whose union exceeds
    the bound, so every cluster respects it. A greedy pass then dissolves
    small clusters whose members fit elsewhere. The cluster count is a
    heuristic minimum, not a proven one.
    """
    if max_diameter is None or max_diameter < 0:
        raise ConfigurationError(f"max_cluster_diameter must be non-negative. Got: {max_diameter}")

    dist = _symmetric_distances(routing_costs)
    n = dist.shape[0]
    if n == 0:
        return ClusterAssignment(labels=np.zeros(0, dtype=int), medoids=[], method='diameter')
    if n == 1:
        return _build_assignment(dist, [[0]], 'diameter')

    off_diagonal = dist[~np.eye(n, dtype=bool)]
    global_diameter = float(off_diagonal.max())
    min_pairwise = float(off_diagonal.min())

    if max_diameter >= global_diameter:
        logger.info(f"Diameter {max_diameter} covers every station: single cluster")
        return _build_assignment(dist, [list(range(n))], 'diameter')
    if max_diameter < min_pairwise:
        logger.info(f"Diameter {max_diameter} is below the smallest routing cost: {n} singleton clusters")
        return _build_assignment(dist, [[i] for i in range(n)], 'diameter')

    model = AgglomerativeClustering(
        n_clusters=None,
        metric='precomputed',
        linkage='complete',
        distance_threshold=float(np.nextafter(max_diameter, np.inf)),
    )
    labels = model.fit_predict(finite_distances(dist, floor=max_diameter))
    groups = [np.flatnonzero(labels == c).tolist() for c in np.unique(labels)]
    n_agglomerative = len(groups)

    groups = _dissolve_small_clusters(dist, groups, max_diameter)
    assignment = _build_assignment(dist, groups, 'diameter')
    logger.info(
        f"Diameter clustering (D={max_diameter}): {assignment.n_clusters} clusters "
        f"({n_agglomerative} before dissolution)"
    )
    return assignment


def cluster_stations_by_count(
    routing_costs: Union[CostTable, np.ndarray],
    n_clusters: int,
    max_iter: int = 100
) -> ClusterAssignment:
    """
    Exactly ``n_clusters`` clusters by k-medoids on routing costs.

    PAM with BUILD initialisation is deterministic, so the same routing table
    always yields the same zones.
    """
    dist = _symmetric_distances(routing_costs)
    n = dist.shape[0]
    if isinstance(n_clusters, bool) or not isinstance(n_clusters, (int, np.integer)) or not 1 <= n_clusters <= n:
        raise ConfigurationError(f"n_clusters must be an integer in [1, {n}]. Got: {n_clusters}")

    if n_clusters == n:
        medoids, positions = np.arange(n), np.arange(n)
    else:
        model = KMedoids(
            n_clusters=int(n_clusters),
            metric='precomputed',
            method='pam',
            init='build',
            max_iter=max_iter,
            random_state=42,
        )
        model.fit(finite_distances(dist))
        medoids = np.asarray(model.medoid_indices_, dtype=int)
        positions = np.asarray(model.labels_, dtype=int)
        # A medoid at zero distance from another may be labelled with it
        positions[medoids] = np.arange(len(medoids))
    groups = [np.flatnonzero(positions == p).tolist() for p in range(len(medoids))]

    # Keep the k-medoids medoids rather than recomputing them per cluster
    order = sorted(range(len(groups)), key=lambda p: min(groups[p]))
    labels = np.zeros(n, dtype=int)
    ordered_medoids = []
    for cluster_id, p in enumerate(order, start=1):
        labels[groups[p]] = cluster_id
        ordered_medoids.append(int(medoids[p]))

    assignment = ClusterAssignment(labels=labels, medoids=ordered_medoids, method='count')
    logger.info(f"k-medoids clustering: {assignment.n_clusters} clusters over {n} stations")
    return assignment


def cluster_stations(
    routing_costs: Union[CostTable, np.ndarray],
    max_diameter: Optional[float] = None,
    n_clusters: Optional[int] = None,
    max_iter: int = 100
) -> ClusterAssignment:
    """Cluster by diameter or by count; exactly one of the two must be given."""
    if (max_diameter is None) == (n_clusters is None):
        raise ConfigurationError(
            "Exactly one of max_diameter or n_clusters must be given. "
            f"Got: max_diameter={max_diameter}, n_clusters={n_clusters}"
        )
    if max_diameter is not None:
        return cluster_stations_by_diameter(routing_costs, max_diameter)
    return cluster_stations_by_count(routing_costs, n_clusters, max_iter=max_iter)


def compute_corridor_data(
    assignment: ClusterAssignment,
    routing_costs: Union[CostTable, np.ndarray]
) -> CorridorData:
    """
    Corridors over all ordered cluster pairs ``(a, b)``, ``a, b`` in ``1..C``.

    The cost of ``(a, a)`` is 0; otherwise it is the routing cost from the
    medoid of ``a`` to the medoid of ``b``. When that cost is missing, the
    cheapest known cost between the two clusters plus both diameters is used,
    or ``inf`` when the clusters are not connected at all.
    """
    if isinstance(routing_costs, CostTable):
        costs = routing_costs.matrix
    else:
        costs = np.asarray(routing_costs, dtype=float)

    station_sets = assignment.cluster_station_sets()
    n_clusters = assignment.n_clusters
    dist = _symmetric_distances(costs)
    diameters = [_diameter(dist, members) for members in station_sets]

    corridor_indices = []
    corridor_costs = np.zeros(n_clusters * n_clusters)
    surrogates = 0
    for a in range(1, n_clusters + 1):
        for b in range(1, n_clusters + 1):
            g = len(corridor_indices)
            corridor_indices.append((a, b))
            if a == b:
                continue
            value = costs[assignment.medoid_of(a), assignment.medoid_of(b)]
            if np.isnan(value):
                between = costs[np.ix_(station_sets[a - 1], station_sets[b - 1])]
                if np.isnan(between).all():
                    value = np.inf
                else:
                    value = np.nanmin(between) + diameters[a - 1] + diameters[b - 1]
                surrogates += 1
            corridor_costs[g] = value

    if surrogates:
        logger.warning(f"{surrogates} corridor costs use a diameter surrogate (medoid cost missing)")
    logger.debug(f"Built {len(corridor_indices)} corridors for {n_clusters} clusters")
    return CorridorData(
        corridor_indices=corridor_indices,
        corridor_costs=corridor_costs,
        cluster_station_sets=station_sets,
    )


def compute_zone_pair_demand(
    assignment: ClusterAssignment,
    scenarios: Sequence[Scenario],
    station_index: StationIndex
) -> ZonePairDemand:
    """
    Aggregate requests per ordered zone pair (anchor) and scenario.

    A request from zone ``a`` to zone ``b`` belongs to anchor ``(a, b)``.
    Only anchors with at least one request are kept, in sorted order, so the
    result does not depend on the order of the requests.

    Args:
        assignment: Zone of every station index.
        scenarios: Scenarios whose requests are aggregated.
        station_index: Station id mapping used by the requests.

    Returns:
        ZonePairDemand with per-anchor pickup/dropoff counts, trip totals and
        the (pickup, dropoff) station pairs spanning each anchor.
    """
    if len(assignment.labels) != len(station_index):
        raise ValueError(
            f"Cluster labels cover {len(assignment.labels)} stations, "
            f"station index has {len(station_index)}"
        )

    frames = []
    for s, scenario in enumerate(scenarios):
        cells = _od_indices(scenario.requests, station_index)
        cells['Scenario'] = s
        frames.append(cells)
    if not frames:
        return ZonePairDemand(
            active_anchors=[], anchor_scenarios=[], pickup_counts=[],
            dropoff_counts=[], station_pairs=[], trip_totals={},
        )

    cells = pd.concat(frames, ignore_index=True)
    labels = np.asarray(assignment.labels, dtype=int)
    cells['Zone_O'] = labels[cells['Origin'].to_numpy(dtype=int)]
    cells['Zone_D'] = labels[cells['Destination'].to_numpy(dtype=int)]

    totals = cells.groupby(['Zone_O', 'Zone_D', 'Scenario']).size()
    anchors = sorted({(int(a), int(b)) for a, b, _ in totals.index})
    position: Dict[Tuple[int, int], int] = {anchor: g for g, anchor in enumerate(anchors)}

    anchor_scenarios: List[List[int]] = [[] for _ in anchors]
    trip_totals: Dict[Tuple[int, int], int] = {}
    for (a, b, s), n in totals.items():
        g = position[(int(a), int(b))]
        anchor_scenarios[g].append(int(s))
        trip_totals[(g, int(s))] = int(n)

    def station_counts(column: str) -> List[Dict[int, Dict[int, int]]]:
        counts: List[Dict[int, Dict[int, int]]] = [{} for _ in anchors]
        for (a, b, s, station), n in cells.groupby(['Zone_O', 'Zone_D', 'Scenario', column]).size().items():
            g = position[(int(a), int(b))]
            counts[g].setdefault(int(s), {})[int(station)] = int(n)
        return counts

    station_sets = assignment.cluster_station_sets()
    station_pairs = [
        [(j, k) for j in station_sets[a - 1] for k in station_sets[b - 1]]
        for a, b in anchors
    ]

    logger.debug(f"{len(anchors)} active zone pairs over {len(frames)} scenarios")
    return ZonePairDemand(
        active_anchors=anchors,
        anchor_scenarios=anchor_scenarios,
        pickup_counts=station_counts('Origin'),
        dropoff_counts=station_counts('Destination'),
        station_pairs=station_pairs,
        trip_totals=trip_totals,
    )
