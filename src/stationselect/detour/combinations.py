"""
Enumeration of vehicle-pooling detour combinations.

A station triple ``(j, k, l)`` is a feasible detour when the direct edge
``j -> l`` is strictly the longest of the three edges and routing through
``k`` adds at most ``routing_delay``::

    c(j, l) > c(j, k),  c(j, l) > c(k, l),  c(j, k) + c(k, l) <= c(j, l) + delay

Triples whose detour is cheaper than the direct edge break the triangle
inequality; they are skipped and counted, and another ordering of the same
stations may still qualify.

The search is vectorised over ``(k, l)`` for each outer station ``j`` and can
be spread over worker processes with ``joblib``.
"""
import logging
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from stationselect.costs.table import CostTable
from stationselect.errors import ConfigurationError

logger = logging.getLogger(__name__)

Triplet = Tuple[int, int, int]
Quadruplet = Tuple[int, int, int, int]


def _as_matrix(routing_costs: Union[CostTable, np.ndarray]) -> np.ndarray:
    if isinstance(routing_costs, CostTable):
        return routing_costs.matrix
    matrix = np.asarray(routing_costs, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"Routing cost matrix must be square. Got shape: {matrix.shape}")
    return matrix


def _validate_delay(routing_delay: float) -> None:
    if routing_delay is None or routing_delay < 0:
        raise ConfigurationError(f"routing_delay must be non-negative. Got: {routing_delay}")


def is_detour_feasible(e1: float, e2: float, e3: float, routing_delay: float) -> bool:
    """Detour predicate for edges ``e1 = c(j,k)``, ``e2 = c(k,l)``, ``e3 = c(j,l)``.

    Missing (``NaN``) costs and triangle-inequality violations are infeasible.
    """
    if np.isnan(e1) or np.isnan(e2) or np.isnan(e3):
        return False
    if not (e3 > e1 and e3 > e2):
        return False
    if e1 + e2 < e3:
        return False
    return bool(e1 + e2 <= e3 + routing_delay)


def _feasible_for_origin(
    costs: np.ndarray,
    j: int,
    routing_delay: float
) -> Tuple[List[Triplet], int]:
    """Feasible ``(j, k, l)`` for one ``j`` in lexicographic ``(k, l)`` order.

    Also returns how many triples were skipped for violating the triangle
    inequality.
    """
    n = costs.shape[0]
    e1 = costs[j, :][:, None]   # c(j, k)
    e2 = costs                  # c(k, l)
    e3 = costs[j, :][None, :]   # c(j, l)

    with np.errstate(invalid='ignore'):
        # NaN compares False, so missing costs drop out here
        longest = (e3 > e1) & (e3 > e2)
        distinct = ~np.eye(n, dtype=bool)
        distinct[j, :] = False
        distinct[:, j] = False
        candidates = longest & distinct
        detour = e1 + e2
        violating = candidates & (detour < e3)
        feasible = candidates & ~violating & (detour <= e3 + routing_delay)
        violations = int(violating.sum())

    ks, ls = np.nonzero(feasible)
    return [(j, int(k), int(l)) for k, l in zip(ks, ls)], violations


def find_detour_combinations(
    routing_costs: Union[CostTable, np.ndarray],
    routing_delay: float,
    n_jobs: int = 1
) -> List[Triplet]:
    """
    All feasible detour triples ``(j, k, l)`` over station indices.

    Ordered triples are visited in lexicographic order; an unordered station
    set is emitted at most once, by its first feasible ordering.

    Args:
        routing_costs: Routing cost table or square matrix (``NaN`` = missing).
        routing_delay: Maximum extra cost a detour may add.
        n_jobs: ``joblib`` workers for the outer loop (1 runs in-process).

    Returns:
        List of ``(j, k, l)`` station index triples.
    """
    _validate_delay(routing_delay)
    costs = _as_matrix(routing_costs)
    n = costs.shape[0]
    if n < 3:
        return []

    if n_jobs == 1:
        per_origin = [_feasible_for_origin(costs, j, routing_delay) for j in range(n)]
    else:
        per_origin = Parallel(n_jobs=n_jobs, backend='loky')(
            delayed(_feasible_for_origin)(costs, j, routing_delay) for j in range(n)
        )

    combinations = []
    seen = set()
    violations = 0
    for triples, n_violations in per_origin:
        violations += n_violations
        for triple in triples:
            key = frozenset(triple)
            if key in seen:
                continue
            seen.add(key)
            combinations.append(triple)

    if violations:
        logger.warning(f"Skipped {violations} detour triples that violate the triangle inequality")
    logger.debug(f"Found {len(combinations)} detour combinations among {n} stations (delay {routing_delay})")
    return combinations


def find_same_source_detour_combinations(
    routing_costs: Union[CostTable, np.ndarray],
    routing_delay: float,
    n_jobs: int = 1
) -> List[Triplet]:
    """Same-source triplets: pickup at ``j``, dropoffs at ``k`` then ``l``."""
    combinations = find_detour_combinations(routing_costs, routing_delay, n_jobs=n_jobs)
    logger.info(f"Same-source detour combinations: {len(combinations)}")
    return combinations


def find_same_dest_detour_combinations(
    routing_costs: Union[CostTable, np.ndarray],
    routing_delay: float,
    time_window: float,
    n_jobs: int = 1,
    combinations: Sequence[Triplet] = None
) -> List[Quadruplet]:
    """
    Same-dest quadruplets ``(j, k, l, dt)``: pickups at ``j`` then ``k``, both to ``l``.

    ``dt = floor(c(j, k) / time_window)`` is the number of time buckets between
    the two pickups. Pass ``combinations`` to reuse an earlier triple search
    done with the same costs and delay.
    """
    if time_window is None or time_window <= 0:
        raise ConfigurationError(f"time_window must be positive. Got: {time_window}")
    costs = _as_matrix(routing_costs)
    if combinations is None:
        combinations = find_detour_combinations(costs, routing_delay, n_jobs=n_jobs)
    else:
        _validate_delay(routing_delay)

    quadruplets = [
        (j, k, l, int(np.floor(costs[j, k] / time_window)))
        for j, k, l in combinations
    ]
    logger.info(f"Same-dest detour combinations: {len(quadruplets)}")
    return quadruplets


def summarize_detour_combinations(
    same_source: Sequence[Triplet],
    same_dest: Sequence[Quadruplet]
) -> Dict:
    """Counts of combinations and the distribution of same-dest time offsets."""
    offsets = pd.Series([q[3] for q in same_dest], dtype=int)
    return {
        'n_same_source': len(same_source),
        'n_same_dest': len(same_dest),
        'n_stations_involved': len({s for t in same_source for s in t}),
        'delta_t_counts': {int(k): int(v) for k, v in offsets.value_counts().sort_index().items()},
        'max_delta_t': int(offsets.max()) if len(offsets) else None,
    }


def count_detour_combinations_by_delay(
    routing_costs: Union[CostTable, np.ndarray],
    delays: Sequence[float],
    time_window: float = None,
    n_jobs: int = 1
) -> pd.DataFrame:
    """
    Number of detour combinations for each routing delay in ``delays``.

    Returns a DataFrame with columns ``Routing_Delay`` and ``N_Combinations``
    (plus ``Max_Delta_T`` when ``time_window`` is given).
    """
    costs = _as_matrix(routing_costs)
    rows = []
    for delay in delays:
        triples = find_detour_combinations(costs, delay, n_jobs=n_jobs)
        row = {'Routing_Delay': float(delay), 'N_Combinations': len(triples)}
        if time_window is not None:
            quads = find_same_dest_detour_combinations(costs, delay, time_window, combinations=triples)
            row['Max_Delta_T'] = max((q[3] for q in quads), default=None)
        rows.append(row)
        logger.debug(f"Delay {delay}: {len(triples)} combinations")
    return pd.DataFrame(rows)
