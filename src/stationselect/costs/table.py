"""
Station-pair cost tables.

A :class:`CostTable` stores the walking or routing cost of every ordered pair
of stations of a :class:`~stationselect.core_types.StationIndex` as a dense
``numpy`` matrix. A pair without a defined cost holds ``NaN``: the strict
:meth:`CostTable.cost` accessor turns it into a :class:`MissingCostError`,
while :meth:`CostTable.get` and :attr:`CostTable.matrix` hand it to vectorised
callers that exclude such pairs locally.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from haversine import Unit, haversine_vector
from sklearn.metrics import pairwise_distances

from stationselect.core_types import StationIndex
from stationselect.errors import MissingCostError

logger = logging.getLogger(__name__)

SEGMENT_COLUMNS = ['From_ID', 'To_ID', 'Segment_Cost']


@dataclass(frozen=True)
class CostTable:
    """Dense ordered station-pair costs indexed by station array index."""
    station_index: StationIndex
    values: np.ndarray
    kind: str = 'cost'

    def __post_init__(self):
        n = len(self.station_index)
        if self.values.shape != (n, n):
            raise ValueError(
                f"Cost matrix shape {self.values.shape} does not match {n} stations"
            )
        finite = self.values[~np.isnan(self.values)]
        if (finite < 0).any():
            raise ValueError(f"{self.kind} costs must be non-negative")

    # ------------------------------------------------------------------ builders

    @classmethod
    def from_matrix(
        cls,
        matrix,
        station_index: Optional[StationIndex] = None,
        kind: str = 'cost'
    ) -> 'CostTable':
        """Build a table from a square matrix; ``NaN`` entries mark missing costs.

        When ``station_index`` is omitted the stations are ``0..n-1``.
        """
        values = np.array(matrix, dtype=float)
        if values.ndim != 2 or values.shape[0] != values.shape[1]:
            raise ValueError(f"Cost matrix must be square. Got shape: {values.shape}")
        if station_index is None:
            station_index = StationIndex.from_ids(range(values.shape[0]))
        np.fill_diagonal(values, 0.0)
        return cls(station_index=station_index, values=values, kind=kind)

    @classmethod
    def from_dict(
        cls,
        costs: Dict[Tuple[int, int], float],
        station_index: StationIndex,
        kind: str = 'cost',
        symmetric: bool = False
    ) -> 'CostTable':
        """Build a table from ``{(from_id, to_id): cost}``.

        Pairs absent from ``costs`` are missing, unless ``symmetric`` is set and
        the reverse pair is present. Keys naming unknown stations are ignored.
        """
        n = len(station_index)
        values = np.full((n, n), np.nan)
        skipped = 0
        for (from_id, to_id), cost in costs.items():
            if from_id not in station_index or to_id not in station_index:
                skipped += 1
                continue
            i = station_index.id_to_idx[from_id]
            j = station_index.id_to_idx[to_id]
            values[i, j] = cost
            if symmetric and np.isnan(values[j, i]):
                values[j, i] = cost
        if skipped:
            logger.debug(f"Ignored {skipped} {kind} entries for stations outside the index")
        np.fill_diagonal(values, 0.0)
        missing = int(np.isnan(values).sum())
        if missing:
            logger.warning(f"{kind} table has {missing} station pairs without a cost")
        return cls(station_index=station_index, values=values, kind=kind)

    @classmethod
    def from_coordinates(
        cls,
        stations: pd.DataFrame,
        metric: str = 'haversine',
        unit: Unit = Unit.METERS,
        kind: str = 'walking'
    ) -> 'CostTable':
        """Pairwise distances between stations from their coordinates.

        Args:
            stations: DataFrame with ``Station_ID``, ``Longitude`` and ``Latitude``.
            metric: ``'haversine'`` for great-circle distances on lon/lat, or
                ``'euclidean'`` for already projected planar coordinates.
            unit: Unit of haversine distances.
            kind: Label used in messages.
        """
        station_index = StationIndex.from_stations(stations)
        coords = stations[['Latitude', 'Longitude']].to_numpy(dtype=float)
        if metric == 'haversine':
            values = haversine_vector(coords, coords, unit=unit, comb=True)
        elif metric == 'euclidean':
            values = pairwise_distances(coords, metric='euclidean')
        else:
            logger.error(f"Unknown distance metric: {metric}")
            raise ValueError(f"Unknown distance metric: {metric}")
        values = np.asarray(values, dtype=float)
        np.fill_diagonal(values, 0.0)
        logger.debug(f"Computed {metric} {kind} costs for {len(station_index)} stations")
        return cls(station_index=station_index, values=values, kind=kind)

    @classmethod
    def from_segments(
        cls,
        segments: pd.DataFrame,
        station_index: StationIndex,
        kind: str = 'routing'
    ) -> 'CostTable':
        """All-pairs shortest path costs over a directed road-segment network.

        ``segments`` has columns ``From_ID``, ``To_ID`` and ``Segment_Cost``;
        parallel segments keep the cheapest. Unreachable pairs are missing.
        """
        missing_cols = [c for c in SEGMENT_COLUMNS if c not in segments.columns]
        if missing_cols:
            logger.error(f"Segment table is missing columns: {missing_cols}")
            raise ValueError(f"Segment table is missing columns: {missing_cols}")

        n = len(station_index)
        dist = np.full((n, n), np.inf)
        np.fill_diagonal(dist, 0.0)

        known_ids = list(station_index.ids)
        known = segments['From_ID'].isin(known_ids) & segments['To_ID'].isin(known_ids)
        used = segments[known]
        if len(used) < len(segments):
            logger.debug(f"Dropped {len(segments) - len(used)} segments outside the station set")

        rows = station_index.indices_of(used['From_ID'])
        cols = station_index.indices_of(used['To_ID'])
        np.minimum.at(dist, (rows, cols), used['Segment_Cost'].to_numpy(dtype=float))

        # Floyd-Warshall, one relaxation sweep per intermediate station
        for m in range(n):
            dist = np.minimum(dist, dist[:, m:m + 1] + dist[m:m + 1, :])

        unreachable = np.isinf(dist)
        if unreachable.any():
            logger.warning(f"{int(unreachable.sum())} station pairs are unreachable in the segment network")
        dist[unreachable] = np.nan
        return cls(station_index=station_index, values=dist, kind=kind)

    # ----------------------------------------------------------------- accessors

    def __len__(self) -> int:
        return len(self.station_index)

    @property
    def matrix(self) -> np.ndarray:
        """Read-only view of the cost matrix (``NaN`` = missing)."""
        view = self.values.view()
        view.flags.writeable = False
        return view

    def get(self, i: int, j: int) -> float:
        """Cost between station indices ``i`` and ``j``; ``NaN`` when missing."""
        return float(self.values[i, j])

    def has_cost(self, i: int, j: int) -> bool:
        return not np.isnan(self.values[i, j])

    def cost(self, from_id: int, to_id: int) -> float:
        """Cost between station *ids*; raises :class:`MissingCostError` when undefined."""
        try:
            i = self.station_index.id_to_idx[from_id]
            j = self.station_index.id_to_idx[to_id]
        except KeyError:
            raise MissingCostError(from_id, to_id, self.kind) from None
        value = self.values[i, j]
        if np.isnan(value):
            raise MissingCostError(from_id, to_id, self.kind)
        return float(value)

    def is_symmetric(self, atol: float = 1e-9) -> bool:
        return bool(np.allclose(self.values, self.values.T, atol=atol, equal_nan=True))

    def is_complete(self) -> bool:
        return not np.isnan(self.values).any()

    def submatrix(self, indices: Iterable[int]) -> np.ndarray:
        idx = np.asarray(list(indices), dtype=int)
        return self.values[np.ix_(idx, idx)]

    def to_dict(self) -> Dict[Tuple[int, int], float]:
        """Id-keyed mapping of every defined cost."""
        ids = self.station_index.ids
        rows, cols = np.nonzero(~np.isnan(self.values))
        return {(ids[i], ids[j]): float(self.values[i, j]) for i, j in zip(rows, cols)}
