"""
stationselect

Precomputation engine for virtual bus-stop selection in on-demand microtransit.
It turns trip requests and station-pair costs into the combinatorial inputs of
station-selection models:

• Station-pair cost tables (`costs`).
• Scenarios, time-bucketed OD demand and walking-limited candidate pairs (`demand`).
• Same-source / same-dest pooling detours and their per-slot filtering (`detour`).
• Diameter- or count-constrained zone clustering, corridors and zone-pair demand (`clustering`).
• Warm-start projection of coarse solutions (`warm_start`).

Typical workflow::

    from stationselect import CostTable, Parameters, run_precomputation

    params = Parameters.from_yaml()
    walking = CostTable.from_coordinates(stations, kind='walking')
    routing = CostTable.from_segments(segments, walking.station_index)
    inputs = run_precomputation(stations, requests, routing, params, walking_costs=walking)
"""

from .config.parameters import Parameters
from .core_types import (
    ClusterAssignment,
    CorridorData,
    DemandIndex,
    Scenario,
    ScenarioODIndex,
    StationIndex,
    ZonePairDemand,
)
from .costs.table import CostTable
from .errors import ConfigurationError, MissingCostError
from .pipeline.precompute import PrecomputedInputs, run_precomputation

__all__ = [
    'ClusterAssignment',
    'ConfigurationError',
    'CorridorData',
    'CostTable',
    'DemandIndex',
    'MissingCostError',
    'Parameters',
    'PrecomputedInputs',
    'Scenario',
    'ScenarioODIndex',
    'StationIndex',
    'ZonePairDemand',
    'run_precomputation',
]
