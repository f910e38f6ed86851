"""
End-to-end precomputation of the station-selection model inputs.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import pandas as pd

from stationselect.config.parameters import Parameters
from stationselect.core_types import (
    ClusterAssignment,
    CorridorData,
    DemandIndex,
    Scenario,
    ScenarioODIndex,
    StationIndex,
    ZonePairDemand,
)
from stationselect.clustering.zones import cluster_stations, compute_corridor_data, compute_zone_pair_demand
from stationselect.costs.table import CostTable
from stationselect.demand.indexing import build_demand_index, build_scenario_od_index
from stationselect.demand.scenarios import generate_scenario_windows, split_into_scenarios
from stationselect.detour.combinations import (
    Quadruplet,
    Triplet,
    find_detour_combinations,
    find_same_dest_detour_combinations,
)
from stationselect.detour.feasibility import FeasibleDetours, compute_feasible_detours
from stationselect.errors import ConfigurationError
from stationselect.utils.logging import Colors, ProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class PrecomputedInputs:
    """Everything a downstream model builder consumes."""
    station_index: StationIndex
    scenarios: list
    demand_index: DemandIndex
    scenario_od_index: ScenarioODIndex
    same_source: list
    same_dest: list
    feasible_detours: FeasibleDetours
    cluster_assignment: Optional[ClusterAssignment] = None
    corridors: Optional[CorridorData] = None
    zone_pair_demand: Optional[ZonePairDemand] = None
    runtime_sec: float = 0.0
    step_times: Dict[str, float] = field(default_factory=dict)


def run_precomputation(
    stations: pd.DataFrame,
    requests: pd.DataFrame,
    routing_costs: CostTable,
    params: Parameters,
    walking_costs: Optional[CostTable] = None,
    scenario_windows: Optional[Sequence] = None,
    scenarios: Optional[Sequence[Scenario]] = None,
    start_date=None,
    end_date=None,
    show_progress: bool = True
) -> PrecomputedInputs:
    """
    Run demand indexing, detour enumeration, per-slot filtering and clustering.

    Args:
        stations: Station table (``Station_ID``, ``Longitude``, ``Latitude``).
        requests: Request table; split by ``scenario_windows`` unless
            ``scenarios`` is given. Without either, windows are generated
            from ``start_date``/``end_date`` and ``params.scenarios``, or
            all requests form one scenario when no dates are given.
        routing_costs: Routing cost table over the same stations.
        params: Validated parameters.
        walking_costs: Walking cost table; required with a walking limit.
        scenario_windows: ``(start, end)`` windows for scenario splitting.
        scenarios: Pre-built scenarios, used as-is.
        start_date: First day of generated scenario windows.
        end_date: Last day of generated scenario windows.
        show_progress: Show a progress bar; otherwise step messages are logged.

    Returns:
        PrecomputedInputs bundle.
    """
    start_time = time.time()
    station_index = StationIndex.from_stations(stations)
    if routing_costs.station_index.ids != station_index.ids:
        raise ConfigurationError("Routing cost table stations do not match the station table")
    if (start_date is None) != (end_date is None):
        raise ConfigurationError(
            f"start_date and end_date must be given together. Got: {start_date}, {end_date}"
        )

    steps = ['Scenarios', 'Demand Index', 'Detour Combinations', 'Slot Feasibility', 'Clustering']
    progress = ProgressTracker(steps, disable=not show_progress)
    advance = progress.advance

    if scenarios is None:
        if scenario_windows is None and start_date is not None:
            scenario_windows = generate_scenario_windows(
                start_date,
                end_date,
                segment_hours=params.scenarios.get('segment_hours', 24),
                weekly_cycle=params.scenarios.get('weekly_cycle', False),
            )
        scenarios = split_into_scenarios(requests, scenario_windows)
    scenarios = list(scenarios)
    advance(f"Built {Colors.BOLD}{len(scenarios)}{Colors.RESET} scenarios")

    demand_index = build_demand_index(
        scenarios,
        station_index,
        params.time_window,
        walking_costs=walking_costs,
        max_walking_distance=params.max_walking_distance,
    )
    scenario_od_index = build_scenario_od_index(
        scenarios,
        station_index,
        walking_costs=walking_costs,
        max_walking_distance=params.max_walking_distance,
    )
    advance(f"Indexed {Colors.BOLD}{len(demand_index.slots())}{Colors.RESET} (scenario, time) slots")

    same_source: Sequence[Triplet] = find_detour_combinations(
        routing_costs, params.routing_delay, n_jobs=params.n_jobs
    )
    same_dest: Sequence[Quadruplet] = find_same_dest_detour_combinations(
        routing_costs, params.routing_delay, params.time_window, combinations=same_source
    )
    status = 'success' if same_source else 'warning'
    advance(f"Found {Colors.BOLD}{len(same_source)}{Colors.RESET} detour combinations", status)

    feasible_detours = compute_feasible_detours(demand_index, same_source, same_dest)
    advance(
        f"Filtered detours per slot: {Colors.BOLD}{feasible_detours.n_same_source()}{Colors.RESET} same-source, "
        f"{Colors.BOLD}{feasible_detours.n_same_dest()}{Colors.RESET} same-dest"
    )

    assignment, corridors, zone_pair_demand = None, None, None
    if params.clustering_enabled:
        assignment = cluster_stations(
            routing_costs,
            max_diameter=params.max_cluster_diameter,
            n_clusters=params.n_clusters,
            max_iter=params.clustering.get('max_iter', 100),
        )
        corridors = compute_corridor_data(assignment, routing_costs)
        zone_pair_demand = compute_zone_pair_demand(assignment, scenarios, station_index)
        advance(
            f"Clustered stations into {Colors.BOLD}{assignment.n_clusters}{Colors.RESET} zones, "
            f"{Colors.BOLD}{zone_pair_demand.n_anchors}{Colors.RESET} active zone pairs"
        )
    else:
        advance("Clustering not configured; skipped", 'info')

    runtime = time.time() - start_time
    progress.close()
    logger.debug(f"Precomputation finished in {runtime:.1f}s")

    return PrecomputedInputs(
        station_index=station_index,
        scenarios=scenarios,
        demand_index=demand_index,
        scenario_od_index=scenario_od_index,
        same_source=list(same_source),
        same_dest=list(same_dest),
        feasible_detours=feasible_detours,
        cluster_assignment=assignment,
        corridors=corridors,
        zone_pair_demand=zone_pair_demand,
        runtime_sec=runtime,
        step_times=dict(progress.step_times),
    )
