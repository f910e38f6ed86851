"""
Demand side of the precomputation: scenarios, time buckets and OD indices.
"""

from .indexing import (
    build_demand_index,
    build_scenario_od_index,
    compute_scenario_od_count,
    compute_time_ids,
    compute_time_to_od_count_mapping,
    compute_valid_f_pairs,
    compute_valid_jk_pairs,
)
from .scenarios import (
    compute_request_counts,
    compute_station_counts,
    generate_scenario_windows,
    scenario_label_index,
    select_top_used_candidate_stations,
    split_into_scenarios,
)

__all__ = [
    "build_demand_index",
    "build_scenario_od_index",
    "compute_request_counts",
    "compute_scenario_od_count",
    "compute_station_counts",
    "compute_time_ids",
    "compute_time_to_od_count_mapping",
    "compute_valid_f_pairs",
    "compute_valid_jk_pairs",
    "generate_scenario_windows",
    "scenario_label_index",
    "select_top_used_candidate_stations",
    "split_into_scenarios",
]
