from .combinations import (
    Quadruplet,
    Triplet,
    count_detour_combinations_by_delay,
    find_detour_combinations,
    find_same_dest_detour_combinations,
    find_same_source_detour_combinations,
    is_detour_feasible,
    summarize_detour_combinations,
)
from .feasibility import FeasibleDetours, SlotFeasibilityCache, compute_feasible_detours

__all__ = [
    "FeasibleDetours",
    "Quadruplet",
    "SlotFeasibilityCache",
    "Triplet",
    "compute_feasible_detours",
    "count_detour_combinations_by_delay",
    "find_detour_combinations",
    "find_same_dest_detour_combinations",
    "find_same_source_detour_combinations",
    "is_detour_feasible",
    "summarize_detour_combinations",
]
