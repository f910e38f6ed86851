from .zones import (
    cluster_stations,
    cluster_stations_by_count,
    cluster_stations_by_diameter,
    compute_cluster_diameter,
    compute_corridor_data,
    compute_zone_pair_demand,
)

__all__ = [
    "cluster_stations",
    "cluster_stations_by_count",
    "cluster_stations_by_diameter",
    "compute_cluster_diameter",
    "compute_corridor_data",
    "compute_zone_pair_demand",
]
