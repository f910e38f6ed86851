import numpy as np
import pytest
from hypothesis import given, settings
import hypothesis.strategies as st

from stationselect.core_types import ClusterAssignment, Scenario
from stationselect.costs.table import CostTable
from stationselect.clustering import zones
from stationselect.clustering.zones import (
    cluster_stations,
    cluster_stations_by_count,
    cluster_stations_by_diameter,
    compute_cluster_diameter,
    compute_corridor_data,
    compute_zone_pair_demand,
)
from stationselect.errors import ConfigurationError


def points_on_line(*positions):
    x = np.asarray(positions, dtype=float)
    return CostTable.from_matrix(np.abs(x[:, None] - x[None, :]), kind='routing')


def test_diameter_clustering_respects_bound(line_costs):
    assignment = cluster_stations_by_diameter(line_costs, 100)
    assert assignment.n_clusters == 2
    for members in assignment.cluster_station_sets():
        assert compute_cluster_diameter(members, line_costs) <= 100


def test_diameter_covering_everything(line_costs):
    assignment = cluster_stations_by_diameter(line_costs, 200)
    assert assignment.n_clusters == 1
    assert assignment.medoids == [2]
    assert assignment.labels.tolist() == [1, 1, 1, 1, 1]


@pytest.mark.parametrize("max_diameter", [0, 49.9])
def test_diameter_below_every_cost_gives_singletons(line_costs, max_diameter):
    assignment = cluster_stations_by_diameter(line_costs, max_diameter)
    assert assignment.n_clusters == 5
    assert assignment.labels.tolist() == [1, 2, 3, 4, 5]
    assert assignment.medoids == [0, 1, 2, 3, 4]


def test_single_station():
    assignment = cluster_stations_by_diameter(CostTable.from_matrix([[0.0]]), 10)
    assert assignment.n_clusters == 1
    assert assignment.medoid_of(1) == 0


def test_missing_costs_keep_stations_apart():
    costs = CostTable.from_matrix([
        [0.0, 10.0, np.nan],
        [10.0, 0.0, 10.0],
        [np.nan, 10.0, 0.0],
    ])
    assignment = cluster_stations_by_diameter(costs, 50)
    assert assignment.n_clusters == 2
    assert assignment.labels[0] != assignment.labels[2]


def test_negative_diameter_is_rejected(line_costs):
    with pytest.raises(ConfigurationError):
        cluster_stations_by_diameter(line_costs, -1)


def test_count_clustering_two_pairs():
    assignment = cluster_stations_by_count(points_on_line(0, 1, 10, 11), 2)
    assert assignment.labels.tolist() == [1, 1, 2, 2]
    assert assignment.method == 'count'
    for c in (1, 2):
        assert assignment.medoid_of(c) in assignment.members(c)


def test_count_clustering_extremes(line_costs):
    one = cluster_stations_by_count(line_costs, 1)
    assert one.labels.tolist() == [1] * 5
    assert one.medoids == [2]

    every = cluster_stations_by_count(line_costs, 5)
    assert every.labels.tolist() == [1, 2, 3, 4, 5]


@pytest.mark.parametrize("n_clusters", [0, -1, 6, 2.5, True])
def test_invalid_cluster_count(line_costs, n_clusters):
    with pytest.raises(ConfigurationError):
        cluster_stations_by_count(line_costs, n_clusters)


def test_exactly_one_mode(line_costs):
    with pytest.raises(ConfigurationError):
        cluster_stations(line_costs)
    with pytest.raises(ConfigurationError):
        cluster_stations(line_costs, max_diameter=100, n_clusters=2)
    assert cluster_stations(line_costs, n_clusters=2).n_clusters == 2
    assert cluster_stations(line_costs, max_diameter=200).n_clusters == 1


def test_count_clustering_finds_both_groups():
    costs = points_on_line(0, 1, 2, 10, 11, 12)
    assignment = cluster_stations_by_count(costs, 2)
    assert assignment.labels.tolist() == [1, 1, 1, 2, 2, 2]
    assert assignment.medoids == [1, 4]
    again = cluster_stations_by_count(costs, 2)
    assert again.labels.tolist() == assignment.labels.tolist()
    assert again.medoids == assignment.medoids


def test_count_clustering_with_missing_costs():
    costs = CostTable.from_matrix([
        [0.0, 1.0, np.nan, np.nan],
        [1.0, 0.0, np.nan, np.nan],
        [np.nan, np.nan, 0.0, 2.0],
        [np.nan, np.nan, 2.0, 0.0],
    ])
    assignment = cluster_stations_by_count(costs, 2)
    assert assignment.labels.tolist() == [1, 1, 2, 2]


def test_corridors_use_medoid_costs(line_costs):
    assignment = cluster_stations_by_count(line_costs, 2)
    corridors = compute_corridor_data(assignment, line_costs)
    assert corridors.corridor_indices == [(1, 1), (1, 2), (2, 1), (2, 2)]
    assert corridors.cluster_station_sets == assignment.cluster_station_sets()
    assert sorted(sum(corridors.cluster_station_sets, [])) == [0, 1, 2, 3, 4]
    assert corridors.cost(1, 1) == 0.0
    assert corridors.cost(1, 2) == line_costs.get(assignment.medoid_of(1), assignment.medoid_of(2))
    assert corridors.cost(2, 1) == corridors.cost(1, 2)


def test_corridor_surrogate_for_missing_medoid_cost():
    costs = CostTable.from_matrix([
        [0.0, 4.0, np.nan],
        [4.0, 0.0, 9.0],
        [np.nan, 9.0, 0.0],
    ])
    assignment = ClusterAssignment(labels=np.array([1, 1, 2]), medoids=[0, 2])
    corridors = compute_corridor_data(assignment, costs)
    # cheapest link 9 plus diameters 4 and 0
    assert corridors.cost(1, 2) == 13.0
    assert corridors.cost(2, 1) == 13.0


def test_disconnected_clusters_have_infinite_corridor():
    costs = CostTable.from_matrix([
        [0.0, 4.0, np.nan],
        [4.0, 0.0, np.nan],
        [np.nan, np.nan, 0.0],
    ])
    assignment = ClusterAssignment(labels=np.array([1, 1, 2]), medoids=[0, 2])
    assert np.isinf(compute_corridor_data(assignment, costs).cost(1, 2))


def random_symmetric_costs(n, seed):
    rng = np.random.default_rng(seed)
    upper = np.triu(rng.integers(1, 100, size=(n, n)).astype(float), 1)
    return CostTable.from_matrix(upper + upper.T, kind='routing')


@settings(max_examples=30, deadline=None)
@given(
    n=st.integers(min_value=2, max_value=8),
    seed=st.integers(min_value=0, max_value=10_000),
    max_diameter=st.integers(min_value=0, max_value=120)
)
def test_diameter_bound_holds(n, seed, max_diameter):
    costs = random_symmetric_costs(n, seed)
    assignment = cluster_stations_by_diameter(costs, max_diameter)
    assert sorted(np.unique(assignment.labels).tolist()) == list(range(1, assignment.n_clusters + 1))
    for c, members in enumerate(assignment.cluster_station_sets(), start=1):
        assert compute_cluster_diameter(members, costs) <= max_diameter
        assert assignment.medoid_of(c) in members


@settings(max_examples=30, deadline=None)
@given(
    n=st.integers(min_value=1, max_value=8),
    seed=st.integers(min_value=0, max_value=10_000),
    data=st.data()
)
def test_count_mode_gives_exact_count(n, seed, data):
    k = data.draw(st.integers(min_value=1, max_value=n))
    costs = random_symmetric_costs(n, seed)
    assignment = cluster_stations_by_count(costs, k)
    assert assignment.n_clusters == k
    for c, members in enumerate(assignment.cluster_station_sets(), start=1):
        assert members
        assert assignment.medoid_of(c) in members


def test_corridor_diameters_share_one_distance_matrix(monkeypatch, line_costs):
    calls = []
    original = zones._symmetric_distances

    def counting(costs):
        calls.append(1)
        return original(costs)

    monkeypatch.setattr(zones, '_symmetric_distances', counting)
    assignment = ClusterAssignment(labels=np.array([1, 1, 2, 2, 3]), medoids=[0, 2, 4])
    corridors = compute_corridor_data(assignment, line_costs)
    assert len(calls) == 1
    assert corridors.cost(1, 3) == 200.0


@pytest.fixture
def toy_zones():
    """Stations 10, 20, 30 in zone 1 and station 40 in zone 2"""
    return ClusterAssignment(labels=np.array([1, 1, 1, 2]), medoids=[1, 3])


def test_zone_pair_demand_counts(toy_zones, toy_scenario, toy_station_index):
    demand = compute_zone_pair_demand(toy_zones, [toy_scenario], toy_station_index)
    assert demand.active_anchors == [(1, 1), (1, 2)]
    assert demand.anchor_scenarios == [[0], [0]]

    inner = demand.anchor_position(1, 1)
    assert demand.pickup_counts[inner][0] == {0: 3, 1: 1}
    assert demand.dropoff_counts[inner][0] == {1: 2, 2: 2}
    assert demand.trip_totals[(inner, 0)] == 4

    outbound = demand.anchor_position(1, 2)
    assert demand.pickup_stations(outbound, 0) == [2]
    assert demand.dropoff_stations(outbound, 0) == [3]
    assert demand.trip_totals[(outbound, 0)] == 1
    assert demand.anchor_position(2, 1) is None


def test_zone_pair_station_pairs(toy_zones, toy_scenario, toy_station_index):
    demand = compute_zone_pair_demand(toy_zones, [toy_scenario], toy_station_index)
    assert demand.station_pairs[demand.anchor_position(1, 2)] == [(0, 3), (1, 3), (2, 3)]
    assert len(demand.station_pairs[demand.anchor_position(1, 1)]) == 9


def test_zone_pair_demand_over_scenarios(toy_zones, toy_scenario, toy_station_index, make_scenario):
    returning = make_scenario([(40, 10, 0), (40, 20, 5)], label='s2')
    demand = compute_zone_pair_demand(toy_zones, [toy_scenario, returning], toy_station_index)
    assert demand.active_anchors == [(1, 1), (1, 2), (2, 1)]
    assert demand.anchor_scenarios == [[0], [0], [1]]
    assert demand.pickup_counts[2] == {1: {3: 2}}
    assert demand.dropoff_stations(2, 1) == [0, 1]
    assert demand.dropoff_stations(2, 0) == []
    assert demand.trip_totals == {(0, 0): 4, (1, 0): 1, (2, 1): 2}


def test_zone_pair_demand_ignores_request_order(toy_zones, toy_scenario, toy_station_index):
    shuffled = Scenario(
        label=toy_scenario.label,
        requests=toy_scenario.requests.sample(frac=1.0, random_state=7).reset_index(drop=True),
    )
    expected = compute_zone_pair_demand(toy_zones, [toy_scenario], toy_station_index)
    assert compute_zone_pair_demand(toy_zones, [shuffled], toy_station_index) == expected


def test_zone_pair_demand_edge_cases(toy_zones, toy_station_index):
    empty = compute_zone_pair_demand(toy_zones, [], toy_station_index)
    assert empty.n_anchors == 0
    assert empty.trip_totals == {}

    with pytest.raises(ValueError):
        compute_zone_pair_demand(
            ClusterAssignment(labels=np.array([1, 2]), medoids=[0, 1]), [], toy_station_index
        )
