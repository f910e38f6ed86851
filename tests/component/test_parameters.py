import pytest
import yaml

from stationselect.config.parameters import Parameters
from stationselect.errors import ConfigurationError


def test_load_default_yaml(default_config_path):
    params = Parameters.from_yaml(default_config_path)
    assert params.time_window == 300
    assert params.routing_delay == 300
    assert params.max_walking_distance == 600
    assert params.n_clusters == 5
    assert params.max_cluster_diameter is None
    assert params.clustering_enabled
    assert params.scenarios['segment_hours'] == 24
    assert params.n_jobs == 1


def test_from_yaml_without_path_uses_packaged_defaults(default_config_path):
    assert Parameters.from_yaml() == Parameters.from_yaml(default_config_path)


def test_yaml_without_clustering(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({'time_window': 60, 'routing_delay': 0, 'max_walking_distance': None}))
    params = Parameters.from_yaml(path)
    assert not params.clustering_enabled
    assert params.max_walking_distance is None


@pytest.mark.parametrize("overrides", [
    {'time_window': 0},
    {'time_window': -300},
    {'routing_delay': -1},
    {'max_walking_distance': -10},
    {'clustering': {'max_cluster_diameter': 100, 'n_clusters': 3}},
    {'clustering': {'max_cluster_diameter': -5}},
    {'clustering': {'n_clusters': 0}},
    {'clustering': {'n_clusters': 2.5}},
    {'clustering': {'n_clusters': True}},
    {'clustering': {'n_clusters': 3, 'max_iter': False}},
    {'scenarios': {'segment_hours': 0}},
    {'n_jobs': 0},
])
def test_invalid_parameters(overrides):
    values = {'time_window': 300, 'routing_delay': 300}
    values.update(overrides)
    with pytest.raises(ConfigurationError):
        Parameters(**values)


def test_unknown_key_in_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({'time_window': 60, 'routing_delay': 0, 'vehicle_types': {}}))
    with pytest.raises(TypeError):
        Parameters.from_yaml(path)


def test_empty_yaml_sections_mean_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("time_window: 60\nrouting_delay: 0\nclustering:\nscenarios:\n")
    params = Parameters.from_yaml(path)
    assert params.clustering == {}
    assert params.scenarios == {}
    assert not params.clustering_enabled
    assert params.n_clusters is None
