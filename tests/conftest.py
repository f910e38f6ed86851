import pytest
import numpy as np
import pandas as pd
from pathlib import Path

from stationselect.core_types import Scenario, StationIndex
from stationselect.costs.table import CostTable

# Define project root for path fixtures
repo_root = Path(__file__).resolve().parent.parent


@pytest.fixture(scope="session")
def default_config_path():
    """Path to the packaged default YAML config"""
    return repo_root / "src" / "stationselect" / "config" / "default_config.yaml"


@pytest.fixture
def triangle_costs():
    """Factory: symmetric 3-station routing table from c(1,2), c(2,3), c(1,3)"""
    def make(c12, c23, c13):
        matrix = np.array([
            [0.0, c12, c13],
            [c12, 0.0, c23],
            [c13, c23, 0.0],
        ])
        return CostTable.from_matrix(matrix, kind='routing')
    return make


@pytest.fixture
def line_costs():
    """Five stations on a line, 50 apart"""
    idx = np.arange(5)
    return CostTable.from_matrix(np.abs(idx[:, None] - idx[None, :]) * 50.0, kind='routing')


@pytest.fixture
def toy_stations():
    return pd.DataFrame({
        'Station_ID': [10, 20, 30, 40],
        'Longitude': [0.0, 0.001, 0.002, 0.003],
        'Latitude': [0.0, 0.0, 0.0, 0.0],
    })


@pytest.fixture
def toy_station_index(toy_stations):
    return StationIndex.from_stations(toy_stations)


@pytest.fixture
def toy_walking_costs(toy_station_index):
    """Walking costs: neighbours 100 apart on a line"""
    idx = np.arange(4)
    return CostTable.from_matrix(
        np.abs(idx[:, None] - idx[None, :]) * 100.0, toy_station_index, kind='walking'
    )


@pytest.fixture
def toy_routing_costs(toy_station_index):
    """Routing costs: 10/12/18 triangle on the first three stations, station 40 far away"""
    matrix = np.array([
        [0.0, 10.0, 18.0, 100.0],
        [10.0, 0.0, 12.0, 100.0],
        [18.0, 12.0, 0.0, 100.0],
        [100.0, 100.0, 100.0, 0.0],
    ])
    return CostTable.from_matrix(matrix, toy_station_index, kind='routing')


@pytest.fixture
def toy_requests():
    t0 = pd.Timestamp('2025-01-06 08:00:00')
    return pd.DataFrame({
        'Request_ID': [1, 2, 3, 4, 5, 6],
        'Origin_ID': [10, 10, 10, 20, 30, 10],
        'Destination_ID': [20, 30, 20, 30, 40, 40],
        'Request_Time': [
            t0,
            t0 + pd.Timedelta(seconds=30),
            t0 + pd.Timedelta(seconds=299),
            t0 + pd.Timedelta(seconds=300),
            t0 + pd.Timedelta(seconds=601),
            t0 + pd.Timedelta(hours=25),
        ],
    })


@pytest.fixture
def toy_scenario(toy_requests):
    """All toy requests of the first day, starting at 08:00"""
    start = pd.Timestamp('2025-01-06 08:00:00')
    end = pd.Timestamp('2025-01-07 08:00:00')
    mask = (toy_requests['Request_Time'] >= start) & (toy_requests['Request_Time'] < end)
    return Scenario(label='day1', requests=toy_requests[mask].reset_index(drop=True),
                    start_time=start, end_time=end)


@pytest.fixture
def make_scenario():
    """Factory: scenario from (origin_id, destination_id, seconds after start) rows"""
    def make(rows, label='s1'):
        start = pd.Timestamp('2025-01-06 08:00:00')
        requests = pd.DataFrame({
            'Request_ID': list(range(1, len(rows) + 1)),
            'Origin_ID': [r[0] for r in rows],
            'Destination_ID': [r[1] for r in rows],
            'Request_Time': pd.to_datetime([start + pd.Timedelta(seconds=r[2]) for r in rows]),
        })
        return Scenario(label=label, requests=requests, start_time=start,
                        end_time=start + pd.Timedelta(days=1))
    return make


class DummyBar:
    """Stand-in for tqdm that records what the tracker writes"""
    def __init__(self, *args, **kwargs):
        self.total = kwargs.get('total')
        self.n = 0
        self.written = []
        self.closed = False

    def write(self, message):
        self.written.append(message)

    def update(self, n):
        self.n += n

    def close(self):
        self.closed = True


@pytest.fixture
def dummy_tqdm(monkeypatch):
    """Replace the progress bar used by ProgressTracker"""
    import stationselect.utils.logging as log_utils
    monkeypatch.setattr(log_utils, 'tqdm', DummyBar)
    return DummyBar
