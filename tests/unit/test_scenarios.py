import pandas as pd
import pytest

from stationselect.demand.scenarios import (
    ALL_REQUESTS_LABEL,
    compute_request_counts,
    compute_station_counts,
    generate_scenario_windows,
    scenario_label_index,
    select_top_used_candidate_stations,
    split_into_scenarios,
    validate_requests,
)
from stationselect.errors import ConfigurationError


def test_daily_windows():
    windows = generate_scenario_windows('2025-01-06', '2025-01-08')
    assert len(windows) == 3
    assert windows[0] == (pd.Timestamp('2025-01-06'), pd.Timestamp('2025-01-07'))
    assert windows[-1][1] == pd.Timestamp('2025-01-09')


def test_segment_windows_stop_at_end_of_day():
    windows = generate_scenario_windows('2025-01-06', '2025-01-06', segment_hours=5)
    assert len(windows) == 5
    assert windows[-1] == (pd.Timestamp('2025-01-06 20:00'), pd.Timestamp('2025-01-07'))


def test_weekly_cycle_keeps_start_weekday():
    windows = generate_scenario_windows('2025-01-06', '2025-01-26', weekly_cycle=True)
    assert [w[0].day for w in windows] == [6, 13, 20]


def test_invalid_windows():
    with pytest.raises(ConfigurationError):
        generate_scenario_windows('2025-01-06', '2025-01-08', segment_hours=0)
    with pytest.raises(ConfigurationError):
        generate_scenario_windows('2025-01-08', '2025-01-06')


def test_split_without_windows(toy_requests):
    scenarios = split_into_scenarios(toy_requests)
    assert len(scenarios) == 1
    assert scenarios[0].label == ALL_REQUESTS_LABEL
    assert scenarios[0].n_requests == 6
    assert scenarios[0].start_time is None


def test_split_skips_empty_windows(toy_requests):
    windows = [
        ('2025-01-06 08:00', '2025-01-06 08:05'),
        ('2025-01-06 10:00', '2025-01-06 11:00'),
        ('2025-01-07 00:00', '2025-01-08 00:00'),
    ]
    scenarios = split_into_scenarios(toy_requests, windows)
    # The request at exactly 08:05 falls outside the half-open first window
    assert [s.n_requests for s in scenarios] == [3, 1]
    assert scenarios[0].label == '2025-01-06 08:00:00_2025-01-06 08:05:00'
    assert scenario_label_index(scenarios) == {
        '2025-01-06 08:00:00_2025-01-06 08:05:00': 0,
        '2025-01-07 00:00:00_2025-01-08 00:00:00': 1,
    }


def test_missing_request_columns(toy_requests):
    with pytest.raises(ValueError):
        validate_requests(toy_requests.drop(columns=['Request_Time']))


def test_station_counts(toy_scenario, toy_station_index):
    counts = compute_station_counts([toy_scenario], toy_station_index).set_index('Station_ID')
    assert counts.loc[10, 'Pickup_Count'] == 3
    assert counts.loc[10, 'Dropoff_Count'] == 0
    assert counts.loc[40, 'Dropoff_Count'] == 1
    assert (counts['Total_Count'] == counts['Pickup_Count'] + counts['Dropoff_Count']).all()
    assert (counts['Scenario'] == 'day1').all()


def test_request_counts(toy_requests):
    counts = compute_request_counts(toy_requests)
    assert counts[10] == 4
    assert counts[20] == 3
    assert counts[40] == 2


def test_select_top_used_stations(toy_stations, toy_requests):
    stations, requests = select_top_used_candidate_stations(toy_stations, toy_requests, 2)
    assert set(stations['Station_ID']) == {10, 20}
    assert requests['Request_ID'].tolist() == [1, 3]


def test_select_fills_up_with_unused_stations(toy_stations, toy_requests):
    stations, _ = select_top_used_candidate_stations(toy_stations, toy_requests.iloc[:1], 3)
    assert stations['Station_ID'].tolist() == [10, 20, 30]


@pytest.mark.parametrize("n", [0, 10])
def test_select_out_of_range_leaves_inputs(toy_stations, toy_requests, n):
    stations, requests = select_top_used_candidate_stations(toy_stations, toy_requests, n)
    assert stations is toy_stations
    assert requests is toy_requests
