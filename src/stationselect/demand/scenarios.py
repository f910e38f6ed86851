"""
Scenario construction and station usage bookkeeping.

A scenario is a labelled, half-open time window ``[start, end)`` together with
the requests that fall inside it. Windows are usually generated from a date
range (one per day, or per fixed number of hours), optionally keeping only one
window per week.
"""
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from stationselect.core_types import REQUEST_COLUMNS, Scenario, StationIndex
from stationselect.errors import ConfigurationError

logger = logging.getLogger(__name__)

ALL_REQUESTS_LABEL = 'all_requests'
TIME_FORMAT = '%Y-%m-%d %H:%M:%S'


def validate_requests(requests: pd.DataFrame) -> None:
    """Check that a request table has the expected columns."""
    missing = [c for c in REQUEST_COLUMNS if c not in requests.columns]
    if missing:
        logger.error(f"Request table is missing columns: {missing}")
        raise ValueError(f"Request table is missing columns: {missing}")


def generate_scenario_windows(
    start_date,
    end_date,
    segment_hours: int = 24,
    weekly_cycle: bool = False
) -> List[Tuple[pd.Timestamp, pd.Timestamp]]:
    """
    Split the days ``start_date..end_date`` (both inclusive) into windows.

    Args:
        start_date: First day covered (anything ``pd.Timestamp`` accepts).
        end_date: Last day covered; the final window stops at its midnight.
        segment_hours: Length of each window in hours.
        weekly_cycle: Keep only windows starting on ``start_date``'s weekday.

    Returns:
        List of ``(start, end)`` timestamps, each a half-open interval.
    """
    if segment_hours <= 0:
        raise ConfigurationError(f"segment_hours must be positive. Got: {segment_hours}")

    current = pd.Timestamp(start_date).normalize()
    last = pd.Timestamp(end_date).normalize() + pd.Timedelta(days=1)
    if last <= current:
        raise ConfigurationError(f"end_date {end_date} is before start_date {start_date}")

    step = pd.Timedelta(hours=segment_hours)
    windows = []
    while current < last:
        windows.append((current, min(current + step, last)))
        current += step

    if weekly_cycle:
        weekday = pd.Timestamp(start_date).dayofweek
        windows = [w for w in windows if w[0].dayofweek == weekday]

    logger.debug(f"Generated {len(windows)} scenario windows of {segment_hours}h")
    return windows


def scenario_label(start: pd.Timestamp, end: pd.Timestamp) -> str:
    return f"{start.strftime(TIME_FORMAT)}_{end.strftime(TIME_FORMAT)}"


def split_into_scenarios(
    requests: pd.DataFrame,
    windows: Optional[Sequence[Tuple]] = None
) -> List[Scenario]:
    """
    Partition requests into scenarios.

    Without windows, all requests form the single scenario ``all_requests``.
    Windows that contain no request are skipped with a warning.
    """
    validate_requests(requests)
    requests = requests.copy()
    requests['Request_Time'] = pd.to_datetime(requests['Request_Time'])

    if not windows:
        logger.info(f"Using a single scenario with all {len(requests)} requests")
        return [Scenario(label=ALL_REQUESTS_LABEL, requests=requests.reset_index(drop=True))]

    scenarios = []
    skipped = 0
    for start, end in windows:
        start = pd.Timestamp(start) if start is not None else None
        end = pd.Timestamp(end) if end is not None else None
        mask = pd.Series(True, index=requests.index)
        if start is not None:
            mask &= requests['Request_Time'] >= start
        if end is not None:
            mask &= requests['Request_Time'] < end
        subset = requests[mask].reset_index(drop=True)
        if subset.empty:
            skipped += 1
            logger.warning(f"No requests between {start} and {end}; skipping scenario")
            continue
        label = scenario_label(start, end) if start is not None and end is not None else f"scenario_{len(scenarios) + 1}"
        scenarios.append(Scenario(label=label, requests=subset, start_time=start, end_time=end))

    logger.info(f"Built {len(scenarios)} scenarios ({skipped} empty windows skipped)")
    return scenarios


def scenario_label_index(scenarios: Sequence[Scenario]) -> Dict[str, int]:
    """Scenario label -> position."""
    return {scenario.label: s for s, scenario in enumerate(scenarios)}


def compute_station_counts(
    scenarios: Sequence[Scenario],
    station_index: StationIndex
) -> pd.DataFrame:
    """
    Pickup, dropoff and total request counts per scenario and station.

    Returns a long DataFrame with columns ``Scenario``, ``Station_ID``,
    ``Pickup_Count``, ``Dropoff_Count`` and ``Total_Count`` covering every
    station of the index (zero-filled).
    """
    frames = []
    ids = pd.Index(station_index.ids, name='Station_ID')
    for scenario in scenarios:
        req = scenario.requests
        counts = pd.DataFrame({
            'Pickup_Count': req['Origin_ID'].value_counts().reindex(ids, fill_value=0),
            'Dropoff_Count': req['Destination_ID'].value_counts().reindex(ids, fill_value=0),
        })
        counts['Total_Count'] = counts['Pickup_Count'] + counts['Dropoff_Count']
        counts = counts.reset_index()
        counts.insert(0, 'Scenario', scenario.label)
        frames.append(counts)

    if not frames:
        return pd.DataFrame(columns=['Scenario', 'Station_ID', 'Pickup_Count', 'Dropoff_Count', 'Total_Count'])
    return pd.concat(frames, ignore_index=True)


def compute_request_counts(requests: pd.DataFrame) -> pd.Series:
    """Number of requests starting or ending at each station, most used first."""
    endpoints = pd.concat([requests['Origin_ID'], requests['Destination_ID']], ignore_index=True)
    counts = endpoints.value_counts()
    counts.index.name = 'Station_ID'
    counts.name = 'Request_Count'
    return counts


def select_top_used_candidate_stations(
    stations: pd.DataFrame,
    requests: pd.DataFrame,
    n_candidate_stations: int
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Restrict stations to the ``n_candidate_stations`` most used ones.

    Stations are ranked by how many requests start or end there; ties, and
    unused stations filling up the selection, follow station table order.
    Requests touching a dropped station are dropped too. Non-positive or too
    large counts, or an empty request table, leave the inputs unchanged.
    """
    if n_candidate_stations <= 0:
        logger.warning(f"n_candidate_stations={n_candidate_stations} is non-positive; skipping filter")
        return stations, requests
    if n_candidate_stations > len(stations):
        logger.warning(
            f"n_candidate_stations={n_candidate_stations} exceeds {len(stations)} available stations; skipping filter"
        )
        return stations, requests
    if requests.empty:
        logger.warning("No requests available; skipping candidate station filter")
        return stations, requests

    counts = compute_request_counts(requests).reindex(stations['Station_ID'], fill_value=0)
    # Stable sort: ties and unused stations keep station table order
    counts = counts.sort_values(ascending=False, kind='stable')
    keep = set(counts.index[:n_candidate_stations])
    stations_filtered = stations[stations['Station_ID'].isin(keep)].reset_index(drop=True)
    requests_filtered = requests[
        requests['Origin_ID'].isin(keep) & requests['Destination_ID'].isin(keep)
    ].reset_index(drop=True)

    logger.info(
        f"Selected {len(stations_filtered)} candidate stations; "
        f"{len(requests_filtered)}/{len(requests)} requests kept"
    )
    return stations_filtered, requests_filtered
