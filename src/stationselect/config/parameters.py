from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional
import yaml

from stationselect.errors import ConfigurationError

@dataclass
class Parameters:
    """Configuration parameters for the precomputation pipeline"""
    time_window: float
    routing_delay: float
    max_walking_distance: Optional[float] = None
    clustering: Dict = field(default_factory=dict)
    scenarios: Dict = field(default_factory=dict)
    n_jobs: int = 1

    @classmethod
    def from_yaml(cls, path: Path | str = None) -> 'Parameters':
        """Load parameters from YAML file"""
        if path is None:
            path = Path(__file__).parent / 'default_config.yaml'

        with open(path) as f:
            data = yaml.safe_load(f)
            return cls(**data)

    @property
    def max_cluster_diameter(self) -> Optional[float]:
        return self.clustering.get('max_cluster_diameter')

    @property
    def n_clusters(self) -> Optional[int]:
        return self.clustering.get('n_clusters')

    @property
    def clustering_enabled(self) -> bool:
        return self.max_cluster_diameter is not None or self.n_clusters is not None

    def __post_init__(self):
        """Validate parameters after initialization"""
        # An empty YAML section loads as None
        if self.clustering is None:
            self.clustering = {}
        if self.scenarios is None:
            self.scenarios = {}

        if self.time_window is None or self.time_window <= 0:
            raise ConfigurationError(
                f"time_window must be positive. Got: {self.time_window}"
            )

        if self.routing_delay is None or self.routing_delay < 0:
            raise ConfigurationError(
                f"routing_delay must be non-negative. Got: {self.routing_delay}"
            )

        if self.max_walking_distance is not None and self.max_walking_distance < 0:
            raise ConfigurationError(
                f"max_walking_distance must be non-negative. Got: {self.max_walking_distance}"
            )

        # Clustering is optional, but when requested exactly one mode must be set
        diameter = self.max_cluster_diameter
        n_clusters = self.n_clusters
        if diameter is not None and n_clusters is not None:
            raise ConfigurationError(
                "Specify either clustering.max_cluster_diameter or clustering.n_clusters, not both. "
                f"Got: max_cluster_diameter={diameter}, n_clusters={n_clusters}"
            )
        if diameter is not None and diameter < 0:
            raise ConfigurationError(
                f"clustering.max_cluster_diameter must be non-negative. Got: {diameter}"
            )
        if n_clusters is not None and (
            isinstance(n_clusters, bool) or not isinstance(n_clusters, int) or n_clusters <= 0
        ):
            raise ConfigurationError(
                f"clustering.n_clusters must be a positive integer. Got: {n_clusters}"
            )

        max_iter = self.clustering.get('max_iter', 100)
        if isinstance(max_iter, bool) or not isinstance(max_iter, int) or max_iter < 0:
            raise ConfigurationError(
                f"clustering.max_iter must be a non-negative integer. Got: {max_iter}"
            )

        segment_hours = self.scenarios.get('segment_hours', 24)
        if not isinstance(segment_hours, int) or segment_hours <= 0:
            raise ConfigurationError(
                f"scenarios.segment_hours must be a positive integer. Got: {segment_hours}"
            )

        if not isinstance(self.n_jobs, int) or self.n_jobs == 0:
            raise ConfigurationError(
                f"n_jobs must be a non-zero integer (-1 uses all cores). Got: {self.n_jobs}"
            )
