"""Observation loading for replays."""
from .observations import observations_from_frame, load_observations, build_snapshots

__all__ = [
    "observations_from_frame",
    "load_observations",
    "build_snapshots",
]
