# -*- coding: utf-8 -*-
"""
pwj_speed/st_graph.py

ST-graph data handed over by the upstream speed deciders.

STBoundary is a tagged region: the BoundaryType tag decides which edge of
the obstacle region constrains the ego vehicle.
- STOP / YIELD / FOLLOW: ego stays below the region (drivable upper edge = region lower edge)
- OVERTAKE: ego passes above the region (drivable lower edge = region upper edge)
"""

import bisect
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .speed_data import SpeedLimit
from .utils import lerp


class BoundaryType(Enum):
    STOP = 0
    YIELD = 1
    FOLLOW = 2
    OVERTAKE = 3


@dataclass(frozen=True)
class EndInteractionPoint:
    """Precise end of the interaction: at `time` the gap must be at least `s_gap`."""
    time: float
    s_gap: float


def _interpolate_edge(times: Sequence[float], edge: Sequence[Tuple[float, float]], t: float) -> float:
    idx = bisect.bisect_left(times, t)
    if idx == 0:
        return edge[0][1]
    if idx == len(edge):
        return edge[-1][1]
    t0, s0 = edge[idx - 1]
    t1, s1 = edge[idx]
    return lerp(s0, t0, s1, t1, t)


@dataclass
class STBoundary:
    """
    Obstacle interaction region on the ST-graph.

    Attributes:
        boundary_type: STOP / YIELD / FOLLOW / OVERTAKE
        lower_points: time-ordered (t, s) of the region's lower edge
        upper_points: time-ordered (t, s) of the region's upper edge
        characteristic_length: generic gap [m] (YIELD / FOLLOW)
        end_interaction_point: overrides the gap near the boundary's temporal end
        id: obstacle id (diagnostics only)
    """
    boundary_type: BoundaryType
    lower_points: List[Tuple[float, float]]
    upper_points: List[Tuple[float, float]]
    characteristic_length: float = 0.0
    end_interaction_point: Optional[EndInteractionPoint] = None
    id: str = ""

    def __post_init__(self):
        if len(self.lower_points) < 2 or len(self.lower_points) != len(self.upper_points):
            raise ValueError("STBoundary needs >= 2 lower/upper points of equal count")
        self.lower_points = sorted(self.lower_points)
        self.upper_points = sorted(self.upper_points)
        self._lower_t = [p[0] for p in self.lower_points]
        self._upper_t = [p[0] for p in self.upper_points]

    @property
    def min_t(self) -> float:
        return self.lower_points[0][0]

    @property
    def max_t(self) -> float:
        return self.lower_points[-1][0]

    def is_end_interaction_point_valid(self) -> bool:
        return self.end_interaction_point is not None

    def get_unblock_s_range(self, curr_time: float) -> Optional[Tuple[float, float]]:
        """
        Drivable (drive_s_lower, drive_s_upper) left by this region at curr_time,
        or None when the region does not constrain that time.
        """
        if curr_time < self.min_t or curr_time > self.max_t:
            return None

        lower_cross_s = _interpolate_edge(self._lower_t, self.lower_points, curr_time)
        upper_cross_s = _interpolate_edge(self._upper_t, self.upper_points, curr_time)

        if self.boundary_type == BoundaryType.OVERTAKE:
            return max(0.0, upper_cross_s), float("inf")
        return 0.0, lower_cross_s


@dataclass
class InitPoint:
    v: float = 0.0
    a: float = 0.0


@dataclass
class StGraphData:
    st_boundaries: List[STBoundary]
    path_length: float
    total_time_by_conf: float
    init_point: InitPoint = field(default_factory=InitPoint)
    speed_limit: SpeedLimit = field(default_factory=SpeedLimit)
    cruise_speed: float = 0.0
