# -*- coding: utf-8 -*-
"""
pwj_speed/speed_data.py

Time-indexed speed profiles (s, t, v, a, da) and the arc-length speed limit.

SpeedData serves three roles for the optimizer:
- rough prior profile (QP position reference, soft follow fence speed)
- emergency-braking reference curve
- output buffer of the final profile
"""

import bisect
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .utils import lerp


@dataclass
class SpeedPoint:
    s: float = 0.0
    t: float = 0.0
    v: float = 0.0
    a: float = 0.0
    da: float = 0.0


class SpeedData:

    def __init__(self, speed_points: Optional[Iterable[SpeedPoint]] = None):
        self._points: List[SpeedPoint] = sorted(speed_points or [], key=lambda p: p.t)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self):
        return iter(self._points)

    def __getitem__(self, index):
        return self._points[index]

    def empty(self) -> bool:
        return not self._points

    def front(self) -> SpeedPoint:
        return self._points[0]

    def back(self) -> SpeedPoint:
        return self._points[-1]

    def clear(self):
        self._points.clear()

    def append_speed_point(self, s: float, time: float, v: float, a: float, da: float):
        if self._points and time < self._points[-1].t:
            raise ValueError(f"speed point time {time} precedes last point time {self._points[-1].t}")
        self._points.append(SpeedPoint(s=s, t=time, v=v, a=a, da=da))

    @property
    def total_time(self) -> float:
        if not self._points:
            return 0.0
        return self._points[-1].t - self._points[0].t

    @property
    def total_length(self) -> float:
        if not self._points:
            return 0.0
        return self._points[-1].s - self._points[0].s

    def evaluate_by_time(self, t: float) -> Optional[SpeedPoint]:
        """Linear interpolation at time t. None if not evaluable."""
        if len(self._points) < 2:
            return None
        if not (self._points[0].t < t + 1.0e-6 and t - 1.0e-6 < self._points[-1].t):
            return None

        times = [p.t for p in self._points]
        idx = bisect.bisect_left(times, t)
        if idx == len(self._points):
            idx = len(self._points) - 1
        if idx == 0:
            idx = 1
        p0 = self._points[idx - 1]
        p1 = self._points[idx]
        return SpeedPoint(
            s=lerp(p0.s, p0.t, p1.s, p1.t, t),
            t=t,
            v=lerp(p0.v, p0.t, p1.v, p1.t, t),
            a=lerp(p0.a, p0.t, p1.a, p1.t, t),
            da=lerp(p0.da, p0.t, p1.da, p1.t, t),
        )

    def evaluate_by_s(self, s: float) -> Optional[SpeedPoint]:
        if len(self._points) < 2:
            return None
        if not (self._points[0].s < s + 1.0e-6 and s - 1.0e-6 < self._points[-1].s):
            return None

        distances = [p.s for p in self._points]
        idx = bisect.bisect_left(distances, s)
        if idx == len(self._points):
            idx = len(self._points) - 1
        if idx == 0:
            idx = 1
        p0 = self._points[idx - 1]
        p1 = self._points[idx]
        return SpeedPoint(
            s=s,
            t=lerp(p0.t, p0.s, p1.t, p1.s, s),
            v=lerp(p0.v, p0.s, p1.v, p1.s, s),
            a=lerp(p0.a, p0.s, p1.a, p1.s, s),
            da=lerp(p0.da, p0.s, p1.da, p1.s, s),
        )

    def fill_enough_speed_points(self, total_time: float, time_unit: float):
        """Append stationary points at the last position until total_time."""
        if not self._points:
            return
        last_point = self._points[-1]
        if last_point.t >= total_time:
            return
        t = last_point.t + time_unit
        while t < total_time:
            self.append_speed_point(last_point.s, t, 0.0, 0.0, 0.0)
            t += time_unit

    def copy(self) -> "SpeedData":
        return SpeedData(SpeedPoint(p.s, p.t, p.v, p.a, p.da) for p in self._points)


class SpeedLimit:
    """Sorted (s, v_limit) points along the path."""

    def __init__(self, speed_limit_points: Optional[Iterable[Tuple[float, float]]] = None):
        self._points: List[Tuple[float, float]] = sorted(speed_limit_points or [])

    def append_speed_limit(self, s: float, v: float):
        if self._points and s < self._points[-1][0]:
            raise ValueError(f"speed limit point s={s} precedes last point s={self._points[-1][0]}")
        self._points.append((s, v))

    def speed_limit_points(self) -> List[Tuple[float, float]]:
        return self._points

    def get_speed_limit_by_s(self, s: float) -> float:
        """Limit of the first point at or beyond s (last point's limit beyond the end)."""
        if len(self._points) < 2:
            raise ValueError("speed limit needs at least two points")
        distances = [p[0] for p in self._points]
        idx = bisect.bisect_left(distances, s)
        if idx == len(self._points):
            return self._points[-1][1]
        return self._points[idx][1]

    def min_speed_limit(self) -> float:
        return min(v for _, v in self._points)

    @classmethod
    def constant(cls, v_limit: float, length: float, ds: float = 1.0) -> "SpeedLimit":
        n = max(2, int(length / ds) + 1)
        return cls((i * ds, v_limit) for i in range(n))
