# -*- coding: utf-8 -*-
"""
pwj_speed/path_data.py

Path geometry consumed by the speed optimizer (read-only).

s is measured from the start of the path. Dense points can be obtained
with evaluate(), which linearly interpolates between the two neighbouring
path points and clamps to the ends.
"""

import bisect
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .utils import lerp


@dataclass
class PathPoint:
    x: float = 0.0
    y: float = 0.0
    theta: float = 0.0
    kappa: float = 0.0
    dkappa: float = 0.0
    ddkappa: float = 0.0
    s: float = 0.0


def interpolate_path_point(p0: PathPoint, p1: PathPoint, s: float) -> PathPoint:
    # theta is interpolated linearly too; path segments are short
    return PathPoint(
        x=lerp(p0.x, p0.s, p1.x, p1.s, s),
        y=lerp(p0.y, p0.s, p1.y, p1.s, s),
        theta=lerp(p0.theta, p0.s, p1.theta, p1.s, s),
        kappa=lerp(p0.kappa, p0.s, p1.kappa, p1.s, s),
        dkappa=lerp(p0.dkappa, p0.s, p1.dkappa, p1.s, s),
        ddkappa=lerp(p0.ddkappa, p0.s, p1.ddkappa, p1.s, s),
        s=s,
    )


class DiscretizedPath:
    """Arc-length ordered path points."""

    def __init__(self, path_points: Optional[Iterable[PathPoint]] = None):
        self._points: List[PathPoint] = list(path_points) if path_points is not None else []
        self._s: List[float] = [p.s for p in self._points]

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self):
        return iter(self._points)

    def __getitem__(self, index):
        return self._points[index]

    def empty(self) -> bool:
        return not self._points

    def front(self) -> PathPoint:
        return self._points[0]

    def back(self) -> PathPoint:
        return self._points[-1]

    @property
    def length(self) -> float:
        if not self._points:
            return 0.0
        return self._points[-1].s - self._points[0].s

    @property
    def max_s(self) -> float:
        if not self._points:
            return 0.0
        return self._points[-1].s

    def evaluate(self, path_s: float) -> PathPoint:
        if not self._points:
            raise ValueError("evaluate() on empty path")
        idx = bisect.bisect_left(self._s, path_s)
        if idx == 0:
            return self._points[0]
        if idx == len(self._points):
            return self._points[-1]
        return interpolate_path_point(self._points[idx - 1], self._points[idx], path_s)


@dataclass
class PathData:
    discretized_path: DiscretizedPath

    @classmethod
    def from_points(cls, points: Iterable[PathPoint]) -> "PathData":
        return cls(DiscretizedPath(points))
