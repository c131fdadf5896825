# -*- coding: utf-8 -*-
"""
pwj_speed/trajectory1d.py

Piecewise-jerk reference curves.

A curve is a chain of constant-jerk segments integrated in closed form:
    x(t)   = x0 + v0*t + 0.5*a0*t^2 + (1/6)*j*t^3
    x'(t)  = v0 + a0*t + 0.5*j*t^2
    x''(t) = a0 + j*t
The independent variable is time for speed profiles and arc length for
the curvature / speed-limit references.
"""

import bisect
from typing import List

import numpy as np


class ConstantJerkTrajectory1d:

    def __init__(self, p0: float, v0: float, a0: float, jerk: float, param: float):
        if param <= 0.0:
            raise ValueError(f"segment length must be positive, got {param}")
        self.p0 = p0
        self.v0 = v0
        self.a0 = a0
        self.jerk = jerk
        self.param = param

        self.p1 = self.evaluate(0, param)
        self.v1 = self.evaluate(1, param)
        self.a1 = self.evaluate(2, param)

    def evaluate(self, order: int, param: float) -> float:
        if order == 0:
            return (self.p0 + self.v0 * param + 0.5 * self.a0 * param * param
                    + self.jerk * param * param * param / 6.0)
        if order == 1:
            return self.v0 + self.a0 * param + 0.5 * self.jerk * param * param
        if order == 2:
            return self.a0 + self.jerk * param
        if order == 3:
            return self.jerk
        return 0.0

    @property
    def start_position(self) -> float:
        return self.p0

    @property
    def end_position(self) -> float:
        return self.p1

    @property
    def end_velocity(self) -> float:
        return self.v1

    @property
    def end_acceleration(self) -> float:
        return self.a1


class PiecewiseJerkTrajectory1d:
    """Continuous chain of ConstantJerkTrajectory1d segments starting at (p, v, a)."""

    def __init__(self, p: float, v: float, a: float):
        self._last_p = p
        self._last_v = v
        self._last_a = a
        self._segments: List[ConstantJerkTrajectory1d] = []
        self._param: List[float] = []  # cumulative end param of each segment

    def append_segment(self, jerk: float, param: float):
        segment = ConstantJerkTrajectory1d(self._last_p, self._last_v, self._last_a, jerk, param)
        self._segments.append(segment)
        self._param.append(param if not self._param else self._param[-1] + param)

        self._last_p = segment.end_position
        self._last_v = segment.end_velocity
        self._last_a = segment.end_acceleration

    @property
    def segments(self) -> List[ConstantJerkTrajectory1d]:
        return self._segments

    @property
    def param_length(self) -> float:
        return self._param[-1] if self._param else 0.0

    def evaluate(self, order: int, param: float) -> float:
        """Value (order 0) or derivative (order 1..3) at param; clamped to the first/last segment."""
        if not self._segments:
            return (self._last_p, self._last_v, self._last_a, 0.0)[order] if 0 <= order <= 3 else 0.0

        idx = bisect.bisect_left(self._param, param)
        if idx == 0:
            return self._segments[0].evaluate(order, param)
        if idx == len(self._param):
            return self._segments[-1].evaluate(order, param - self._param[-2] if len(self._param) > 1 else param)
        return self._segments[idx].evaluate(order, param - self._param[idx - 1])

    def evaluate_array(self, order: int, params) -> np.ndarray:
        return np.array([self.evaluate(order, float(p)) for p in params])
