# -*- coding: utf-8 -*-
"""
pwj_speed/diagnostics.py

Write-only diagnostic sink. The optimizer records intermediate results
here when a sink is supplied; nothing is ever read back by the core.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .speed_data import SpeedPoint


@dataclass
class SpeedPlanDebug:
    name: str
    speed_points: List[SpeedPoint] = field(default_factory=list)


@dataclass
class StGraphBoundaryDebug:
    name: str
    boundary_type: str
    points: List[Tuple[float, float]] = field(default_factory=list)  # (t, s)


@dataclass
class StGraphDebug:
    name: str
    boundaries: List[StGraphBoundaryDebug] = field(default_factory=list)
    speed_limit: List[Tuple[float, float]] = field(default_factory=list)  # (s, v)


@dataclass
class PlanningDebug:
    speed_plans: List[SpeedPlanDebug] = field(default_factory=list)
    st_graphs: List[StGraphDebug] = field(default_factory=list)

    def add_speed_plan(self, name: str, speed_points: Sequence[SpeedPoint] = ()) -> SpeedPlanDebug:
        plan = SpeedPlanDebug(name=name, speed_points=list(speed_points))
        self.speed_plans.append(plan)
        return plan

    def add_st_graph(self, name: str) -> StGraphDebug:
        graph = StGraphDebug(name=name)
        self.st_graphs.append(graph)
        return graph

    def speed_plan(self, name: str) -> Optional[SpeedPlanDebug]:
        for plan in self.speed_plans:
            if plan.name == name:
                return plan
        return None

    def is_empty(self) -> bool:
        return not self.speed_plans and not self.st_graphs


def drive_boundary_polyline(s_bounds: Sequence[Tuple[float, float]], delta_t: float) -> List[Tuple[float, float]]:
    """Closed drivable polygon: lower bounds forward in time, then upper bounds backward."""
    points = [(i * delta_t, lower) for i, (lower, _) in enumerate(s_bounds)]
    for i in range(len(s_bounds) - 1, -1, -1):
        points.append((i * delta_t, s_bounds[i][1]))
    return points
