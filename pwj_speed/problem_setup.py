# -*- coding: utf-8 -*-
"""
pwj_speed/problem_setup.py

Per-cycle problem description shared by the QP and NLP stages, and the
checkpoint carried through the QP -> NLP pipeline.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .speed_bounds import SpeedBounds


@dataclass
class SpeedProblemSetup:
    """Initial state, knot grid and global bounds of one optimization cycle."""
    s_init: float
    s_dot_init: float
    s_ddot_init: float
    delta_t: float
    num_of_knots: int
    total_length: float
    total_time: float

    max_speed: float      # legal speed limit of the cycle
    s_dot_max: float      # max(max_speed, v_init + 1.0), NLP speed bound
    s_ddot_min: float
    s_ddot_max: float
    s_dddot_min: float
    s_dddot_max: float

    bounds: SpeedBounds = field(default_factory=SpeedBounds)
    cruise_speed: float = 0.0

    @property
    def init_state(self):
        return (self.s_init, self.s_dot_init, self.s_ddot_init)

    def knot_times(self) -> List[float]:
        return [i * self.delta_t for i in range(self.num_of_knots)]


@dataclass
class SpeedProfile:
    distance: List[float] = field(default_factory=list)
    velocity: List[float] = field(default_factory=list)
    acceleration: List[float] = field(default_factory=list)

    def is_valid(self) -> bool:
        return (len(self.distance) > 0
                and len(self.distance) == len(self.velocity) == len(self.acceleration))

    def __len__(self) -> int:
        return len(self.distance)


@dataclass(frozen=True)
class SpeedProfileCheckpoint:
    """
    Best profile so far. A stage either upgrades it (returns a new
    checkpoint) or leaves it untouched; it is never partially overwritten.
    """
    profile: SpeedProfile
    stage: str
    upgraded: bool = False
    degraded_reason: Optional[str] = None

    def upgrade(self, profile: SpeedProfile, stage: str) -> "SpeedProfileCheckpoint":
        if not profile.is_valid() or len(profile) != len(self.profile):
            return self.keep(f"{stage} returned an invalid profile")
        return SpeedProfileCheckpoint(profile=profile, stage=stage, upgraded=True)

    def keep(self, reason: str) -> "SpeedProfileCheckpoint":
        return SpeedProfileCheckpoint(profile=self.profile, stage=self.stage,
                                      upgraded=self.upgraded, degraded_reason=reason)
