# -*- coding: utf-8 -*-
"""
================================================================================
ST-Boundary -> per-knot s bounds
================================================================================

For every knot t_i = i * delta_t the drivable region starts as
[0, total_length] and each STBoundary active at t_i tightens it:

    STOP      upper = min(upper, drive_upper)          soft_upper = min(soft_upper, drive_upper)
    YIELD     upper = min(upper, drive_upper - gap)    soft_upper = min(soft_upper, drive_upper)
    FOLLOW    upper = min(upper, drive_upper - gap)    soft_upper = min(soft_upper, drive_upper - follow_dist(v_ref))
    OVERTAKE  lower = max(lower, drive_lower)          soft_lower = max(soft_lower, drive_lower + overtake_safe_dist)

Caps and floors are min/max folds, so the boundary order does not matter.
After the fold an empty region is clamped, never rejected:
    upper <= 0      -> upper = 0 + eps
    upper <= lower  -> lower = upper - eps
then the emergency-braking curve may relax the hard upper bound upward
(braking feasibility wins over follow/yield tightness).

Simplified mode (soft bounds disabled) uses fixed margins and rejects an
empty region with InfeasibleBoundsError.

Base: Apollo piecewise_jerk_speed_nonlinear_optimizer.cc SetUpStatesAndBounds
================================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import InfeasibleBoundsError, InputError
from .parameters import PiecewiseJerkNonlinearSpeedConfig, PlanningFlags
from .speed_data import SpeedData
from .st_graph import BoundaryType, STBoundary

logger = logging.getLogger(__name__)

# |end_interaction_point.time - t| below this selects the end-interaction gap
END_INTERACTION_TIME_TOLERANCE = 0.05


@dataclass
class SpeedBounds:
    s_bounds: List[Tuple[float, float]] = field(default_factory=list)
    s_soft_bounds: List[Tuple[float, float]] = field(default_factory=list)

    @property
    def has_soft_bounds(self) -> bool:
        return bool(self.s_soft_bounds)


def interaction_gap(boundary: STBoundary, curr_t: float) -> float:
    """Characteristic gap, widened by the end-interaction gap at the interaction end time."""
    s_gap = boundary.characteristic_length
    if boundary.is_end_interaction_point_valid():
        poi = boundary.end_interaction_point
        if abs(poi.time - curr_t) < END_INTERACTION_TIME_TOLERANCE:
            s_gap = max(s_gap, poi.s_gap)
    return s_gap


def soft_follow_distance(v_ref: float, s_gap: float, flags: PlanningFlags) -> float:
    # never looser than the hard follow gap
    follow_dist = flags.follow_min_distance + min(flags.follow_distance_cap,
                                                  flags.follow_time_buffer * max(0.0, v_ref))
    return max(s_gap, follow_dist)


def clamp_bound_pair(lower: float, upper: float, base_lower: float, eps: float) -> Tuple[float, float]:
    if upper <= base_lower:
        upper = base_lower + eps
    if upper <= lower:
        lower = upper - eps
    return lower, upper


class _KnotBounds:
    """Accumulator of one knot's hard and soft bounds."""

    def __init__(self, total_length: float):
        self.lower = 0.0
        self.upper = total_length
        self.soft_lower = 0.0
        self.soft_upper = total_length

    def cap_upper(self, hard_upper: float, soft_upper: float):
        self.upper = min(self.upper, hard_upper)
        self.soft_upper = min(self.soft_upper, soft_upper)

    def raise_lower(self, hard_lower: float, soft_lower: float):
        self.lower = max(self.lower, hard_lower)
        self.soft_lower = max(self.soft_lower, soft_lower)


def _apply_boundary(knot: _KnotBounds, boundary: STBoundary, drive_s_lower: float, drive_s_upper: float,
                    curr_t: float, v_ref: float, flags: PlanningFlags,
                    config: PiecewiseJerkNonlinearSpeedConfig):
    boundary_type = boundary.boundary_type
    if boundary_type == BoundaryType.STOP:
        knot.cap_upper(drive_s_upper, drive_s_upper)
    elif boundary_type == BoundaryType.YIELD:
        s_gap = interaction_gap(boundary, curr_t)
        knot.cap_upper(drive_s_upper - s_gap, drive_s_upper)
    elif boundary_type == BoundaryType.FOLLOW:
        s_gap = interaction_gap(boundary, curr_t)
        knot.cap_upper(drive_s_upper - s_gap,
                       drive_s_upper - soft_follow_distance(v_ref, s_gap, flags))
    elif boundary_type == BoundaryType.OVERTAKE:
        knot.raise_lower(drive_s_lower, drive_s_lower + config.overtake_safe_distance)
    else:
        raise ValueError(f"unhandled boundary type {boundary_type}")


def compile_soft_speed_bounds(boundaries: List[STBoundary], num_of_knots: int, delta_t: float,
                              total_length: float, rough_speed_data: SpeedData,
                              emergency_brake_curve: Optional[SpeedData],
                              flags: PlanningFlags,
                              config: PiecewiseJerkNonlinearSpeedConfig) -> SpeedBounds:
    eps = config.s_bound_epsilon
    bounds = SpeedBounds()

    for i in range(num_of_knots):
        curr_t = i * delta_t
        knot = _KnotBounds(total_length)

        brake_point = None
        v_ref = 0.0
        if boundaries:
            if emergency_brake_curve is not None:
                brake_point = emergency_brake_curve.evaluate_by_time(curr_t)
            dp_speed_point = rough_speed_data.evaluate_by_time(curr_t)
            if dp_speed_point is None:
                msg = "rough speed profile estimation for soft follow fence failed"
                logger.error(msg)
                raise InputError(msg)
            v_ref = dp_speed_point.v

        for boundary in boundaries:
            unblock = boundary.get_unblock_s_range(curr_t)
            if unblock is None:
                continue
            drive_s_lower, drive_s_upper = unblock
            _apply_boundary(knot, boundary, drive_s_lower, drive_s_upper, curr_t, v_ref, flags, config)

        s_lower, s_upper = clamp_bound_pair(knot.lower, knot.upper, 0.0, eps)
        s_soft_lower, s_soft_upper = clamp_bound_pair(knot.soft_lower, knot.soft_upper, 0.0, eps)

        # follow-generated upper bound may not cut into the braking envelope
        if brake_point is not None:
            s_upper = max(s_upper, brake_point.s + config.emergency_brake_margin)

        if s_lower > s_upper:
            msg = "s_lower_bound larger than s_upper_bound on STGraph"
            logger.error(f"{msg} (t={curr_t:.2f}s, lower={s_lower:.3f}, upper={s_upper:.3f})")
            raise InfeasibleBoundsError(msg, knot_index=i)

        logger.debug(f"t={curr_t:.2f} lower={s_lower:.3f} upper={s_upper:.3f} "
                     f"soft=[{s_soft_lower:.3f}, {s_soft_upper:.3f}]")
        bounds.s_bounds.append((s_lower, s_upper))
        bounds.s_soft_bounds.append((s_soft_lower, s_soft_upper))

    return bounds


def compile_simple_speed_bounds(boundaries: List[STBoundary], num_of_knots: int, delta_t: float,
                                total_length: float,
                                config: PiecewiseJerkNonlinearSpeedConfig) -> SpeedBounds:
    bounds = SpeedBounds()

    for i in range(num_of_knots):
        curr_t = i * delta_t
        s_lower_bound = 0.0
        s_upper_bound = total_length

        for boundary in boundaries:
            unblock = boundary.get_unblock_s_range(curr_t)
            if unblock is None:
                continue
            s_lower, s_upper = unblock
            boundary_type = boundary.boundary_type
            if boundary_type in (BoundaryType.STOP, BoundaryType.YIELD):
                s_upper_bound = min(s_upper_bound, s_upper)
            elif boundary_type == BoundaryType.FOLLOW:
                s_upper_bound = min(s_upper_bound, s_upper - config.simple_follow_margin)
            elif boundary_type == BoundaryType.OVERTAKE:
                s_lower_bound = max(s_lower_bound, s_lower)
            else:
                raise ValueError(f"unhandled boundary type {boundary_type}")

        if s_lower_bound > s_upper_bound:
            msg = "s_lower_bound larger than s_upper_bound on STGraph"
            logger.error(f"{msg} (t={curr_t:.2f}s, lower={s_lower_bound:.3f}, upper={s_upper_bound:.3f})")
            raise InfeasibleBoundsError(msg, knot_index=i)
        bounds.s_bounds.append((s_lower_bound, s_upper_bound))

    return bounds


def compile_speed_bounds(boundaries: List[STBoundary], num_of_knots: int, delta_t: float,
                         total_length: float, rough_speed_data: SpeedData,
                         emergency_brake_curve: Optional[SpeedData],
                         flags: PlanningFlags,
                         config: PiecewiseJerkNonlinearSpeedConfig) -> SpeedBounds:
    if flags.use_soft_bound_in_nonlinear_speed_opt:
        return compile_soft_speed_bounds(boundaries, num_of_knots, delta_t, total_length,
                                         rough_speed_data, emergency_brake_curve, flags, config)
    return compile_simple_speed_bounds(boundaries, num_of_knots, delta_t, total_length, config)
