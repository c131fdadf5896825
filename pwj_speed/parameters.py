# -*- coding: utf-8 -*-
"""
pwj_speed/parameters.py

Parameter dataclasses for the piecewise-jerk speed optimizer.

Categories:
- VehicleParam: kinematic limits of the ego vehicle
- PlanningFlags: global planning toggles and comfort limits
- SmoothingConfig: settings of one reference-curve fit (curvature / speed limit)
- PiecewiseJerkNonlinearSpeedConfig: objective weights, knot spacing, solver budgets

Defaults follow the Apollo planning configuration
(piecewise_jerk_nonlinear_speed_optimizer_config, planning_gflags).
"""

from dataclasses import dataclass, field
from typing import Tuple


@dataclass
class VehicleParam:
    """Vehicle kinematic limits [m/s^2]. Deceleration is stored as a magnitude."""
    max_acceleration: float = 2.0
    max_deceleration: float = 6.0

    def __post_init__(self):
        if self.max_acceleration <= 0.0:
            raise ValueError(f"max_acceleration must be positive, got {self.max_acceleration}")
        if self.max_deceleration == 0.0:
            raise ValueError("max_deceleration must be non-zero")


@dataclass
class PlanningFlags:
    # Comfort jerk limits [m/s^3]
    longitudinal_jerk_lower_bound: float = -4.0
    longitudinal_jerk_upper_bound: float = 2.0

    # Soft follow fence: min_distance + min(cap, time_buffer * v_ref)
    follow_min_distance: float = 3.0
    follow_time_buffer: float = 2.5
    follow_distance_cap: float = 7.0

    # Feature toggles
    use_soft_bound_in_nonlinear_speed_opt: bool = True
    use_smoothed_dp_guide_line: bool = False
    enable_speed_nlp: bool = True

    # Minimum profile length for downstream consumers
    fallback_total_time: float = 3.0
    fallback_time_unit: float = 0.1

    def __post_init__(self):
        if self.longitudinal_jerk_upper_bound <= 0.0:
            raise ValueError("longitudinal_jerk_upper_bound must be positive")
        if self.fallback_time_unit <= 0.0:
            raise ValueError("fallback_time_unit must be positive")


@dataclass
class SmoothingConfig:
    """
    Settings of one piecewise-jerk curve fit.

    Here "dx" is the derivative of the fitted quantity w.r.t. arc length,
    not the vehicle speed.
    """
    delta_s: float
    max_iter: int
    num_samples: int = 0  # 0: sample the whole domain
    x_bounds: Tuple[float, float] = (-1.0, 1.0)
    dx_bounds: Tuple[float, float] = (-10.0, 10.0)
    ddx_bounds: Tuple[float, float] = (-10.0, 10.0)
    dddx_bounds: Tuple[float, float] = (-10.0, 10.0)
    weight_x: float = 0.0
    weight_dx: float = 10.0
    weight_ddx: float = 10.0
    weight_dddx: float = 10.0
    weight_x_ref: float = 10.0

    def __post_init__(self):
        if self.delta_s <= 0.0:
            raise ValueError(f"delta_s must be positive, got {self.delta_s}")
        if self.max_iter <= 0:
            raise ValueError(f"max_iter must be positive, got {self.max_iter}")
        for name in ("x_bounds", "dx_bounds", "ddx_bounds", "dddx_bounds"):
            lower, upper = getattr(self, name)
            if lower > upper:
                raise ValueError(f"{name} inverted: ({lower}, {upper})")
        for name in ("weight_x", "weight_dx", "weight_ddx", "weight_dddx", "weight_x_ref"):
            if getattr(self, name) < 0.0:
                raise ValueError(f"{name} must be non-negative")


def _curvature_smoothing() -> SmoothingConfig:
    return SmoothingConfig(delta_s=0.5, max_iter=1000, x_bounds=(-1.0, 1.0))


def _speed_limit_smoothing() -> SmoothingConfig:
    return SmoothingConfig(delta_s=2.0, max_iter=4000, num_samples=100, x_bounds=(0.0, 50.0))


@dataclass
class PiecewiseJerkNonlinearSpeedConfig:

    # Objective weights
    acc_weight: float = 2.0
    jerk_weight: float = 3.0
    lat_acc_weight: float = 1000.0
    s_potential_weight: float = 0.05
    ref_v_weight: float = 5.0
    ref_s_weight: float = 100.0
    soft_s_bound_weight: float = 1e6
    dp_guide_line_weight: float = 0.05

    use_warm_start: bool = True

    # Knot spacing [s]
    delta_t: float = 0.1

    # Iteration ceilings, the only timing budget enforced inside a cycle
    qp_max_iter: int = 4000
    nlp_max_iter: int = 1000

    # Bound algebra constants [m]
    s_bound_epsilon: float = 0.1
    overtake_safe_distance: float = 10.0
    emergency_brake_margin: float = 0.2
    simple_follow_margin: float = 8.0

    curvature_smoothing: SmoothingConfig = field(default_factory=_curvature_smoothing)
    speed_limit_smoothing: SmoothingConfig = field(default_factory=_speed_limit_smoothing)

    def __post_init__(self):
        if self.delta_t <= 0.0:
            raise ValueError(f"delta_t must be positive, got {self.delta_t}")
        for name in ("acc_weight", "jerk_weight", "lat_acc_weight", "s_potential_weight",
                     "ref_v_weight", "ref_s_weight", "soft_s_bound_weight", "dp_guide_line_weight"):
            if getattr(self, name) < 0.0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")
        if self.qp_max_iter <= 0 or self.nlp_max_iter <= 0:
            raise ValueError("iteration budgets must be positive")
        if self.s_bound_epsilon <= 0.0:
            raise ValueError("s_bound_epsilon must be positive")
