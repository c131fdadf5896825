# -*- coding: utf-8 -*-
"""
pwj_speed/profile_smoother.py

Jerk-bounded fits of raw 1-D signals, used as nonlinear references:
- path curvature kappa(s)
- speed limit v_limit(s)

Each fit is a PiecewiseJerkPathProblem over evenly spaced samples; the
optimal (x, dx, ddx) is rebuilt into a PiecewiseJerkTrajectory1d so it can
be evaluated (with derivatives) anywhere along the arc length.
"""

import logging
from typing import Sequence

from .errors import SmoothingFailure
from .parameters import SmoothingConfig
from .path_data import PathData
from .piecewise_jerk_problem import PiecewiseJerkPathProblem
from .speed_data import SpeedLimit
from .trajectory1d import PiecewiseJerkTrajectory1d

logger = logging.getLogger(__name__)


def smooth_profile(samples: Sequence[float], init_state: Sequence[float], config: SmoothingConfig,
                   name: str = "profile") -> PiecewiseJerkTrajectory1d:
    if len(samples) < 2:
        raise SmoothingFailure(f"Smoothing {name} failed: need at least 2 samples, got {len(samples)}")

    delta_s = config.delta_s
    problem = PiecewiseJerkPathProblem(len(samples), delta_s, init_state)
    problem.set_x_bounds(*config.x_bounds)
    problem.set_dx_bounds(*config.dx_bounds)
    problem.set_ddx_bounds(*config.ddx_bounds)
    problem.set_dddx_bound(*config.dddx_bounds)

    problem.set_weight_x(config.weight_x)
    problem.set_weight_dx(config.weight_dx)
    problem.set_weight_ddx(config.weight_ddx)
    problem.set_weight_dddx(config.weight_dddx)

    problem.set_x_ref(config.weight_x_ref, list(samples))

    if not problem.optimize(config.max_iter):
        msg = f"Smoothing {name} failed"
        logger.error(msg)
        raise SmoothingFailure(msg, status=problem.status)

    opt_x = problem.opt_x
    opt_dx = problem.opt_dx
    opt_ddx = problem.opt_ddx

    curve = PiecewiseJerkTrajectory1d(opt_x[0], opt_dx[0], opt_ddx[0])
    for i in range(1, len(opt_ddx)):
        jerk = (opt_ddx[i] - opt_ddx[i - 1]) / delta_s
        curve.append_segment(jerk, delta_s)
    return curve


def sample_path_curvature(path_data: PathData, delta_s: float):
    cartesian_path = path_data.discretized_path
    path_curvature = []
    path_s = cartesian_path.front().s
    end_s = cartesian_path.back().s + delta_s
    while path_s < end_s:
        path_curvature.append(cartesian_path.evaluate(path_s).kappa)
        path_s += delta_s
    return path_curvature


def smooth_path_curvature(path_data: PathData, config: SmoothingConfig) -> PiecewiseJerkTrajectory1d:
    path_curvature = sample_path_curvature(path_data, config.delta_s)
    path_init_point = path_data.discretized_path.front()
    init_state = (path_init_point.kappa, path_init_point.dkappa, path_init_point.ddkappa)
    return smooth_profile(path_curvature, init_state, config, name="path curvature")


def smooth_speed_limit(speed_limit: SpeedLimit, config: SmoothingConfig) -> PiecewiseJerkTrajectory1d:
    num_samples = config.num_samples if config.num_samples > 0 else 100
    if len(speed_limit.speed_limit_points()) < 2:
        raise SmoothingFailure("Smoothing speed limit failed: need at least 2 speed limit points")
    speed_ref = [speed_limit.get_speed_limit_by_s(i * config.delta_s) for i in range(num_samples)]
    init_state = (speed_ref[0], 0.0, 0.0)
    return smooth_profile(speed_ref, init_state, config, name="speed limit")
