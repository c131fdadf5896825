# -*- coding: utf-8 -*-
"""
pwj_speed/qp_speed.py

Convex relaxation stage: jerk-minimising QP on s(t) that tracks the rough
prior profile inside the per-knot hard bounds. Curvature and the
arc-length speed limit are nonlinear in s(t) and are left to the NLP
stage; the QP only sees the scalar speed bound

    speed_limit = max(max_speed, v_init + 0.1)

so the current speed is always inside its own starting bound.
"""

import logging
from typing import List

from .errors import ConvexSolveFailure
from .parameters import PiecewiseJerkNonlinearSpeedConfig
from .piecewise_jerk_problem import PiecewiseJerkSpeedProblem
from .problem_setup import SpeedProblemSetup, SpeedProfile
from .speed_data import SpeedData

logger = logging.getLogger(__name__)

QP_INIT_SPEED_MARGIN = 0.1


def resample_reference_distance(rough_speed_data: SpeedData, setup: SpeedProblemSetup) -> List[float]:
    """Rough prior s at every knot; times past the prior's end are clamped to it."""
    x_ref = []
    t_begin = rough_speed_data.front().t
    t_end = rough_speed_data.back().t
    for curr_t in setup.knot_times():
        point = rough_speed_data.evaluate_by_time(min(max(curr_t, t_begin), t_end))
        x_ref.append(point.s if point is not None else setup.s_init)
    return x_ref


def build_qp_problem(setup: SpeedProblemSetup, rough_speed_data: SpeedData,
                     config: PiecewiseJerkNonlinearSpeedConfig) -> PiecewiseJerkSpeedProblem:
    problem = PiecewiseJerkSpeedProblem(setup.num_of_knots, setup.delta_t, setup.init_state)

    speed_limit = max(setup.max_speed, setup.s_dot_init + QP_INIT_SPEED_MARGIN)
    problem.set_dx_bounds(0.0, speed_limit)
    problem.set_ddx_bounds(setup.s_ddot_min, setup.s_ddot_max)
    problem.set_dddx_bound(setup.s_dddot_min, setup.s_dddot_max)
    problem.set_x_bounds(setup.bounds.s_bounds)

    problem.set_weight_x(0.0)
    problem.set_weight_dx(0.0)
    problem.set_weight_ddx(config.acc_weight)
    problem.set_weight_dddx(config.jerk_weight)

    if len(rough_speed_data) >= 2:
        problem.set_x_ref(config.ref_s_weight, resample_reference_distance(rough_speed_data, setup))
    else:
        logger.warning("rough speed profile has fewer than 2 points, QP runs without position reference")
    return problem


def optimize_by_qp(setup: SpeedProblemSetup, rough_speed_data: SpeedData,
                   config: PiecewiseJerkNonlinearSpeedConfig) -> SpeedProfile:
    problem = build_qp_problem(setup, rough_speed_data, config)

    if not problem.optimize(config.qp_max_iter):
        msg = "Speed Optimization by Quadratic Programming failed"
        logger.error(f"{msg} (status: {problem.status})")
        raise ConvexSolveFailure(msg, status=problem.status)

    return SpeedProfile(distance=list(problem.opt_x),
                        velocity=list(problem.opt_dx),
                        acceleration=list(problem.opt_ddx))
