# -*- coding: utf-8 -*-
"""
================================================================================
Nonlinear refinement stage (CasADi + IPOPT)
================================================================================

Variables: s[0..n), v[0..n), a[0..n) and, with soft bounds enabled,
slack_lower[0..n), slack_upper[0..n).

Cost:
    w_ref_s * (s_i - s_ref_i)^2                       reference spatial distance
  + w_ref_v * (v_i - v_cruise)^2                      reference speed
  + w_a * a_i^2
  + w_j * ((a_{i+1} - a_i) / dt)^2
  + w_lat * (v_i^2 * kappa(s_i))^2                    centripetal acceleration proxy
  + w_soft * (slack_lower_i + slack_upper_i)          soft bound violation

Constraints:
    s_{i+1} - s_i >= 0
    jerk_min <= (a_{i+1} - a_i) / dt <= jerk_max
    s_{i+1} - s_i - dt*v_i - dt^2/3*a_i - dt^2/6*a_{i+1} = 0
    v_{i+1} - v_i - 0.5*dt*(a_i + a_{i+1}) = 0
    v_i - v_limit(s_i) <= 0
    s_i - soft_lower_i + slack_lower_i >= 0,  s_i - soft_upper_i - slack_upper_i <= 0
    s_i in hard bounds, v_i in [0, s_dot_max], a_i in [a_min, a_max], (s_0, v_0, a_0) fixed

kappa(s) and v_limit(s) are the smoothed PiecewiseJerkTrajectory1d curves,
handed to CasADi as B-spline interpolants so IPOPT gets exact derivatives.

The IPOPT instance construction is not reentrant: callers serialize
build + solve on the injected lock.

Base: Apollo piecewise_jerk_speed_nonlinear_ipopt_interface.cc
================================================================================
"""

import contextlib
import logging
from typing import ContextManager, List, Optional, Sequence, Tuple

import casadi as ca
import numpy as np

from .errors import IPOPT_SUCCESS, NonlinearSolveFailure, ipopt_status_name, translate_ipopt_status
from .problem_setup import SpeedProblemSetup, SpeedProfile
from .trajectory1d import PiecewiseJerkTrajectory1d

logger = logging.getLogger(__name__)

# grid spacing [m] used to sample reference curves into the interpolants
CURVE_SAMPLE_SPACING = 0.5


def curve_interpolant(name: str, curve: PiecewiseJerkTrajectory1d, s_max: float,
                      spacing: float = CURVE_SAMPLE_SPACING) -> ca.Function:
    """
    B-spline of curve(s) over [0, s_max]. Past the curve's own domain the
    end value is held.
    """
    s_end = max(s_max, curve.param_length, spacing)
    num = max(4, int(np.ceil(s_end / spacing)) + 1)
    grid = np.linspace(0.0, s_end, num)
    domain_end = curve.param_length
    values = [curve.evaluate(0, min(float(s), domain_end)) for s in grid]
    return ca.interpolant(name, "bspline", [grid.tolist()], values)


class PiecewiseJerkSpeedNonlinearProblem:

    def __init__(self, setup: SpeedProblemSetup):
        self.setup = setup
        self.num_of_knots = setup.num_of_knots
        self.delta_t = setup.delta_t

        self.s_bounds: List[Tuple[float, float]] = []
        self.s_soft_bounds: List[Tuple[float, float]] = []
        self.w_soft_s_bound = 0.0

        self.curvature_curve: Optional[PiecewiseJerkTrajectory1d] = None
        self.speed_limit_curve: Optional[PiecewiseJerkTrajectory1d] = None

        self.warm_start: Optional[np.ndarray] = None

        self.s_ref: Optional[np.ndarray] = None
        self.w_ref_s = 0.0
        self.v_ref = 0.0
        self.w_ref_v = 0.0
        self.w_overall_a = 0.0
        self.w_overall_j = 0.0
        self.w_overall_centripetal_acc = 0.0

        self.status: Optional[str] = None
        self.iterations = 0

    # ------------------------------------------------------------------
    # setters
    # ------------------------------------------------------------------
    def set_safety_bounds(self, s_bounds: Sequence[Tuple[float, float]]):
        if len(s_bounds) != self.num_of_knots:
            raise ValueError("safety bounds size does not match the number of knots")
        self.s_bounds = list(s_bounds)

    def set_soft_safety_bounds(self, s_soft_bounds: Sequence[Tuple[float, float]]):
        if len(s_soft_bounds) != self.num_of_knots:
            raise ValueError("soft safety bounds size does not match the number of knots")
        self.s_soft_bounds = list(s_soft_bounds)

    def set_w_soft_s_bound(self, weight: float):
        self.w_soft_s_bound = weight

    def set_curvature_curve(self, curve: PiecewiseJerkTrajectory1d):
        self.curvature_curve = curve

    def set_speed_limit_curve(self, curve: PiecewiseJerkTrajectory1d):
        self.speed_limit_curve = curve

    def set_warm_start(self, distance: Sequence[float], velocity: Sequence[float],
                       acceleration: Sequence[float]):
        if (not distance or not velocity or not acceleration
                or len(distance) != len(velocity) or len(velocity) != len(acceleration)
                or len(distance) != self.num_of_knots):
            msg = "Piecewise jerk speed nonlinear optimizer warm start invalid!"
            logger.error(msg)
            raise NonlinearSolveFailure(msg)
        self.warm_start = np.column_stack([distance, velocity, acceleration]).astype(float)

    def set_reference_spatial_distance(self, s_ref: Sequence[float]):
        if len(s_ref) != self.num_of_knots:
            raise ValueError("reference spatial distance size does not match the number of knots")
        self.s_ref = np.asarray(s_ref, dtype=float)

    def set_w_reference_spatial_distance(self, weight: float):
        self.w_ref_s = weight

    def set_reference_speed(self, v_ref: float):
        self.v_ref = v_ref

    def set_w_reference_speed(self, weight: float):
        self.w_ref_v = weight

    def set_w_overall_a(self, weight: float):
        self.w_overall_a = weight

    def set_w_overall_j(self, weight: float):
        self.w_overall_j = weight

    def set_w_overall_centripetal_acc(self, weight: float):
        self.w_overall_centripetal_acc = weight

    @property
    def use_soft_bounds(self) -> bool:
        return bool(self.s_soft_bounds)

    # ------------------------------------------------------------------
    # NLP assembly
    # ------------------------------------------------------------------
    def _starting_point(self) -> np.ndarray:
        n = self.num_of_knots
        setup = self.setup
        if self.warm_start is not None:
            s0 = self.warm_start[:, 0]
            v0 = self.warm_start[:, 1]
            a0 = self.warm_start[:, 2]
        else:
            v_start = min(max(setup.s_dot_init, 0.0), setup.s_dot_max)
            s0 = np.array([min(setup.s_init + v_start * i * self.delta_t, self.s_bounds[i][1])
                           for i in range(n)])
            s0 = np.maximum.accumulate(s0)
            v0 = np.full(n, v_start)
            a0 = np.zeros(n)
        parts = [s0, v0, a0]
        if self.use_soft_bounds:
            parts.extend([np.zeros(n), np.zeros(n)])
        return np.concatenate(parts)

    def build(self):
        if self.curvature_curve is None or self.speed_limit_curve is None:
            raise ValueError("curvature and speed limit curves must be set before build()")

        n = self.num_of_knots
        dt = self.delta_t
        setup = self.setup
        soft = self.use_soft_bounds
        n_vars = 5 * n if soft else 3 * n

        x = ca.MX.sym("x", n_vars)
        s = x[0:n]
        v = x[n:2 * n]
        a = x[2 * n:3 * n]

        s_max = max(setup.total_length, max(ub for _, ub in self.s_bounds))
        kappa = curve_interpolant("kappa", self.curvature_curve, s_max)
        v_limit = curve_interpolant("v_limit", self.speed_limit_curve, s_max)

        s_ref = self.s_ref if self.s_ref is not None else np.full(n, setup.total_length)

        obj = 0
        for i in range(n):
            obj += self.w_ref_s * (s[i] - s_ref[i]) ** 2
            obj += self.w_ref_v * (v[i] - self.v_ref) ** 2
            obj += self.w_overall_a * a[i] ** 2
            obj += self.w_overall_centripetal_acc * (v[i] ** 2 * kappa(s[i])) ** 2
        for i in range(n - 1):
            obj += self.w_overall_j * ((a[i + 1] - a[i]) / dt) ** 2

        g = []
        lbg = []
        ubg = []

        # monotone s
        for i in range(n - 1):
            g.append(s[i + 1] - s[i])
            lbg.append(0.0)
            ubg.append(ca.inf)

        # jerk
        for i in range(n - 1):
            g.append((a[i + 1] - a[i]) / dt)
            lbg.append(setup.s_dddot_min)
            ubg.append(setup.s_dddot_max)

        # position / velocity continuity
        for i in range(n - 1):
            g.append(s[i + 1] - s[i] - dt * v[i] - dt * dt / 3.0 * a[i] - dt * dt / 6.0 * a[i + 1])
            lbg.append(0.0)
            ubg.append(0.0)
        for i in range(n - 1):
            g.append(v[i + 1] - v[i] - 0.5 * dt * (a[i] + a[i + 1]))
            lbg.append(0.0)
            ubg.append(0.0)

        # speed limit along s
        for i in range(n):
            g.append(v[i] - v_limit(s[i]))
            lbg.append(-ca.inf)
            ubg.append(0.0)

        lbx = [lb for lb, _ in self.s_bounds] + [0.0] * n + [setup.s_ddot_min] * n
        ubx = [ub for _, ub in self.s_bounds] + [setup.s_dot_max] * n + [setup.s_ddot_max] * n

        if soft:
            slack_lower = x[3 * n:4 * n]
            slack_upper = x[4 * n:5 * n]
            for i in range(n):
                soft_lower, soft_upper = self.s_soft_bounds[i]
                obj += self.w_soft_s_bound * (slack_lower[i] + slack_upper[i])
                g.append(s[i] - soft_lower + slack_lower[i])
                lbg.append(0.0)
                ubg.append(ca.inf)
                g.append(s[i] - soft_upper - slack_upper[i])
                lbg.append(-ca.inf)
                ubg.append(0.0)
            lbx += [0.0] * (2 * n)
            ubx += [ca.inf] * (2 * n)

        # initial state
        lbx[0] = ubx[0] = setup.s_init
        lbx[n] = ubx[n] = setup.s_dot_init
        lbx[2 * n] = ubx[2 * n] = setup.s_ddot_init

        nlp = {"x": x, "f": obj, "g": ca.vertcat(*g)}
        return nlp, lbx, ubx, lbg, ubg

    def solve(self, max_iter: int = 1000) -> SpeedProfile:
        nlp, lbx, ubx, lbg, ubg = self.build()
        opts = {
            "ipopt.print_level": 0,
            "ipopt.sb": "yes",
            "ipopt.max_iter": max_iter,
            "print_time": False,
        }
        solver = ca.nlpsol("solver", "ipopt", nlp, opts)

        try:
            sol = solver(x0=self._starting_point(), lbx=lbx, ubx=ubx, lbg=lbg, ubg=ubg)
        except RuntimeError as exc:
            msg = "Piecewise jerk speed nonlinear optimizer failed"
            logger.error(f"{msg}: {exc}")
            raise NonlinearSolveFailure(msg) from exc

        stats = solver.stats()
        return_status = stats.get("return_status")
        self.iterations = int(stats.get("iter_count", 0))
        translated = translate_ipopt_status(return_status)
        self.status = ipopt_status_name(return_status)

        if translated not in IPOPT_SUCCESS:
            if translated is None:
                logger.error(f"Solver ends with unknown failure code: {return_status}")
            else:
                logger.error(f"Solver failure case is : {self.status}")
            msg = "Piecewise jerk speed nonlinear optimizer failed"
            logger.error(msg)
            raise NonlinearSolveFailure(msg, status=self.status)

        logger.debug(f"*** The problem solved in {self.iterations} iterations, "
                     f"objective {float(sol['f']):.4f}")

        n = self.num_of_knots
        z = np.asarray(sol["x"]).flatten()
        return SpeedProfile(distance=z[0:n].tolist(),
                            velocity=z[n:2 * n].tolist(),
                            acceleration=z[2 * n:3 * n].tolist())


def optimize_by_nlp(problem: PiecewiseJerkSpeedNonlinearProblem, max_iter: int,
                    lock: Optional[ContextManager] = None) -> SpeedProfile:
    """Solve under the NLP serialization lock (no-op when lock is None)."""
    with (lock if lock is not None else contextlib.nullcontext()):
        return problem.solve(max_iter)
