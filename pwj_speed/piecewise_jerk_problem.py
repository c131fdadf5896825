# -*- coding: utf-8 -*-
"""
================================================================================
Piecewise Jerk QP (OSQP)
================================================================================

Decision variables (n knots, spacing delta):
    z = [x_0..x_{n-1}, dx_0..dx_{n-1}, ddx_0..ddx_{n-1}]

Constraints:
    x_lb[i]   <= x_i   <= x_ub[i]
    dx_lb[i]  <= dx_i  <= dx_ub[i]
    ddx_lb[i] <= ddx_i <= ddx_ub[i]
    dddx_lb*delta <= ddx_{i+1} - ddx_i <= dddx_ub*delta          (jerk)
    dx_{i+1} - dx_i = 0.5*delta*(ddx_i + ddx_{i+1})               (velocity continuity)
    x_{i+1} - x_i = delta*dx_i + delta^2/3*ddx_i + delta^2/6*ddx_{i+1}   (position continuity)
    (x_0, dx_0, ddx_0) = x_init

The continuity rows are the exact constant-jerk integration between knots,
so opt_x/opt_dx/opt_ddx can be rebuilt into a PiecewiseJerkTrajectory1d.

Cost (0.5 * z'Pz + q'z), kernel built by the subclass:
    PiecewiseJerkPathProblem  - fit of a 1-D signal (Profile Smoother)
    PiecewiseJerkSpeedProblem - longitudinal s(t) (QP stage)

Base: Apollo modules/planning/math/piecewise_jerk/piecewise_jerk_problem.cc
================================================================================
"""

import logging
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import osqp
from scipy.sparse import csc_matrix, triu, vstack

logger = logging.getLogger(__name__)

OSQP_ACCEPTED_STATUS = ("solved", "solved inaccurate")
OSQP_INFTY = 1e30

BoundsLike = Union[Tuple[float, float], Sequence[Tuple[float, float]]]


class PiecewiseJerkProblem:

    def __init__(self, num_of_knots: int, delta: float, x_init: Sequence[float]):
        if num_of_knots < 2:
            raise ValueError(f"num_of_knots must be >= 2, got {num_of_knots}")
        if delta <= 0.0:
            raise ValueError(f"delta must be positive, got {delta}")
        self.num_of_knots = num_of_knots
        self.delta = delta
        self.x_init = np.asarray(x_init, dtype=float)

        n = num_of_knots
        inf = np.inf
        self.x_bounds = np.tile([-inf, inf], (n, 1))
        self.dx_bounds = np.tile([-inf, inf], (n, 1))
        self.ddx_bounds = np.tile([-inf, inf], (n, 1))
        self.dddx_bound = (-inf, inf)

        self.weight_x = 0.0
        self.weight_dx = 0.0
        self.weight_ddx = 0.0
        self.weight_dddx = 0.0

        self.has_x_ref = False
        self.weight_x_ref = np.zeros(n)
        self.x_ref = np.zeros(n)

        self.has_end_state_ref = False
        self.weight_end_state = np.zeros(3)
        self.end_state_ref = np.zeros(3)

        self.opt_x: List[float] = []
        self.opt_dx: List[float] = []
        self.opt_ddx: List[float] = []
        self.status: Optional[str] = None
        self.iterations = 0

    # ------------------------------------------------------------------
    # setters
    # ------------------------------------------------------------------
    def _as_bounds(self, bounds: BoundsLike) -> np.ndarray:
        arr = np.asarray(bounds, dtype=float)
        if arr.ndim == 1:
            arr = np.tile(arr, (self.num_of_knots, 1))
        if arr.shape != (self.num_of_knots, 2):
            raise ValueError(f"bounds shape {arr.shape} does not match {self.num_of_knots} knots")
        return arr

    def set_x_bounds(self, bounds: BoundsLike, upper: Optional[float] = None):
        self.x_bounds = self._as_bounds(bounds if upper is None else (bounds, upper))

    def set_dx_bounds(self, bounds: BoundsLike, upper: Optional[float] = None):
        self.dx_bounds = self._as_bounds(bounds if upper is None else (bounds, upper))

    def set_ddx_bounds(self, bounds: BoundsLike, upper: Optional[float] = None):
        self.ddx_bounds = self._as_bounds(bounds if upper is None else (bounds, upper))

    def set_dddx_bound(self, lower: float, upper: float):
        self.dddx_bound = (lower, upper)

    def set_weight_x(self, weight: float):
        self.weight_x = weight

    def set_weight_dx(self, weight: float):
        self.weight_dx = weight

    def set_weight_ddx(self, weight: float):
        self.weight_ddx = weight

    def set_weight_dddx(self, weight: float):
        self.weight_dddx = weight

    def set_x_ref(self, weight: Union[float, Sequence[float]], x_ref: Sequence[float]):
        x_ref = np.asarray(x_ref, dtype=float)
        if x_ref.shape != (self.num_of_knots,):
            raise ValueError(f"x_ref has {x_ref.size} entries, expected {self.num_of_knots}")
        self.weight_x_ref = np.broadcast_to(np.asarray(weight, dtype=float), (self.num_of_knots,)).copy()
        self.x_ref = x_ref
        self.has_x_ref = True

    def set_end_state_ref(self, weight_end_state: Sequence[float], end_state_ref: Sequence[float]):
        self.weight_end_state = np.asarray(weight_end_state, dtype=float)
        self.end_state_ref = np.asarray(end_state_ref, dtype=float)
        self.has_end_state_ref = True

    # ------------------------------------------------------------------
    # QP assembly
    # ------------------------------------------------------------------
    def _jerk_kernel(self) -> np.ndarray:
        """w_dddx * sum(((ddx_{i+1} - ddx_i) / delta)^2) as the 0.5*z'Pz block of ddx."""
        n = self.num_of_knots
        w = self.weight_dddx / (self.delta ** 2)
        block = np.zeros((n, n))
        for i in range(n - 1):
            block[i, i] += 2.0 * w
            block[i + 1, i + 1] += 2.0 * w
            block[i, i + 1] -= 2.0 * w
            block[i + 1, i] -= 2.0 * w
        return block

    def calculate_kernel(self) -> csc_matrix:
        raise NotImplementedError

    def calculate_offset(self) -> np.ndarray:
        raise NotImplementedError

    def calculate_affine_constraint(self) -> Tuple[csc_matrix, np.ndarray, np.ndarray]:
        n = self.num_of_knots
        n_vars = 3 * n
        delta = self.delta
        delta_sq = delta * delta

        A_rows = []
        l_rows = []
        u_rows = []

        # -- Variable bounds --
        A_rows.append(csc_matrix(np.eye(n_vars)))
        l_rows.extend(self.x_bounds[:, 0])
        l_rows.extend(self.dx_bounds[:, 0])
        l_rows.extend(self.ddx_bounds[:, 0])
        u_rows.extend(self.x_bounds[:, 1])
        u_rows.extend(self.dx_bounds[:, 1])
        u_rows.extend(self.ddx_bounds[:, 1])

        # -- Jerk --
        A_jerk = np.zeros((n - 1, n_vars))
        for i in range(n - 1):
            A_jerk[i, 2 * n + i] = -1.0
            A_jerk[i, 2 * n + i + 1] = 1.0
        A_rows.append(csc_matrix(A_jerk))
        l_rows.extend([self.dddx_bound[0] * delta] * (n - 1))
        u_rows.extend([self.dddx_bound[1] * delta] * (n - 1))

        # -- Continuity --
        A_dyn = np.zeros((2 * (n - 1), n_vars))
        for i in range(n - 1):
            row_v = 2 * i
            row_s = 2 * i + 1

            A_dyn[row_v, n + i] = -1.0
            A_dyn[row_v, n + i + 1] = 1.0
            A_dyn[row_v, 2 * n + i] = -0.5 * delta
            A_dyn[row_v, 2 * n + i + 1] = -0.5 * delta

            A_dyn[row_s, i] = -1.0
            A_dyn[row_s, i + 1] = 1.0
            A_dyn[row_s, n + i] = -delta
            A_dyn[row_s, 2 * n + i] = -delta_sq / 3.0
            A_dyn[row_s, 2 * n + i + 1] = -delta_sq / 6.0
        A_rows.append(csc_matrix(A_dyn))
        l_rows.extend([0.0] * (2 * (n - 1)))
        u_rows.extend([0.0] * (2 * (n - 1)))

        # -- Initial state --
        A_init = np.zeros((3, n_vars))
        A_init[0, 0] = 1.0
        A_init[1, n] = 1.0
        A_init[2, 2 * n] = 1.0
        A_rows.append(csc_matrix(A_init))
        l_rows.extend(self.x_init)
        u_rows.extend(self.x_init)

        A = vstack(A_rows, format="csc")
        lower = np.clip(np.asarray(l_rows, dtype=float), -OSQP_INFTY, OSQP_INFTY)
        upper = np.clip(np.asarray(u_rows, dtype=float), -OSQP_INFTY, OSQP_INFTY)
        return A, lower, upper

    def build_qp_matrices(self):
        P = self.calculate_kernel()
        q = self.calculate_offset()
        A, lower, upper = self.calculate_affine_constraint()
        return P, q, A, lower, upper

    def optimize(self, max_iter: int = 4000) -> bool:
        P, q, A, lower, upper = self.build_qp_matrices()

        solver = osqp.OSQP()
        solver.setup(
            triu(P, format="csc"), q, A, lower, upper,
            verbose=False,
            polishing=True,
            scaled_termination=True,
            max_iter=max_iter,
            eps_abs=1e-4,
            eps_rel=1e-4,
        )
        result = solver.solve()

        self.status = str(result.info.status)
        self.iterations = int(result.info.iter)
        if self.status.lower() not in OSQP_ACCEPTED_STATUS:
            logger.error(f"failed optimization status:\t{self.status} ({self.iterations} iterations)")
            return False

        n = self.num_of_knots
        z = np.asarray(result.x, dtype=float)
        self.opt_x = z[0:n].tolist()
        self.opt_dx = z[n:2 * n].tolist()
        self.opt_ddx = z[2 * n:3 * n].tolist()
        return True


class PiecewiseJerkPathProblem(PiecewiseJerkProblem):
    """1-D curve fit: x tracks x_ref, dx/ddx/jerk magnitudes penalised."""

    def calculate_kernel(self) -> csc_matrix:
        n = self.num_of_knots
        diag = np.zeros(3 * n)
        diag[0:n] = self.weight_x + (self.weight_x_ref if self.has_x_ref else 0.0)
        diag[n:2 * n] = self.weight_dx
        diag[2 * n:3 * n] = self.weight_ddx
        if self.has_end_state_ref:
            diag[n - 1] += self.weight_end_state[0]
            diag[2 * n - 1] += self.weight_end_state[1]
            diag[3 * n - 1] += self.weight_end_state[2]

        P = np.diag(2.0 * diag)
        P[2 * n:3 * n, 2 * n:3 * n] += self._jerk_kernel()
        return csc_matrix(P)

    def calculate_offset(self) -> np.ndarray:
        n = self.num_of_knots
        q = np.zeros(3 * n)
        if self.has_x_ref:
            q[0:n] = -2.0 * self.weight_x_ref * self.x_ref
        if self.has_end_state_ref:
            q[n - 1] += -2.0 * self.weight_end_state[0] * self.end_state_ref[0]
            q[2 * n - 1] += -2.0 * self.weight_end_state[1] * self.end_state_ref[1]
            q[3 * n - 1] += -2.0 * self.weight_end_state[2] * self.end_state_ref[2]
        return q


class PiecewiseJerkSpeedProblem(PiecewiseJerkProblem):
    """Longitudinal s(t): position reference tracking plus a speed reference."""

    def __init__(self, num_of_knots: int, delta: float, x_init: Sequence[float]):
        super().__init__(num_of_knots, delta, x_init)
        self.has_dx_ref = False
        self.weight_dx_ref = 0.0
        self.dx_ref = 0.0

    def set_dx_ref(self, weight_dx_ref: float, dx_ref: float):
        self.weight_dx_ref = weight_dx_ref
        self.dx_ref = dx_ref
        self.has_dx_ref = True

    def calculate_kernel(self) -> csc_matrix:
        n = self.num_of_knots
        diag = np.zeros(3 * n)
        diag[0:n] = self.weight_x + (self.weight_x_ref if self.has_x_ref else 0.0)
        diag[n:2 * n] = self.weight_dx + (self.weight_dx_ref if self.has_dx_ref else 0.0)
        diag[2 * n:3 * n] = self.weight_ddx
        if self.has_end_state_ref:
            diag[n - 1] += self.weight_end_state[0]
            diag[2 * n - 1] += self.weight_end_state[1]
            diag[3 * n - 1] += self.weight_end_state[2]

        P = np.diag(2.0 * diag)
        P[2 * n:3 * n, 2 * n:3 * n] += self._jerk_kernel()
        return csc_matrix(P)

    def calculate_offset(self) -> np.ndarray:
        n = self.num_of_knots
        q = np.zeros(3 * n)
        if self.has_x_ref:
            q[0:n] = -2.0 * self.weight_x_ref * self.x_ref
        if self.has_dx_ref:
            q[n:2 * n] = -2.0 * self.weight_dx_ref * self.dx_ref
        if self.has_end_state_ref:
            q[n - 1] += -2.0 * self.weight_end_state[0] * self.end_state_ref[0]
            q[2 * n - 1] += -2.0 * self.weight_end_state[1] * self.end_state_ref[1]
            q[3 * n - 1] += -2.0 * self.weight_end_state[2] * self.end_state_ref[2]
        return q
