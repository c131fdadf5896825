# -*- coding: utf-8 -*-
"""
================================================================================
Piecewise jerk nonlinear speed optimizer (public entry point)
================================================================================

One call of process() runs one planning cycle:

    INIT -> BOUNDS_BUILT -> QP_SOLVED -> NLP_ATTEMPTED | NLP_SKIPPED -> DONE
                                                        (FAILED from any state)

- Fatal errors (InputError, InfeasibleBoundsError, ConvexSolveFailure) clear
  the output buffer and propagate.
- SmoothingFailure / NonlinearSolveFailure are logged and the QP profile is
  kept as the final result.

The only state shared between cycles is the NLP serialization lock held by
the ExecutionContext.

Base: Apollo piecewise_jerk_speed_nonlinear_optimizer.cc
================================================================================
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import ContextManager, List, Optional

from .diagnostics import PlanningDebug, StGraphBoundaryDebug, drive_boundary_polyline
from .errors import InputError, SpeedOptimizerError
from .nlp_speed import PiecewiseJerkSpeedNonlinearProblem, optimize_by_nlp
from .parameters import PiecewiseJerkNonlinearSpeedConfig, PlanningFlags, VehicleParam
from .path_data import PathData
from .problem_setup import SpeedProblemSetup, SpeedProfile, SpeedProfileCheckpoint
from .profile_smoother import smooth_path_curvature, smooth_speed_limit
from .qp_speed import optimize_by_qp
from .speed_bounds import compile_speed_bounds
from .speed_data import SpeedData, SpeedLimit, SpeedPoint
from .st_graph import StGraphData
from .trajectory1d import PiecewiseJerkTrajectory1d
from .utils import Timer

logger = logging.getLogger(__name__)

# margin between the speed limit at s_init and v_init before the NLP is skipped
SPEED_LIMIT_FEASIBILITY_EPSILON = 1e-6
NLP_INIT_SPEED_MARGIN = 1.0

# IPOPT instance construction is not reentrant
_NLP_LOCK = threading.Lock()


@dataclass
class ExecutionContext:
    """Process-level resources of the optimizer. Tests may pass contextlib.nullcontext()."""
    nlp_lock: ContextManager = field(default_factory=lambda: _NLP_LOCK)


class OptimizerStage(Enum):
    INIT = "init"
    BOUNDS_BUILT = "bounds_built"
    QP_SOLVED = "qp_solved"
    NLP_ATTEMPTED = "nlp_attempted"
    NLP_SKIPPED = "nlp_skipped"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SpeedPlanningContext:
    """Per-cycle inputs that come from the reference line rather than the path."""
    st_graph_data: StGraphData
    emergency_brake_speed_data: Optional[SpeedData] = None
    max_speed: float = 0.0
    reached_destination: bool = False
    debug: Optional[PlanningDebug] = None


@dataclass
class SpeedOptimizationResult:
    stages: List[OptimizerStage] = field(default_factory=list)
    nlp_upgraded: bool = False
    degraded_reason: Optional[str] = None
    setup: Optional[SpeedProblemSetup] = None

    @property
    def stage(self) -> Optional[OptimizerStage]:
        return self.stages[-1] if self.stages else None

    def visited(self, stage: OptimizerStage) -> bool:
        return stage in self.stages


class PiecewiseJerkSpeedNonlinearOptimizer:
    """
    QP warm start followed by an IPOPT refinement of the longitudinal profile.

    The optimizer holds configuration only; every process() call builds
    fresh problems, so one instance can serve consecutive cycles.
    """

    def __init__(self, config: Optional[PiecewiseJerkNonlinearSpeedConfig] = None,
                 flags: Optional[PlanningFlags] = None,
                 vehicle_param: Optional[VehicleParam] = None,
                 execution_context: Optional[ExecutionContext] = None):
        self.config = config or PiecewiseJerkNonlinearSpeedConfig()
        self.flags = flags or PlanningFlags()
        self.vehicle_param = vehicle_param or VehicleParam()
        self.execution_context = execution_context or ExecutionContext()

    @property
    def name(self) -> str:
        return "PIECEWISE_JERK_NONLINEAR_SPEED_OPTIMIZER"

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------
    def set_up_states_and_bounds(self, path_data: PathData, rough_speed_data: SpeedData,
                                 context: SpeedPlanningContext) -> SpeedProblemSetup:
        st_graph_data = context.st_graph_data
        delta_t = self.config.delta_t
        total_time = st_graph_data.total_time_by_conf
        num_of_knots = int(total_time / delta_t) + 1
        total_length = st_graph_data.path_length

        s_dot_init = st_graph_data.init_point.v
        s_ddot_init = st_graph_data.init_point.a
        max_speed = context.max_speed

        if len(st_graph_data.speed_limit.speed_limit_points()) < 2:
            raise InputError("Speed limit needs at least two points")

        bounds = compile_speed_bounds(st_graph_data.st_boundaries, num_of_knots, delta_t, total_length,
                                      rough_speed_data, context.emergency_brake_speed_data,
                                      self.flags, self.config)

        setup = SpeedProblemSetup(
            s_init=0.0,
            s_dot_init=s_dot_init,
            s_ddot_init=s_ddot_init,
            delta_t=delta_t,
            num_of_knots=num_of_knots,
            total_length=total_length,
            total_time=total_time,
            max_speed=max_speed,
            s_dot_max=max(max_speed, s_dot_init + NLP_INIT_SPEED_MARGIN),
            s_ddot_min=-abs(self.vehicle_param.max_deceleration),
            s_ddot_max=self.vehicle_param.max_acceleration,
            s_dddot_min=-abs(self.flags.longitudinal_jerk_lower_bound),
            s_dddot_max=self.flags.longitudinal_jerk_upper_bound,
            bounds=bounds,
            cruise_speed=st_graph_data.cruise_speed,
        )
        logger.debug(f"knots: {num_of_knots}, total_time: {total_time}, total_length: {total_length}, "
                     f"v_init: {s_dot_init}, a_init: {s_ddot_init}, s_dot_max: {setup.s_dot_max}")
        return setup

    def check_speed_limit_feasibility(self, setup: SpeedProblemSetup, speed_limit: SpeedLimit) -> bool:
        """The legal limit at s_init must not be below v_init."""
        if len(speed_limit.speed_limit_points()) < 2:
            logger.warning("speed limit has fewer than two points")
            return False
        init_speed_limit = speed_limit.get_speed_limit_by_s(setup.s_init)
        if init_speed_limit + SPEED_LIMIT_FEASIBILITY_EPSILON < setup.s_dot_init:
            logger.warning(f"speed limit [{init_speed_limit}] lower than initial speed [{setup.s_dot_init}]")
            return False
        return True

    # ------------------------------------------------------------------
    # NLP stage
    # ------------------------------------------------------------------
    def build_nlp_problem(self, setup: SpeedProblemSetup, qp_profile: SpeedProfile,
                          curvature_curve: PiecewiseJerkTrajectory1d,
                          speed_limit_curve: PiecewiseJerkTrajectory1d) -> PiecewiseJerkSpeedNonlinearProblem:
        config = self.config
        problem = PiecewiseJerkSpeedNonlinearProblem(setup)

        problem.set_safety_bounds(setup.bounds.s_bounds)
        if setup.bounds.has_soft_bounds:
            problem.set_soft_safety_bounds(setup.bounds.s_soft_bounds)
            problem.set_w_soft_s_bound(config.soft_s_bound_weight)

        problem.set_curvature_curve(curvature_curve)
        problem.set_speed_limit_curve(speed_limit_curve)

        if config.use_warm_start:
            problem.set_warm_start(qp_profile.distance, qp_profile.velocity, qp_profile.acceleration)

        if self.flags.use_smoothed_dp_guide_line:
            problem.set_reference_spatial_distance(qp_profile.distance)
            problem.set_w_reference_spatial_distance(config.dp_guide_line_weight)
        else:
            problem.set_reference_spatial_distance([setup.total_length] * setup.num_of_knots)
            problem.set_w_reference_spatial_distance(config.s_potential_weight)

        problem.set_reference_speed(setup.cruise_speed)
        problem.set_w_reference_speed(config.ref_v_weight)
        problem.set_w_overall_a(config.acc_weight)
        problem.set_w_overall_j(config.jerk_weight)
        problem.set_w_overall_centripetal_acc(config.lat_acc_weight)
        return problem

    def refine_by_nlp(self, path_data: PathData, setup: SpeedProblemSetup,
                      speed_limit: SpeedLimit, checkpoint: SpeedProfileCheckpoint,
                      debug: Optional[PlanningDebug]) -> SpeedProfileCheckpoint:
        """Smooth both reference curves and solve the NLP; any recoverable failure keeps the checkpoint."""
        try:
            with Timer() as timer:
                curvature_curve = smooth_path_curvature(path_data, self.config.curvature_smoothing)
            logger.info(f"path curvature smoothing time takes {timer.elapsed_ms:.3f} ms")

            with Timer() as timer:
                speed_limit_curve = smooth_speed_limit(speed_limit, self.config.speed_limit_smoothing)
            logger.info(f"speed limit smoothing for time takes {timer.elapsed_ms:.3f} ms")

            if debug is not None:
                record_nlp_info(debug, speed_limit, speed_limit_curve)

            with Timer() as timer:
                problem = self.build_nlp_problem(setup, checkpoint.profile, curvature_curve, speed_limit_curve)
                profile = optimize_by_nlp(problem, self.config.nlp_max_iter,
                                          lock=self.execution_context.nlp_lock)
            logger.info(f"print_speed_nlp_optimization: ({timer.elapsed_ms:.3f})")
        except SpeedOptimizerError as exc:
            if not exc.recoverable:
                raise
            logger.error(f"nlp speed optimizer fail, keep qp result: {exc.reason}")
            return checkpoint.keep(exc.reason)

        return checkpoint.upgrade(profile, "nlp")

    # ------------------------------------------------------------------
    # main
    # ------------------------------------------------------------------
    def process(self, path_data: PathData, speed_data: SpeedData,
                context: SpeedPlanningContext) -> SpeedOptimizationResult:
        """
        Optimize the speed profile along path_data.

        speed_data carries the rough prior profile on entry and receives the
        final profile on success. It is cleared on a fatal failure after the
        inputs have been validated.
        """
        result = SpeedOptimizationResult(stages=[OptimizerStage.INIT])

        if speed_data is None:
            msg = "Null speed_data pointer"
            logger.error(msg)
            raise InputError(msg)

        if path_data is None or path_data.discretized_path.empty():
            msg = "Speed Optimizer receives empty path data"
            logger.error(msg)
            raise InputError(msg)

        if context.reached_destination:
            result.stages.append(OptimizerStage.DONE)
            return result

        rough_speed_data = speed_data.copy()
        debug = context.debug

        try:
            setup = self.set_up_states_and_bounds(path_data, rough_speed_data, context)
            result.setup = setup
            result.stages.append(OptimizerStage.BOUNDS_BUILT)
            if debug is not None:
                record_constraints(debug, self.name, setup, context.emergency_brake_speed_data)

            with Timer() as timer:
                qp_profile = optimize_by_qp(setup, rough_speed_data, self.config)
            logger.info(f"print_speed_qp_optimization: ({timer.elapsed_ms:.3f})")
        except SpeedOptimizerError as exc:
            result.stages.append(OptimizerStage.FAILED)
            logger.error(f"speed optimization failed at {result.stages[-2].value}: {exc.reason}")
            speed_data.clear()
            raise

        if debug is not None:
            record_qp_info(debug, qp_profile, setup.delta_t)
        result.stages.append(OptimizerStage.QP_SOLVED)
        checkpoint = SpeedProfileCheckpoint(profile=qp_profile, stage="qp")

        speed_limit = context.st_graph_data.speed_limit
        if not self.flags.enable_speed_nlp:
            result.stages.append(OptimizerStage.NLP_SKIPPED)
            checkpoint = checkpoint.keep("nonlinear speed optimization disabled")
        elif not self.check_speed_limit_feasibility(setup, speed_limit):
            result.stages.append(OptimizerStage.NLP_SKIPPED)
            checkpoint = checkpoint.keep("speed limit at start below initial speed")
        else:
            result.stages.append(OptimizerStage.NLP_ATTEMPTED)
            checkpoint = self.refine_by_nlp(path_data, setup, speed_limit, checkpoint, debug)

        result.nlp_upgraded = checkpoint.upgraded
        result.degraded_reason = checkpoint.degraded_reason

        assemble_speed_data(speed_data, checkpoint.profile, setup.delta_t)
        speed_data.fill_enough_speed_points(self.flags.fallback_total_time, self.flags.fallback_time_unit)
        result.stages.append(OptimizerStage.DONE)
        return result


def profile_to_speed_points(profile: SpeedProfile, delta_t: float, stop_at_negative_speed: bool = True
                            ) -> List[SpeedPoint]:
    """(s, t, v, a, jerk) samples; jerk is the backward difference of a, 0 at the first knot."""
    if not profile.is_valid():
        return []
    distance = profile.distance
    velocity = profile.velocity
    acceleration = profile.acceleration

    points = [SpeedPoint(s=distance[0], t=0.0, v=velocity[0], a=acceleration[0], da=0.0)]
    for i in range(1, len(profile)):
        # already stopped
        if stop_at_negative_speed and velocity[i] < 0.0:
            break
        points.append(SpeedPoint(s=distance[i], t=delta_t * i, v=velocity[i], a=acceleration[i],
                                 da=(acceleration[i] - acceleration[i - 1]) / delta_t))
    return points


def assemble_speed_data(speed_data: SpeedData, profile: SpeedProfile, delta_t: float):
    speed_data.clear()
    for point in profile_to_speed_points(profile, delta_t):
        speed_data.append_speed_point(point.s, point.t, point.v, point.a, point.da)


# ----------------------------------------------------------------------
# diagnostics recording
# ----------------------------------------------------------------------
def record_constraints(debug: PlanningDebug, name: str, setup: SpeedProblemSetup,
                       emergency_brake_speed_data: Optional[SpeedData]):
    if emergency_brake_speed_data is None or emergency_brake_speed_data.empty():
        return
    debug.add_speed_plan("minimum_jerk_speed_profile", list(emergency_brake_speed_data))

    st_graph_debug = debug.add_st_graph(name)
    st_graph_debug.boundaries.append(StGraphBoundaryDebug(
        name="ST_drive_Boundary", boundary_type="DRIVABLE_REGION",
        points=drive_boundary_polyline(setup.bounds.s_bounds, setup.delta_t)))


def record_qp_info(debug: PlanningDebug, profile: SpeedProfile, delta_t: float):
    debug.add_speed_plan("qp_speed", profile_to_speed_points(profile, delta_t, stop_at_negative_speed=False))


def record_nlp_info(debug: PlanningDebug, speed_limit: SpeedLimit, speed_limit_curve: PiecewiseJerkTrajectory1d):
    if not debug.st_graphs:
        return
    st_graph_debug = debug.st_graphs[-1]
    for s, _ in speed_limit.speed_limit_points():
        st_graph_debug.speed_limit.append((s, speed_limit_curve.evaluate(0, s)))
