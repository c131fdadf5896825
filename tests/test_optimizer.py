import numpy as np
import pytest

import pwj_speed.optimizer as optimizer_module
from pwj_speed.diagnostics import PlanningDebug
from pwj_speed.errors import (
    ConvexSolveFailure,
    InfeasibleBoundsError,
    InputError,
    NonlinearSolveFailure,
    SmoothingFailure,
)
from pwj_speed.optimizer import (
    ExecutionContext,
    OptimizerStage,
    PiecewiseJerkSpeedNonlinearOptimizer,
)
from pwj_speed.parameters import PlanningFlags, VehicleParam
from pwj_speed.path_data import PathData
from pwj_speed.speed_data import SpeedData, SpeedLimit
from pwj_speed.st_graph import BoundaryType, STBoundary

from conftest import constant_speed_profile, make_context, straight_path

SPEED_EPS = 1e-3


class CountingLock:
    def __init__(self):
        self.entered = 0

    def __enter__(self):
        self.entered += 1
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def stop_wall(s, t0=0.0, t1=7.0):
    return STBoundary(BoundaryType.STOP, [(t0, s), (t1, s)], [(t0, s + 5.0), (t1, s + 5.0)])


def run(context, speed_data=None, flags=None, execution_context=None, path_data=None):
    optimizer = PiecewiseJerkSpeedNonlinearOptimizer(flags=flags, execution_context=execution_context)
    speed_data = constant_speed_profile(10.0) if speed_data is None else speed_data
    result = optimizer.process(path_data or straight_path(), speed_data, context)
    return result, speed_data


# ----------------------------------------------------------------------
# input validation
# ----------------------------------------------------------------------
def test_empty_path_is_input_error_without_side_effects(no_lock_context):
    debug = PlanningDebug()
    speed_data = SpeedData()
    optimizer = PiecewiseJerkSpeedNonlinearOptimizer(execution_context=no_lock_context)
    with pytest.raises(InputError) as excinfo:
        optimizer.process(PathData.from_points([]), speed_data, make_context(debug=debug))
    assert excinfo.value.reason == "Speed Optimizer receives empty path data"
    assert speed_data.empty()
    assert debug.is_empty()


def test_missing_output_buffer():
    optimizer = PiecewiseJerkSpeedNonlinearOptimizer()
    with pytest.raises(InputError):
        optimizer.process(straight_path(), None, make_context())


def test_reached_destination_is_a_no_op():
    context = make_context()
    context.reached_destination = True
    result, speed_data = run(context)
    assert result.stages == [OptimizerStage.INIT, OptimizerStage.DONE]
    assert len(speed_data) == 71
    assert speed_data.back().v == 10.0


# ----------------------------------------------------------------------
# end-to-end
# ----------------------------------------------------------------------
def test_free_road_profile(no_lock_context):
    vehicle_param = VehicleParam()
    result, speed_data = run(make_context(v_init=0.0, speed_limit=20.0), execution_context=no_lock_context)

    assert result.stage is OptimizerStage.DONE
    assert result.visited(OptimizerStage.NLP_ATTEMPTED)
    assert len(speed_data) == 71

    times = [p.t for p in speed_data]
    assert times[0] == 0.0
    assert all(t1 >= t0 for t0, t1 in zip(times, times[1:]))
    assert speed_data.back().v <= 20.0 + SPEED_EPS
    for point in speed_data:
        assert -vehicle_param.max_deceleration - SPEED_EPS <= point.a <= vehicle_param.max_acceleration + SPEED_EPS
    assert speed_data[0].da == 0.0


def test_stop_wall_is_never_crossed(no_lock_context):
    context = make_context(boundaries=[stop_wall(30.0)], v_init=10.0, speed_limit=20.0)
    result, speed_data = run(context, execution_context=no_lock_context)

    assert result.stage is OptimizerStage.DONE
    assert all(p.s <= 30.0 + 1e-2 for p in speed_data)
    # braking all the way into the wall
    approach = [p.v for p in speed_data if p.s >= 20.0]
    assert all(v1 <= v0 + 1e-2 for v0, v1 in zip(approach, approach[1:]))
    assert speed_data.back().v == pytest.approx(0.0, abs=5e-2)
    assert speed_data.back().s == pytest.approx(30.0, abs=0.5)


def test_stop_wall_from_rest(no_lock_context):
    context = make_context(boundaries=[stop_wall(30.0)], v_init=0.0, speed_limit=20.0)
    result, speed_data = run(context, execution_context=no_lock_context)

    assert result.stage is OptimizerStage.DONE
    assert speed_data[0].v == pytest.approx(0.0, abs=1e-6)
    assert all(p.s <= 30.0 + 1e-2 for p in speed_data)
    peak = max(p.v for p in speed_data)
    assert peak > 1.0
    # slowing down over the last stretch before the wall
    tail = [p.v for p in speed_data if p.t >= 5.5]
    assert all(v1 <= v0 + 1e-2 for v0, v1 in zip(tail, tail[1:]))
    assert speed_data.back().v < peak - 1.0


def test_nlp_skipped_when_starting_above_speed_limit(no_lock_context):
    debug = PlanningDebug()
    context = make_context(v_init=15.0, speed_limit=10.0, debug=debug)
    result, speed_data = run(context, execution_context=no_lock_context)

    assert result.visited(OptimizerStage.NLP_SKIPPED)
    assert not result.visited(OptimizerStage.NLP_ATTEMPTED)
    assert not result.nlp_upgraded
    assert result.degraded_reason is not None

    qp_points = debug.speed_plan("qp_speed").speed_points
    assert len(speed_data) <= len(qp_points)
    for out, qp in zip(speed_data, qp_points):
        assert (out.s, out.t, out.v, out.a, out.da) == (qp.s, qp.t, qp.v, qp.a, qp.da)


def test_nlp_disabled_keeps_qp_result(no_lock_context):
    lock = CountingLock()
    flags = PlanningFlags(enable_speed_nlp=False)
    result, speed_data = run(make_context(v_init=5.0), flags=flags,
                             execution_context=ExecutionContext(nlp_lock=lock))
    assert result.visited(OptimizerStage.NLP_SKIPPED)
    assert lock.entered == 0
    assert len(speed_data) == 71


def test_nlp_runs_under_injected_lock():
    lock = CountingLock()
    result, _ = run(make_context(v_init=5.0), execution_context=ExecutionContext(nlp_lock=lock))
    assert result.visited(OptimizerStage.NLP_ATTEMPTED)
    assert lock.entered == 1


def test_default_execution_context_shares_one_lock():
    assert ExecutionContext().nlp_lock is ExecutionContext().nlp_lock


def test_guide_line_mode(no_lock_context):
    flags = PlanningFlags(use_smoothed_dp_guide_line=True)
    result, speed_data = run(make_context(v_init=5.0), flags=flags, execution_context=no_lock_context)
    assert result.stage is OptimizerStage.DONE
    assert len(speed_data) == 71


def test_short_horizon_is_filled_to_minimum_time(no_lock_context):
    context = make_context(v_init=5.0, total_time=2.0)
    _, speed_data = run(context, speed_data=constant_speed_profile(5.0, total_time=2.0),
                        execution_context=no_lock_context)
    assert speed_data.back().t > 2.85
    assert all(p.v == 0.0 for p in speed_data if p.t > 2.05)


# ----------------------------------------------------------------------
# degradation
# ----------------------------------------------------------------------
def test_nlp_failure_keeps_qp_profile(monkeypatch, no_lock_context):
    def failing_nlp(problem, max_iter, lock=None):
        raise NonlinearSolveFailure("Piecewise jerk speed nonlinear optimizer failed", status="Restoration_Failed")

    monkeypatch.setattr(optimizer_module, "optimize_by_nlp", failing_nlp)
    debug = PlanningDebug()
    result, speed_data = run(make_context(v_init=5.0, debug=debug), execution_context=no_lock_context)

    assert result.stage is OptimizerStage.DONE
    assert not result.nlp_upgraded
    assert result.degraded_reason == "Piecewise jerk speed nonlinear optimizer failed"
    qp_points = debug.speed_plan("qp_speed").speed_points
    assert [p.s for p in speed_data] == [p.s for p in qp_points[:len(speed_data)]]


def test_smoothing_failure_keeps_qp_profile(monkeypatch, no_lock_context):
    def failing_smoother(speed_limit, config):
        raise SmoothingFailure("Smoothing speed limit failed")

    monkeypatch.setattr(optimizer_module, "smooth_speed_limit", failing_smoother)
    lock = CountingLock()
    result, speed_data = run(make_context(v_init=5.0), execution_context=ExecutionContext(nlp_lock=lock))

    assert result.stage is OptimizerStage.DONE
    assert result.degraded_reason == "Smoothing speed limit failed"
    assert lock.entered == 0
    assert len(speed_data) == 71


def test_nlp_success_upgrades_checkpoint(no_lock_context):
    result, _ = run(make_context(v_init=5.0), execution_context=no_lock_context)
    assert result.nlp_upgraded
    assert result.degraded_reason is None


# ----------------------------------------------------------------------
# fatal failures
# ----------------------------------------------------------------------
def test_qp_failure_clears_output(no_lock_context):
    # region ahead already at t=0 forces s_0 >= 15
    overtake = STBoundary(BoundaryType.OVERTAKE, [(0.0, 10.0), (7.0, 10.0)], [(0.0, 15.0), (7.0, 15.0)])
    speed_data = constant_speed_profile(10.0)
    optimizer = PiecewiseJerkSpeedNonlinearOptimizer(execution_context=no_lock_context)
    with pytest.raises(ConvexSolveFailure) as excinfo:
        optimizer.process(straight_path(), speed_data, make_context(boundaries=[overtake]))
    assert excinfo.value.reason == "Speed Optimization by Quadratic Programming failed"
    assert speed_data.empty()


def test_infeasible_bounds_clear_output(no_lock_context):
    flags = PlanningFlags(use_soft_bound_in_nonlinear_speed_opt=False)
    overtake = STBoundary(BoundaryType.OVERTAKE, [(0.0, 10.0), (7.0, 10.0)], [(0.0, 15.0), (7.0, 15.0)])
    speed_data = constant_speed_profile(10.0)
    optimizer = PiecewiseJerkSpeedNonlinearOptimizer(flags=flags, execution_context=no_lock_context)
    with pytest.raises(InfeasibleBoundsError):
        optimizer.process(straight_path(), speed_data,
                          make_context(boundaries=[stop_wall(10.0), overtake]))
    assert speed_data.empty()


def test_missing_speed_limit_clears_output(no_lock_context):
    context = make_context(v_init=5.0)
    context.st_graph_data.speed_limit = SpeedLimit()
    speed_data = constant_speed_profile(10.0)
    optimizer = PiecewiseJerkSpeedNonlinearOptimizer(execution_context=no_lock_context)
    with pytest.raises(InputError) as excinfo:
        optimizer.process(straight_path(), speed_data, context)
    assert excinfo.value.reason == "Speed limit needs at least two points"
    assert speed_data.empty()


def test_feasibility_check_rejects_missing_speed_limit(no_lock_context):
    optimizer = PiecewiseJerkSpeedNonlinearOptimizer(execution_context=no_lock_context)
    setup = optimizer.set_up_states_and_bounds(straight_path(), constant_speed_profile(5.0),
                                               make_context(v_init=5.0))
    assert optimizer.check_speed_limit_feasibility(setup, SpeedLimit.constant(20.0, 200.0))
    assert not optimizer.check_speed_limit_feasibility(setup, SpeedLimit())


def test_jerk_lower_bound_is_negative_regardless_of_sign(no_lock_context):
    flags = PlanningFlags(longitudinal_jerk_lower_bound=4.0)
    result, speed_data = run(make_context(v_init=5.0), flags=flags, execution_context=no_lock_context)
    assert result.setup.s_dddot_min == -4.0
    assert result.stage is OptimizerStage.DONE
    assert len(speed_data) == 71


# ----------------------------------------------------------------------
# repeatability and diagnostics
# ----------------------------------------------------------------------
def test_repeated_runs_are_identical(no_lock_context):
    context = make_context(boundaries=[stop_wall(60.0)], v_init=8.0)
    first, first_data = run(context, execution_context=no_lock_context)
    second, second_data = run(context, execution_context=no_lock_context)

    assert first.setup.bounds.s_bounds == second.setup.bounds.s_bounds
    assert first.setup.bounds.s_soft_bounds == second.setup.bounds.s_soft_bounds
    assert len(first_data) == len(second_data)
    assert np.allclose([p.s for p in first_data], [p.s for p in second_data], atol=1e-6)
    assert np.allclose([p.v for p in first_data], [p.v for p in second_data], atol=1e-6)


def test_diagnostics_recorded(no_lock_context):
    brake = SpeedData()
    brake.append_speed_point(0.0, 0.0, 8.0, -4.0, 0.0)
    brake.append_speed_point(8.0, 2.0, 0.0, 0.0, 0.0)
    brake.append_speed_point(8.0, 7.0, 0.0, 0.0, 0.0)
    debug = PlanningDebug()
    context = make_context(boundaries=[stop_wall(60.0)], v_init=8.0, brake=brake, debug=debug)
    run(context, execution_context=no_lock_context)

    assert debug.speed_plan("minimum_jerk_speed_profile") is not None
    assert len(debug.speed_plan("qp_speed").speed_points) == 71

    st_graph = debug.st_graphs[-1]
    drive_boundary = st_graph.boundaries[0]
    assert drive_boundary.name == "ST_drive_Boundary"
    assert len(drive_boundary.points) == 2 * 71
    assert drive_boundary.points[0] == (0.0, 0.0)
    assert drive_boundary.points[-1][0] == 0.0
    assert len(st_graph.speed_limit) == len(context.st_graph_data.speed_limit.speed_limit_points())


def test_no_constraint_record_without_brake_curve(no_lock_context):
    debug = PlanningDebug()
    run(make_context(v_init=5.0, debug=debug), execution_context=no_lock_context)
    assert debug.speed_plan("minimum_jerk_speed_profile") is None
    assert debug.st_graphs == []
    assert debug.speed_plan("qp_speed") is not None
