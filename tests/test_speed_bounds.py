import itertools

import pytest

from pwj_speed.errors import InfeasibleBoundsError, InputError
from pwj_speed.parameters import PiecewiseJerkNonlinearSpeedConfig, PlanningFlags
from pwj_speed.speed_bounds import (
    clamp_bound_pair,
    compile_speed_bounds,
    interaction_gap,
    soft_follow_distance,
)
from pwj_speed.speed_data import SpeedData
from pwj_speed.st_graph import BoundaryType, EndInteractionPoint, STBoundary

from conftest import constant_speed_profile

NUM_OF_KNOTS = 71
DELTA_T = 0.1
TOTAL_LENGTH = 100.0


def region(boundary_type, s_low, s_high, t0=0.0, t1=7.0, **kwargs):
    return STBoundary(boundary_type, [(t0, s_low), (t1, s_low)], [(t0, s_high), (t1, s_high)], **kwargs)


def compile_bounds(boundaries, rough=None, brake=None, flags=None, config=None):
    return compile_speed_bounds(
        list(boundaries), NUM_OF_KNOTS, DELTA_T, TOTAL_LENGTH,
        rough if rough is not None else constant_speed_profile(10.0),
        brake,
        flags or PlanningFlags(),
        config or PiecewiseJerkNonlinearSpeedConfig())


def test_no_boundaries_spans_whole_path():
    bounds = compile_bounds([], rough=SpeedData())
    assert len(bounds.s_bounds) == NUM_OF_KNOTS
    assert all(b == (0.0, TOTAL_LENGTH) for b in bounds.s_bounds)
    assert all(b == (0.0, TOTAL_LENGTH) for b in bounds.s_soft_bounds)


def test_stop_caps_hard_and_soft_upper():
    bounds = compile_bounds([region(BoundaryType.STOP, 30.0, 35.0)])
    assert bounds.s_bounds[10] == (0.0, 30.0)
    assert bounds.s_soft_bounds[10] == (0.0, 30.0)


def test_yield_soft_upper_is_raw_edge():
    bounds = compile_bounds([region(BoundaryType.YIELD, 30.0, 35.0, characteristic_length=5.0)])
    assert bounds.s_bounds[10] == (0.0, pytest.approx(25.0))
    assert bounds.s_soft_bounds[10][1] == pytest.approx(30.0)


def test_follow_soft_upper_uses_speed_dependent_distance():
    # v_ref 10: 3 + min(7, 2.5 * 10) = 10
    bounds = compile_bounds([region(BoundaryType.FOLLOW, 30.0, 35.0, characteristic_length=5.0)])
    assert bounds.s_bounds[10][1] == pytest.approx(25.0)
    assert bounds.s_soft_bounds[10][1] == pytest.approx(20.0)


def test_follow_end_interaction_gap_near_its_time():
    boundary = region(BoundaryType.FOLLOW, 30.0, 35.0, characteristic_length=5.0,
                      end_interaction_point=EndInteractionPoint(time=2.0, s_gap=8.0))
    assert interaction_gap(boundary, 2.0) == 8.0
    assert interaction_gap(boundary, 3.0) == 5.0

    plain = region(BoundaryType.FOLLOW, 30.0, 35.0, characteristic_length=5.0)
    assert not plain.is_end_interaction_point_valid()
    assert interaction_gap(plain, 2.0) == 5.0

    bounds = compile_bounds([boundary])
    assert bounds.s_bounds[20][1] == pytest.approx(22.0)
    assert bounds.s_bounds[30][1] == pytest.approx(25.0)


def test_overtake_raises_lower_bounds():
    bounds = compile_bounds([region(BoundaryType.OVERTAKE, 10.0, 15.0)])
    assert bounds.s_bounds[10] == (15.0, TOTAL_LENGTH)
    assert bounds.s_soft_bounds[10] == (25.0, TOTAL_LENGTH)


def test_boundary_outside_its_time_span_is_ignored():
    bounds = compile_bounds([region(BoundaryType.STOP, 30.0, 35.0, t0=2.0, t1=4.0)])
    assert bounds.s_bounds[10] == (0.0, TOTAL_LENGTH)
    assert bounds.s_bounds[30] == (0.0, 30.0)
    assert bounds.s_bounds[50] == (0.0, TOTAL_LENGTH)


def test_composition_is_order_independent():
    boundaries = [
        region(BoundaryType.STOP, 60.0, 65.0),
        region(BoundaryType.YIELD, 50.0, 55.0, characteristic_length=3.0),
        region(BoundaryType.FOLLOW, 45.0, 50.0, characteristic_length=4.0),
        region(BoundaryType.OVERTAKE, 5.0, 8.0),
    ]
    reference = compile_bounds(boundaries)
    for ordering in itertools.permutations(boundaries):
        bounds = compile_bounds(ordering)
        assert bounds.s_bounds == reference.s_bounds
        assert bounds.s_soft_bounds == reference.s_soft_bounds


def test_stop_and_overtake_clamp_instead_of_reject():
    bounds = compile_bounds([region(BoundaryType.STOP, 10.0, 12.0), region(BoundaryType.OVERTAKE, 10.0, 15.0)])
    for lower, upper in bounds.s_bounds + bounds.s_soft_bounds:
        assert lower <= upper
    assert bounds.s_bounds[10] == (pytest.approx(9.9), 10.0)


def test_upper_at_origin_is_pushed_off_zero():
    bounds = compile_bounds([region(BoundaryType.STOP, 0.0, 5.0)])
    assert bounds.s_bounds[0] == (0.0, pytest.approx(0.1))


def test_hard_bounds_ordered_for_any_combination():
    kinds = [BoundaryType.STOP, BoundaryType.YIELD, BoundaryType.FOLLOW, BoundaryType.OVERTAKE]
    for combo in itertools.combinations_with_replacement(kinds, 3):
        boundaries = [region(kind, 5.0 + 10.0 * i, 12.0 + 10.0 * i, characteristic_length=6.0)
                      for i, kind in enumerate(combo)]
        bounds = compile_bounds(boundaries)
        assert all(lower <= upper for lower, upper in bounds.s_bounds)
        assert all(lower <= upper for lower, upper in bounds.s_soft_bounds)


def test_emergency_brake_relaxes_upper_bound():
    brake = SpeedData()
    brake.append_speed_point(40.0, 0.0, 0.0, 0.0, 0.0)
    brake.append_speed_point(40.0, 7.0, 0.0, 0.0, 0.0)
    bounds = compile_bounds([region(BoundaryType.FOLLOW, 30.0, 35.0, characteristic_length=5.0)], brake=brake)
    assert bounds.s_bounds[10][1] == pytest.approx(40.2)
    # soft bound is not relaxed
    assert bounds.s_soft_bounds[10][1] == pytest.approx(20.0)


def test_emergency_brake_ignored_without_boundaries():
    brake = SpeedData()
    brake.append_speed_point(400.0, 0.0, 0.0, 0.0, 0.0)
    brake.append_speed_point(400.0, 7.0, 0.0, 0.0, 0.0)
    bounds = compile_bounds([], brake=brake)
    assert bounds.s_bounds[10] == (0.0, TOTAL_LENGTH)


def test_soft_mode_needs_rough_profile():
    with pytest.raises(InputError):
        compile_bounds([region(BoundaryType.FOLLOW, 30.0, 35.0)], rough=SpeedData())


def test_simplified_mode_fixed_margins():
    flags = PlanningFlags(use_soft_bound_in_nonlinear_speed_opt=False)
    bounds = compile_bounds([region(BoundaryType.FOLLOW, 30.0, 35.0, characteristic_length=5.0),
                             region(BoundaryType.OVERTAKE, 5.0, 10.0)], flags=flags)
    assert not bounds.has_soft_bounds
    assert bounds.s_bounds[10] == (10.0, 22.0)


def test_simplified_mode_rejects_empty_region():
    flags = PlanningFlags(use_soft_bound_in_nonlinear_speed_opt=False)
    with pytest.raises(InfeasibleBoundsError) as excinfo:
        compile_bounds([region(BoundaryType.STOP, 10.0, 12.0), region(BoundaryType.OVERTAKE, 10.0, 15.0)],
                       flags=flags)
    assert excinfo.value.knot_index == 0


@pytest.mark.parametrize("v_ref", [0.0, 0.5, 2.0, 10.0, 40.0])
@pytest.mark.parametrize("gap", [0.0, 5.0, 20.0])
def test_soft_follow_never_looser_than_hard(v_ref, gap):
    assert soft_follow_distance(v_ref, gap, PlanningFlags()) >= gap

    bounds = compile_bounds([region(BoundaryType.FOLLOW, 60.0, 65.0, characteristic_length=gap)],
                            rough=constant_speed_profile(v_ref))
    for (_, hard_upper), (_, soft_upper) in zip(bounds.s_bounds, bounds.s_soft_bounds):
        assert soft_upper <= hard_upper


def test_overtake_never_lowers_upper():
    base = [region(BoundaryType.FOLLOW, 60.0, 65.0, characteristic_length=5.0)]
    without = compile_bounds(base)
    with_overtake = compile_bounds(base + [region(BoundaryType.OVERTAKE, 10.0, 20.0)])
    for (_, upper_a), (_, upper_b) in zip(without.s_bounds, with_overtake.s_bounds):
        assert upper_b >= upper_a


@pytest.mark.parametrize("kind", [BoundaryType.STOP, BoundaryType.YIELD, BoundaryType.FOLLOW])
def test_upper_constraining_types_never_raise_lower(kind):
    bounds = compile_bounds([region(kind, 50.0, 55.0, characteristic_length=5.0)])
    assert all(lower == 0.0 for lower, _ in bounds.s_bounds)


def test_clamp_bound_pair():
    assert clamp_bound_pair(0.0, -1.0, 0.0, 0.1) == (0.0, 0.1)
    assert clamp_bound_pair(5.0, 3.0, 0.0, 0.1) == (pytest.approx(2.9), 3.0)
    assert clamp_bound_pair(1.0, 3.0, 0.0, 0.1) == (1.0, 3.0)


def test_bounds_are_deterministic():
    boundaries = [region(BoundaryType.FOLLOW, 30.0, 35.0, characteristic_length=5.0)]
    assert compile_bounds(boundaries).s_bounds == compile_bounds(boundaries).s_bounds
