import contextlib

import pytest

from pwj_speed.optimizer import ExecutionContext, SpeedPlanningContext
from pwj_speed.path_data import PathData, PathPoint
from pwj_speed.speed_data import SpeedData, SpeedLimit
from pwj_speed.st_graph import InitPoint, StGraphData


def straight_path(length=200.0, ds=1.0, kappa=0.0):
    n = int(length / ds) + 1
    return PathData.from_points(
        PathPoint(x=i * ds, y=0.0, theta=0.0, kappa=kappa, s=i * ds) for i in range(n))


def constant_speed_profile(v, total_time=7.0, dt=0.1):
    speed_data = SpeedData()
    n = int(round(total_time / dt)) + 1
    for i in range(n):
        t = i * dt
        speed_data.append_speed_point(v * t, t, v, 0.0, 0.0)
    return speed_data


def make_context(boundaries=(), v_init=0.0, a_init=0.0, speed_limit=20.0, path_length=200.0,
                 total_time=7.0, cruise_speed=10.0, max_speed=None, brake=None, debug=None):
    st_graph_data = StGraphData(
        st_boundaries=list(boundaries),
        path_length=path_length,
        total_time_by_conf=total_time,
        init_point=InitPoint(v=v_init, a=a_init),
        speed_limit=SpeedLimit.constant(speed_limit, path_length),
        cruise_speed=cruise_speed,
    )
    return SpeedPlanningContext(
        st_graph_data=st_graph_data,
        emergency_brake_speed_data=brake,
        max_speed=speed_limit if max_speed is None else max_speed,
        debug=debug,
    )


@pytest.fixture
def no_lock_context():
    return ExecutionContext(nlp_lock=contextlib.nullcontext())
