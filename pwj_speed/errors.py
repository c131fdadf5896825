# -*- coding: utf-8 -*-
"""
pwj_speed/errors.py

Failure taxonomy of the speed optimizer.

Fatal (propagated out of process(), no usable speed plan this cycle):
    InputError, InfeasibleBoundsError, ConvexSolveFailure
Recoverable (caught by the orchestrator, QP result is kept):
    SmoothingFailure, NonlinearSolveFailure
"""

from enum import IntEnum
from typing import Optional


class SpeedOptimizerError(Exception):
    """Base class; `reason` is the human-readable failure message."""

    recoverable = False

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InputError(SpeedOptimizerError):
    pass


class InfeasibleBoundsError(SpeedOptimizerError):
    def __init__(self, reason: str, knot_index: Optional[int] = None):
        super().__init__(reason)
        self.knot_index = knot_index


class ConvexSolveFailure(SpeedOptimizerError):
    def __init__(self, reason: str, status: Optional[str] = None):
        super().__init__(reason)
        self.status = status


class SmoothingFailure(SpeedOptimizerError):
    recoverable = True

    def __init__(self, reason: str, status: Optional[str] = None):
        super().__init__(reason)
        self.status = status


class NonlinearSolveFailure(SpeedOptimizerError):
    recoverable = True

    def __init__(self, reason: str, status: str = "unknown failure"):
        super().__init__(reason)
        self.status = status


class IpoptReturnStatus(IntEnum):
    """IPOPT ApplicationReturnStatus codes."""
    Solve_Succeeded = 0
    Solved_To_Acceptable_Level = 1
    Infeasible_Problem_Detected = 2
    Search_Direction_Becomes_Too_Small = 3
    Diverging_Iterates = 4
    User_Requested_Stop = 5
    Feasible_Point_Found = 6
    Maximum_Iterations_Exceeded = -1
    Restoration_Failed = -2
    Error_In_Step_Computation = -3
    Maximum_CpuTime_Exceeded = -4
    Maximum_WallTime_Exceeded = -5
    Not_Enough_Degrees_Of_Freedom = -10
    Invalid_Problem_Definition = -11
    Invalid_Option = -12
    Invalid_Number_Detected = -13
    Unrecoverable_Exception = -100
    NonIpopt_Exception_Thrown = -101
    Insufficient_Memory = -102
    Internal_Error = -199


IPOPT_SUCCESS = (IpoptReturnStatus.Solve_Succeeded, IpoptReturnStatus.Solved_To_Acceptable_Level)


def translate_ipopt_status(status) -> Optional[IpoptReturnStatus]:
    """
    Translate a native solver status (int code or IPOPT status name) to
    IpoptReturnStatus. Returns None when untranslatable.
    """
    if isinstance(status, IpoptReturnStatus):
        return status
    if isinstance(status, bool):
        return None
    if isinstance(status, int):
        try:
            return IpoptReturnStatus(status)
        except ValueError:
            return None
    if isinstance(status, str):
        return IpoptReturnStatus.__members__.get(status)
    return None


def ipopt_status_name(status) -> str:
    translated = translate_ipopt_status(status)
    if translated is None:
        return "unknown failure"
    return translated.name
