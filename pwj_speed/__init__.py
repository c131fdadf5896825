"""
Piecewise Jerk Nonlinear Speed Optimizer - v1.0
===============================================

Apollo-based two-stage longitudinal speed planner (OSQP warm start, IPOPT refinement)

Modules:
    - parameters: VehicleParam, PlanningFlags, PiecewiseJerkNonlinearSpeedConfig
    - errors: failure taxonomy and IPOPT status translation
    - path_data / speed_data / st_graph: planning inputs and outputs
    - trajectory1d: piecewise constant-jerk reference curves
    - piecewise_jerk_problem: OSQP piecewise jerk problem (path / speed variants)
    - speed_bounds: ST-boundaries to per-knot hard and soft s bounds
    - profile_smoother: curvature and speed limit smoothing
    - qp_speed: QP stage
    - nlp_speed: NLP stage (CasADi + IPOPT)
    - optimizer: PiecewiseJerkSpeedNonlinearOptimizer entry point
    - diagnostics / visualization: debug records and ST-graph plot
    - utils: logging setup and utilities

Version: v1.0
"""

from .parameters import (
    VehicleParam,
    PlanningFlags,
    SmoothingConfig,
    PiecewiseJerkNonlinearSpeedConfig,
)
from .errors import (
    SpeedOptimizerError,
    InputError,
    InfeasibleBoundsError,
    ConvexSolveFailure,
    SmoothingFailure,
    NonlinearSolveFailure,
    IpoptReturnStatus,
)
from .path_data import PathPoint, DiscretizedPath, PathData
from .speed_data import SpeedPoint, SpeedData, SpeedLimit
from .st_graph import BoundaryType, EndInteractionPoint, STBoundary, InitPoint, StGraphData
from .trajectory1d import ConstantJerkTrajectory1d, PiecewiseJerkTrajectory1d
from .piecewise_jerk_problem import PiecewiseJerkPathProblem, PiecewiseJerkSpeedProblem
from .speed_bounds import SpeedBounds, compile_speed_bounds
from .diagnostics import PlanningDebug
from .optimizer import (
    ExecutionContext,
    OptimizerStage,
    SpeedPlanningContext,
    SpeedOptimizationResult,
    PiecewiseJerkSpeedNonlinearOptimizer,
)
from .utils import setup_logging, SCRIPT_VERSION

__version__ = "1.0.0"
__all__ = [
    # Parameters
    "VehicleParam",
    "PlanningFlags",
    "SmoothingConfig",
    "PiecewiseJerkNonlinearSpeedConfig",
    # Errors
    "SpeedOptimizerError",
    "InputError",
    "InfeasibleBoundsError",
    "ConvexSolveFailure",
    "SmoothingFailure",
    "NonlinearSolveFailure",
    "IpoptReturnStatus",
    # Planning data
    "PathPoint",
    "DiscretizedPath",
    "PathData",
    "SpeedPoint",
    "SpeedData",
    "SpeedLimit",
    "BoundaryType",
    "EndInteractionPoint",
    "STBoundary",
    "InitPoint",
    "StGraphData",
    # Curves and problems
    "ConstantJerkTrajectory1d",
    "PiecewiseJerkTrajectory1d",
    "PiecewiseJerkPathProblem",
    "PiecewiseJerkSpeedProblem",
    "SpeedBounds",
    "compile_speed_bounds",
    # Optimizer
    "ExecutionContext",
    "OptimizerStage",
    "SpeedPlanningContext",
    "SpeedOptimizationResult",
    "PiecewiseJerkSpeedNonlinearOptimizer",
    # Diagnostics and utils
    "PlanningDebug",
    "setup_logging",
    "SCRIPT_VERSION",
]
