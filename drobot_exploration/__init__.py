"""
Drobot Exploration Package

Frontier exploration decision engine: occupancy grid handling, ray casting,
best-direction goal selection and the exploration lifecycle controller.
The ROS 2 node lives in drobot_exploration.exploration_node.
"""
from .config import Config, ExplorationParams
from .types import (
    Pixel,
    Point,
    CellState,
    RobotPose,
    Goal,
    LaserScanData,
    ExplorationSession,
    Ack,
    GoalOutcome,
    ResultStatus,
    ExplorationFeedback,
    ExplorationResult,
)
from .errors import (
    ExplorationError,
    MapUnavailable,
    PoseLookupFailure,
    InvalidGoalOverride,
    SelectionCancelled,
)
from .grid_map import GridMap, SharedGridMap
from .goal_handles import GoalHandleRegistry
from .raster import bresenham
from .pose_tracker import PoseTracker
from .direction_selector import DirectionSelector
from .state_machine import ExplorationState
from .controller import ExplorationController, ControlResponse
from . import utils

__version__ = "0.1.0"
__all__ = [
    'Config',
    'ExplorationParams',
    'Pixel',
    'Point',
    'CellState',
    'RobotPose',
    'Goal',
    'LaserScanData',
    'ExplorationSession',
    'Ack',
    'GoalOutcome',
    'ResultStatus',
    'ExplorationFeedback',
    'ExplorationResult',
    'ExplorationError',
    'MapUnavailable',
    'PoseLookupFailure',
    'InvalidGoalOverride',
    'SelectionCancelled',
    'GridMap',
    'SharedGridMap',
    'GoalHandleRegistry',
    'bresenham',
    'PoseTracker',
    'DirectionSelector',
    'ExplorationState',
    'ExplorationController',
    'ControlResponse',
    'utils',
]
