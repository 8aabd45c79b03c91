"""
Data type definitions for Drobot Exploration.

Provides structured data classes shared by the map, selector and controller.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Set, Tuple

from drobot_exploration.config import ExplorationParams


class Pixel(NamedTuple):
    """Integer grid cell coordinate."""
    x: int
    y: int


class Point(NamedTuple):
    """World coordinate in the map frame (meters)."""
    x: float
    y: float


class CellState(Enum):
    FREE = 'free'
    OCCUPIED = 'occupied'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class RobotPose:
    """Robot position in grid and world space."""
    pixel: Pixel
    point: Point
    heading: float  # rad, normalized to (-pi, pi]
    stamp: float = 0.0


@dataclass(frozen=True)
class Goal:
    """Exploration goal proposed by the selector or supplied externally."""
    pixel: Pixel
    point: Point
    heading: float = 0.0
    score: float = 0.0
    external: bool = False
    goal_id: int = 0


@dataclass(frozen=True)
class LaserScanData:
    """Laser scan reduced to what frontier probing needs."""
    angle_min: float
    angle_max: float
    angle_increment: float
    range_min: float
    range_max: float
    ranges: Tuple[float, ...] = field(repr=False, default=())

    @classmethod
    def from_message(cls, msg) -> 'LaserScanData':
        """Build from a sensor_msgs/LaserScan (or any object with its fields)."""
        return cls(
            angle_min=float(msg.angle_min),
            angle_max=float(msg.angle_max),
            angle_increment=float(msg.angle_increment),
            range_min=float(msg.range_min),
            range_max=float(msg.range_max),
            ranges=tuple(float(r) for r in msg.ranges),
        )


@dataclass
class ExplorationSession:
    """State of one exploration run, from start to stop."""
    params: ExplorationParams = field(default_factory=ExplorationParams)
    start_index: int = -1
    rejected: Set[Point] = field(default_factory=set)
    explored: Set[Point] = field(default_factory=set)
    pose_failures: int = 0
    goal_failures: int = 0
    goals_published: int = 0
    goals_reached: int = 0

    @property
    def attempted(self) -> Set[Point]:
        """Goal points that must not be selected again in this session."""
        return self.rejected | self.explored


class Ack(Enum):
    """Synchronous acknowledgment of a control request."""
    ACCEPTED = 'accepted'
    BUSY = 'busy'
    REJECTED = 'rejected'
    MAP_UNAVAILABLE = 'map_unavailable'
    INVALID_GOAL = 'invalid_goal'


class GoalOutcome(Enum):
    """Completion signal reported by the goal dispatch sink."""
    SUCCEEDED = 'succeeded'
    ABORTED = 'aborted'
    PREEMPTED = 'preempted'


class ResultStatus(Enum):
    """Terminal status of an exploration session."""
    SUCCEEDED = 'succeeded'   # area fully explored
    ABORTED = 'aborted'       # pose/map unavailable or too many failures
    PREEMPTED = 'preempted'   # stopped by request


@dataclass(frozen=True)
class ExplorationFeedback:
    goal: Optional[Goal]
    cells_explored: int

    def to_dict(self) -> Dict[str, Any]:
        goal = None
        if self.goal is not None:
            goal = {
                'goal_id': self.goal.goal_id,
                'x': self.goal.point.x,
                'y': self.goal.point.y,
                'heading': self.goal.heading,
                'external': self.goal.external,
            }
        return {'goal': goal, 'cells_explored': self.cells_explored}


@dataclass(frozen=True)
class ExplorationResult:
    status: ResultStatus
    message: str = ''
    goals_reached: int = 0
    cells_explored: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is ResultStatus.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'message': self.message,
            'goals_reached': self.goals_reached,
            'cells_explored': self.cells_explored,
        }
