"""
Robot pose tracking in grid space.

Wraps an external pose lookup (tf2 in the ROS node) and keeps the last
successful pose.
"""
import logging
import time
from typing import Callable, Optional, Tuple

from drobot_exploration.config import Config
from drobot_exploration.errors import PoseLookupFailure
from drobot_exploration.grid_map import GridMap
from drobot_exploration.types import Point, RobotPose
from drobot_exploration import utils

# (map_frame, robot_frame) -> (x, y, yaw, stamp)
PoseLookup = Callable[[str, str], Tuple[float, float, float, float]]


class PoseTracker:
    """Maintains the robot's current grid and world pose."""

    def __init__(
        self,
        lookup: PoseLookup,
        map_frame: str = Config.MAP_FRAME,
        robot_frame: str = Config.ROBOT_FRAME,
        max_age: float = Config.TRANSFORM_TOLERANCE + 1.0 / Config.UPDATE_FREQUENCY,
        clock: Callable[[], float] = time.time,
        logger=None
    ):
        """
        Initialize pose tracker.

        Args:
            lookup: Callable returning the robot pose in the map frame;
                raises PoseLookupFailure when unavailable
            map_frame: Map reference frame
            robot_frame: Robot reference frame
            max_age: Oldest acceptable pose stamp (seconds)
            clock: Time source comparable to the lookup stamps
            logger: Optional logger (node.get_logger(), etc.)
        """
        self.lookup = lookup
        self.map_frame = map_frame
        self.robot_frame = robot_frame
        self.max_age = max_age
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self._pose: Optional[RobotPose] = None

    @property
    def pose(self) -> Optional[RobotPose]:
        """Last successfully looked-up pose."""
        return self._pose

    def refresh(self, grid_map: GridMap) -> RobotPose:
        """
        Look up the robot pose and convert it to grid space.

        Args:
            grid_map: Map snapshot whose transform is used

        Returns:
            Updated RobotPose

        Raises:
            PoseLookupFailure: Lookup failed, pose too old, or robot outside
                the map. The previous pose is kept.
        """
        x, y, yaw, stamp = self.lookup(self.map_frame, self.robot_frame)

        age = self.clock() - stamp
        if age > self.max_age:
            raise PoseLookupFailure(
                f'pose of {self.robot_frame} is {age:.2f}s old (max {self.max_age:.2f}s)'
            )

        point = Point(float(x), float(y))
        pixel = grid_map.world_to_grid(point)
        if not grid_map.contains(pixel):
            raise PoseLookupFailure(
                f'robot at ({point.x:.2f}, {point.y:.2f}) is outside the map'
            )

        self._pose = RobotPose(
            pixel=pixel,
            point=point,
            heading=utils.normalize_angle(yaw),
            stamp=stamp,
        )
        self.logger.debug(
            f'Robot at cell ({pixel.x}, {pixel.y}), heading {self._pose.heading:.2f}'
        )
        return self._pose

    def reset(self) -> None:
        self._pose = None
