"""
Configuration for Drobot Exploration.

Tuning constants live on ``Config``; the runtime parameter set that a node or
launch file can override is ``ExplorationParams``.
"""
import math
import os
from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Optional

import yaml


class Config:
    """Exploration configuration constants."""

    # ==================== Occupancy Grid ====================
    OCCUPIED_THRESHOLD = 50         # occupancy value >= this is an obstacle

    # ==================== Direction Sampling ====================
    ANGULAR_RANGE = 2 * math.pi     # rad - sampled range around heading
    ANGULAR_INCREMENT = math.pi / 180.0  # rad - 1 degree between headings
    FULL_ROTATION = True            # sample a whole turn regardless of range

    # ==================== Frontier Scoring Weights ====================
    WEIGHT_DISTANCE = 0.6           # farther frontiers rank higher
    WEIGHT_UNKNOWN = 0.4            # larger adjoining unknown area ranks higher
    INFO_GAIN_RADIUS = 20           # grid cells - unknown exposure window radius

    # ==================== Timers ====================
    UPDATE_FREQUENCY = 2.0          # Hz - decision loop rate
    TRANSFORM_TOLERANCE = 0.5       # sec - maximum age of a pose lookup

    # ==================== Failure Handling ====================
    MAX_POSE_FAILURES = 5           # consecutive lookup failures before abort
    MAX_GOAL_FAILURES = 10          # consecutive failed goals before abort

    # ==================== Frames ====================
    MAP_FRAME = 'map'
    ROBOT_FRAME = 'base_link'


@dataclass
class ExplorationParams:
    """Runtime parameters for one exploration session."""
    angular_range: float = Config.ANGULAR_RANGE
    angular_increment: float = Config.ANGULAR_INCREMENT
    full_rotation: bool = Config.FULL_ROTATION
    update_frequency: float = Config.UPDATE_FREQUENCY
    transform_tolerance: float = Config.TRANSFORM_TOLERANCE
    max_pose_failures: int = Config.MAX_POSE_FAILURES
    max_goal_failures: int = Config.MAX_GOAL_FAILURES
    info_gain_radius: int = Config.INFO_GAIN_RADIUS
    weight_distance: float = Config.WEIGHT_DISTANCE
    weight_unknown: float = Config.WEIGHT_UNKNOWN
    map_frame: str = Config.MAP_FRAME
    robot_frame: str = Config.ROBOT_FRAME

    def __post_init__(self):
        self.validate()

    @property
    def update_period(self) -> float:
        """Seconds between decision loop cycles."""
        return 1.0 / self.update_frequency

    def validate(self) -> None:
        """
        Check parameter consistency.

        Raises:
            ValueError: If a parameter is out of range
        """
        if self.angular_increment <= 0.0:
            raise ValueError(
                f'angular_increment must be positive, got {self.angular_increment}'
            )
        if not self.full_rotation and not 0.0 <= self.angular_range <= 2 * math.pi:
            raise ValueError(
                f'angular_range must be within [0, 2*pi], got {self.angular_range}'
            )
        if self.update_frequency <= 0.0:
            raise ValueError(
                f'update_frequency must be positive, got {self.update_frequency}'
            )
        if self.transform_tolerance < 0.0:
            raise ValueError(
                f'transform_tolerance must not be negative, got {self.transform_tolerance}'
            )
        if self.max_pose_failures < 1 or self.max_goal_failures < 1:
            raise ValueError('failure thresholds must be at least 1')
        if self.info_gain_radius < 0:
            raise ValueError(
                f'info_gain_radius must not be negative, got {self.info_gain_radius}'
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]]) -> 'ExplorationParams':
        """
        Build parameters from a dict, ignoring unknown keys.

        Args:
            values: Mapping of field name to value

        Returns:
            ExplorationParams with defaults for missing fields
        """
        values = values or {}
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for name, value in values.items():
            if name not in known:
                continue
            default = getattr(cls, name)
            if isinstance(default, bool):
                kwargs[name] = bool(value)
            elif isinstance(default, int):
                kwargs[name] = int(value)
            elif isinstance(default, float):
                kwargs[name] = float(value)
            else:
                kwargs[name] = str(value)
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, params_file: str) -> 'ExplorationParams':
        """
        Load parameters from a YAML file.

        Accepts either a flat mapping or a ROS 2 parameter file
        (``<node>: {ros__parameters: {...}}``).

        Args:
            params_file: Path to the YAML file

        Returns:
            ExplorationParams (defaults if the file does not exist)
        """
        if not params_file or not os.path.exists(params_file):
            return cls()

        with open(params_file, 'r') as f:
            data = yaml.safe_load(f) or {}

        for value in data.values():
            if isinstance(value, dict) and 'ros__parameters' in value:
                data = value['ros__parameters'] or {}
                break

        return cls.from_dict(data)
