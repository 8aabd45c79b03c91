"""
Utility functions for Drobot Exploration.

Angle math, quaternion conversion and a thread-safe latest-value slot.
"""
import math
import threading
from typing import Generic, Optional, Tuple, TypeVar

T = TypeVar('T')


def normalize_angle(angle: float) -> float:
    """
    Normalize angle to (-pi, pi] range.

    Args:
        angle: Angle in radians

    Returns:
        Normalized angle in radians
    """
    angle = math.fmod(angle, 2 * math.pi)
    if angle <= -math.pi:
        angle += 2 * math.pi
    elif angle > math.pi:
        angle -= 2 * math.pi
    return angle


def angle_difference(a: float, b: float) -> float:
    """Absolute smallest difference between two angles."""
    return abs(normalize_angle(a - b))


def euclidean_distance(x1: float, y1: float, x2: float, y2: float) -> float:
    """
    Calculate Euclidean distance between two points.

    Args:
        x1, y1: First point coordinates
        x2, y2: Second point coordinates

    Returns:
        Distance between the points
    """
    return math.hypot(x2 - x1, y2 - y1)


def quaternion_to_yaw(x: float, y: float, z: float, w: float) -> float:
    """
    Extract yaw angle from quaternion.

    Args:
        x, y, z, w: Quaternion components

    Returns:
        Yaw angle in radians
    """
    return math.atan2(2 * (w * z + x * y), 1 - 2 * (y * y + z * z))


def yaw_to_quaternion(yaw: float) -> Tuple[float, float, float, float]:
    """
    Convert yaw angle to quaternion.

    Args:
        yaw: Yaw angle in radians

    Returns:
        Tuple of (x, y, z, w) quaternion components
    """
    return (0.0, 0.0, math.sin(yaw / 2), math.cos(yaw / 2))


class LatestValue(Generic[T]):
    """Holds the most recent value of an input stream.

    Values are replaced wholesale; readers always get one complete value.
    """

    def __init__(self, value: Optional[T] = None):
        self._lock = threading.Lock()
        self._value = value

    def set(self, value: Optional[T]) -> None:
        with self._lock:
            self._value = value

    def get(self) -> Optional[T]:
        with self._lock:
            return self._value
