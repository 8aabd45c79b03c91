"""
Occupancy grid snapshot and world/grid coordinate transforms.

A GridMap is never mutated after construction; map updates build a new
snapshot and swap it into SharedGridMap.
"""
import math
from typing import Optional

import numpy as np
from scipy import ndimage

from drobot_exploration.config import Config
from drobot_exploration.errors import MapUnavailable
from drobot_exploration.types import CellState, Pixel, Point
from drobot_exploration.utils import LatestValue


class GridMap:
    """Immutable occupancy grid with its metadata."""

    def __init__(
        self,
        data,
        width: int,
        height: int,
        resolution: float,
        origin: Point = Point(0.0, 0.0),
        frame_id: str = Config.MAP_FRAME,
        stamp: float = 0.0
    ):
        """
        Initialize grid map.

        Args:
            data: Row-major occupancy values (-1 unknown, 0..100 occupancy)
            width, height: Map dimensions in cells
            resolution: Cell size in meters
            origin: World coordinate of the lower-left corner of cell [0, 0]
            frame_id: Reference frame of the map
            stamp: Time the map was produced (seconds)
        """
        if width <= 0 or height <= 0:
            raise ValueError(f'invalid map size {width}x{height}')
        if resolution <= 0.0:
            raise ValueError(f'invalid map resolution {resolution}')

        cells = np.array(data, dtype=np.int8).reshape((height, width))
        cells.setflags(write=False)

        self._data = cells
        self.width = int(width)
        self.height = int(height)
        self.resolution = float(resolution)
        self.origin = Point(float(origin[0]), float(origin[1]))
        self.frame_id = frame_id
        self.stamp = stamp
        self._unknown_labels: Optional[np.ndarray] = None
        self._unknown_sizes: Optional[np.ndarray] = None

    @classmethod
    def from_message(cls, msg) -> 'GridMap':
        """Build from a nav_msgs/OccupancyGrid (or any object with its fields)."""
        info = msg.info
        stamp = msg.header.stamp
        return cls(
            data=msg.data,
            width=info.width,
            height=info.height,
            resolution=info.resolution,
            origin=Point(info.origin.position.x, info.origin.position.y),
            frame_id=msg.header.frame_id or Config.MAP_FRAME,
            stamp=stamp.sec + stamp.nanosec * 1e-9,
        )

    @property
    def data(self) -> np.ndarray:
        """Read-only (height, width) array of occupancy values."""
        return self._data

    # ==================== Coordinate Transforms ====================

    def world_to_grid(self, point: Point) -> Pixel:
        """
        Convert world coordinates to the grid cell containing them.

        The result may lie outside the map; check with contains().
        """
        gx = math.floor((point[0] - self.origin.x) / self.resolution)
        gy = math.floor((point[1] - self.origin.y) / self.resolution)
        return Pixel(int(gx), int(gy))

    def grid_to_world(self, pixel: Pixel) -> Point:
        """Convert a grid cell to the world coordinate of its centre."""
        wx = self.origin.x + (pixel[0] + 0.5) * self.resolution
        wy = self.origin.y + (pixel[1] + 0.5) * self.resolution
        return Point(wx, wy)

    def contains(self, pixel: Pixel) -> bool:
        return 0 <= pixel[0] < self.width and 0 <= pixel[1] < self.height

    def index(self, pixel: Pixel) -> int:
        """Row-major index of a cell inside the map."""
        return pixel[1] * self.width + pixel[0]

    def pixel_at(self, index: int) -> Pixel:
        return Pixel(index % self.width, index // self.width)

    # ==================== Cell Queries ====================

    def cell_state(self, pixel: Pixel) -> CellState:
        """Classify a cell; anything outside the map is unknown."""
        if not self.contains(pixel):
            return CellState.UNKNOWN
        value = int(self._data[pixel[1], pixel[0]])
        if value < 0:
            return CellState.UNKNOWN
        if value >= Config.OCCUPIED_THRESHOLD:
            return CellState.OCCUPIED
        return CellState.FREE

    def known_cell_count(self) -> int:
        """Number of cells that are not unknown."""
        return int(np.count_nonzero(self._data >= 0))

    def unknown_region_size(self, pixel: Pixel) -> int:
        """
        Size of the 4-connected unknown area containing a cell.

        Args:
            pixel: Grid cell to look up

        Returns:
            Number of cells in the region, 0 if the cell is not unknown
            or outside the map
        """
        if not self.contains(pixel):
            return 0
        if self._unknown_labels is None:
            labels, _ = ndimage.label(self._data < 0)
            self._unknown_sizes = np.bincount(labels.ravel())
            self._unknown_labels = labels
        label = self._unknown_labels[pixel[1], pixel[0]]
        if label == 0:
            return 0
        return int(self._unknown_sizes[label])

    def __repr__(self) -> str:
        return (f'GridMap({self.width}x{self.height}, res={self.resolution}, '
                f'origin=({self.origin.x:.2f}, {self.origin.y:.2f}))')


class SharedGridMap:
    """Latest GridMap snapshot, swapped atomically on each update."""

    def __init__(self):
        self._slot: LatestValue[GridMap] = LatestValue()

    def update(self, grid_map: GridMap) -> None:
        self._slot.set(grid_map)

    def snapshot(self) -> Optional[GridMap]:
        return self._slot.get()

    def require(self) -> GridMap:
        """
        Get the current snapshot.

        Raises:
            MapUnavailable: If no map has been received yet
        """
        grid_map = self._slot.get()
        if grid_map is None:
            raise MapUnavailable('no map received yet')
        return grid_map

    @property
    def available(self) -> bool:
        return self._slot.get() is not None
