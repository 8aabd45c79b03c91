"""
Best-direction frontier selection.

Casts rays from the robot cell at fixed angular steps and scores the last
free cell before unknown space along each ray.
"""
import logging
import math
import threading
from dataclasses import dataclass
from typing import List, Optional, Set

from drobot_exploration.errors import SelectionCancelled
from drobot_exploration.grid_map import GridMap
from drobot_exploration.raster import bresenham, ray_end
from drobot_exploration.types import (
    CellState,
    ExplorationSession,
    Goal,
    LaserScanData,
    Pixel,
    RobotPose,
)
from drobot_exploration import utils


@dataclass(frozen=True)
class Candidate:
    """Frontier found along one heading."""
    index: int
    heading: float
    deviation: float
    pixel: Pixel
    frontier: Pixel
    distance: float
    exposure: float
    score: float


class DirectionSelector:
    """Picks the heading that leads to the most promising frontier."""

    def __init__(self, logger=None):
        self.logger = logger or logging.getLogger(__name__)

    def headings(self, pose: RobotPose, session: ExplorationSession) -> List[float]:
        """Candidate headings in index order."""
        params = session.params
        increment = params.angular_increment
        if params.full_rotation:
            count = max(1, int(round(2 * math.pi / increment)))
            first = pose.heading - math.pi
        else:
            count = int(math.floor(params.angular_range / increment + 1e-9)) + 1
            first = pose.heading - params.angular_range / 2
        return [utils.normalize_angle(first + i * increment) for i in range(count)]

    def select_goal(
        self,
        grid_map: GridMap,
        pose: RobotPose,
        session: ExplorationSession,
        scan: Optional[LaserScanData] = None,
        cancelled: Optional[threading.Event] = None
    ) -> Optional[Goal]:
        """
        Select the best exploration goal.

        Args:
            grid_map: Map snapshot (not modified)
            pose: Current robot pose
            session: Session providing parameters and attempted goals
            scan: Optional latest laser scan for obstacle corroboration
            cancelled: Polled between headings; set to abort the pass

        Returns:
            Goal at the last free cell before the best frontier, or None if
            no frontier is reachable

        Raises:
            SelectionCancelled: If `cancelled` was set during the pass
        """
        attempted = {grid_map.world_to_grid(p) for p in session.attempted}
        max_length = math.hypot(grid_map.width, grid_map.height)

        best: Optional[Candidate] = None
        for index, heading in enumerate(self.headings(pose, session)):
            if cancelled is not None and cancelled.is_set():
                raise SelectionCancelled('goal selection cancelled')

            candidate = self._cast_ray(
                grid_map, pose, session, scan, index, heading, max_length, attempted
            )
            if candidate is not None and self._better(candidate, best):
                best = candidate

        if best is None:
            self.logger.info('No reachable frontier')
            return None

        self.logger.info(
            f'Best direction {best.heading:.2f} rad -> cell '
            f'({best.pixel.x}, {best.pixel.y}) dist={best.distance:.1f} '
            f'exposure={best.exposure:.2f} score={best.score:.3f}'
        )
        return Goal(
            pixel=best.pixel,
            point=grid_map.grid_to_world(best.pixel),
            heading=best.heading,
            score=best.score,
        )

    def _cast_ray(
        self,
        grid_map: GridMap,
        pose: RobotPose,
        session: ExplorationSession,
        scan: Optional[LaserScanData],
        index: int,
        heading: float,
        max_length: float,
        attempted: Set[Pixel]
    ) -> Optional[Candidate]:
        """Cast one ray and turn its frontier, if any, into a candidate."""
        origin = pose.pixel
        ray = bresenham(origin, ray_end(origin, heading, max_length))
        scan_limit = self._scan_limit(scan, heading - pose.heading, grid_map.resolution)

        last_free = origin
        frontier = None
        for cell in ray[1:]:
            if not grid_map.contains(cell):
                return None  # exhausted at the map boundary
            if scan_limit is not None and \
                    math.hypot(cell.x - origin.x, cell.y - origin.y) > scan_limit:
                return None  # laser sees an obstacle before this cell
            state = grid_map.cell_state(cell)
            if state is CellState.OCCUPIED:
                return None
            if state is CellState.UNKNOWN:
                frontier = cell
                break
            last_free = cell

        if frontier is None or last_free == origin or last_free in attempted:
            return None

        params = session.params
        distance = utils.euclidean_distance(origin.x, origin.y, last_free.x, last_free.y)
        window = (2 * params.info_gain_radius + 1) ** 2
        exposure = min(grid_map.unknown_region_size(frontier), window) / window
        score = (params.weight_distance * distance / max_length +
                 params.weight_unknown * exposure)

        return Candidate(
            index=index,
            heading=heading,
            deviation=utils.angle_difference(heading, pose.heading),
            pixel=last_free,
            frontier=frontier,
            distance=distance,
            exposure=exposure,
            score=score,
        )

    @staticmethod
    def _scan_limit(
        scan: Optional[LaserScanData],
        relative_angle: float,
        resolution: float
    ) -> Optional[float]:
        """Obstacle range along a heading from the laser, in cells."""
        if scan is None or scan.angle_increment <= 0.0 or not scan.ranges:
            return None

        relative_angle = utils.normalize_angle(relative_angle)
        if relative_angle < scan.angle_min or relative_angle > scan.angle_max:
            return None

        beam = int(round((relative_angle - scan.angle_min) / scan.angle_increment))
        if not 0 <= beam < len(scan.ranges):
            return None

        reading = scan.ranges[beam]
        if math.isnan(reading) or math.isinf(reading):
            return None
        if reading < scan.range_min or reading >= scan.range_max:
            return None
        return reading / resolution

    @staticmethod
    def _better(candidate: Candidate, best: Optional[Candidate]) -> bool:
        """Higher score, then smaller turn, then lower heading index."""
        if best is None:
            return True
        if not math.isclose(candidate.score, best.score, rel_tol=0.0, abs_tol=1e-9):
            return candidate.score > best.score
        if not math.isclose(candidate.deviation, best.deviation, rel_tol=0.0, abs_tol=1e-9):
            return candidate.deviation < best.deviation
        return candidate.index < best.index
