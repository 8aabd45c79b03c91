"""
Discrete line tracing between grid cells.
"""
import math
from functools import lru_cache
from typing import List, Tuple

from drobot_exploration.types import Pixel


@lru_cache(maxsize=4096)
def _trace(dx: int, dy: int) -> Tuple[Tuple[int, int], ...]:
    """Bresenham offsets from [0, 0] to (dx, dy), all octants."""
    step_x = 1 if dx >= 0 else -1
    step_y = 1 if dy >= 0 else -1
    adx, ady = abs(dx), abs(dy)

    x = y = 0
    offsets = [(0, 0)]
    if adx >= ady:
        error = 2 * ady - adx
        for _ in range(adx):
            x += step_x
            if error > 0:
                y += step_y
                error -= 2 * adx
            error += 2 * ady
            offsets.append((x, y))
    else:
        error = 2 * adx - ady
        for _ in range(ady):
            y += step_y
            if error > 0:
                x += step_x
                error -= 2 * ady
            error += 2 * adx
            offsets.append((x, y))
    return tuple(offsets)


def bresenham(start: Pixel, end: Pixel) -> List[Pixel]:
    """
    Trace the grid cells on the segment between two cells.

    The line is always traced from the lexicographically smaller endpoint,
    so bresenham(b, a) is exactly bresenham(a, b) reversed.

    Args:
        start: First cell (included)
        end: Last cell (included)

    Returns:
        Ordered list of cells from start to end
    """
    start, end = Pixel(*start), Pixel(*end)
    if end < start:
        line = bresenham(end, start)
        line.reverse()
        return line

    return [Pixel(start.x + ox, start.y + oy)
            for ox, oy in _trace(end.x - start.x, end.y - start.y)]


def ray_end(origin: Pixel, heading: float, length: float) -> Pixel:
    """Cell reached by travelling `length` cells from origin along heading."""
    return Pixel(
        origin[0] + int(round(length * math.cos(heading))),
        origin[1] + int(round(length * math.sin(heading))),
    )
