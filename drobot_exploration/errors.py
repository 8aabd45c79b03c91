"""
Exceptions raised by the exploration core.
"""


class ExplorationError(Exception):
    """Base class for exploration errors."""


class MapUnavailable(ExplorationError):
    """No occupancy grid has been received yet."""


class PoseLookupFailure(ExplorationError):
    """The robot pose could not be obtained or is too old."""


class InvalidGoalOverride(ExplorationError):
    """An external goal lies outside the map or on an occupied cell."""


class SelectionCancelled(ExplorationError):
    """A goal selection pass was cancelled by a control request."""
