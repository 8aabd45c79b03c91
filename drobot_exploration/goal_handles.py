"""
Bookkeeping for goals sent to the navigation action server.

A goal can be cancelled before the server has accepted it. The registry
remembers such cancellations so the handle is cancelled as soon as it
arrives.
"""
import threading
from typing import Dict, Optional, Set


class GoalHandleRegistry:
    """Goal handles by goal id, shared between executor threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Set[int] = set()
        self._cancelled: Set[int] = set()
        self._handles: Dict[int, object] = {}

    def sent(self, goal_id: int) -> None:
        """Record a goal request that has not been answered yet."""
        with self._lock:
            self._pending.add(goal_id)

    def accepted(self, goal_id: int, handle) -> bool:
        """
        Register the handle of an accepted goal.

        Args:
            goal_id: Goal the handle belongs to
            handle: Action client goal handle

        Returns:
            False if the goal was cancelled while its request was pending;
            the caller must cancel the handle
        """
        with self._lock:
            self._pending.discard(goal_id)
            if goal_id in self._cancelled:
                self._cancelled.discard(goal_id)
                return False
            self._handles[goal_id] = handle
            return True

    def cancel(self, goal_id: int) -> Optional[object]:
        """
        Mark a goal cancelled.

        Returns:
            The handle to cancel now, or None if the goal is still pending
            (it is then cancelled on acceptance) or already finished
        """
        with self._lock:
            handle = self._handles.pop(goal_id, None)
            if handle is None and goal_id in self._pending:
                self._cancelled.add(goal_id)
            return handle

    def finished(self, goal_id: int) -> None:
        """Forget a goal that was rejected or produced a result."""
        with self._lock:
            self._pending.discard(goal_id)
            self._cancelled.discard(goal_id)
            self._handles.pop(goal_id, None)

    def is_cancelled(self, goal_id: int) -> bool:
        with self._lock:
            return goal_id in self._cancelled

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending) + len(self._handles)
