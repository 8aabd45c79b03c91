"""
Exploration lifecycle controller.

Owns the shared map, scan, pose and session state, applies state machine
transitions, and runs the decision loop that turns selected frontiers into
published goals.
"""
import itertools
import logging
import math
import queue
import threading
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Protocol

from drobot_exploration.config import ExplorationParams
from drobot_exploration.direction_selector import DirectionSelector
from drobot_exploration.errors import (
    InvalidGoalOverride,
    PoseLookupFailure,
    SelectionCancelled,
)
from drobot_exploration.grid_map import GridMap, SharedGridMap
from drobot_exploration.pose_tracker import PoseTracker
from drobot_exploration.state_machine import (
    Effect,
    Event,
    ExplorationState,
    Transition,
    is_active,
    transition,
)
from drobot_exploration.types import (
    Ack,
    CellState,
    ExplorationFeedback,
    ExplorationResult,
    ExplorationSession,
    Goal,
    GoalOutcome,
    LaserScanData,
    Point,
    ResultStatus,
)
from drobot_exploration.utils import LatestValue


class GoalDispatcher(Protocol):
    """Downstream navigation that drives the robot to published goals.

    dispatch() returns False when navigation is not available; the goal is
    then dropped without an outcome and selection runs again next cycle.
    """

    def dispatch(self, goal: Goal) -> bool: ...
    def cancel(self, goal: Goal) -> None: ...


@dataclass(frozen=True)
class ControlResponse:
    """Synchronous answer to a control request."""
    ack: Ack
    state: ExplorationState
    message: str = ''

    @property
    def accepted(self) -> bool:
        return self.ack is Ack.ACCEPTED


class ExplorationController:
    """Coordinates exploration lifecycle and goal dispatch."""

    def __init__(
        self,
        pose_tracker: PoseTracker,
        dispatcher: GoalDispatcher,
        stop: Callable[[], None],
        selector: Optional[DirectionSelector] = None,
        params: Optional[ExplorationParams] = None,
        logger=None
    ):
        """
        Initialize exploration controller.

        Args:
            pose_tracker: Source of the robot pose
            dispatcher: Goal dispatch sink; reports back via on_goal_result()
            stop: Immediate halt command for the motion subsystem
            selector: Direction selector (default DirectionSelector)
            params: Session parameters
            logger: Optional logger (node.get_logger(), etc.)
        """
        self.params = params or ExplorationParams()
        self.pose_tracker = pose_tracker
        self.dispatcher = dispatcher
        self.stop = stop
        self.logger = logger or logging.getLogger(__name__)
        self.selector = selector or DirectionSelector(logger=self.logger)

        self.maps = SharedGridMap()
        self.scans: LatestValue[LaserScanData] = LatestValue()

        self._lock = threading.RLock()
        self._selection_lock = threading.Lock()
        self._events: queue.Queue = queue.Queue()
        self._wakeup = threading.Event()
        self._cancel = threading.Event()
        self._goal_ids = itertools.count(1)

        self._state = ExplorationState.IDLE
        self._session: Optional[ExplorationSession] = None
        self._ended_session: Optional[ExplorationSession] = None
        self._goal: Optional[Goal] = None
        self._goal_in_flight = False
        self._halted = False

        self._result: Optional[ExplorationResult] = None
        self._result_ready = threading.Event()
        self._feedback_callbacks: List[Callable[[ExplorationFeedback], None]] = []
        self._result_callbacks: List[Callable[[ExplorationResult], None]] = []

    # ==================== Properties ====================

    @property
    def state(self) -> ExplorationState:
        with self._lock:
            return self._state

    @property
    def session(self) -> Optional[ExplorationSession]:
        with self._lock:
            return self._session

    @property
    def active_goal(self) -> Optional[Goal]:
        with self._lock:
            return self._goal

    @property
    def goal_in_flight(self) -> bool:
        with self._lock:
            return self._goal_in_flight

    @property
    def last_result(self) -> Optional[ExplorationResult]:
        with self._lock:
            return self._result

    # ==================== Control Surface ====================

    def start_exploration(self) -> ControlResponse:
        """Begin a new session; rejected while one is active."""
        with self._lock:
            if is_active(self._state):
                self.logger.warning('Exploration already running, start rejected')
                return ControlResponse(Ack.BUSY, self._state, 'exploration already running')
            if not self.maps.available:
                self.logger.warning('No map received yet, start rejected')
                return ControlResponse(Ack.MAP_UNAVAILABLE, self._state, 'no map received yet')

            result = self._dispatch(Event.START)
            if not result.accepted:
                return ControlResponse(Ack.REJECTED, self._state, 'cannot start now')
            self.logger.info('Exploration started')
            return ControlResponse(Ack.ACCEPTED, self._state, 'exploration started')

    def pause(self) -> ControlResponse:
        """Toggle between running and paused."""
        with self._lock:
            result = self._dispatch(Event.PAUSE)
            if not result.accepted:
                return ControlResponse(Ack.REJECTED, self._state, 'exploration is not running')
            verb = 'paused' if self._state is ExplorationState.PAUSED else 'resumed'
            self.logger.info(f'Exploration {verb}')
            return ControlResponse(Ack.ACCEPTED, self._state, f'exploration {verb}')

    def stop_exploration(self) -> ControlResponse:
        """Graceful stop: cancel the current goal and close the session."""
        with self._lock:
            was_active = is_active(self._state)
            self._dispatch(Event.STOP_EXPLORATION, message='exploration stopped by request')
            if was_active:
                self.logger.info('Exploration stopped')
            return ControlResponse(Ack.ACCEPTED, self._state, 'exploration stopped')

    def global_stop(self) -> ControlResponse:
        """
        Immediate stop: halt the robot and drop any session.

        Repeated calls send the halt command once; any other accepted event
        in between re-arms it.
        """
        with self._lock:
            self._dispatch(Event.GLOBAL_STOP, message='global stop requested')
            if self._state is ExplorationState.STOPPED:
                self._dispatch(Event.STOP_ACKNOWLEDGED)
            return ControlResponse(Ack.ACCEPTED, self._state, 'robot stopped')

    def on_external_goal(self, point: Point, frame_id: str = '') -> ControlResponse:
        """
        Override the computed goal with an externally supplied one.

        Args:
            point: Target position
            frame_id: Frame of `point`; empty means the map frame

        Returns:
            ACCEPTED, INVALID_GOAL (prior goal kept) or REJECTED when not
            running or navigation is unavailable
        """
        with self._lock:
            if self._state is not ExplorationState.RUNNING:
                return ControlResponse(Ack.REJECTED, self._state, 'exploration is not running')
            try:
                if frame_id and frame_id != self.params.map_frame:
                    raise InvalidGoalOverride(
                        f'goal frame {frame_id!r} is not the map frame {self.params.map_frame!r}'
                    )
                goal = self._external_goal(self.maps.snapshot(), Point(*point))
            except InvalidGoalOverride as e:
                self.logger.warning(f'External goal rejected: {e}')
                return ControlResponse(Ack.INVALID_GOAL, self._state, str(e))

            self._dispatch(Event.EXTERNAL_GOAL, goal=goal)
            if not self._goal_in_flight:
                return ControlResponse(Ack.REJECTED, self._state, 'navigation unavailable')
            self.logger.info(
                f'External goal ({goal.point.x:.2f}, {goal.point.y:.2f}) overrides selection'
            )
            return ControlResponse(Ack.ACCEPTED, self._state, 'external goal accepted')

    # ==================== Inputs ====================

    def on_map(self, grid_map: GridMap) -> None:
        self.maps.update(grid_map)
        self._wakeup.set()

    def on_scan(self, scan: LaserScanData) -> None:
        self.scans.set(scan)

    def on_goal_result(self, goal_id: int, outcome: GoalOutcome) -> None:
        """Queue a completion/preemption signal from the dispatch sink."""
        self._events.put((goal_id, outcome))
        self._wakeup.set()

    # ==================== Action-style Interface ====================

    def add_feedback_callback(self, callback: Callable[[ExplorationFeedback], None]) -> None:
        self._feedback_callbacks.append(callback)

    def add_result_callback(self, callback: Callable[[ExplorationResult], None]) -> None:
        self._result_callbacks.append(callback)

    def wait_for_result(self, timeout: Optional[float] = None) -> Optional[ExplorationResult]:
        """Block until the current session ends; None on timeout."""
        if not self._result_ready.wait(timeout):
            return None
        with self._lock:
            return self._result

    # ==================== Decision Loop ====================

    def spin(self, shutdown: threading.Event) -> None:
        """Run decision cycles until `shutdown` is set."""
        while not shutdown.is_set():
            self._wakeup.clear()
            self.run_once()
            self._wakeup.wait(self.params.update_period)

    def run_once(self) -> None:
        """Process queued goal results and run one selection cycle."""
        self._drain_events()
        if not self._selection_lock.acquire(blocking=False):
            return
        try:
            self._cycle()
        finally:
            self._selection_lock.release()

    def _cycle(self) -> None:
        with self._lock:
            if self._state is not ExplorationState.RUNNING or self._session is None:
                return
            session = self._session
            if self._goal_in_flight:
                self._publish_feedback()
                return
            cancel = threading.Event()
            self._cancel = cancel

        grid_map = self.maps.snapshot()
        try:
            pose = self.pose_tracker.refresh(grid_map)
        except PoseLookupFailure as e:
            self._pose_failed(session, e)
            return

        with self._lock:
            session.pose_failures = 0
            if session.start_index < 0:
                session.start_index = grid_map.index(pose.pixel)

        try:
            goal = self.selector.select_goal(
                grid_map, pose, session, scan=self.scans.get(), cancelled=cancel
            )
        except SelectionCancelled:
            self.logger.debug('Selection pass cancelled')
            return

        with self._lock:
            if (session is not self._session or cancel.is_set() or
                    self._state is not ExplorationState.RUNNING or self._goal_in_flight):
                self.logger.debug('Discarding outdated selection')
                return
            if goal is None:
                self._dispatch(Event.NO_FRONTIER, message='area fully explored')
            else:
                self._dispatch(Event.FRONTIER_SELECTED, goal=goal)

    def _pose_failed(self, session: ExplorationSession, error: PoseLookupFailure) -> None:
        with self._lock:
            if session is not self._session:
                return
            session.pose_failures += 1
            self.logger.warning(
                f'Pose lookup failed ({session.pose_failures}/'
                f'{session.params.max_pose_failures}): {error}'
            )
            if session.pose_failures >= session.params.max_pose_failures:
                self._dispatch(Event.SESSION_ABORTED, message=f'pose unavailable: {error}')

    def _drain_events(self) -> None:
        while True:
            try:
                goal_id, outcome = self._events.get_nowait()
            except queue.Empty:
                return
            with self._lock:
                self._handle_goal_result(goal_id, outcome)

    def _handle_goal_result(self, goal_id: int, outcome: GoalOutcome) -> None:
        goal = self._goal
        session = self._session
        if (session is None or goal is None or not self._goal_in_flight or
                goal.goal_id != goal_id):
            self.logger.debug(f'Ignoring result {outcome.value} for stale goal {goal_id}')
            return

        self._goal = None
        self._goal_in_flight = False

        if outcome is GoalOutcome.SUCCEEDED:
            session.goals_reached += 1
            session.goal_failures = 0
            session.explored.add(goal.point)
            self.logger.info(f'Goal {goal_id} reached')
        elif outcome is GoalOutcome.PREEMPTED:
            self.logger.info(f'Goal {goal_id} preempted, selecting again')
        else:
            session.goal_failures += 1
            session.rejected.add(goal.point)
            self.logger.warning(
                f'Goal {goal_id} failed ({session.goal_failures}/'
                f'{session.params.max_goal_failures})'
            )
            if session.goal_failures >= session.params.max_goal_failures:
                self._dispatch(Event.SESSION_ABORTED, message='too many failed goals')

    # ==================== Transitions ====================

    def _dispatch(self, event: Event, message: str = '', goal: Optional[Goal] = None) -> Transition:
        """Apply a state machine transition and carry out its effects."""
        result = transition(self._state, event)
        if not result.accepted:
            self.logger.debug(f'{event.value} ignored in state {self._state.value}')
            return result

        previous = self._state
        self._state = result.state
        if event not in (Event.GLOBAL_STOP, Event.STOP_ACKNOWLEDGED):
            self._halted = False
        if previous is not result.state:
            self.logger.debug(f'{previous.value} -> {result.state.value} on {event.value}')

        for effect in result.effects:
            self._apply(effect, message, goal)
        return result

    def _apply(self, effect: Effect, message: str, goal: Optional[Goal]) -> None:
        if effect is Effect.BEGIN_SESSION:
            self._session = ExplorationSession(params=self.params)
            self.pose_tracker.reset()
            self._result = None
            self._result_ready.clear()

        elif effect is Effect.SELECT_GOAL:
            if self._goal is not None and self._goal.external and not self._goal_in_flight:
                self._publish(replace(self._goal, goal_id=next(self._goal_ids)))
            else:
                self._goal = None
            self._wakeup.set()

        elif effect is Effect.PUBLISH_GOAL:
            self._publish(replace(goal, goal_id=next(self._goal_ids)))

        elif effect is Effect.CANCEL_GOAL:
            self._cancel.set()
            if self._goal is not None and self._goal_in_flight:
                self.dispatcher.cancel(self._goal)
                self._goal_in_flight = False
            if self._state is not ExplorationState.PAUSED or not self._is_external_goal():
                self._goal = None

        elif effect is Effect.EMIT_STOP:
            if not self._halted:
                self.stop()
                self.logger.info('Stop command sent')
            self._halted = True

        elif effect is Effect.END_SESSION:
            self._cancel.set()
            self._ended_session = self._session
            self._session = None
            self._goal = None
            self._goal_in_flight = False

        elif effect is Effect.REPORT_SUCCESS:
            self._finish(ResultStatus.SUCCEEDED, message)
        elif effect is Effect.REPORT_PREEMPTED:
            self._finish(ResultStatus.PREEMPTED, message)
        elif effect is Effect.REPORT_ABORTED:
            self._finish(ResultStatus.ABORTED, message)

    def _is_external_goal(self) -> bool:
        return self._goal is not None and self._goal.external

    def _publish(self, goal: Goal) -> None:
        if not self.dispatcher.dispatch(goal):
            self.logger.warning(f'Goal {goal.goal_id} not sent, navigation unavailable')
            self._goal = None
            self._goal_in_flight = False
            return

        self._goal = goal
        self._goal_in_flight = True
        if self._session is not None:
            self._session.goals_published += 1
        self.logger.info(
            f'Goal {goal.goal_id} published: ({goal.point.x:.2f}, {goal.point.y:.2f})'
            f'{" [external]" if goal.external else ""}'
        )
        self._publish_feedback()

    def _publish_feedback(self) -> None:
        feedback = ExplorationFeedback(goal=self._goal, cells_explored=self._cells_explored())
        for callback in self._feedback_callbacks:
            callback(feedback)

    def _finish(self, status: ResultStatus, message: str) -> None:
        session = self._ended_session
        result = ExplorationResult(
            status=status,
            message=message,
            goals_reached=session.goals_reached if session else 0,
            cells_explored=self._cells_explored(),
        )
        self._result = result
        self._result_ready.set()
        log = self.logger.info if status is ResultStatus.SUCCEEDED else self.logger.warning
        log(f'Exploration {status.value}: {message}')
        for callback in self._result_callbacks:
            callback(result)

    def _cells_explored(self) -> int:
        grid_map = self.maps.snapshot()
        return grid_map.known_cell_count() if grid_map is not None else 0

    def _external_goal(self, grid_map: Optional[GridMap], point: Point) -> Goal:
        """
        Validate an external goal against the current map.

        Raises:
            InvalidGoalOverride: Outside the map or on an occupied cell
        """
        if grid_map is None:
            raise InvalidGoalOverride('no map received yet')
        pixel = grid_map.world_to_grid(point)
        if not grid_map.contains(pixel):
            raise InvalidGoalOverride(
                f'goal ({point.x:.2f}, {point.y:.2f}) is outside the map'
            )
        if grid_map.cell_state(pixel) is CellState.OCCUPIED:
            raise InvalidGoalOverride(
                f'goal ({point.x:.2f}, {point.y:.2f}) is on an occupied cell'
            )

        heading = 0.0
        pose = self.pose_tracker.pose
        if pose is not None:
            heading = math.atan2(point.y - pose.point.y, point.x - pose.point.x)
        return Goal(pixel=pixel, point=point, heading=heading, external=True)
