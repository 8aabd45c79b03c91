#!/usr/bin/env python3
"""Unit tests for ExplorationController lifecycle and goal dispatch."""
import math
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from drobot_exploration.config import ExplorationParams
from drobot_exploration.controller import ExplorationController
from drobot_exploration.direction_selector import DirectionSelector
from drobot_exploration.errors import PoseLookupFailure
from drobot_exploration.grid_map import GridMap
from drobot_exploration.pose_tracker import PoseTracker
from drobot_exploration.state_machine import ExplorationState
from drobot_exploration.types import (
    Ack,
    GoalOutcome,
    Pixel,
    Point,
    ResultStatus,
)


class FakeDispatcher:
    """Records dispatched and cancelled goals."""

    def __init__(self):
        self.ready = True
        self.dispatched = []
        self.cancelled = []

    def dispatch(self, goal):
        if not self.ready:
            return False
        self.dispatched.append(goal)
        return True

    def cancel(self, goal):
        self.cancelled.append(goal)


class FakeLookup:
    """Robot sitting at cell (5, 5) facing +x."""

    def __init__(self):
        self.fail = False

    def __call__(self, map_frame, robot_frame):
        if self.fail:
            raise PoseLookupFailure(f'{map_frame} -> {robot_frame}: no transform')
        return 5.5, 5.5, 0.0, 100.0


class StopCounter:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


def corridor_data():
    data = np.full((10, 10), -1, dtype=np.int8)
    data[5, 5:9] = 0
    return data


def make_map(data):
    height, width = data.shape
    return GridMap(data, width, height, 1.0, origin=Point(0.0, 0.0))


# ==================== Fixtures ====================

@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def lookup():
    return FakeLookup()


@pytest.fixture
def stop():
    return StopCounter()


@pytest.fixture
def make_controller(dispatcher, lookup, stop):
    def factory(params=None, selector=None):
        tracker = PoseTracker(lookup, max_age=1.0, clock=lambda: 100.0)
        return ExplorationController(
            tracker, dispatcher, stop, selector=selector, params=params
        )
    return factory


@pytest.fixture
def controller(make_controller):
    controller = make_controller()
    controller.on_map(make_map(corridor_data()))
    return controller


@pytest.fixture
def running(controller):
    """Controller with a session started and the first goal dispatched."""
    assert controller.start_exploration().accepted
    controller.run_once()
    return controller


# ==================== Tests ====================

class TestStart:
    def test_requires_map(self, make_controller):
        controller = make_controller()
        response = controller.start_exploration()
        assert response.ack is Ack.MAP_UNAVAILABLE
        assert controller.state is ExplorationState.IDLE

    def test_start(self, controller):
        response = controller.start_exploration()
        assert response.accepted
        assert response.state is ExplorationState.RUNNING
        assert controller.session is not None

    def test_start_while_running_is_busy(self, controller):
        controller.start_exploration()
        session = controller.session
        response = controller.start_exploration()
        assert response.ack is Ack.BUSY
        assert controller.session is session

    def test_records_start_cell(self, running):
        assert running.session.start_index == 5 * 10 + 5


class TestPause:
    def test_pause_from_idle_is_rejected(self, controller):
        response = controller.pause()
        assert response.ack is Ack.REJECTED
        assert controller.state is ExplorationState.IDLE

    def test_double_pause_resumes(self, controller):
        controller.start_exploration()
        assert controller.pause().state is ExplorationState.PAUSED
        assert controller.pause().state is ExplorationState.RUNNING

    def test_pause_cancels_goal_and_resume_reselects(self, running, dispatcher):
        first = dispatcher.dispatched[0]
        running.pause()
        assert dispatcher.cancelled == [first]
        assert running.active_goal is None

        running.run_once()
        assert len(dispatcher.dispatched) == 1

        running.pause()
        running.run_once()
        assert len(dispatcher.dispatched) == 2
        assert dispatcher.dispatched[1].pixel == Pixel(8, 5)
        assert dispatcher.dispatched[1].goal_id != first.goal_id

    def test_late_result_for_cancelled_goal_is_ignored(self, running, dispatcher):
        first = dispatcher.dispatched[0]
        running.pause()
        running.pause()
        running.on_goal_result(first.goal_id, GoalOutcome.PREEMPTED)
        running.run_once()
        assert running.session.rejected == set()
        assert running.goal_in_flight


class TestGoalDispatch:
    def test_publishes_best_frontier(self, running, dispatcher):
        assert len(dispatcher.dispatched) == 1
        goal = dispatcher.dispatched[0]
        assert goal.pixel == Pixel(8, 5)
        assert goal.point == Point(8.5, 5.5)
        assert running.goal_in_flight
        assert running.session.goals_published == 1

    def test_no_reselection_while_goal_in_flight(self, running, dispatcher):
        running.run_once()
        running.run_once()
        assert len(dispatcher.dispatched) == 1

    def test_success_selects_next_goal(self, running, dispatcher):
        running.on_goal_result(dispatcher.dispatched[0].goal_id, GoalOutcome.SUCCEEDED)
        running.run_once()

        assert running.session.goals_reached == 1
        assert Point(8.5, 5.5) in running.session.explored
        assert len(dispatcher.dispatched) == 2
        assert dispatcher.dispatched[1].pixel == Pixel(7, 5)

    def test_stale_result_is_ignored(self, running, dispatcher):
        running.on_goal_result(99, GoalOutcome.SUCCEEDED)
        running.run_once()
        assert running.goal_in_flight
        assert running.session.goals_reached == 0
        assert len(dispatcher.dispatched) == 1

    def test_feedback(self, controller):
        received = []
        controller.add_feedback_callback(received.append)
        controller.start_exploration()
        controller.run_once()

        assert received
        assert received[0].goal.pixel == Pixel(8, 5)
        assert received[0].cells_explored == 4

        data = received[0].to_dict()
        assert data['goal']['x'] == 8.5
        assert data['goal']['external'] is False
        assert data['cells_explored'] == 4


class TestCompletion:
    def test_fully_explored_map_succeeds(self, make_controller, dispatcher):
        controller = make_controller()
        controller.on_map(make_map(np.zeros((10, 10), dtype=np.int8)))
        results = []
        controller.add_result_callback(results.append)

        controller.start_exploration()
        controller.run_once()

        assert controller.state is ExplorationState.IDLE
        assert dispatcher.dispatched == []
        result = controller.wait_for_result(0)
        assert result is not None
        assert result.succeeded
        assert result.cells_explored == 100
        assert results == [result]
        assert result.to_dict() == {
            'status': 'succeeded',
            'message': 'area fully explored',
            'goals_reached': 0,
            'cells_explored': 100,
        }

    def test_wait_times_out_while_running(self, running):
        assert running.wait_for_result(0) is None

    def test_pose_failures_abort(self, make_controller, lookup):
        controller = make_controller(params=ExplorationParams(max_pose_failures=2))
        controller.on_map(make_map(corridor_data()))
        controller.start_exploration()
        lookup.fail = True

        controller.run_once()
        assert controller.state is ExplorationState.RUNNING
        assert controller.session.pose_failures == 1

        controller.run_once()
        assert controller.state is ExplorationState.IDLE
        assert controller.last_result.status is ResultStatus.ABORTED

    def test_pose_recovery_resets_failures(self, make_controller, lookup):
        controller = make_controller(params=ExplorationParams(max_pose_failures=2))
        controller.on_map(make_map(corridor_data()))
        controller.start_exploration()

        lookup.fail = True
        controller.run_once()
        lookup.fail = False
        controller.run_once()

        assert controller.session.pose_failures == 0
        assert controller.goal_in_flight

    def test_goal_failures_abort(self, make_controller, dispatcher):
        controller = make_controller(params=ExplorationParams(max_goal_failures=1))
        controller.on_map(make_map(corridor_data()))
        controller.start_exploration()
        controller.run_once()

        controller.on_goal_result(dispatcher.dispatched[0].goal_id, GoalOutcome.ABORTED)
        controller.run_once()

        assert controller.state is ExplorationState.IDLE
        assert controller.last_result.status is ResultStatus.ABORTED
        assert len(dispatcher.dispatched) == 1

    def test_failed_goal_is_not_retried(self, running, dispatcher):
        running.on_goal_result(dispatcher.dispatched[0].goal_id, GoalOutcome.ABORTED)
        running.run_once()

        assert Point(8.5, 5.5) in running.session.rejected
        assert running.session.goal_failures == 1
        assert dispatcher.dispatched[1].pixel == Pixel(7, 5)


class TestStop:
    def test_stop_exploration_cancels_goal(self, running, dispatcher, stop):
        response = running.stop_exploration()

        assert response.accepted
        assert running.state is ExplorationState.IDLE
        assert dispatcher.cancelled == dispatcher.dispatched
        assert stop.calls == 0
        assert running.wait_for_result(0).status is ResultStatus.PREEMPTED

    def test_stop_exploration_when_idle(self, controller):
        response = controller.stop_exploration()
        assert response.accepted
        assert controller.state is ExplorationState.IDLE
        assert controller.last_result is None

    def test_stop_during_selection_publishes_nothing(self, make_controller, dispatcher):
        class StoppingSelector(DirectionSelector):
            controller = None

            def select_goal(self, *args, **kwargs):
                self.controller.stop_exploration()
                return super().select_goal(*args, **kwargs)

        selector = StoppingSelector()
        controller = make_controller(selector=selector)
        selector.controller = controller
        controller.on_map(make_map(corridor_data()))
        controller.start_exploration()
        controller.run_once()

        assert dispatcher.dispatched == []
        assert controller.state is ExplorationState.IDLE
        assert controller.last_result.status is ResultStatus.PREEMPTED

    @pytest.mark.parametrize('setup', ['idle', 'running', 'paused'])
    def test_global_stop_is_idempotent(self, controller, stop, setup):
        if setup != 'idle':
            controller.start_exploration()
            controller.run_once()
        if setup == 'paused':
            controller.pause()

        first = controller.global_stop()
        second = controller.global_stop()

        assert first.accepted and second.accepted
        assert stop.calls == 1
        assert controller.state is ExplorationState.IDLE
        assert controller.session is None

    def test_global_stop_reports_active_session(self, running, dispatcher):
        running.global_stop()
        assert running.last_result.status is ResultStatus.PREEMPTED
        assert dispatcher.cancelled == dispatcher.dispatched

    def test_new_session_can_stop_again(self, controller, stop):
        controller.global_stop()
        controller.start_exploration()
        controller.global_stop()
        assert stop.calls == 2

    def test_other_request_rearms_global_stop(self, controller, stop):
        controller.global_stop()
        controller.stop_exploration()
        controller.global_stop()
        assert stop.calls == 2

    def test_rejected_request_does_not_rearm_global_stop(self, controller, stop):
        controller.global_stop()
        assert controller.pause().ack is Ack.REJECTED
        controller.global_stop()
        assert stop.calls == 1


class TestExternalGoal:
    def test_rejected_when_idle(self, controller, dispatcher):
        response = controller.on_external_goal(Point(2.5, 5.5))
        assert response.ack is Ack.REJECTED
        assert dispatcher.dispatched == []

    def test_override_replaces_current_goal(self, running, dispatcher):
        first = dispatcher.dispatched[0]
        response = running.on_external_goal(Point(2.5, 5.5))

        assert response.accepted
        assert dispatcher.cancelled == [first]
        override = dispatcher.dispatched[-1]
        assert override.external
        assert override.point == Point(2.5, 5.5)
        assert override.pixel == Pixel(2, 5)
        assert override.heading == pytest.approx(math.pi)
        assert running.active_goal == override

    def test_selection_waits_for_override(self, running, dispatcher):
        running.on_external_goal(Point(2.5, 5.5))
        running.run_once()
        assert len(dispatcher.dispatched) == 2

        running.on_goal_result(dispatcher.dispatched[1].goal_id, GoalOutcome.SUCCEEDED)
        running.run_once()
        assert len(dispatcher.dispatched) == 3
        assert not dispatcher.dispatched[2].external
        assert dispatcher.dispatched[2].pixel == Pixel(8, 5)

    def test_outside_map_keeps_prior_goal(self, running, dispatcher):
        prior = running.active_goal
        response = running.on_external_goal(Point(20.0, 20.0))

        assert response.ack is Ack.INVALID_GOAL
        assert running.active_goal == prior
        assert dispatcher.cancelled == []

    def test_occupied_cell_keeps_prior_goal(self, make_controller, dispatcher):
        data = corridor_data()
        data[2, 2] = 100
        controller = make_controller()
        controller.on_map(make_map(data))
        controller.start_exploration()
        controller.run_once()
        prior = controller.active_goal

        response = controller.on_external_goal(Point(2.5, 2.5))

        assert response.ack is Ack.INVALID_GOAL
        assert controller.active_goal == prior
        assert len(dispatcher.dispatched) == 1

    def test_paused_override_is_republished_on_resume(self, running, dispatcher):
        running.on_external_goal(Point(2.5, 5.5))
        override = dispatcher.dispatched[-1]

        running.pause()
        assert dispatcher.cancelled[-1] == override
        running.pause()

        republished = dispatcher.dispatched[-1]
        assert republished.external
        assert republished.point == override.point
        assert republished.goal_id != override.goal_id
        assert running.goal_in_flight

    def test_goal_in_other_frame_is_invalid(self, running, dispatcher):
        prior = running.active_goal
        response = running.on_external_goal(Point(2.5, 5.5), frame_id='odom')

        assert response.ack is Ack.INVALID_GOAL
        assert running.active_goal == prior
        assert dispatcher.cancelled == []

    def test_goal_in_map_frame(self, running, dispatcher):
        response = running.on_external_goal(Point(2.5, 5.5), frame_id='map')
        assert response.accepted
        assert dispatcher.dispatched[-1].external


class TestNavigationUnavailable:
    def test_session_keeps_running(self, controller, dispatcher):
        dispatcher.ready = False
        controller.start_exploration()
        for _ in range(6):
            controller.run_once()

        assert controller.state is ExplorationState.RUNNING
        assert controller.last_result is None
        assert not controller.goal_in_flight
        assert controller.session.rejected == set()
        assert controller.session.goal_failures == 0
        assert controller.session.goals_published == 0

    def test_goal_sent_once_navigation_is_back(self, controller, dispatcher):
        dispatcher.ready = False
        controller.start_exploration()
        controller.run_once()

        dispatcher.ready = True
        controller.run_once()

        assert len(dispatcher.dispatched) == 1
        assert dispatcher.dispatched[0].pixel == Pixel(8, 5)
        assert controller.goal_in_flight

    def test_external_goal_not_sent(self, running, dispatcher):
        dispatcher.ready = False
        response = running.on_external_goal(Point(2.5, 5.5))

        assert response.ack is Ack.REJECTED
        assert running.state is ExplorationState.RUNNING
        assert not running.goal_in_flight
        assert running.active_goal is None
