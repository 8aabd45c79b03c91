"""
Exploration lifecycle state machine.

Pure transition table: given a state and an event it returns the next state
and the side effects the controller has to carry out. No I/O happens here.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class ExplorationState(Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    PAUSED = 'paused'
    STOPPED = 'stopped'


class Event(Enum):
    START = 'start'
    PAUSE = 'pause'
    STOP_EXPLORATION = 'stop_exploration'
    GLOBAL_STOP = 'global_stop'
    STOP_ACKNOWLEDGED = 'stop_acknowledged'
    FRONTIER_SELECTED = 'frontier_selected'
    NO_FRONTIER = 'no_frontier'
    EXTERNAL_GOAL = 'external_goal'
    SESSION_ABORTED = 'session_aborted'


class Effect(Enum):
    BEGIN_SESSION = 'begin_session'
    SELECT_GOAL = 'select_goal'
    PUBLISH_GOAL = 'publish_goal'
    CANCEL_GOAL = 'cancel_goal'
    EMIT_STOP = 'emit_stop'
    END_SESSION = 'end_session'
    REPORT_SUCCESS = 'report_success'
    REPORT_PREEMPTED = 'report_preempted'
    REPORT_ABORTED = 'report_aborted'


@dataclass(frozen=True)
class Transition:
    state: ExplorationState
    effects: Tuple[Effect, ...] = ()
    accepted: bool = True


S = ExplorationState
E = Event
F = Effect

_SESSION_END = (F.END_SESSION, F.REPORT_PREEMPTED)

_TABLE: Dict[Tuple[ExplorationState, Event], Transition] = {
    # ==================== Idle ====================
    (S.IDLE, E.START): Transition(S.RUNNING, (F.BEGIN_SESSION, F.SELECT_GOAL)),
    (S.IDLE, E.STOP_EXPLORATION): Transition(S.IDLE),
    (S.IDLE, E.GLOBAL_STOP): Transition(S.STOPPED, (F.EMIT_STOP,)),

    # ==================== Running ====================
    (S.RUNNING, E.PAUSE): Transition(S.PAUSED, (F.CANCEL_GOAL,)),
    (S.RUNNING, E.STOP_EXPLORATION): Transition(S.IDLE, (F.CANCEL_GOAL,) + _SESSION_END),
    (S.RUNNING, E.GLOBAL_STOP): Transition(
        S.STOPPED, (F.CANCEL_GOAL, F.EMIT_STOP) + _SESSION_END),
    (S.RUNNING, E.FRONTIER_SELECTED): Transition(S.RUNNING, (F.PUBLISH_GOAL,)),
    (S.RUNNING, E.NO_FRONTIER): Transition(S.IDLE, (F.END_SESSION, F.REPORT_SUCCESS)),
    (S.RUNNING, E.EXTERNAL_GOAL): Transition(S.RUNNING, (F.CANCEL_GOAL, F.PUBLISH_GOAL)),
    (S.RUNNING, E.SESSION_ABORTED): Transition(
        S.IDLE, (F.CANCEL_GOAL, F.END_SESSION, F.REPORT_ABORTED)),

    # ==================== Paused ====================
    (S.PAUSED, E.PAUSE): Transition(S.RUNNING, (F.SELECT_GOAL,)),
    (S.PAUSED, E.STOP_EXPLORATION): Transition(S.IDLE, _SESSION_END),
    (S.PAUSED, E.GLOBAL_STOP): Transition(S.STOPPED, (F.EMIT_STOP,) + _SESSION_END),
    (S.PAUSED, E.SESSION_ABORTED): Transition(
        S.IDLE, (F.END_SESSION, F.REPORT_ABORTED)),

    # ==================== Stopped ====================
    (S.STOPPED, E.GLOBAL_STOP): Transition(S.STOPPED),
    (S.STOPPED, E.STOP_ACKNOWLEDGED): Transition(S.IDLE),
}


def transition(state: ExplorationState, event: Event) -> Transition:
    """
    Look up the transition for an event.

    Events with no entry for the current state are rejected and leave the
    state unchanged.
    """
    return _TABLE.get((state, event), Transition(state, accepted=False))


def is_active(state: ExplorationState) -> bool:
    """True while a session exists."""
    return state in (S.RUNNING, S.PAUSED)
