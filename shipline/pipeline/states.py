"""RunStateMachine — legal transitions of a pipeline run."""

from __future__ import annotations

import logging

from shipline.errors import InvalidTransition
from shipline.models import RunState

logger = logging.getLogger(__name__)

# Linear happy path; FAILED is reachable from every non-terminal state
STAGE_ORDER: tuple[RunState, ...] = (
    RunState.TRIGGERED,
    RunState.INSTALLING,
    RunState.TESTING,
    RunState.BUILDING,
    RunState.PUBLISHING,
    RunState.DEPLOYING,
    RunState.SUCCEEDED,
)

TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    state: frozenset({nxt, RunState.FAILED})
    for state, nxt in zip(STAGE_ORDER, STAGE_ORDER[1:])
}
TRANSITIONS[RunState.SUCCEEDED] = frozenset()
TRANSITIONS[RunState.FAILED] = frozenset()


class RunStateMachine:
    """Track the state of one run and reject illegal transitions."""

    def __init__(self, initial: RunState = RunState.TRIGGERED) -> None:
        self._state = initial
        self._history = [initial]

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def history(self) -> list[RunState]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal

    def can_advance(self, target: RunState) -> bool:
        return target in TRANSITIONS[self._state]

    def advance(self, target: RunState) -> RunState:
        """Move to *target*; raise :class:`InvalidTransition` if not allowed."""
        if not self.can_advance(target):
            raise InvalidTransition(f"{self._state.value} -> {target.value} is not allowed")
        logger.debug("%s -> %s", self._state.value, target.value)
        self._state = target
        self._history.append(target)
        return target

    def fail(self) -> RunState:
        return self.advance(RunState.FAILED)
