from enum import Enum
from typing import Optional


class UserState(str, Enum):
    IDLE = "idle"
    AWAITING = "awaiting"


VALID_TRANSITIONS = {
    UserState.IDLE: [UserState.AWAITING],
    UserState.AWAITING: [UserState.IDLE],
}


class InvalidTransitionError(Exception):
    def __init__(self, from_state: UserState, to_state: UserState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")


def state_for(context: Optional[str]) -> UserState:
    """Map a stored context slot to the user's state."""
    return UserState.AWAITING if context else UserState.IDLE


def can_transition(from_state: UserState, to_state: UserState) -> bool:
    """Check if transition is valid."""
    allowed = VALID_TRANSITIONS.get(from_state, [])
    return to_state in allowed


def transition(from_state: UserState, to_state: UserState) -> UserState:
    """Perform state transition. Raises InvalidTransitionError if not allowed."""
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)
    return to_state


def open_context(current_state: UserState) -> UserState:
    """A rule with a follow-up question matched; wait for the answer."""
    return transition(current_state, UserState.AWAITING)


def consume_context(current_state: UserState) -> UserState:
    """The awaited answer arrived (matched or not); back to idle."""
    return transition(current_state, UserState.IDLE)
