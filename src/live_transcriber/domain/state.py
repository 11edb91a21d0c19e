from enum import Enum, auto


class SessionState(Enum):
    STOPPED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()


class ConnectionState(Enum):
    IDLE = auto()
    CONNECTING = auto()
    OPEN = auto()
    CLOSING = auto()
    CLOSED = auto()


VALID_SESSION_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.STOPPED: {SessionState.STARTING},
    SessionState.STARTING: {SessionState.RUNNING, SessionState.STOPPING, SessionState.STOPPED},
    SessionState.RUNNING: {SessionState.STOPPING},
    SessionState.STOPPING: {SessionState.STOPPED},
}

# Failure may jump from any non-terminal state straight to CLOSED.
VALID_CONNECTION_TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.IDLE: {ConnectionState.CONNECTING, ConnectionState.CLOSING, ConnectionState.CLOSED},
    ConnectionState.CONNECTING: {ConnectionState.OPEN, ConnectionState.CLOSING, ConnectionState.CLOSED},
    ConnectionState.OPEN: {ConnectionState.CLOSING, ConnectionState.CLOSED},
    ConnectionState.CLOSING: {ConnectionState.CLOSED},
    ConnectionState.CLOSED: set(),
}


class InvalidTransitionError(Exception):
    pass


def validate_transition(current: SessionState, target: SessionState) -> None:
    if target not in VALID_SESSION_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")


def validate_connection_transition(current: ConnectionState, target: ConnectionState) -> None:
    if target not in VALID_CONNECTION_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition connection from {current.name} to {target.name}")
