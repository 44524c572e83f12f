"""Domain error codes and exceptions raised by the service layer."""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    TOO_LATE_TO_CANCEL = "TOO_LATE_TO_CANCEL"
    TOO_LATE_TO_CHANGE_MODE = "TOO_LATE_TO_CHANGE_MODE"
    BOOKING_CONFLICT = "BOOKING_CONFLICT"
    CONFLICT = "CONFLICT"
    DATA_INTEGRITY = "DATA_INTEGRITY"
    NO_ACTIVE_SEASON = "NO_ACTIVE_SEASON"
    SEASON_MISMATCH = "SEASON_MISMATCH"


class DomainError(Exception):
    """Base domain error with code, user-safe message and HTTP status."""

    code: ErrorCode = ErrorCode.DATA_INTEGRITY
    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""

    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, entity: str, entity_id) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class GuardViolationError(DomainError):
    """A transition was attempted outside the window or state that allows it."""

    code = ErrorCode.INVALID_STATE_TRANSITION
    status_code = 422


class TooLateToCancelError(GuardViolationError):
    """Raised when releasing or cancelling after the cancellation deadline."""

    code = ErrorCode.TOO_LATE_TO_CANCEL

    def __init__(self, order_id: int, deadline) -> None:
        super().__init__(
            f"Order {order_id} can no longer be cancelled (deadline was {deadline.isoformat()})"
        )
        self.order_id = order_id
        self.deadline = deadline


class TooLateToChangeModeError(GuardViolationError):
    """Raised when editing the dining mode after the edit deadline."""

    code = ErrorCode.TOO_LATE_TO_CHANGE_MODE

    def __init__(self, order_id: int, deadline) -> None:
        super().__init__(
            f"Dining mode of order {order_id} can no longer be changed (deadline was {deadline.isoformat()})"
        )
        self.order_id = order_id
        self.deadline = deadline


class InvalidStateTransitionError(GuardViolationError):
    """Raised when a state machine does not allow the requested move."""

    code = ErrorCode.INVALID_STATE_TRANSITION

    def __init__(self, entity: str, entity_id, current, target) -> None:
        super().__init__(
            f"{entity} {entity_id} cannot move from {current.value} to {target.value}"
        )
        self.current = current
        self.target = target


class ConflictError(DomainError):
    """The request lost a race or collides with existing state; re-query and retry."""

    code = ErrorCode.CONFLICT
    status_code = 409


class BookingConflictError(ConflictError):
    """Raised when the inhabitant already holds an order for the dinner."""

    code = ErrorCode.BOOKING_CONFLICT

    def __init__(self, inhabitant_id: int, dinner_event_id: int) -> None:
        super().__init__(
            f"Inhabitant {inhabitant_id} already has an order for dinner event {dinner_event_id}"
        )
        self.inhabitant_id = inhabitant_id
        self.dinner_event_id = dinner_event_id


class DataIntegrityError(DomainError):
    """Stored data violates an invariant the engine depends on."""

    code = ErrorCode.DATA_INTEGRITY
    status_code = 500


class NoActiveSeasonError(DomainError):
    """Raised when an operation needs the active season and none is flagged."""

    code = ErrorCode.NO_ACTIVE_SEASON
    status_code = 404

    def __init__(self) -> None:
        super().__init__("No active season")


class SeasonMismatchError(DomainError):
    """Raised when a team, dinner or price belongs to a different season."""

    code = ErrorCode.SEASON_MISMATCH
    status_code = 422
