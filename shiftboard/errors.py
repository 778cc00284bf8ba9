from __future__ import annotations

GENERIC_FAILURE_MESSAGE = "Operation failed, please retry"


class ShiftboardError(Exception):
    pass


class WeekRangeError(ShiftboardError, ValueError):
    pass


class RegistrationRejected(ShiftboardError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class CapacityConflictError(ShiftboardError):
    def __init__(self, conflicts: list) -> None:
        super().__init__(f"{len(conflicts)} shift slot(s) would exceed capacity")
        self.conflicts = conflicts


class NotFoundError(ShiftboardError):
    pass


class PersistenceFailure(ShiftboardError):
    def __init__(self, message: str = GENERIC_FAILURE_MESSAGE) -> None:
        super().__init__(message)


class InvariantViolation(ShiftboardError, RuntimeError):
    """Raised when data that validation should have rejected reaches the core."""
