"""Exception taxonomy shared by every component.

``retryable`` tells the caller whether re-reading state and trying again can
succeed without changing the request.
"""

from __future__ import annotations

from typing import Iterable, Optional


class RaffleError(Exception):
    """Base class of every error raised by the core."""

    retryable = False


class InvalidRequest(RaffleError, ValueError):
    """Malformed or out-of-range input."""


class NumberUnavailable(RaffleError):
    """Some requested numbers are held by a pending or confirmed participation."""

    retryable = True

    def __init__(self, numbers: Iterable[int]) -> None:
        self.numbers = sorted(numbers)
        joined = ", ".join(str(n) for n in self.numbers)
        super().__init__(f"Numbers no longer available: {joined}")


class ConflictingConfirmation(RaffleError):
    """Confirming would give a number to a second confirmed participation."""

    retryable = True

    def __init__(
        self,
        participation_id: int,
        numbers: Iterable[int],
        conflicting_ids: Iterable[int],
    ) -> None:
        self.participation_id = participation_id
        self.numbers = sorted(numbers)
        self.conflicting_ids = sorted(conflicting_ids)
        super().__init__(
            f"Participation {participation_id} overlaps confirmed participation(s) "
            f"{self.conflicting_ids} on numbers {self.numbers}; reject it instead"
        )


class Contention(RaffleError):
    """Optimistic concurrency retries were exhausted."""

    retryable = True


class Unauthorized(RaffleError, PermissionError):
    """The caller's role or ownership does not permit the operation."""


class AlreadyResolved(RaffleError):
    """The draw already has a result."""


class OperationTimeout(RaffleError, TimeoutError):
    """The wall-clock budget ran out; nothing was written."""

    retryable = True


class NotFound(RaffleError, LookupError):
    """A referenced draw or participation does not exist."""

    def __init__(self, kind: str, key: object, message: Optional[str] = None) -> None:
        self.kind = kind
        self.key = key
        super().__init__(message or f"{kind} {key!r} not found")


class AuditWriteWarning(UserWarning):
    """An audit entry could not be persisted; the triggering operation succeeded."""


__all__ = [
    "AlreadyResolved",
    "AuditWriteWarning",
    "ConflictingConfirmation",
    "Contention",
    "InvalidRequest",
    "NotFound",
    "NumberUnavailable",
    "OperationTimeout",
    "RaffleError",
    "Unauthorized",
]
