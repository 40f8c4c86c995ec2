"""Bounded optimistic-concurrency loop over versioned rows.

``Draw`` and ``Participation`` carry a mapper ``version_id_col``; a flush that
updates or deletes a row whose version moved since it was read raises
:class:`~sqlalchemy.orm.exc.StaleDataError`. :func:`run_optimistic` reruns the
whole unit of work in a fresh transaction when that happens.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from .errors import Contention, OperationTimeout

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_optimistic(
    session_factory: sessionmaker,
    work: Callable[[Session], T],
    *,
    max_attempts: int,
    timeout_seconds: float,
    clock: Callable[[], float] = time.monotonic,
    operation: str = "operation",
) -> T:
    """Run ``work`` in its own transaction, retrying on version conflicts.

    Parameters
    ----------
    session_factory : sessionmaker
        Factory producing sessions bound to the store.
    work : Callable[[Session], T]
        Reads current state, validates it and stages writes. It is re-invoked
        from scratch on every attempt, so it must not keep state between calls.
        Any exception it raises rolls the attempt back and propagates.
    max_attempts : int
        Upper bound on attempts before :class:`Contention` is raised.
    timeout_seconds : float
        Wall-clock budget measured with ``clock``. Exceeding it raises
        :class:`OperationTimeout`; the check also runs right before commit so
        an overdue attempt is rolled back instead of committed.
    clock : Callable[[], float], default: time.monotonic
        Monotonic time source, injectable for tests.
    operation : str
        Label used in log lines and error messages.

    Returns
    -------
    T
        Whatever ``work`` returned for the committed attempt.
    """

    deadline = clock() + timeout_seconds
    for attempt in range(1, max_attempts + 1):
        if clock() > deadline:
            raise OperationTimeout(f"{operation} exceeded {timeout_seconds}s budget")
        try:
            with session_factory.begin() as session:
                result = work(session)
                session.flush()
                if clock() > deadline:
                    raise OperationTimeout(
                        f"{operation} exceeded {timeout_seconds}s budget"
                    )
            return result
        except StaleDataError:
            logger.debug(
                "%s hit a version conflict (attempt %d/%d)",
                operation,
                attempt,
                max_attempts,
            )

    logger.info("%s gave up after %d attempts", operation, max_attempts)
    raise Contention(
        f"{operation} could not commit after {max_attempts} attempts; re-read and retry"
    )


__all__ = ["run_optimistic"]
