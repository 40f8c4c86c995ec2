"""Inventory projector: which ticket numbers are taken, and claiming new ones."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .access import ActorContext, Capability, require
from .concurrency import run_optimistic
from .config import Settings
from .errors import InvalidRequest, NotFound, NumberUnavailable
from .models import Draw, DrawStatus, Participation, PaymentStatus

logger = logging.getLogger(__name__)


def unavailable_numbers(session: Session, draw_id: int) -> set[int]:
    """Return the union of numbers held by every non-rejected participation."""

    stmt = select(Participation.numbers).where(
        Participation.draw_id == draw_id,
        Participation.payment_status != PaymentStatus.REJECTED.value,
    )
    taken: set[int] = set()
    for numbers in session.scalars(stmt):
        taken.update(numbers)
    return taken


def normalize_request(numbers: Iterable[Any]) -> list[int]:
    """Return ``numbers`` as a sorted list, rejecting non-ints and duplicates."""

    requested = list(numbers)
    if not requested:
        raise InvalidRequest("At least one number must be requested")
    for number in requested:
        if not isinstance(number, int) or isinstance(number, bool):
            raise InvalidRequest(f"Ticket numbers must be integers, got {number!r}")
    if len(set(requested)) != len(requested):
        raise InvalidRequest("Requested numbers contain duplicates")
    return sorted(requested)


def validate_claim(draw: Draw, requested: list[int]) -> None:
    """Check ``requested`` against the draw's range, purchase limits and status."""

    if draw.status != DrawStatus.ACTIVE.value:
        raise InvalidRequest(f"Draw {draw.id} is {draw.status} and not accepting claims")
    out_of_range = [n for n in requested if not draw.in_range(n)]
    if out_of_range:
        raise InvalidRequest(
            f"Numbers out of range 1..{draw.total_numbers}: {out_of_range}"
        )
    count = len(requested)
    if draw.min_per_purchase is not None and count < draw.min_per_purchase:
        raise InvalidRequest(
            f"At least {draw.min_per_purchase} numbers must be claimed at once"
        )
    if draw.max_per_purchase is not None and count > draw.max_per_purchase:
        raise InvalidRequest(
            f"At most {draw.max_per_purchase} numbers may be claimed at once"
        )


class InventoryProjector:
    """Derives the unavailable-number set of a draw and serializes claims on it.

    A claim re-reads the draw and its participations, validates, inserts a
    ``pending`` participation and bumps the draw's versioned row in one
    transaction. Two claims racing on the same draw therefore cannot both
    commit against the same snapshot: the loser's version check fails, it
    re-reads, and then either succeeds on still-free numbers or reports
    :class:`NumberUnavailable`. Claims on different draws never touch the same
    row.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or Settings()
        self._clock = clock

    def compute_unavailable(self, draw_id: int) -> set[int]:
        """Return numbers held by pending or confirmed participations of ``draw_id``."""

        with self._session_factory() as session:
            if session.get(Draw, draw_id) is None:
                raise NotFound("Draw", draw_id)
            return unavailable_numbers(session, draw_id)

    def available_numbers(self, draw_id: int) -> list[int]:
        """Return the free numbers of ``draw_id`` in ascending order."""

        with self._session_factory() as session:
            draw = session.get(Draw, draw_id)
            if draw is None:
                raise NotFound("Draw", draw_id)
            taken = unavailable_numbers(session, draw_id)
            return [n for n in range(1, draw.total_numbers + 1) if n not in taken]

    def try_claim(
        self,
        ctx: ActorContext,
        draw_id: int,
        numbers: Iterable[int],
        *,
        participant_name: Optional[str] = None,
        participant_last_name: Optional[str] = None,
        participant_id_card: Optional[str] = None,
        participant_phone: Optional[str] = None,
        payment_notes: Optional[str] = None,
    ) -> Participation:
        """Reserve ``numbers`` for ``ctx.actor_id`` as a ``pending`` participation.

        Raises
        ------
        InvalidRequest
            Empty, duplicated or out-of-range numbers, purchase limits not met,
            or the draw is not ``active``.
        NumberUnavailable
            Some numbers are held by another non-rejected participation.
            The caller should refresh the available numbers and re-select.
        Contention
            The bounded retry budget was exhausted by concurrent claims.
        OperationTimeout
            The wall-clock budget elapsed; no reservation was written.
        NotFound
            The draw does not exist.
        """

        require(ctx, Capability.CLAIM)
        requested = normalize_request(numbers)

        def work(session: Session) -> Participation:
            draw = session.get(Draw, draw_id)
            if draw is None:
                raise NotFound("Draw", draw_id)
            validate_claim(draw, requested)

            taken = unavailable_numbers(session, draw.id).intersection(requested)
            if taken:
                raise NumberUnavailable(taken)

            participation = Participation(
                draw_id=draw.id,
                draw_name=draw.name,
                purchaser_id=ctx.actor_id,
                numbers=requested,
                participant_name=participant_name,
                participant_last_name=participant_last_name,
                participant_id_card=participant_id_card,
                participant_phone=participant_phone,
                payment_notes=payment_notes,
            )
            session.add(participation)
            draw.touch_claims()
            return participation

        participation = run_optimistic(
            self._session_factory,
            work,
            max_attempts=self._settings.claim_max_retries,
            timeout_seconds=self._settings.claim_timeout_seconds,
            clock=self._clock,
            operation=f"claim on draw {draw_id}",
        )
        logger.info(
            "Participation %s claimed %d numbers on draw %s",
            participation.id,
            participation.ticket_count,
            draw_id,
        )
        return participation


__all__ = [
    "InventoryProjector",
    "normalize_request",
    "unavailable_numbers",
    "validate_claim",
]
