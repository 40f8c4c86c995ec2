"""Winner resolution: closes a draw and attributes each prize slot."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from .access import ActorContext, Capability, require, require_draw_access
from .audit import AuditLog
from .catalog import load_draw
from .concurrency import run_optimistic
from .config import Settings
from .errors import AlreadyResolved, InvalidRequest
from .models import AuditAction, DrawResult, DrawStatus, Participation, PaymentStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WinnerOverride:
    """Winner identity typed in by the operator for one slot.

    Blank fields are auto-filled from the confirmed participation holding the
    slot's winning number, when there is one.
    """

    name: Optional[str] = None
    phone: Optional[str] = None


def _blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


def _match_slot(
    winning_number: Optional[int],
    override: Optional[WinnerOverride],
    confirmed: Sequence[Participation],
) -> tuple[Optional[str], Optional[str], Optional[int]]:
    """Return ``(name, phone, participation_id)`` for one prize slot.

    An explicit name wins over the confirmed holder and leaves the slot
    unlinked (``participation_id`` is ``None``).
    """

    name = override.name.strip() if override and not _blank(override.name) else None
    phone = override.phone.strip() if override and not _blank(override.phone) else None
    if name is not None or winning_number is None:
        return name, phone, None

    holder = next((p for p in confirmed if p.holds(winning_number)), None)
    if holder is None:
        # Nobody paid for this number: the prize stays unclaimed.
        return None, phone, None
    name = holder.participant_full_name or None
    if phone is None:
        phone = holder.participant_phone or None
    return name, phone, holder.id


class WinnerResolver:
    """Turns per-slot winning numbers into the draw's single, immutable result."""

    def __init__(
        self,
        session_factory: sessionmaker,
        audit: AuditLog,
        *,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._audit = audit
        self._settings = settings or Settings()
        self._clock = clock

    def resolve(
        self,
        ctx: ActorContext,
        draw_id: int,
        winning_numbers: Sequence[Optional[int]],
        explicit_winners: Optional[Sequence[Optional[WinnerOverride]]] = None,
    ) -> DrawResult:
        """Close ``draw_id`` and persist its result.

        Parameters
        ----------
        ctx : ActorContext
            Caller; must be allowed to resolve this draw.
        draw_id : int
            Draw to close. It must be ``active`` or ``pending_draw``.
        winning_numbers : Sequence[Optional[int]]
            One entry per prize slot, in prize order. ``None`` marks a slot
            with no valid winning number.
        explicit_winners : Optional[Sequence[Optional[WinnerOverride]]]
            Optional per-slot winner identities, aligned with
            ``winning_numbers``.

        Returns
        -------
        DrawResult
            The persisted result. The draw is now ``completed``.

        Raises
        ------
        AlreadyResolved
            The draw is already completed or already has a result.
        InvalidRequest
            Wrong slot count, a number outside ``1..total_numbers``, or the
            draw is scheduled or cancelled.
        """

        require(ctx, Capability.RESOLVE_DRAWS)
        numbers = list(winning_numbers)
        overrides = list(explicit_winners) if explicit_winners is not None else None

        def work(session: Session) -> DrawResult:
            draw = load_draw(session, draw_id)
            require_draw_access(ctx, Capability.RESOLVE_DRAWS, draw.creator_id)
            if draw.status == DrawStatus.COMPLETED.value or DrawResult.get_for_draw(
                session, draw.id
            ):
                raise AlreadyResolved(f"Draw {draw_id} already has a result")
            if draw.status not in (DrawStatus.ACTIVE.value, DrawStatus.PENDING_DRAW.value):
                raise InvalidRequest(f"Draw {draw_id} is {draw.status} and cannot be resolved")

            if len(numbers) != draw.prize_count:
                raise InvalidRequest(
                    f"Expected {draw.prize_count} winning numbers, got {len(numbers)}"
                )
            if overrides is not None and len(overrides) != draw.prize_count:
                raise InvalidRequest(
                    f"Expected {draw.prize_count} winner entries, got {len(overrides)}"
                )
            for number in numbers:
                if number is None:
                    continue
                if not isinstance(number, int) or isinstance(number, bool):
                    raise InvalidRequest(f"Winning numbers must be integers, got {number!r}")
                if not draw.in_range(number):
                    raise InvalidRequest(
                        f"Winning number {number} is outside 1..{draw.total_numbers}"
                    )

            confirmed = Participation.list_for_draw(
                session, draw.id, statuses=[PaymentStatus.CONFIRMED]
            )
            names, phones, matched = [], [], []
            for slot, number in enumerate(numbers):
                override = overrides[slot] if overrides is not None else None
                name, phone, participation_id = _match_slot(number, override, confirmed)
                names.append(name)
                phones.append(phone)
                matched.append(participation_id)

            result = DrawResult(
                draw_id=draw.id,
                draw_name=draw.name,
                creator_id=draw.creator_id,
                draw_date=draw.draw_date,
                prizes=[prize.to_dict() for prize in draw.prizes],
                winning_numbers=numbers,
                winner_names=names,
                winner_phones=phones,
                winner_participation_ids=matched,
                resolved_by=ctx.actor_id,
            )
            session.add(result)
            draw.status = DrawStatus.COMPLETED.value
            return result

        try:
            result = run_optimistic(
                self._session_factory,
                work,
                max_attempts=self._settings.claim_max_retries,
                timeout_seconds=self._settings.claim_timeout_seconds,
                clock=self._clock,
                operation=f"resolution of draw {draw_id}",
            )
        except IntegrityError as e:
            # A concurrent resolution committed its result first.
            raise AlreadyResolved(f"Draw {draw_id} already has a result") from e

        logger.info("Draw %s resolved by %s", draw_id, ctx.actor_id)
        self._audit.record(
            ctx.actor_id,
            AuditAction.WINNER_REGISTERED,
            f"draw:{draw_id}",
            {
                "drawId": draw_id,
                "drawName": result.draw_name,
                "winningNumbers": list(result.winning_numbers),
                "winnerNames": list(result.winner_names),
                "winnerPhones": list(result.winner_phones),
                "winnerParticipationIds": list(result.winner_participation_ids),
            },
        )
        return result

    def get_result(self, draw_id: int) -> Optional[DrawResult]:
        with self._session_factory() as session:
            return DrawResult.get_for_draw(session, draw_id)

    def list_results(self, *, creator_id: Optional[str] = None) -> list[DrawResult]:
        """Return published results, most recently resolved first."""

        stmt = select(DrawResult)
        if creator_id is not None:
            stmt = stmt.where(DrawResult.creator_id == creator_id)
        stmt = stmt.order_by(DrawResult.resolved_at.desc(), DrawResult.id.desc())
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())


__all__ = ["WinnerOverride", "WinnerResolver"]
