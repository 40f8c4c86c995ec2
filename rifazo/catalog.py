"""Draw catalog: creation, edits, lifecycle transitions and deletion of draws."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from .access import ActorContext, Capability, require, require_draw_access
from .audit import AuditLog
from .concurrency import run_optimistic
from .config import Settings
from .errors import InvalidRequest, NotFound
from .models import AuditAction, Currency, Draw, DrawPrize, DrawStatus, Participation
from .models.draw import MAX_PRIZES, MAX_TOTAL_NUMBERS, MIN_TOTAL_NUMBERS

logger = logging.getLogger(__name__)

# Fields ``update_draw`` accepts. Status has its own transition operation.
EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "total_numbers",
        "price_per_ticket",
        "currency",
        "draw_date",
        "min_per_purchase",
        "max_per_purchase",
        "accepted_payment_methods",
        "prizes",
    }
)


@dataclass(frozen=True)
class PrizeSpec:
    """Input description of one prize slot."""

    description: str
    lottery_name: Optional[str] = None
    draw_time: Optional[str] = None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _coerce_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidRequest(f"Invalid ticket price: {value!r}") from e
    if not price.is_finite() or price < 0:
        raise InvalidRequest("Ticket price must be a non-negative amount")
    return price.quantize(Decimal("0.01"))


def _coerce_currency(value: Any) -> str:
    try:
        return Currency(value).value
    except ValueError as e:
        allowed = ", ".join(c.value for c in Currency)
        raise InvalidRequest(f"Currency must be one of: {allowed}") from e


def _coerce_status(value: Any) -> DrawStatus:
    try:
        return DrawStatus(value)
    except ValueError as e:
        allowed = ", ".join(s.value for s in DrawStatus)
        raise InvalidRequest(f"Draw status must be one of: {allowed}") from e


def _validate_prizes(prizes: Sequence[PrizeSpec]) -> list[DrawPrize]:
    if not 1 <= len(prizes) <= MAX_PRIZES:
        raise InvalidRequest(f"A draw needs between 1 and {MAX_PRIZES} prizes")
    rows = []
    for position, prize in enumerate(prizes):
        if not prize.description or not prize.description.strip():
            raise InvalidRequest(f"Prize {position + 1} needs a description")
        rows.append(
            DrawPrize(
                position=position,
                description=prize.description.strip(),
                lottery_name=prize.lottery_name or None,
                draw_time=prize.draw_time or None,
            )
        )
    return rows


def _replace_prizes(draw: Draw, prizes: Sequence[PrizeSpec]) -> None:
    # Rewrite slots in place; inserting fresh rows before the orphans are
    # deleted would collide on (draw_id, position).
    incoming = _validate_prizes(prizes)
    existing = list(draw.prizes)
    for row, new in zip(existing, incoming):
        row.description = new.description
        row.lottery_name = new.lottery_name
        row.draw_time = new.draw_time
    if len(incoming) > len(existing):
        draw.prizes.extend(incoming[len(existing) :])
    else:
        del draw.prizes[len(incoming) :]


def validate_draw_config(
    *,
    total_numbers: Any,
    min_per_purchase: Any,
    max_per_purchase: Any,
) -> None:
    """Check the structural invariants of a draw's number range and purchase limits."""

    if not _is_int(total_numbers):
        raise InvalidRequest("total_numbers must be an integer")
    if not MIN_TOTAL_NUMBERS <= total_numbers <= MAX_TOTAL_NUMBERS:
        raise InvalidRequest(
            f"total_numbers must be between {MIN_TOTAL_NUMBERS} and {MAX_TOTAL_NUMBERS}"
        )
    for label, limit in (("min_per_purchase", min_per_purchase), ("max_per_purchase", max_per_purchase)):
        if limit is None:
            continue
        if not _is_int(limit) or limit < 1:
            raise InvalidRequest(f"{label} must be a positive integer")
        if limit > total_numbers:
            raise InvalidRequest(f"{label} cannot exceed total_numbers")
    if (
        min_per_purchase is not None
        and max_per_purchase is not None
        and min_per_purchase > max_per_purchase
    ):
        raise InvalidRequest("min_per_purchase cannot be greater than max_per_purchase")


def load_draw(session: Session, draw_id: int) -> Draw:
    """Return the draw with its prizes loaded, or raise :class:`NotFound`."""

    draw = session.scalar(
        select(Draw).options(selectinload(Draw.prizes)).where(Draw.id == draw_id)
    )
    if draw is None:
        raise NotFound("Draw", draw_id)
    return draw


class DrawCatalog:
    """Owns draw configuration and the draw lifecycle.

    The session factory should be built with ``expire_on_commit=False`` (see
    :func:`rifazo.db.engine.get_sessionmaker`) so returned draws stay readable.
    """

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

    def create_draw(
        self,
        ctx: ActorContext,
        *,
        name: str,
        total_numbers: int,
        price_per_ticket: Any,
        prizes: Sequence[PrizeSpec],
        currency: str = Currency.USD.value,
        description: Optional[str] = None,
        draw_date: Optional[date] = None,
        min_per_purchase: Optional[int] = None,
        max_per_purchase: Optional[int] = None,
        accepted_payment_methods: Optional[list] = None,
        status: DrawStatus = DrawStatus.ACTIVE,
    ) -> Draw:
        """Create a draw owned by ``ctx.actor_id``.

        New draws start ``active`` unless created ``scheduled``.
        """

        require(ctx, Capability.MANAGE_DRAWS)
        if not name or not name.strip():
            raise InvalidRequest("A draw needs a name")
        status = _coerce_status(status)
        if status not in (DrawStatus.SCHEDULED, DrawStatus.ACTIVE):
            raise InvalidRequest("New draws start as 'scheduled' or 'active'")
        validate_draw_config(
            total_numbers=total_numbers,
            min_per_purchase=min_per_purchase,
            max_per_purchase=max_per_purchase,
        )
        draw = Draw(
            name=name.strip(),
            description=description,
            total_numbers=total_numbers,
            price_per_ticket=_coerce_price(price_per_ticket),
            currency=_coerce_currency(currency),
            draw_date=draw_date,
            min_per_purchase=min_per_purchase,
            max_per_purchase=max_per_purchase,
            status=status.value,
            creator_id=ctx.actor_id,
            accepted_payment_methods=accepted_payment_methods,
            prizes=_validate_prizes(prizes),
        )
        with self._session_factory.begin() as session:
            session.add(draw)
            session.flush()

        logger.info("Draw %s created by %s", draw.id, ctx.actor_id)
        self._audit.record(
            ctx.actor_id,
            AuditAction.RAFFLE_CREATED,
            f"draw:{draw.id}",
            {
                "drawId": draw.id,
                "drawName": draw.name,
                "prizes": [prize.to_dict() for prize in draw.prizes],
            },
        )
        return draw

    def get_draw(self, draw_id: int) -> Draw:
        with self._session_factory() as session:
            return load_draw(session, draw_id)

    def list_draws(
        self,
        *,
        status: Optional[DrawStatus] = None,
        creator_id: Optional[str] = None,
    ) -> list[Draw]:
        """Return draws newest first, optionally filtered by status and owner."""

        stmt = select(Draw).options(selectinload(Draw.prizes))
        if status is not None:
            stmt = stmt.where(Draw.status == _coerce_status(status).value)
        if creator_id is not None:
            stmt = stmt.where(Draw.creator_id == creator_id)
        stmt = stmt.order_by(Draw.created_at.desc(), Draw.id.desc())
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())

    def update_draw(self, ctx: ActorContext, draw_id: int, **changes: Any) -> Draw:
        """Apply configuration edits to a draw that is not completed or cancelled.

        ``total_numbers`` may only shrink down to the number of tickets held by
        pending and confirmed participations, and never below the highest
        held number.
        """

        require(ctx, Capability.MANAGE_DRAWS)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidRequest(f"Fields not editable: {', '.join(sorted(unknown))}")
        if not changes:
            raise InvalidRequest("Nothing to update")

        def work(session: Session) -> Draw:
            draw = load_draw(session, draw_id)
            require_draw_access(ctx, Capability.MANAGE_DRAWS, draw.creator_id)
            if draw.status in (DrawStatus.COMPLETED.value, DrawStatus.CANCELLED.value):
                raise InvalidRequest(f"Draw {draw_id} is {draw.status} and can no longer be edited")

            total_numbers = changes.get("total_numbers", draw.total_numbers)
            validate_draw_config(
                total_numbers=total_numbers,
                min_per_purchase=changes.get("min_per_purchase", draw.min_per_purchase),
                max_per_purchase=changes.get("max_per_purchase", draw.max_per_purchase),
            )
            if total_numbers < draw.total_numbers:
                held = [
                    p.numbers
                    for p in Participation.list_for_draw(session, draw.id)
                    if p.holds_inventory
                ]
                held_count = sum(len(numbers) for numbers in held)
                highest = max((max(numbers) for numbers in held), default=0)
                if total_numbers < held_count or total_numbers < highest:
                    raise InvalidRequest(
                        f"Cannot reduce total_numbers to {total_numbers}: "
                        f"{held_count} tickets are held (highest number {highest})"
                    )

            for field, value in changes.items():
                if field == "prizes":
                    _replace_prizes(draw, value)
                elif field == "price_per_ticket":
                    draw.price_per_ticket = _coerce_price(value)
                elif field == "currency":
                    draw.currency = _coerce_currency(value)
                elif field == "name":
                    if not value or not str(value).strip():
                        raise InvalidRequest("A draw needs a name")
                    draw.name = str(value).strip()
                else:
                    setattr(draw, field, value)
            # Always rewrite the draw row so the edit is version-checked.
            draw.updated_at = datetime.now(timezone.utc)
            return draw

        draw = run_optimistic(
            self._session_factory,
            work,
            max_attempts=self._settings.claim_max_retries,
            timeout_seconds=self._settings.claim_timeout_seconds,
            clock=self._clock,
            operation=f"update of draw {draw_id}",
        )
        logger.info("Draw %s edited by %s", draw_id, ctx.actor_id)
        self._audit.record(
            ctx.actor_id,
            AuditAction.RAFFLE_EDITED,
            f"draw:{draw_id}",
            {"drawId": draw_id, "drawName": draw.name, "updatedFields": sorted(changes)},
        )
        return draw

    def set_status(self, ctx: ActorContext, draw_id: int, status: DrawStatus) -> Draw:
        """Move a draw forward in its lifecycle, or cancel it.

        ``completed`` is only reachable through winner resolution.
        """

        require(ctx, Capability.MANAGE_DRAWS)
        status = _coerce_status(status)
        if status is DrawStatus.COMPLETED:
            raise InvalidRequest("Draws are completed by registering their winners")
        previous: dict[str, str] = {}

        def work(session: Session) -> Draw:
            draw = load_draw(session, draw_id)
            require_draw_access(ctx, Capability.MANAGE_DRAWS, draw.creator_id)
            if not draw.allows_transition(status):
                raise InvalidRequest(
                    f"Draw {draw_id} cannot move from '{draw.status}' to '{status.value}'"
                )
            previous["status"] = draw.status
            draw.status = status.value
            return draw

        draw = run_optimistic(
            self._session_factory,
            work,
            max_attempts=self._settings.claim_max_retries,
            timeout_seconds=self._settings.claim_timeout_seconds,
            clock=self._clock,
            operation=f"status change of draw {draw_id}",
        )
        logger.info("Draw %s moved to %s by %s", draw_id, status.value, ctx.actor_id)
        self._audit.record(
            ctx.actor_id,
            AuditAction.RAFFLE_STATUS_CHANGED,
            f"draw:{draw_id}",
            {
                "drawId": draw_id,
                "drawName": draw.name,
                "from": previous["status"],
                "to": status.value,
            },
        )
        return draw

    def delete_draw(self, ctx: ActorContext, draw_id: int) -> None:
        """Delete a draw together with its participations and result."""

        require(ctx, Capability.MANAGE_DRAWS)
        snapshot: dict[str, Any] = {}

        def work(session: Session) -> None:
            draw = load_draw(session, draw_id)
            require_draw_access(ctx, Capability.MANAGE_DRAWS, draw.creator_id)
            snapshot["name"] = draw.name
            snapshot["participations"] = len(draw.participations)
            # Cascaded participation deletes are version-checked as well.
            session.delete(draw)

        run_optimistic(
            self._session_factory,
            work,
            max_attempts=self._settings.claim_max_retries,
            timeout_seconds=self._settings.claim_timeout_seconds,
            clock=self._clock,
            operation=f"deletion of draw {draw_id}",
        )
        logger.info("Draw %s deleted by %s", draw_id, ctx.actor_id)
        self._audit.record(
            ctx.actor_id,
            AuditAction.RAFFLE_DELETED,
            f"draw:{draw_id}",
            {
                "drawId": draw_id,
                "drawName": snapshot["name"],
                "participationsDeleted": snapshot["participations"],
            },
        )


__all__ = [
    "DrawCatalog",
    "EDITABLE_FIELDS",
    "PrizeSpec",
    "load_draw",
    "validate_draw_config",
]
