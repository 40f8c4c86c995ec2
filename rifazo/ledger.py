"""Participation ledger: reads, operator payment decisions and deletions."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Optional

from sqlalchemy import case, select
from sqlalchemy.orm import Session, sessionmaker

from .access import ActorContext, Capability, require, require_draw_access
from .audit import AuditLog
from .concurrency import run_optimistic
from .config import Settings
from .errors import ConflictingConfirmation, InvalidRequest, NotFound, Unauthorized
from .models import AuditAction, Draw, DrawStatus, Participation, PaymentStatus

if TYPE_CHECKING:
    from .verification import ReceiptVerifier

logger = logging.getLogger(__name__)

# Operator decisions the ledger accepts, keyed by current status.
ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.CONFIRMED, PaymentStatus.REJECTED}),
    PaymentStatus.CONFIRMED: frozenset({PaymentStatus.REJECTED}),
    PaymentStatus.REJECTED: frozenset(),
}

_AUDIT_ACTIONS = {
    PaymentStatus.CONFIRMED: AuditAction.PAYMENT_CONFIRMED,
    PaymentStatus.REJECTED: AuditAction.PAYMENT_REJECTED,
}


def _coerce_payment_status(value: Any) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError as e:
        allowed = ", ".join(s.value for s in PaymentStatus)
        raise InvalidRequest(f"Payment status must be one of: {allowed}") from e


def _load_participation(session: Session, participation_id: int) -> Participation:
    participation = session.get(Participation, participation_id)
    if participation is None:
        raise NotFound("Participation", participation_id)
    return participation


def find_confirmed_conflicts(
    session: Session, participation: Participation
) -> dict[int, list[int]]:
    """Map other confirmed participations of the same draw to the numbers they share."""

    mine = set(participation.numbers)
    conflicts: dict[int, list[int]] = {}
    for other in Participation.list_for_draw(
        session, participation.draw_id, statuses=[PaymentStatus.CONFIRMED]
    ):
        if other.id == participation.id:
            continue
        shared = mine.intersection(other.numbers)
        if shared:
            conflicts[other.id] = sorted(shared)
    return conflicts


class ParticipationLedger:
    """CRUD over participations plus the payment-status state machine.

    ``pending -> confirmed`` re-checks, inside the committing transaction,
    that no other confirmed participation of the draw holds any of the same
    numbers; the draw row is rewritten as part of the confirmation so two
    overlapping confirmations cannot both pass that check concurrently.
    Rejections and deletions only touch the participation itself.
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

    def _optimistic(self, work: Callable[[Session], Any], operation: str) -> Any:
        return run_optimistic(
            self._session_factory,
            work,
            max_attempts=self._settings.claim_max_retries,
            timeout_seconds=self._settings.claim_timeout_seconds,
            clock=self._clock,
            operation=operation,
        )

    # ------------------------------------------------------------------ reads

    def get(self, ctx: ActorContext, participation_id: int) -> Participation:
        """Return a participation visible to ``ctx``.

        Purchasers see their own participations; operators see those of the
        draws they manage.
        """

        with self._session_factory() as session:
            participation = _load_participation(session, participation_id)
            if participation.purchaser_id == ctx.actor_id:
                return participation
            draw = session.get(Draw, participation.draw_id)
            require_draw_access(ctx, Capability.REVIEW_PAYMENTS, draw.creator_id)
            return participation

    def list_for_draw(
        self,
        ctx: ActorContext,
        draw_id: int,
        *,
        status: Optional[PaymentStatus] = None,
    ) -> list[Participation]:
        with self._session_factory() as session:
            draw = session.get(Draw, draw_id)
            if draw is None:
                raise NotFound("Draw", draw_id)
            require_draw_access(ctx, Capability.REVIEW_PAYMENTS, draw.creator_id)
            statuses = None
            if status is not None:
                statuses = [_coerce_payment_status(status)]
            return Participation.list_for_draw(session, draw_id, statuses=statuses)

    def list_for_purchaser(
        self, ctx: ActorContext, purchaser_id: str
    ) -> list[Participation]:
        if purchaser_id != ctx.actor_id and not ctx.can(Capability.ANY_DRAW):
            raise Unauthorized("Participations of other purchasers are not visible")
        with self._session_factory() as session:
            return Participation.list_for_purchaser(session, purchaser_id)

    def review_queue(self, ctx: ActorContext) -> list[Participation]:
        """Return participations awaiting review: pending first, then newest first.

        Operators only see participations of draws they created.
        """

        require(ctx, Capability.REVIEW_PAYMENTS)
        pending_first = case(
            (Participation.payment_status == PaymentStatus.PENDING.value, 0), else_=1
        )
        stmt = select(Participation).order_by(
            pending_first, Participation.purchased_at.desc(), Participation.id.desc()
        )
        if not ctx.can(Capability.ANY_DRAW):
            stmt = stmt.join(Draw, Draw.id == Participation.draw_id).where(
                Draw.creator_id == ctx.actor_id
            )
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())

    # ----------------------------------------------------------------- writes

    def set_payment_status(
        self,
        ctx: ActorContext,
        participation_id: int,
        new_status: PaymentStatus,
    ) -> Participation:
        """Record the operator's payment decision.

        Raises
        ------
        InvalidRequest
            The transition is not allowed (e.g. out of ``rejected``), or a
            confirmation targets a completed or cancelled draw.
        ConflictingConfirmation
            Another confirmed participation already holds one of the numbers.
            The operator must reject this participation instead.
        Unauthorized
            The caller cannot review payments of this draw.
        """

        require(ctx, Capability.REVIEW_PAYMENTS)
        new_status = _coerce_payment_status(new_status)
        previous: dict[str, str] = {}

        def work(session: Session) -> Participation:
            participation = _load_participation(session, participation_id)
            draw = session.get(Draw, participation.draw_id)
            require_draw_access(ctx, Capability.REVIEW_PAYMENTS, draw.creator_id)

            current = PaymentStatus(participation.payment_status)
            if new_status not in ALLOWED_TRANSITIONS[current]:
                raise InvalidRequest(
                    f"Participation {participation_id} cannot move from "
                    f"'{current.value}' to '{new_status.value}'"
                )

            if new_status is PaymentStatus.CONFIRMED:
                if draw.status in (DrawStatus.COMPLETED.value, DrawStatus.CANCELLED.value):
                    raise InvalidRequest(
                        f"Draw {draw.id} is {draw.status}; payments can no longer be confirmed"
                    )
                conflicts = find_confirmed_conflicts(session, participation)
                if conflicts:
                    shared = {n for numbers in conflicts.values() for n in numbers}
                    raise ConflictingConfirmation(participation_id, shared, conflicts)
                draw.touch_claims()

            previous["status"] = current.value
            participation.payment_status = new_status.value
            participation.status_changed_at = datetime.now(timezone.utc)
            return participation

        participation = self._optimistic(
            work, f"payment decision on participation {participation_id}"
        )
        logger.info(
            "Participation %s moved from %s to %s by %s",
            participation_id,
            previous["status"],
            new_status.value,
            ctx.actor_id,
        )
        self._audit.record(
            ctx.actor_id,
            _AUDIT_ACTIONS[new_status],
            f"participation:{participation_id}",
            {
                "participationId": participation_id,
                "drawId": participation.draw_id,
                "drawName": participation.draw_name,
                "purchaserId": participation.purchaser_id,
                "numbers": list(participation.numbers),
                "previousStatus": previous["status"],
                "newStatus": new_status.value,
            },
        )
        return participation

    def confirm(self, ctx: ActorContext, participation_id: int) -> Participation:
        return self.set_payment_status(ctx, participation_id, PaymentStatus.CONFIRMED)

    def reject(self, ctx: ActorContext, participation_id: int) -> Participation:
        return self.set_payment_status(ctx, participation_id, PaymentStatus.REJECTED)

    def delete(self, ctx: ActorContext, participation_id: int) -> None:
        """Delete a participation in any status, freeing its numbers."""

        require(ctx, Capability.DELETE_PARTICIPATIONS)
        snapshot: dict[str, Any] = {}

        def work(session: Session) -> None:
            participation = _load_participation(session, participation_id)
            draw = session.get(Draw, participation.draw_id)
            require_draw_access(ctx, Capability.DELETE_PARTICIPATIONS, draw.creator_id)
            snapshot.update(
                participationId=participation_id,
                drawId=participation.draw_id,
                drawName=participation.draw_name,
                purchaserId=participation.purchaser_id,
                numbers=list(participation.numbers),
                paymentStatus=participation.payment_status,
            )
            session.delete(participation)

        self._optimistic(work, f"deletion of participation {participation_id}")
        logger.info("Participation %s deleted by %s", participation_id, ctx.actor_id)
        self._audit.record(
            ctx.actor_id,
            AuditAction.PARTICIPATION_DELETED,
            f"participation:{participation_id}",
            snapshot,
        )

    def record_verification(
        self,
        ctx: ActorContext,
        participation_id: int,
        verifier: "ReceiptVerifier",
        receipt_ref: str,
    ) -> Participation:
        """Run ``verifier`` on a receipt and store its advisory verdict.

        The payment status is left untouched; the operator still decides
        through :meth:`set_payment_status`.
        """

        require(ctx, Capability.REVIEW_PAYMENTS)
        with self._session_factory() as session:
            participation = _load_participation(session, participation_id)
            draw = session.get(Draw, participation.draw_id)
            require_draw_access(ctx, Capability.REVIEW_PAYMENTS, draw.creator_id)
            expected_amount = Decimal(draw.price_per_ticket) * participation.ticket_count
            payer_name = participation.participant_full_name
            draw_name = draw.name

        # The collaborator call stays outside any transaction.
        verdict = verifier.verify(
            receipt_ref=receipt_ref,
            expected_amount=expected_amount,
            payer_name=payer_name,
            draw_name=draw_name,
        )

        def work(session: Session) -> Participation:
            participation = _load_participation(session, participation_id)
            participation.verification_confirmed = verdict.is_confirmed
            participation.verification_notes = verdict.details
            return participation

        participation = self._optimistic(
            work, f"verification of participation {participation_id}"
        )
        logger.info(
            "Receipt verdict stored for participation %s (confirmed=%s)",
            participation_id,
            verdict.is_confirmed,
        )
        return participation


__all__ = [
    "ALLOWED_TRANSITIONS",
    "ParticipationLedger",
    "find_confirmed_conflicts",
]
