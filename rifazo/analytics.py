"""Per-draw sales summary for organizers."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from .access import ActorContext, Capability, require_draw_access
from .errors import NotFound
from .models import Draw, Participation, PaymentStatus


@dataclass
class DrawSummary:
    draw_id: int
    draw_name: str
    total_numbers: int
    confirmed_tickets: int = 0
    pending_tickets: int = 0
    status_counts: dict[str, int] = field(
        default_factory=lambda: {status.value: 0 for status in PaymentStatus}
    )
    estimated_income: Decimal = Decimal("0.00")
    currency: str = "USD"

    @property
    def available_tickets(self) -> int:
        return self.total_numbers - self.confirmed_tickets - self.pending_tickets

    @property
    def sold_ratio(self) -> float:
        """Share of the range held by confirmed participations (0.0-1.0)."""
        return self.confirmed_tickets / self.total_numbers if self.total_numbers else 0.0


def summarize_draw(
    session_factory: sessionmaker, ctx: ActorContext, draw_id: int
) -> DrawSummary:
    """Aggregate participation counts and the income confirmed so far.

    Income only counts confirmed tickets: ``confirmed_tickets * price_per_ticket``.
    """

    with session_factory() as session:
        draw = session.get(Draw, draw_id)
        if draw is None:
            raise NotFound("Draw", draw_id)
        require_draw_access(ctx, Capability.REVIEW_PAYMENTS, draw.creator_id)

        summary = DrawSummary(
            draw_id=draw.id,
            draw_name=draw.name,
            total_numbers=draw.total_numbers,
            currency=draw.currency,
        )
        for participation in Participation.list_for_draw(session, draw.id):
            summary.status_counts[participation.payment_status] += 1
            if participation.payment_status == PaymentStatus.CONFIRMED.value:
                summary.confirmed_tickets += participation.ticket_count
            elif participation.payment_status == PaymentStatus.PENDING.value:
                summary.pending_tickets += participation.ticket_count
        summary.estimated_income = (
            Decimal(draw.price_per_ticket) * summary.confirmed_tickets
        ).quantize(Decimal("0.01"))
        return summary


__all__ = ["DrawSummary", "summarize_draw"]
