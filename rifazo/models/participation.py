"""Database model for participations (claims over ticket numbers)."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import ID_TYPE, Base, utcnow

if TYPE_CHECKING:
    from .draw import Draw


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class Participation(Base):
    """One purchaser's claim over a set of ticket numbers within a draw."""

    __tablename__ = "participations"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="CASCADE"), nullable=False, index=True
    )

    draw_name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Draw title at claim time, kept for purchaser-facing listings."""

    purchaser_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    """Identity supplied by the session collaborator."""

    numbers: Mapped[list] = mapped_column(JSON, nullable=False)
    """Sorted, duplicate-free ticket numbers held by this claim."""

    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )

    participant_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    participant_last_name: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    participant_id_card: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    participant_phone: Mapped[Optional[str]] = mapped_column(String(25), nullable=True)
    payment_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    verification_confirmed: Mapped[Optional[bool]] = mapped_column(
        Boolean, nullable=True
    )
    """Advisory verdict of the receipt verifier; never drives ``payment_status``."""

    verification_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    purchased_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Last operator decision on the payment."""

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    draw: Mapped["Draw"] = relationship(back_populates="participations")

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint(
            "payment_status IN ('pending','confirmed','rejected')",
            name="payment_status_enum",
        ),
    )

    def __init__(
        self,
        *,
        draw_id: int,
        draw_name: str,
        purchaser_id: str,
        numbers: Iterable[int],
        payment_status: str = PaymentStatus.PENDING.value,
        participant_name: Optional[str] = None,
        participant_last_name: Optional[str] = None,
        participant_id_card: Optional[str] = None,
        participant_phone: Optional[str] = None,
        payment_notes: Optional[str] = None,
        purchased_at: Optional[datetime] = None,
    ) -> None:
        self.draw_id = draw_id
        self.draw_name = draw_name
        self.purchaser_id = purchaser_id
        self.numbers = sorted(numbers)
        self.payment_status = payment_status
        self.participant_name = participant_name
        self.participant_last_name = participant_last_name
        self.participant_id_card = participant_id_card
        self.participant_phone = participant_phone
        self.payment_notes = payment_notes
        if purchased_at is not None:
            self.purchased_at = purchased_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Participation(id={id}, draw_id={draw}, numbers={numbers}, payment_status={status})>".format(
            id=self.id,
            draw=self.draw_id,
            numbers=self.numbers,
            status=self.payment_status,
        )

    @property
    def ticket_count(self) -> int:
        return len(self.numbers)

    @property
    def participant_full_name(self) -> str:
        return f"{self.participant_name or ''} {self.participant_last_name or ''}".strip()

    @property
    def holds_inventory(self) -> bool:
        """Pending and confirmed claims keep their numbers out of circulation."""
        return self.payment_status != PaymentStatus.REJECTED.value

    def holds(self, number: int) -> bool:
        return number in self.numbers

    @classmethod
    def list_for_draw(
        cls,
        session: Session,
        draw_id: int,
        *,
        statuses: Optional[Iterable[PaymentStatus]] = None,
    ) -> list["Participation"]:
        """Return participations of ``draw_id``, oldest first, optionally filtered by status."""

        stmt = select(cls).where(cls.draw_id == draw_id)
        if statuses is not None:
            stmt = stmt.where(cls.payment_status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(cls.purchased_at.asc(), cls.id.asc())
        return list(session.scalars(stmt).all())

    @classmethod
    def list_for_purchaser(
        cls, session: Session, purchaser_id: str
    ) -> list["Participation"]:
        """Return every participation of ``purchaser_id``, newest first."""

        stmt = (
            select(cls)
            .where(cls.purchaser_id == purchaser_id)
            .order_by(cls.purchased_at.desc(), cls.id.desc())
        )
        return list(session.scalars(stmt).all())


__all__ = ["Participation", "PaymentStatus"]
