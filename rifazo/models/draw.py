"""Database models for the draw catalog."""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import ID_TYPE, Base, utcnow

if TYPE_CHECKING:
    from .participation import Participation
    from .result import DrawResult


class DrawStatus(str, enum.Enum):
    """Lifecycle of a draw. Values are the strings persisted in ``draws.status``."""

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    PENDING_DRAW = "pending_draw"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Currency(str, enum.Enum):
    USD = "USD"
    LOCAL = "Bs"


# Forward order of the non-terminal lifecycle. ``cancelled`` sits outside it.
_STATUS_ORDER = (
    DrawStatus.SCHEDULED,
    DrawStatus.ACTIVE,
    DrawStatus.PENDING_DRAW,
    DrawStatus.COMPLETED,
)

MIN_TOTAL_NUMBERS = 10
MAX_TOTAL_NUMBERS = 500
MAX_PRIZES = 3


def _enum_check(column: str, enum_cls: type[enum.Enum]) -> str:
    values = ",".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class Draw(Base):
    """A numbered-ticket raffle: number range, price, prizes and lifecycle status.

    Rows are versioned through ``version_id``; every flush that updates a draw
    checks the version it was read with, which is what serializes concurrent
    claims and confirmations on the same draw.
    """

    __tablename__ = "draws"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Public title of the draw."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    total_numbers: Mapped[int] = mapped_column(Integer, nullable=False)
    """Size of the ticket range; valid numbers are ``1..total_numbers``."""

    price_per_ticket: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    currency: Mapped[str] = mapped_column(
        String(8), nullable=False, default=Currency.USD.value
    )

    draw_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    """Calendar date on which the external lottery is played."""

    min_per_purchase: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_per_purchase: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DrawStatus.ACTIVE.value
    )

    creator_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    """Identifier of the organizer who owns the draw."""

    accepted_payment_methods: Mapped[Optional[list]] = mapped_column(
        JSON, nullable=True
    )
    """Free-form payment instructions shown to purchasers."""

    claims_revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Bumped by every claim and confirmation so the draw row is rewritten."""

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    """Optimistic concurrency token managed by the mapper."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    prizes: Mapped[list["DrawPrize"]] = relationship(
        back_populates="draw",
        cascade="all, delete-orphan",
        order_by="DrawPrize.position",
    )
    """Ordered prize slots (1..3)."""

    participations: Mapped[list["Participation"]] = relationship(
        back_populates="draw",
        cascade="all, delete-orphan",
    )

    result: Mapped[Optional["DrawResult"]] = relationship(
        back_populates="draw",
        cascade="all, delete-orphan",
        uselist=False,
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint(_enum_check("status", DrawStatus), name="status_enum"),
        CheckConstraint(_enum_check("currency", Currency), name="currency_enum"),
        CheckConstraint(
            f"total_numbers >= {MIN_TOTAL_NUMBERS}", name="total_numbers_min"
        ),
        CheckConstraint(
            "min_per_purchase IS NULL OR max_per_purchase IS NULL "
            "OR min_per_purchase <= max_per_purchase",
            name="purchase_limits_order",
        ),
    )

    def __init__(
        self,
        *,
        name: str,
        total_numbers: int,
        price_per_ticket: Decimal,
        creator_id: str,
        currency: str = Currency.USD.value,
        description: Optional[str] = None,
        draw_date: Optional[date] = None,
        min_per_purchase: Optional[int] = None,
        max_per_purchase: Optional[int] = None,
        status: str = DrawStatus.ACTIVE.value,
        accepted_payment_methods: Optional[list] = None,
        prizes: Optional[list["DrawPrize"]] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        self.name = name
        self.total_numbers = total_numbers
        self.price_per_ticket = price_per_ticket
        self.creator_id = creator_id
        self.currency = currency
        self.description = description
        self.draw_date = draw_date
        self.min_per_purchase = min_per_purchase
        self.max_per_purchase = max_per_purchase
        self.status = status
        self.accepted_payment_methods = accepted_payment_methods
        self.claims_revision = 0
        if prizes is not None:
            self.prizes = prizes
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Draw(id={id}, name={name}, status={status}, total_numbers={total})>".format(
            id=self.id,
            name=self.name,
            status=self.status,
            total=self.total_numbers,
        )

    @property
    def prize_count(self) -> int:
        return len(self.prizes)

    def in_range(self, number: int) -> bool:
        """Return ``True`` when ``number`` is a valid ticket of this draw."""
        return 1 <= number <= self.total_numbers

    def allows_transition(self, target: DrawStatus) -> bool:
        """Return whether the lifecycle may move from the current status to ``target``.

        Statuses only advance forward; ``cancelled`` is reachable from any
        status except ``completed`` and is itself terminal.
        """
        current = DrawStatus(self.status)
        target = DrawStatus(target)
        if current in (DrawStatus.COMPLETED, DrawStatus.CANCELLED):
            return False
        if target is DrawStatus.CANCELLED:
            return True
        return _STATUS_ORDER.index(target) > _STATUS_ORDER.index(current)

    def touch_claims(self) -> None:
        """Mark the draw dirty so the next flush performs a versioned UPDATE."""
        self.claims_revision = (self.claims_revision or 0) + 1

    @classmethod
    def get(cls, session: Session, draw_id: int) -> Optional["Draw"]:
        return session.get(cls, draw_id)

    @classmethod
    def list_by_creator(cls, session: Session, creator_id: str) -> list["Draw"]:
        """Return draws owned by ``creator_id``, newest first."""

        stmt = (
            select(cls)
            .where(cls.creator_id == creator_id)
            .order_by(cls.created_at.desc(), cls.id.desc())
        )
        return list(session.scalars(stmt).all())


class DrawPrize(Base):
    """One prize slot of a draw, optionally tied to an external lottery sitting."""

    __tablename__ = "draw_prizes"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)

    draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="CASCADE"), nullable=False, index=True
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)
    """Zero-based slot index; aligns with result sequences."""

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    lottery_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    """External lottery whose result decides this slot."""

    draw_time: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    """Sitting of the external lottery, e.g. ``"08:00 PM"``."""

    draw: Mapped["Draw"] = relationship(back_populates="prizes")

    __table_args__ = (
        UniqueConstraint("draw_id", "position", name="uq_draw_prizes_slot"),
    )

    def __init__(
        self,
        *,
        description: str,
        position: int = 0,
        lottery_name: Optional[str] = None,
        draw_time: Optional[str] = None,
    ) -> None:
        self.description = description
        self.position = position
        self.lottery_name = lottery_name
        self.draw_time = draw_time

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "lotteryName": self.lottery_name,
            "drawTime": self.draw_time,
        }


__all__ = [
    "Currency",
    "Draw",
    "DrawPrize",
    "DrawStatus",
    "MAX_PRIZES",
    "MAX_TOTAL_NUMBERS",
    "MIN_TOTAL_NUMBERS",
]
