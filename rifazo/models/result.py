"""Database model for the write-once outcome of a draw."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import Date, DateTime, ForeignKey, JSON, String, UniqueConstraint, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..db.utils import dt_iso
from .base import ID_TYPE, Base, utcnow

if TYPE_CHECKING:
    from .draw import Draw


class DrawResult(Base):
    """Immutable record of a resolved draw.

    Every sequence column is aligned 1:1 with the draw's prize slots. A slot
    whose winning number matched no confirmed participation keeps ``None`` in
    the winner columns ("prize unclaimed").
    """

    __tablename__ = "draw_results"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Surrogate primary key."""

    draw_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("draws.id", ondelete="CASCADE"), nullable=False
    )
    """Owning draw. Unique: at most one result per draw."""

    draw_name: Mapped[str] = mapped_column(String(255), nullable=False)

    creator_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    draw_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    prizes: Mapped[list] = mapped_column(JSON, nullable=False)
    """Snapshot of the prize slots as they were when the draw was resolved."""

    winning_numbers: Mapped[list] = mapped_column(JSON, nullable=False)
    winner_names: Mapped[list] = mapped_column(JSON, nullable=False)
    winner_phones: Mapped[list] = mapped_column(JSON, nullable=False)

    winner_participation_ids: Mapped[list] = mapped_column(JSON, nullable=False)
    """Participation matched per slot.

    ``None`` when the slot is unclaimed, and also whenever an explicit winner
    name was supplied for the slot: explicit names are never linked to a
    participation, even if a confirmed holder of the winning number exists.
    """

    resolved_by: Mapped[str] = mapped_column(String(64), nullable=False)

    resolved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    draw: Mapped["Draw"] = relationship(back_populates="result")

    __table_args__ = (UniqueConstraint("draw_id", name="uq_draw_results_draw_id"),)

    def __init__(
        self,
        *,
        draw_id: int,
        draw_name: str,
        creator_id: str,
        prizes: list[dict],
        winning_numbers: list[Optional[int]],
        winner_names: list[Optional[str]],
        winner_phones: list[Optional[str]],
        winner_participation_ids: list[Optional[int]],
        resolved_by: str,
        draw_date: Optional[date] = None,
        resolved_at: Optional[datetime] = None,
    ) -> None:
        self.draw_id = draw_id
        self.draw_name = draw_name
        self.creator_id = creator_id
        self.prizes = prizes
        self.winning_numbers = winning_numbers
        self.winner_names = winner_names
        self.winner_phones = winner_phones
        self.winner_participation_ids = winner_participation_ids
        self.resolved_by = resolved_by
        self.draw_date = draw_date
        if resolved_at is not None:
            self.resolved_at = resolved_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<DrawResult(id={id}, draw_id={draw}, winning_numbers={numbers})>".format(
            id=self.id,
            draw=self.draw_id,
            numbers=self.winning_numbers,
        )

    def slots(self) -> list[dict[str, Any]]:
        """Return one dict per prize slot combining prize and winner fields."""

        return [
            {
                "prize": prize,
                "winningNumber": number,
                "winnerName": name,
                "winnerPhone": phone,
                "participationId": participation_id,
            }
            for prize, number, name, phone, participation_id in zip(
                self.prizes,
                self.winning_numbers,
                self.winner_names,
                self.winner_phones,
                self.winner_participation_ids,
            )
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "drawId": self.draw_id,
            "drawName": self.draw_name,
            "creatorId": self.creator_id,
            "drawDate": self.draw_date.isoformat() if self.draw_date else None,
            "slots": self.slots(),
            "resolvedBy": self.resolved_by,
            "resolvedAt": dt_iso(self.resolved_at),
        }

    @classmethod
    def get_for_draw(cls, session: Session, draw_id: int) -> Optional["DrawResult"]:
        return session.scalar(select(cls).where(cls.draw_id == draw_id))


__all__ = ["DrawResult"]
