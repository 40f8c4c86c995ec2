from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AuditAction(str, enum.Enum):
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    PARTICIPATION_DELETED = "PARTICIPATION_DELETED"
    RAFFLE_CREATED = "RAFFLE_CREATED"
    RAFFLE_EDITED = "RAFFLE_EDITED"
    RAFFLE_STATUS_CHANGED = "RAFFLE_STATUS_CHANGED"
    RAFFLE_DELETED = "RAFFLE_DELETED"
    WINNER_REGISTERED = "WINNER_REGISTERED"


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action_type: Mapped[str] = mapped_column(String(40), nullable=False)
    target_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    __table_args__ = (
        CheckConstraint(
            "action_type IN ({})".format(
                ",".join(f"'{action.value}'" for action in AuditAction)
            ),
            name="action_type_enum",
        ),
    )


__all__ = ["AuditAction", "AuditEvent"]
