"""Append-only audit trail of operator actions."""

from __future__ import annotations

import logging
import threading
import warnings
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .access import ActorContext, Capability, require
from .errors import AuditWriteWarning, InvalidRequest
from .models import AuditAction, AuditEvent

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditLog:
    """Writes one :class:`AuditEvent` per state-changing operator action.

    Each event is committed in its own transaction after the primary
    operation has committed, so an audit failure can never undo or block the
    business change. Failures are logged and re-emitted as
    :class:`AuditWriteWarning`.

    Timestamps are assigned here and are strictly increasing for a given
    ``AuditLog`` instance even when the wall clock stalls or steps back.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._now = now
        self._lock = threading.Lock()
        self._last_timestamp: Optional[datetime] = None

    def _next_timestamp(self) -> datetime:
        with self._lock:
            ts = self._now()
            if self._last_timestamp is not None and ts <= self._last_timestamp:
                ts = self._last_timestamp + timedelta(microseconds=1)
            self._last_timestamp = ts
            return ts

    def record(
        self,
        actor_id: str,
        action: AuditAction,
        target_ref: str,
        details: Optional[dict[str, Any]] = None,
    ) -> Optional[AuditEvent]:
        """Persist an event; return it, or ``None`` when the write failed."""

        event = AuditEvent(
            actor_id=actor_id,
            action_type=action.value,
            target_ref=target_ref,
            details=details,
            occurred_at=self._next_timestamp(),
        )
        try:
            with self._session_factory.begin() as session:
                session.add(event)
        except SQLAlchemyError as e:
            logger.warning(
                "Audit write failed for %s on %s: %s", action.value, target_ref, e
            )
            warnings.warn(
                AuditWriteWarning(
                    f"Audit entry {action.value} for {target_ref} was not recorded: {e}"
                ),
                stacklevel=2,
            )
            return None
        return event

    def list_events(
        self,
        ctx: ActorContext,
        *,
        limit: int = 100,
        actor_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
    ) -> list[AuditEvent]:
        """Return events newest first.

        Operators only see their own entries; owners may filter by any actor.
        """

        require(ctx, Capability.READ_AUDIT)
        if limit <= 0:
            raise InvalidRequest("limit must be a positive integer")
        if not ctx.can(Capability.ANY_DRAW):
            actor_id = ctx.actor_id

        stmt = select(AuditEvent)
        if actor_id is not None:
            stmt = stmt.where(AuditEvent.actor_id == actor_id)
        if action is not None:
            stmt = stmt.where(AuditEvent.action_type == action.value)
        stmt = stmt.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(
            limit
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())


__all__ = ["AuditLog"]
