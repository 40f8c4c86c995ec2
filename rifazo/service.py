"""One-stop wiring of the core components around a single store."""

from __future__ import annotations

import time
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .access import ActorContext
from .analytics import DrawSummary, summarize_draw
from .audit import AuditLog
from .catalog import DrawCatalog
from .config import Settings
from .db.engine import get_sessionmaker, make_engine
from .inventory import InventoryProjector
from .ledger import ParticipationLedger
from .models import Participation
from .resolver import WinnerResolver
from .verification import HttpReceiptVerifier, ReceiptVerifier


class RaffleDesk:
    """Groups catalog, inventory, ledger, resolver and audit log.

    Every component shares the same session factory, settings and audit log,
    and holds no per-request state, so one instance can serve any number of
    concurrent request handlers.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
        verifier: Optional[ReceiptVerifier] = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings or Settings()
        self.audit = AuditLog(session_factory)
        self.catalog = DrawCatalog(
            session_factory, self.audit, settings=self.settings, clock=clock
        )
        self.inventory = InventoryProjector(
            session_factory, settings=self.settings, clock=clock
        )
        self.ledger = ParticipationLedger(
            session_factory, self.audit, settings=self.settings, clock=clock
        )
        self.resolver = WinnerResolver(
            session_factory, self.audit, settings=self.settings, clock=clock
        )
        self._verifier: Optional[ReceiptVerifier] = verifier

    @classmethod
    def from_engine(
        cls, engine: Optional[Engine] = None, *, settings: Optional[Settings] = None
    ) -> "RaffleDesk":
        """Build a desk on ``engine`` (default: ``DB_URL``) with env-derived settings."""

        engine = engine or make_engine()
        return cls(get_sessionmaker(engine), settings=settings or Settings.from_env())

    def summarize(self, ctx: ActorContext, draw_id: int) -> DrawSummary:
        return summarize_draw(self.session_factory, ctx, draw_id)

    @property
    def verifier(self) -> ReceiptVerifier:
        """Receipt verifier in use, built from ``settings`` on first access."""
        if self._verifier is None:
            self._verifier = HttpReceiptVerifier.from_settings(self.settings)
        return self._verifier

    def verify_receipt(
        self, ctx: ActorContext, participation_id: int, receipt_ref: str
    ) -> Participation:
        return self.ledger.record_verification(
            ctx, participation_id, self.verifier, receipt_ref
        )


__all__ = ["RaffleDesk"]
