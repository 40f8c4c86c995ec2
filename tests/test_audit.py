import unittest
from datetime import datetime, timezone

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from rifazo.access import ActorContext, Role
from rifazo.audit import AuditLog
from rifazo.catalog import DrawCatalog, PrizeSpec
from rifazo.errors import AuditWriteWarning, InvalidRequest, Unauthorized
from rifazo.models import AuditAction, AuditEvent, Base, Draw

OPERATOR = ActorContext("op-1", Role.OPERATOR)
OTHER_OPERATOR = ActorContext("op-2", Role.OPERATOR)
OWNER = ActorContext("owner", Role.OWNER)
BUYER = ActorContext("buyer", Role.PARTICIPANT)


class AuditLogTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self):
        self.engine.dispose()

    def test_timestamps_strictly_increase_with_stalled_clock(self):
        frozen = datetime(2026, 1, 1, tzinfo=timezone.utc)
        audit = AuditLog(self.Session, now=lambda: frozen)

        events = [
            audit.record("op-1", AuditAction.RAFFLE_EDITED, f"draw:{i}") for i in range(3)
        ]

        stamps = [e.occurred_at for e in events]
        self.assertEqual(stamps[0], frozen)
        self.assertTrue(all(a < b for a, b in zip(stamps, stamps[1:])))

    def test_timestamps_do_not_step_back(self):
        readings = iter(
            [
                datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
                datetime(2026, 1, 1, 11, 0, tzinfo=timezone.utc),
            ]
        )
        audit = AuditLog(self.Session, now=lambda: next(readings))

        first = audit.record("op-1", AuditAction.RAFFLE_CREATED, "draw:1")
        second = audit.record("op-1", AuditAction.RAFFLE_EDITED, "draw:1")
        self.assertGreater(second.occurred_at, first.occurred_at)

    def test_failed_write_warns_but_operation_succeeds(self):
        audit = AuditLog(self.Session)
        catalog = DrawCatalog(self.Session, audit)
        AuditEvent.__table__.drop(self.engine)

        with self.assertWarns(AuditWriteWarning):
            draw = catalog.create_draw(
                OPERATOR,
                name="Still created",
                total_numbers=10,
                price_per_ticket="1",
                prizes=[PrizeSpec("Prize")],
            )

        with self.Session() as session:
            self.assertIsNotNone(session.get(Draw, draw.id))

    def test_record_returns_none_on_failure(self):
        audit = AuditLog(self.Session)
        AuditEvent.__table__.drop(self.engine)

        with self.assertWarns(AuditWriteWarning):
            self.assertIsNone(audit.record("op-1", AuditAction.RAFFLE_DELETED, "draw:9"))

    def test_list_events_scoping(self):
        audit = AuditLog(self.Session)
        audit.record("op-1", AuditAction.RAFFLE_CREATED, "draw:1", {"drawId": 1})
        audit.record("op-2", AuditAction.RAFFLE_CREATED, "draw:2", {"drawId": 2})
        audit.record("op-1", AuditAction.RAFFLE_EDITED, "draw:1")

        mine = audit.list_events(OPERATOR)
        self.assertEqual(
            [e.action_type for e in mine],
            [AuditAction.RAFFLE_EDITED.value, AuditAction.RAFFLE_CREATED.value],
        )
        # Operators cannot widen the filter to another actor.
        self.assertEqual(
            {e.actor_id for e in audit.list_events(OTHER_OPERATOR, actor_id="op-1")},
            {"op-2"},
        )
        self.assertEqual(len(audit.list_events(OWNER)), 3)
        self.assertEqual(len(audit.list_events(OWNER, limit=1)), 1)
        created = audit.list_events(OWNER, action=AuditAction.RAFFLE_CREATED)
        self.assertEqual({e.target_ref for e in created}, {"draw:1", "draw:2"})

        with self.assertRaises(Unauthorized):
            audit.list_events(BUYER)
        with self.assertRaises(InvalidRequest):
            audit.list_events(OWNER, limit=0)

    def test_events_are_persisted(self):
        audit = AuditLog(self.Session)
        audit.record("op-1", AuditAction.PAYMENT_CONFIRMED, "participation:3", {"numbers": [1, 2]})

        with self.Session() as session:
            stored = session.scalars(select(AuditEvent)).one()
        self.assertEqual(stored.details, {"numbers": [1, 2]})
        self.assertEqual(stored.target_ref, "participation:3")


if __name__ == "__main__":
    unittest.main()
