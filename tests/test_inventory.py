import unittest
from unittest.mock import patch

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from rifazo.access import ActorContext, Role
from rifazo.audit import AuditLog
from rifazo.catalog import DrawCatalog, PrizeSpec
from rifazo.config import Settings
from rifazo.errors import (
    Contention,
    InvalidRequest,
    NotFound,
    NumberUnavailable,
    OperationTimeout,
)
from rifazo.inventory import InventoryProjector, normalize_request
from rifazo.ledger import ParticipationLedger
from rifazo.models import Base, Draw, DrawStatus, Participation, PaymentStatus

OPERATOR = ActorContext("op-1", Role.OPERATOR)
ALICE = ActorContext("alice", Role.PARTICIPANT)
BOB = ActorContext("bob", Role.PARTICIPANT)


class SteppingClock:
    """Returns the queued readings in order, then repeats the last one."""

    def __init__(self, *readings: float):
        self._readings = list(readings)

    def __call__(self) -> float:
        if len(self._readings) > 1:
            return self._readings.pop(0)
        return self._readings[0]


class InventoryTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )
        audit = AuditLog(self.Session)
        self.catalog = DrawCatalog(self.Session, audit)
        self.inventory = InventoryProjector(self.Session)
        self.ledger = ParticipationLedger(self.Session, audit)

    def tearDown(self):
        self.engine.dispose()

    def _draw(self, **overrides):
        kwargs = dict(
            name="Draw",
            total_numbers=100,
            price_per_ticket="2",
            prizes=[PrizeSpec("Prize")],
        )
        kwargs.update(overrides)
        return self.catalog.create_draw(OPERATOR, **kwargs)

    def _participation_count(self):
        with self.Session() as session:
            return len(session.scalars(select(Participation)).all())

    def test_claim_creates_pending_participation(self):
        draw = self._draw()
        participation = self.inventory.try_claim(
            ALICE,
            draw.id,
            [9, 3, 5],
            participant_name="Alice",
            participant_last_name="Rivera",
            participant_phone="0414-1111111",
        )

        self.assertEqual(participation.numbers, [3, 5, 9])
        self.assertEqual(participation.payment_status, PaymentStatus.PENDING.value)
        self.assertEqual(participation.purchaser_id, "alice")
        self.assertEqual(participation.draw_name, "Draw")
        self.assertEqual(participation.participant_full_name, "Alice Rivera")
        self.assertEqual(self.inventory.compute_unavailable(draw.id), {3, 5, 9})

    def test_claim_bumps_draw_version(self):
        draw = self._draw()
        with self.Session() as session:
            before = session.get(Draw, draw.id).version_id

        self.inventory.try_claim(ALICE, draw.id, [1])

        with self.Session() as session:
            after = session.get(Draw, draw.id)
            self.assertGreater(after.version_id, before)
            self.assertEqual(after.claims_revision, 1)

    def test_unavailable_is_union_of_non_rejected(self):
        draw = self._draw()
        first = self.inventory.try_claim(ALICE, draw.id, [1, 2])
        second = self.inventory.try_claim(BOB, draw.id, [3])
        third = self.inventory.try_claim(BOB, draw.id, [4, 5])
        self.ledger.confirm(OPERATOR, first.id)
        self.ledger.reject(OPERATOR, third.id)

        self.assertEqual(self.inventory.compute_unavailable(draw.id), {1, 2, 3})
        available = self.inventory.available_numbers(draw.id)
        self.assertNotIn(3, available)
        self.assertIn(4, available)
        self.assertEqual(len(available), 97)
        self.assertEqual(second.payment_status, PaymentStatus.PENDING.value)

    def test_overlapping_claim_is_unavailable(self):
        draw = self._draw()
        self.inventory.try_claim(ALICE, draw.id, [42])

        with self.assertRaises(NumberUnavailable) as cm:
            self.inventory.try_claim(BOB, draw.id, [41, 42])
        self.assertEqual(cm.exception.numbers, [42])
        self.assertTrue(cm.exception.retryable)
        self.assertEqual(self._participation_count(), 1)

    def test_rejected_numbers_can_be_claimed_again(self):
        draw = self._draw()
        first = self.inventory.try_claim(ALICE, draw.id, [42])
        self.ledger.reject(OPERATOR, first.id)

        again = self.inventory.try_claim(BOB, draw.id, [42])
        self.assertEqual(again.numbers, [42])

    def test_purchase_size_boundaries(self):
        draw = self._draw(total_numbers=10, min_per_purchase=2, max_per_purchase=3)

        with self.assertRaises(InvalidRequest):
            self.inventory.try_claim(ALICE, draw.id, [1])
        created = self.inventory.try_claim(ALICE, draw.id, [1, 2, 3])
        self.assertEqual(created.ticket_count, 3)
        with self.assertRaises(InvalidRequest):
            self.inventory.try_claim(ALICE, draw.id, [4, 5, 6, 7])
        self.assertEqual(self._participation_count(), 1)

    def test_invalid_number_sets(self):
        draw = self._draw(total_numbers=10)
        for numbers in ([], [0], [11], [2, 2], [1.5], [True]):
            with self.subTest(numbers=numbers):
                with self.assertRaises(InvalidRequest):
                    self.inventory.try_claim(ALICE, draw.id, numbers)
        self.assertEqual(self._participation_count(), 0)

    def test_normalize_request_sorts(self):
        self.assertEqual(normalize_request((5, 1, 3)), [1, 3, 5])

    def test_claims_only_on_active_draws(self):
        draw = self._draw(status=DrawStatus.SCHEDULED)
        with self.assertRaises(InvalidRequest):
            self.inventory.try_claim(ALICE, draw.id, [1])

        self.catalog.set_status(OPERATOR, draw.id, DrawStatus.ACTIVE)
        self.inventory.try_claim(ALICE, draw.id, [1])

        self.catalog.set_status(OPERATOR, draw.id, DrawStatus.PENDING_DRAW)
        with self.assertRaises(InvalidRequest):
            self.inventory.try_claim(ALICE, draw.id, [2])

    def test_claim_on_missing_draw(self):
        with self.assertRaises(NotFound):
            self.inventory.try_claim(ALICE, 404, [1])
        with self.assertRaises(NotFound):
            self.inventory.compute_unavailable(404)

    def test_contention_after_retry_budget(self):
        draw = self._draw()
        inventory = InventoryProjector(self.Session, settings=Settings(claim_max_retries=3))

        with patch(
            "rifazo.inventory.unavailable_numbers",
            side_effect=StaleDataError("version moved"),
        ) as mock_unavailable:
            with self.assertRaises(Contention):
                inventory.try_claim(ALICE, draw.id, [1])
        self.assertEqual(mock_unavailable.call_count, 3)
        self.assertEqual(self._participation_count(), 0)

    def test_timeout_leaves_no_reservation(self):
        draw = self._draw()
        # Deadline is 0 + 10s; the pre-commit check reads 60.
        inventory = InventoryProjector(
            self.Session,
            settings=Settings(claim_timeout_seconds=10),
            clock=SteppingClock(0.0, 0.0, 60.0),
        )

        with self.assertRaises(OperationTimeout):
            inventory.try_claim(ALICE, draw.id, [7])
        self.assertEqual(self._participation_count(), 0)
        self.assertEqual(self.inventory.compute_unavailable(draw.id), set())


if __name__ == "__main__":
    unittest.main()
