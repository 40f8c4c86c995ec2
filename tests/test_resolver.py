import unittest

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from rifazo.access import ActorContext, Role
from rifazo.audit import AuditLog
from rifazo.catalog import DrawCatalog, PrizeSpec
from rifazo.errors import AlreadyResolved, InvalidRequest, Unauthorized
from rifazo.inventory import InventoryProjector
from rifazo.ledger import ParticipationLedger
from rifazo.models import AuditAction, AuditEvent, Base, DrawResult, DrawStatus
from rifazo.resolver import WinnerOverride, WinnerResolver

OPERATOR = ActorContext("op-1", Role.OPERATOR)
OTHER_OPERATOR = ActorContext("op-2", Role.OPERATOR)
JANE = ActorContext("jane", Role.PARTICIPANT)
JOHN = ActorContext("john", Role.PARTICIPANT)


class ResolverTestCase(unittest.TestCase):
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
        self.resolver = WinnerResolver(self.Session, audit)

    def tearDown(self):
        self.engine.dispose()

    def _draw(self, prizes=("Motorbike",), **overrides):
        kwargs = dict(
            name="Raffle",
            total_numbers=100,
            price_per_ticket="1",
            prizes=[PrizeSpec(p) for p in prizes],
        )
        kwargs.update(overrides)
        return self.catalog.create_draw(OPERATOR, **kwargs)

    def _confirmed_claim(self, ctx, draw, numbers, **details):
        participation = self.inventory.try_claim(ctx, draw.id, numbers, **details)
        return self.ledger.confirm(OPERATOR, participation.id)

    def test_winner_auto_fill(self):
        draw = self._draw()
        holder = self._confirmed_claim(
            JANE,
            draw,
            [7],
            participant_name="Jane",
            participant_last_name="Doe",
            participant_phone="0414-7777777",
        )

        result = self.resolver.resolve(OPERATOR, draw.id, [7])

        self.assertEqual(result.winning_numbers, [7])
        self.assertEqual(result.winner_names, ["Jane Doe"])
        self.assertEqual(result.winner_phones, ["0414-7777777"])
        self.assertEqual(result.winner_participation_ids, [holder.id])
        self.assertEqual(self.catalog.get_draw(draw.id).status, DrawStatus.COMPLETED.value)

    def test_pending_holder_is_not_a_winner(self):
        draw = self._draw()
        self.inventory.try_claim(JANE, draw.id, [7], participant_name="Jane")

        result = self.resolver.resolve(OPERATOR, draw.id, [7])
        self.assertEqual(result.winner_names, [None])
        self.assertEqual(result.winner_participation_ids, [None])

    def test_multi_prize_with_unclaimed_and_explicit_slots(self):
        draw = self._draw(prizes=("Car", "Phone", "TV"))
        self._confirmed_claim(
            JOHN, draw, [10], participant_name="John", participant_phone="0424-1010101"
        )

        result = self.resolver.resolve(
            OPERATOR,
            draw.id,
            [10, 55, None],
            [WinnerOverride(phone="0412-0000000"), None, WinnerOverride(name=" Maria ")],
        )

        self.assertEqual(result.winner_names, ["John", None, "Maria"])
        self.assertEqual(result.winner_phones, ["0412-0000000", None, None])
        self.assertEqual(result.prizes[0]["description"], "Car")
        slots = result.slots()
        self.assertEqual(len(slots), 3)
        self.assertIsNone(slots[1]["winnerName"])
        self.assertEqual(slots[2]["winningNumber"], None)

    def test_explicit_name_is_not_linked_to_the_holder(self):
        draw = self._draw()
        self._confirmed_claim(JANE, draw, [7], participant_name="Jane")

        result = self.resolver.resolve(
            OPERATOR, draw.id, [7], [WinnerOverride(name="Announced on air")]
        )

        self.assertEqual(result.winner_names, ["Announced on air"])
        self.assertEqual(result.winner_participation_ids, [None])

    def test_resolution_is_write_once(self):
        draw = self._draw()
        self._confirmed_claim(JANE, draw, [7], participant_name="Jane")
        first = self.resolver.resolve(OPERATOR, draw.id, [7])

        with self.assertRaises(AlreadyResolved):
            self.resolver.resolve(OPERATOR, draw.id, [8])

        stored = self.resolver.get_result(draw.id)
        self.assertEqual(stored.id, first.id)
        self.assertEqual(stored.winning_numbers, [7])
        with self.Session() as session:
            self.assertEqual(len(session.scalars(select(DrawResult)).all()), 1)

    def test_invalid_resolution_requests(self):
        draw = self._draw(prizes=("Car", "Phone"))
        with self.assertRaises(InvalidRequest):
            self.resolver.resolve(OPERATOR, draw.id, [1])
        with self.assertRaises(InvalidRequest):
            self.resolver.resolve(OPERATOR, draw.id, [1, 101])
        with self.assertRaises(InvalidRequest):
            self.resolver.resolve(OPERATOR, draw.id, [1, "2"])
        with self.assertRaises(InvalidRequest):
            self.resolver.resolve(OPERATOR, draw.id, [1, 2], [None])
        self.assertIsNone(self.resolver.get_result(draw.id))

    def test_resolution_requires_open_draw(self):
        scheduled = self._draw(status=DrawStatus.SCHEDULED)
        with self.assertRaises(InvalidRequest):
            self.resolver.resolve(OPERATOR, scheduled.id, [1])

        cancelled = self._draw()
        self.catalog.set_status(OPERATOR, cancelled.id, DrawStatus.CANCELLED)
        with self.assertRaises(InvalidRequest):
            self.resolver.resolve(OPERATOR, cancelled.id, [1])

        waiting = self._draw()
        self.catalog.set_status(OPERATOR, waiting.id, DrawStatus.PENDING_DRAW)
        self.resolver.resolve(OPERATOR, waiting.id, [1])

    def test_resolution_permissions(self):
        draw = self._draw()
        with self.assertRaises(Unauthorized):
            self.resolver.resolve(JANE, draw.id, [1])
        with self.assertRaises(Unauthorized):
            self.resolver.resolve(OTHER_OPERATOR, draw.id, [1])

    def test_resolution_is_audited_and_listed(self):
        draw = self._draw()
        self._confirmed_claim(JANE, draw, [7], participant_name="Jane")
        self.resolver.resolve(OPERATOR, draw.id, [7])

        with self.Session() as session:
            event = session.scalars(
                select(AuditEvent).where(
                    AuditEvent.action_type == AuditAction.WINNER_REGISTERED.value
                )
            ).one()
        self.assertEqual(event.details["winnerNames"], ["Jane"])
        self.assertEqual(event.details["winningNumbers"], [7])

        results = self.resolver.list_results(creator_id="op-1")
        self.assertEqual([r.draw_id for r in results], [draw.id])
        self.assertEqual(self.resolver.list_results(creator_id="op-2"), [])
        self.assertEqual(results[0].to_dict()["drawName"], "Raffle")


if __name__ == "__main__":
    unittest.main()
