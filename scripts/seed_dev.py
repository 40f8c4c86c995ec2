from datetime import date, timedelta

from rifazo.access import ActorContext, Role
from rifazo.catalog import PrizeSpec
from rifazo.db.engine import get_sessionmaker, make_engine
from rifazo.models import Base, DrawStatus
from rifazo.service import RaffleDesk


def main() -> None:
    """Seed the development database with sample draws and participations."""
    engine = make_engine()

    # Start from an empty schema every time.
    with engine.begin() as conn:
        Base.metadata.drop_all(bind=conn)
    Base.metadata.create_all(engine)

    desk = RaffleDesk(get_sessionmaker(engine))
    organizer = ActorContext("organizer_01", Role.OPERATOR)
    alice = ActorContext("participant_01", Role.PARTICIPANT)
    bob = ActorContext("participant_02", Role.PARTICIPANT)

    today = date.today()

    motorbike = desk.catalog.create_draw(
        organizer,
        name="Motorbike raffle",
        description="Brand-new 150cc motorbike, papers included.",
        total_numbers=100,
        price_per_ticket="5.00",
        currency="USD",
        draw_date=today + timedelta(days=14),
        max_per_purchase=10,
        accepted_payment_methods=["Mobile payment 0414-0000000", "Zelle raffles@example.com"],
        prizes=[
            PrizeSpec("150cc motorbike", lottery_name="Triple Zulia", draw_time="08:00 PM"),
            PrizeSpec("Smartphone", lottery_name="Triple Zulia", draw_time="04:00 PM"),
        ],
    )
    groceries = desk.catalog.create_draw(
        organizer,
        name="Grocery basket",
        total_numbers=50,
        price_per_ticket="40",
        currency="Bs",
        draw_date=today + timedelta(days=3),
        min_per_purchase=2,
        prizes=[PrizeSpec("Monthly grocery basket")],
    )
    desk.catalog.create_draw(
        organizer,
        name="Christmas hamper",
        total_numbers=200,
        price_per_ticket="2.50",
        draw_date=today + timedelta(days=60),
        status=DrawStatus.SCHEDULED,
        prizes=[PrizeSpec("Christmas hamper")],
    )

    first = desk.inventory.try_claim(
        alice,
        motorbike.id,
        [7, 13, 42],
        participant_name="Alice",
        participant_last_name="Rivera",
        participant_phone="0414-1111111",
        payment_notes="Mobile payment ref 998877",
    )
    desk.ledger.confirm(organizer, first.id)

    desk.inventory.try_claim(
        bob,
        motorbike.id,
        [1, 2],
        participant_name="Bob",
        participant_last_name="Mendez",
        participant_phone="0424-2222222",
    )
    rejected = desk.inventory.try_claim(bob, groceries.id, [10, 11])
    desk.ledger.reject(organizer, rejected.id)

    print("Development database seeded.")


if __name__ == "__main__":
    main()
