from decimal import Decimal

from sqlalchemy import select

from src.infrastructure.db.models import Base, Carer, Client
from src.infrastructure.db.session import engine, get_db_session


def seed_carers(db) -> None:
    carer_defs = [
        {
            "full_name": "Amara Okafor",
            "email": "amara.okafor@example.com",
            "charge_hrs": Decimal("20.00"),
            "postcode": "SW1A 1AA",
            "city": "London",
        },
        {
            "full_name": "Tomasz Nowak",
            "email": "tomasz.nowak@example.com",
            "charge_hrs": Decimal("18.50"),
            "postcode": "M1 1AE",
            "city": "Manchester",
        },
        {
            # No rate yet: completes at zero cost.
            "full_name": "Priya Shah",
            "email": "priya.shah@example.com",
            "charge_hrs": None,
            "postcode": "B1 1BB",
            "city": "Birmingham",
        },
    ]

    for item in carer_defs:
        existing = db.execute(
            select(Carer).where(Carer.email == item["email"])
        ).scalar_one_or_none()
        if existing:
            existing.full_name = item["full_name"]
            existing.charge_hrs = item["charge_hrs"]
            existing.postcode = item["postcode"]
            existing.city = item["city"]
            continue
        db.add(Carer(**item))


def seed_clients(db) -> None:
    client_defs = [
        {
            "full_name": "Margaret Hughes",
            "email": "margaret.hughes@example.com",
            "phone": "+44 20 7946 0018",
            "postcode": "SW1A 2AA",
        },
        {
            "full_name": "David Brennan",
            "email": "david.brennan@example.com",
            "phone": "+44 161 496 0734",
            "postcode": "M2 3BB",
        },
    ]

    for item in client_defs:
        existing = db.execute(
            select(Client).where(Client.email == item["email"])
        ).scalar_one_or_none()
        if existing:
            existing.full_name = item["full_name"]
            existing.phone = item["phone"]
            existing.postcode = item["postcode"]
            continue
        db.add(Client(**item))


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        seed_carers(db)
        seed_clients(db)
    print("Seed complete: 3 carers and 2 clients.")


if __name__ == "__main__":
    main()
