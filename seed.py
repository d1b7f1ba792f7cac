"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample users (4 drivers with vehicles, 4 passengers)
  - 6 scheduled rides around Bengaluru, two of them with accepted passengers
  - a wallet top-up for every passenger
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import text

from carpool.domain.entities import Location, Ride, RideFare, Route
from carpool.domain.enums import (
    HistoryRole,
    PassengerStatus,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
)
from carpool.domain.ledger import Transaction
from carpool.infrastructure.database import async_session_factory, engine
from carpool.infrastructure.models import UserModel
from carpool.infrastructure.unit_of_work import UnitOfWork
from carpool.infrastructure.repositories import vehicle_from_user

DRIVERS = [
    {"first_name": "Aarav", "last_name": "Sharma", "email": "aarav@example.com",
     "vehicle_make": "Maruti", "vehicle_model": "Swift", "vehicle_fuel_type": "Petrol",
     "vehicle_fuel_efficiency": 18.0, "vehicle_license_plate": "KA01AB1234"},
    {"first_name": "Priya", "last_name": "Patel", "email": "priya@example.com",
     "vehicle_make": "Tata", "vehicle_model": "Nexon EV", "vehicle_fuel_type": "Electric",
     "vehicle_fuel_efficiency": 7.0, "vehicle_license_plate": "KA02CD5678"},
    {"first_name": "Rohan", "last_name": "Mehta", "email": "rohan@example.com",
     "vehicle_make": "Hyundai", "vehicle_model": "Creta", "vehicle_fuel_type": "Diesel",
     "vehicle_fuel_efficiency": 16.0, "vehicle_license_plate": "KA03EF9012",
     "vehicle_capacity": 6},
    {"first_name": "Sneha", "last_name": "Gupta", "email": "sneha@example.com",
     "vehicle_make": "Honda", "vehicle_model": "City", "vehicle_fuel_type": "CNG",
     "vehicle_fuel_efficiency": 20.0, "vehicle_license_plate": "KA04GH3456"},
]

PASSENGERS = [
    {"first_name": "Vikram", "last_name": "Singh", "email": "vikram@example.com"},
    {"first_name": "Ananya", "last_name": "Reddy", "email": "ananya@example.com"},
    {"first_name": "Karan", "last_name": "Joshi", "email": "karan@example.com"},
    {"first_name": "Meera", "last_name": "Nair", "email": "meera@example.com"},
]

# (start, end, distance km, seats, per km)
ROUTES = [
    (("Koramangala", 12.9352, 77.6245), ("Whitefield", 12.9698, 77.7500), 18.5, 3, "8.00"),
    (("Indiranagar", 12.9784, 77.6408), ("Electronic City", 12.8399, 77.6770), 22.0, 4, "7.50"),
    (("HSR Layout", 12.9116, 77.6474), ("MG Road", 12.9756, 77.6050), 10.2, 2, "9.00"),
    (("Jayanagar", 12.9299, 77.5826), ("Hebbal", 13.0358, 77.5970), 16.8, 5, "7.00"),
    (("Marathahalli", 12.9569, 77.7011), ("Airport", 13.1986, 77.7066), 38.0, 3, "10.00"),
    (("BTM Layout", 12.9166, 77.6101), ("Manyata Tech Park", 13.0472, 77.6214), 19.4, 3, "8.50"),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        uow = UnitOfWork(session)

        # ── Users ─────────────────────────────────────────────────
        drivers = [await uow.users.add(UserModel(wallet_balance=0, **d)) for d in DRIVERS]
        passengers = [
            await uow.users.add(UserModel(wallet_balance=0, **p)) for p in PASSENGERS
        ]
        print(f"  Created {len(drivers)} drivers and {len(passengers)} passengers")

        # ── Wallets ───────────────────────────────────────────────
        for p in passengers:
            amount = Decimal("1000.00")
            p.wallet_balance = amount
            await uow.transactions.add(
                Transaction(
                    sender_id=p.id,
                    receiver_id=p.id,
                    amount=amount,
                    type=TransactionType.WALLET_TOPUP,
                    status=TransactionStatus.COMPLETED,
                    payment_method=PaymentMethod.UPI,
                    description="Wallet top-up",
                )
            )
        print(f"  Topped up {len(passengers)} wallets")

        # ── Rides ─────────────────────────────────────────────────
        now = datetime.now(timezone.utc)
        rides = []
        for i, (start, end, km, seats, per_km) in enumerate(ROUTES):
            driver = drivers[i % len(drivers)]
            ride = Ride.create(
                driver_id=driver.id,
                vehicle=vehicle_from_user(driver),
                start=Location(start[1], start[2], start[0]),
                end=Location(end[1], end[2], end[0]),
                departure_time=now + timedelta(days=1, hours=i),
                seats=seats,
                fare=RideFare(per_km=Decimal(per_km), base_fare=Decimal("30.00")),
                route=Route(distance_km=km, duration_min=km * 3),
                preferences={"smoking": False, "music": i % 2 == 0},
            )
            await uow.rides.add(ride)
            await uow.history.link(driver.id, ride.id, HistoryRole.DRIVER)
            rides.append(ride)

        # Two rides with accepted passengers
        for ride, riders in ((rides[0], passengers[:2]), (rides[1], passengers[2:3])):
            for p in riders:
                ride.request_to_join(p.id)
                ride.respond_to_request(ride.driver_id, p.id, PassengerStatus.ACCEPTED)
                await uow.history.link(p.id, ride.id, HistoryRole.PASSENGER)
            await uow.rides.save(ride)
        print(f"  Created {len(rides)} rides")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
