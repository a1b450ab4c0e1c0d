"""Load a demo user and a handful of expenses into the configured database.

    python seed.py
"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from config import get_settings
from database import Database
from models import Expense, User
from schemas import ExpenseIn, IdentityIn
from services import ExpenseService, UserService

logger = logging.getLogger(__name__)

DEMO_IDENTITY = IdentityIn(
    external_identity_id="google_123456789",
    email="demo@example.com",
    name="Demo User",
    picture="https://via.placeholder.com/150",
)

DEMO_EXPENSES = [
    ("Grocery Shopping", 550000, date(2025, 1, 20), "Weekly groceries"),
    ("Fuel", 200000, date(2025, 1, 21), "Car fuel"),
    ("Restaurant", 350000, date(2025, 1, 22), "Lunch with friends"),
]


def seed_demo_data(
    session: Session, currency: str = "PKR"
) -> tuple[User, list[Expense]]:
    user = UserService(session).register(DEMO_IDENTITY)
    ledger = ExpenseService(session, user.id, default_currency=currency)
    created: list[Expense] = []
    for title, amount, occurred_on, notes in DEMO_EXPENSES:
        created.append(
            ledger.create(
                ExpenseIn(
                    expense_number=ledger.next_suggested_number(),
                    title=title,
                    amount_minor_units=amount,
                    currency=currency,
                    occurred_on=occurred_on,
                    notes=notes,
                )
            )
        )
    logger.info(f"seed_demo_data: user_id={user.id} expenses={len(created)}")
    return user, created


def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    database = Database(settings.database_url, pool_size=settings.pool_size).open()
    try:
        database.create_all()
        with database.session_scope() as session:
            seed_demo_data(session, settings.default_currency)
    finally:
        database.close()


if __name__ == "__main__":
    main()
