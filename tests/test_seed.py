from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from seed import seed_demo_data
from services import ExpenseQueryService


def test_seed_creates_numbered_demo_expenses() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user, expenses = seed_demo_data(session)

        assert user.sequential_id == "user001"
        assert [e.expense_number for e in expenses] == [1, 2, 3]
        summary = ExpenseQueryService(session, user.id).currency_summary()
        assert [(s.currency, s.total_minor_units, s.count) for s in summary] == [
            ("PKR", 1100000, 3)
        ]
