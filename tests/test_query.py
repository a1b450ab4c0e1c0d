from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import ValidationError
from schemas import IdentityIn
from services import (
    ExpenseFilters,
    ExpenseQueryService,
    ExpenseService,
    UserService,
    summarize_by_currency,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def register(session, external_id: str = "ext-1", name: str = "Ayesha Khan"):
    return UserService(session).register(
        IdentityIn(
            external_identity_id=external_id,
            email=f"{external_id}@example.com",
            name=name,
        )
    )


def add(ledger: ExpenseService, number: int, title: str, occurred_on, **extra):
    data = {
        "expense_number": number,
        "title": title,
        "amount_minor_units": extra.pop("amount", 1000 * number),
        "currency": extra.pop("currency", "PKR"),
        "occurred_on": occurred_on,
    }
    data.update(extra)
    return ledger.create(data)


def january_ledger(session):
    owner = register(session)
    ledger = ExpenseService(session, owner.id)
    for number, day in enumerate([3, 9, 15, 22, 31], start=1):
        add(ledger, number, f"January {day}", date(2025, 1, day))
    add(ledger, 6, "February 1", date(2025, 2, 1))
    add(ledger, 7, "December 31", date(2024, 12, 31))
    return owner


def test_date_range_with_pagination() -> None:
    session = make_session()
    owner = january_ledger(session)
    query = ExpenseQueryService(session, owner.id)

    page = query.list(
        ExpenseFilters(date(2025, 1, 1), date(2025, 1, 31)), page=1, page_size=2
    )

    assert len(page.items) == 2
    assert page.total_count == 5
    assert page.page_count == 3
    assert [e.title for e in page.items] == ["January 31", "January 22"]


def test_page_beyond_last_is_empty_not_an_error() -> None:
    session = make_session()
    owner = january_ledger(session)
    query = ExpenseQueryService(session, owner.id)

    page = query.list(
        ExpenseFilters(date(2025, 1, 1), date(2025, 1, 31)), page=9, page_size=2
    )

    assert page.items == []
    assert page.total_count == 5
    assert page.page_count == 3


def test_pages_concatenate_to_full_sorted_list() -> None:
    session = make_session()
    owner = january_ledger(session)
    query = ExpenseQueryService(session, owner.id)
    full = query.all_matching()

    first = query.list(page=1, page_size=3)
    collected = []
    for number in range(1, first.page_count + 1):
        collected.extend(query.list(page=number, page_size=3).items)

    assert first.page_count == 3
    assert [e.id for e in collected] == [e.id for e in full]
    assert len({e.id for e in collected}) == first.total_count == 7


def test_same_day_ties_follow_insertion_order() -> None:
    session = make_session()
    owner = register(session)
    ledger = ExpenseService(session, owner.id)
    add(ledger, 1, "Breakfast", date(2025, 3, 1))
    add(ledger, 2, "Lunch", date(2025, 3, 1))
    add(ledger, 3, "Older", date(2025, 2, 28))
    add(ledger, 4, "Dinner", date(2025, 3, 1))

    page = ExpenseQueryService(session, owner.id).list(page_size=10)

    assert [e.title for e in page.items] == ["Breakfast", "Lunch", "Dinner", "Older"]


def test_end_date_covers_the_whole_day() -> None:
    session = make_session()
    owner = register(session)
    ledger = ExpenseService(session, owner.id)
    add(ledger, 1, "Late night", datetime(2025, 1, 31, 23, 30))
    add(ledger, 2, "Next day", datetime(2025, 2, 1, 0, 0))

    page = ExpenseQueryService(session, owner.id).list(
        ExpenseFilters(date(2025, 1, 31), date(2025, 1, 31))
    )

    assert [e.title for e in page.items] == ["Late night"]


def test_single_bound_is_open_ended() -> None:
    session = make_session()
    owner = january_ledger(session)
    query = ExpenseQueryService(session, owner.id)

    since = query.list(ExpenseFilters(date_from=date(2025, 1, 22)))
    until = query.list(ExpenseFilters(date_to=date(2025, 1, 3)))

    assert since.total_count == 3
    assert {e.title for e in until.items} == {"January 3", "December 31"}


def test_search_matches_any_text_field_case_insensitively() -> None:
    session = make_session()
    owner = register(session, name="Bilal Ahmed")
    ledger = ExpenseService(session, owner.id)
    add(ledger, 1, "Fuel", date(2025, 1, 2), notes="Shell station")
    add(ledger, 2, "Groceries", date(2025, 1, 3))
    query = ExpenseQueryService(session, owner.id)

    by_title = query.list(ExpenseFilters(search_text="GROC"))
    by_notes = query.list(ExpenseFilters(search_text="shell"))
    by_name = query.list(ExpenseFilters(search_text="bilal"))
    by_sequence = query.list(ExpenseFilters(search_text="USER001"))
    nothing = query.list(ExpenseFilters(search_text="rent"))

    assert [e.title for e in by_title.items] == ["Groceries"]
    assert [e.title for e in by_notes.items] == ["Fuel"]
    assert by_name.total_count == 2
    assert by_sequence.total_count == 2
    assert nothing.total_count == 0
    assert nothing.page_count == 0


def test_search_treats_wildcards_literally() -> None:
    session = make_session()
    owner = register(session)
    ledger = ExpenseService(session, owner.id)
    add(ledger, 1, "Discount 50% off", date(2025, 1, 2))
    add(ledger, 2, "Plain purchase", date(2025, 1, 3))

    page = ExpenseQueryService(session, owner.id).list(
        ExpenseFilters(search_text="%")
    )

    assert [e.title for e in page.items] == ["Discount 50% off"]


def test_listing_is_scoped_to_owner() -> None:
    session = make_session()
    owner = january_ledger(session)
    other = register(session, "ext-2", "Other")
    add(ExpenseService(session, other.id), 1, "Not yours", date(2025, 1, 10))

    page = ExpenseQueryService(session, owner.id).list(
        ExpenseFilters(search_text="yours")
    )
    theirs = ExpenseQueryService(session, other.id).list()

    assert page.total_count == 0
    assert theirs.total_count == 1


@pytest.mark.parametrize("page, page_size", [(0, 10), (-1, 10), (1, 0), (1, 1000)])
def test_invalid_paging_is_rejected(page, page_size) -> None:
    session = make_session()
    owner = register(session)
    with pytest.raises(ValidationError):
        ExpenseQueryService(session, owner.id, max_page_size=100).list(
            page=page, page_size=page_size
        )


def test_inverted_range_is_rejected() -> None:
    session = make_session()
    owner = register(session)
    with pytest.raises(ValidationError):
        ExpenseQueryService(session, owner.id).list(
            ExpenseFilters(date(2025, 2, 1), date(2025, 1, 1))
        )


def test_sql_summary_matches_in_memory_summary() -> None:
    session = make_session()
    owner = register(session)
    ledger = ExpenseService(session, owner.id)
    add(ledger, 1, "Tea", date(2025, 1, 2), amount=150, currency="PKR")
    add(ledger, 2, "Book", date(2025, 1, 3), amount=1999, currency="USD")
    add(ledger, 3, "Snacks", date(2025, 1, 4), amount=251, currency="PKR")
    add(ledger, 4, "Old", date(2024, 6, 1), amount=5000, currency="USD")
    query = ExpenseQueryService(session, owner.id)
    filters = ExpenseFilters(date(2025, 1, 1), date(2025, 1, 31))

    from_sql = query.currency_summary(filters)
    in_memory = summarize_by_currency(query.all_matching(filters))

    assert from_sql == in_memory
    assert [(s.currency, s.total_minor_units, s.count) for s in from_sql] == [
        ("PKR", 401, 2),
        ("USD", 1999, 1),
    ]
