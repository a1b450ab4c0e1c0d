from fractions import Fraction

from models import Expense
from services import CurrencySummary, summarize_by_currency


def expense(currency: str, amount: int) -> Expense:
    return Expense(currency=currency, amount_minor_units=amount)


def test_empty_input_has_no_groups() -> None:
    assert summarize_by_currency([]) == []


def test_single_expense_summary() -> None:
    summary = summarize_by_currency([expense("PKR", 550000)])
    assert summary == [CurrencySummary("PKR", 550000, 1, Fraction(550000))]


def test_currencies_are_never_mixed() -> None:
    expenses = [
        expense("USD", 1000),
        expense("PKR", 550000),
        expense("USD", 2001),
        expense("EUR", 99),
        expense("PKR", 1),
    ]

    summary = {s.currency: s for s in summarize_by_currency(expenses)}

    assert sorted(summary) == ["EUR", "PKR", "USD"]
    assert sum(s.count for s in summary.values()) == len(expenses)
    for code, group in summary.items():
        assert group.total_minor_units == sum(
            e.amount_minor_units for e in expenses if e.currency == code
        )
    assert summary["USD"].average_minor_units == Fraction(3001, 2)
    assert summary["PKR"].average_minor_units == Fraction(550001, 2)
    assert summary["EUR"].average_minor_units == 99


def test_summary_is_ordered_by_currency_code() -> None:
    summary = summarize_by_currency(
        [expense("USD", 1), expense("AED", 1), expense("GBP", 1)]
    )
    assert [s.currency for s in summary] == ["AED", "GBP", "USD"]
