from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from fractions import Fraction
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from errors import DuplicateExpenseNumber, NotFound, StoreUnavailable, ValidationError
from models import USER_SEQUENCE, Expense, User
from periods import DateRange
from schemas import ExpenseIn, IdentityIn
from sequences import SequenceAllocator, format_user_sequence

logger = logging.getLogger(__name__)


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts)


def validate_expense(data: Union[ExpenseIn, dict[str, Any]]) -> ExpenseIn:
    if isinstance(data, ExpenseIn):
        return data
    try:
        return ExpenseIn.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(_describe(exc)) from exc


def _is_expense_number_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "uq_expense_owner_number" in message or (
        "expenses.owner_id" in message and "expenses.expense_number" in message
    )


@contextmanager
def store_errors(
    session: Session, operation: str, **context: object
) -> Iterator[None]:
    """Turn driver failures into StoreUnavailable after logging them."""
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        details = " ".join(f"{key}={value}" for key, value in context.items())
        logger.exception(f"{operation}_failed: {details}")
        raise StoreUnavailable(operation) from exc


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User:
        with store_errors(self.session, "user_get", user_id=user_id):
            user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    def get_by_external_identity(self, external_identity_id: str) -> Optional[User]:
        stmt = select(User).where(User.external_identity_id == external_identity_id)
        return self.session.scalar(stmt)

    def register(self, identity: IdentityIn) -> User:
        """Find or create the user behind an externally verified identity.

        New users draw their sequential id from the ``userId`` counter; it is
        never reassigned afterwards.
        """
        with store_errors(
            self.session, "user_register", external_id=identity.external_identity_id
        ):
            user = self.get_by_external_identity(identity.external_identity_id)
            if user:
                user.display_name = identity.name.strip()
                user.profile_image_ref = identity.picture or user.profile_image_ref
                self.session.commit()
                self.session.refresh(user)
                return user

            sequence = SequenceAllocator(self.session).allocate(USER_SEQUENCE)
            user = User(
                sequential_id=format_user_sequence(sequence),
                external_identity_id=identity.external_identity_id,
                email=identity.email.strip(),
                display_name=identity.name.strip(),
                profile_image_ref=identity.picture,
            )
            self.session.add(user)
            try:
                self.session.commit()
            except IntegrityError:
                # a concurrent registration of the same identity won
                self.session.rollback()
                existing = self.get_by_external_identity(
                    identity.external_identity_id
                )
                if existing is None:
                    raise
                return existing
            self.session.refresh(user)

        logger.info(
            f"user_registered: user_id={user.id} sequential_id={user.sequential_id}"
        )
        return user

    def update_display_name(self, user_id: int, name: str) -> User:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Name cannot be empty")
        user = self.get(user_id)
        with store_errors(self.session, "user_update", user_id=user_id):
            user.display_name = clean_name
            self.session.commit()
            self.session.refresh(user)
        return user


class ExpenseService:
    """Owner-scoped create/read/update/delete of expenses.

    Every lookup carries the owner predicate, so an expense belonging to
    somebody else looks exactly like a missing one.
    """

    def __init__(
        self,
        session: Session,
        owner_id: int,
        default_currency: Optional[str] = None,
    ) -> None:
        self.session = session
        self.owner_id = owner_id
        self.default_currency = (
            default_currency or get_settings().default_currency
        ).upper()

    def _owner(self) -> User:
        owner = self.session.get(User, self.owner_id)
        if not owner:
            raise NotFound("Owner not found")
        return owner

    def _get_owned(self, expense_id: int) -> Expense:
        stmt = select(Expense).where(
            Expense.id == expense_id, Expense.owner_id == self.owner_id
        )
        expense = self.session.scalar(stmt)
        if not expense:
            raise NotFound("Expense not found")
        return expense

    def _number_taken(
        self, expense_number: int, exclude_id: Optional[int] = None
    ) -> bool:
        stmt = select(Expense.id).where(
            Expense.owner_id == self.owner_id,
            Expense.expense_number == expense_number,
        )
        if exclude_id is not None:
            stmt = stmt.where(Expense.id != exclude_id)
        return self.session.scalar(stmt.limit(1)) is not None

    def _commit(self, expense_number: int) -> None:
        # uq_expense_owner_number is authoritative: a violation here means a
        # concurrent writer saved the same number after the pre-check.
        try:
            self.session.flush()
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if _is_expense_number_conflict(exc):
                logger.info(
                    f"expense_number_conflict: owner_id={self.owner_id} "
                    f"expense_number={expense_number} source=constraint"
                )
                raise DuplicateExpenseNumber(expense_number) from exc
            raise

    def _apply(self, expense: Expense, data: ExpenseIn, owner: User) -> None:
        expense.owner_sequential_id = owner.sequential_id
        expense.owner_display_name = owner.display_name
        expense.expense_number = data.expense_number
        expense.title = data.title
        expense.amount_minor_units = data.amount_minor_units
        expense.currency = data.currency or self.default_currency
        expense.occurred_on = data.occurred_on
        expense.notes = data.notes

    def create(self, data: Union[ExpenseIn, dict[str, Any]]) -> Expense:
        payload = validate_expense(data)
        with store_errors(
            self.session,
            "expense_create",
            owner_id=self.owner_id,
            expense_number=payload.expense_number,
        ):
            owner = self._owner()
            if self._number_taken(payload.expense_number):
                raise DuplicateExpenseNumber(payload.expense_number)
            expense = Expense(owner_id=self.owner_id)
            self._apply(expense, payload, owner)
            self.session.add(expense)
            self._commit(payload.expense_number)
            self.session.refresh(expense)

        logger.info(
            f"expense_created: owner_id={self.owner_id} expense_id={expense.id} "
            f"expense_number={expense.expense_number}"
        )
        return expense

    def get(self, expense_id: int) -> Expense:
        with store_errors(
            self.session, "expense_get", owner_id=self.owner_id, expense_id=expense_id
        ):
            return self._get_owned(expense_id)

    def update(
        self, expense_id: int, data: Union[ExpenseIn, dict[str, Any]]
    ) -> Expense:
        """Replace every mutable field of an expense.

        The owner snapshot is retaken from the current user record.
        """
        payload = validate_expense(data)
        with store_errors(
            self.session,
            "expense_update",
            owner_id=self.owner_id,
            expense_id=expense_id,
            expense_number=payload.expense_number,
        ):
            expense = self._get_owned(expense_id)
            owner = self._owner()
            if self._number_taken(payload.expense_number, exclude_id=expense.id):
                raise DuplicateExpenseNumber(payload.expense_number)
            self._apply(expense, payload, owner)
            self._commit(payload.expense_number)
            self.session.refresh(expense)

        logger.info(
            f"expense_updated: owner_id={self.owner_id} expense_id={expense.id}"
        )
        return expense

    def delete(self, expense_id: int) -> None:
        with store_errors(
            self.session,
            "expense_delete",
            owner_id=self.owner_id,
            expense_id=expense_id,
        ):
            expense = self._get_owned(expense_id)
            self.session.delete(expense)
            self.session.commit()
        logger.info(
            f"expense_deleted: owner_id={self.owner_id} expense_id={expense_id}"
        )

    def next_suggested_number(self) -> int:
        """Highest expense number the owner has used, plus one.

        Advisory only: two clients can receive the same suggestion and the
        second one to save gets DuplicateExpenseNumber.
        """
        with store_errors(self.session, "expense_next_number", owner_id=self.owner_id):
            highest = self.session.scalar(
                select(func.max(Expense.expense_number)).where(
                    Expense.owner_id == self.owner_id
                )
            )
        return int(highest or 0) + 1


@dataclass
class ExpenseFilters:
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search_text: Optional[str] = None

    @classmethod
    def from_range(
        cls, date_range: DateRange, search_text: Optional[str] = None
    ) -> "ExpenseFilters":
        return cls(date_range.date_from, date_range.date_to, search_text)

    def date_range(self) -> DateRange:
        return DateRange("custom", self.date_from, self.date_to)


@dataclass
class ExpensePage:
    items: list[Expense]
    total_count: int
    page_count: int
    page: int
    page_size: int


def _like_pattern(text: str) -> str:
    escaped = (
        text.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


class ExpenseQueryService:
    def __init__(
        self,
        session: Session,
        owner_id: int,
        default_page_size: Optional[int] = None,
        max_page_size: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.session = session
        self.owner_id = owner_id
        self.default_page_size = default_page_size or settings.default_page_size
        self.max_page_size = max_page_size or settings.max_page_size

    def _conditions(self, filters: ExpenseFilters) -> list:
        date_range = filters.date_range()
        conditions = [Expense.owner_id == self.owner_id]
        if date_range.start_at is not None:
            conditions.append(Expense.occurred_on >= date_range.start_at)
        if date_range.end_at is not None:
            conditions.append(Expense.occurred_on <= date_range.end_at)
        text = (filters.search_text or "").strip()
        if text:
            like = _like_pattern(text)
            conditions.append(
                or_(
                    func.lower(Expense.title).like(like, escape="\\"),
                    func.lower(Expense.owner_display_name).like(like, escape="\\"),
                    func.lower(Expense.owner_sequential_id).like(like, escape="\\"),
                    func.lower(func.coalesce(Expense.notes, "")).like(
                        like, escape="\\"
                    ),
                )
            )
        return conditions

    def list(
        self,
        filters: Optional[ExpenseFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> ExpensePage:
        filters = filters or ExpenseFilters()
        if page_size is None:
            page_size = self.default_page_size
        if page < 1:
            raise ValidationError("Page must be 1 or greater")
        if page_size < 1 or page_size > self.max_page_size:
            raise ValidationError(
                f"Page size must be between 1 and {self.max_page_size}"
            )
        conditions = self._conditions(filters)

        with store_errors(self.session, "expense_list", owner_id=self.owner_id):
            total = int(
                self.session.execute(
                    select(func.count(Expense.id)).where(*conditions)
                ).scalar_one()
                or 0
            )
            stmt = (
                select(Expense)
                .where(*conditions)
                .order_by(Expense.occurred_on.desc(), Expense.id.asc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            items = list(self.session.scalars(stmt).all())

        return ExpensePage(
            items=items,
            total_count=total,
            page_count=math.ceil(total / page_size),
            page=page,
            page_size=page_size,
        )

    def all_matching(self, filters: Optional[ExpenseFilters] = None) -> list[Expense]:
        conditions = self._conditions(filters or ExpenseFilters())
        stmt = (
            select(Expense)
            .where(*conditions)
            .order_by(Expense.occurred_on.desc(), Expense.id.asc())
        )
        with store_errors(self.session, "expense_list_all", owner_id=self.owner_id):
            return list(self.session.scalars(stmt).all())

    def currency_summary(
        self, filters: Optional[ExpenseFilters] = None
    ) -> list[CurrencySummary]:
        """Per-currency totals over the whole filtered set, computed in SQL."""
        conditions = self._conditions(filters or ExpenseFilters())
        stmt = (
            select(
                Expense.currency,
                func.sum(Expense.amount_minor_units),
                func.count(Expense.id),
            )
            .where(*conditions)
            .group_by(Expense.currency)
            .order_by(Expense.currency)
        )
        with store_errors(self.session, "expense_summary", owner_id=self.owner_id):
            rows = self.session.execute(stmt).all()
        return [
            CurrencySummary.of(currency, int(total), int(count))
            for currency, total, count in rows
        ]


@dataclass(frozen=True)
class CurrencySummary:
    currency: str
    total_minor_units: int
    count: int
    average_minor_units: Fraction

    @classmethod
    def of(cls, currency: str, total_minor_units: int, count: int) -> "CurrencySummary":
        return cls(
            currency=currency,
            total_minor_units=total_minor_units,
            count=count,
            average_minor_units=Fraction(total_minor_units, count),
        )


def summarize_by_currency(expenses: Iterable[Expense]) -> list[CurrencySummary]:
    """Group expenses by currency; amounts in different currencies never mix."""
    totals: dict[str, int] = {}
    counts: dict[str, int] = {}
    for expense in expenses:
        totals[expense.currency] = (
            totals.get(expense.currency, 0) + expense.amount_minor_units
        )
        counts[expense.currency] = counts.get(expense.currency, 0) + 1
    return [
        CurrencySummary.of(currency, totals[currency], counts[currency])
        for currency in sorted(totals)
    ]
