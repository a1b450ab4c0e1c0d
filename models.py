from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


USER_SEQUENCE = "userId"
EXPENSE_NUMBER_SEQUENCE = "expenseNumber"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Counter(Base):
    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("sequence >= 0", name="ck_counter_sequence_non_negative"),
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sequential_id: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    external_identity_id: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    profile_image_ref: Mapped[Optional[str]] = mapped_column(String(500))

    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="owner"
    )

    __table_args__ = (Index("ix_users_email", "email"),)


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    # Snapshots of the owner taken when the expense was last written.
    # Renaming the owner does not rewrite them.
    owner_sequential_id: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_minor_units: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    occurred_on: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    expense_number: Mapped[int] = mapped_column(Integer, nullable=False)

    owner: Mapped["User"] = relationship("User", back_populates="expenses")

    __table_args__ = (
        UniqueConstraint(
            "owner_id", "expense_number", name="uq_expense_owner_number"
        ),
        Index("ix_expenses_owner_occurred", "owner_id", "occurred_on"),
        CheckConstraint(
            "amount_minor_units > 0", name="ck_expenses_amount_positive"
        ),
        CheckConstraint(
            "expense_number > 0", name="ck_expenses_number_positive"
        ),
    )
