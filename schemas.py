import re
from datetime import date, datetime, time, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

CURRENCY_CODE_RE = re.compile(r"^[A-Z]{3}$")
TITLE_MAX_LENGTH = 200
# Keeps an owner's per-currency SUM well inside a signed 64-bit column.
MAX_AMOUNT_MINOR_UNITS = 10**12


def to_utc_naive(value: object) -> object:
    """Coerce a date, datetime or ISO string to a naive UTC datetime.

    Bare dates mean midnight UTC of that day. Anything else is handed back
    unchanged so pydantic reports it.
    """
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return value
        try:
            if len(raw) == 10:
                value = date.fromisoformat(raw)
            else:
                value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            try:
                value = value.astimezone(timezone.utc).replace(tzinfo=None)
            except OverflowError as exc:
                raise ValueError("Date is out of range") from exc
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return value


class ExpenseIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    expense_number: int = Field(..., gt=0, strict=True)
    title: str
    amount_minor_units: int = Field(..., gt=0, le=MAX_AMOUNT_MINOR_UNITS, strict=True)
    currency: Optional[str] = None
    occurred_on: datetime
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        clean = value.strip()
        if not clean:
            raise ValueError("Title cannot be empty")
        if len(clean) > TITLE_MAX_LENGTH:
            raise ValueError(f"Title must be at most {TITLE_MAX_LENGTH} characters")
        return clean

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        code = value.strip().upper()
        if not CURRENCY_CODE_RE.match(code):
            raise ValueError("Currency must be a three-letter ISO code")
        return code

    @field_validator("occurred_on", mode="before")
    @classmethod
    def _occurred_on_utc(cls, value: object) -> object:
        return to_utc_naive(value)

    @field_validator("notes")
    @classmethod
    def _notes_or_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    owner_sequential_id: str
    owner_display_name: str
    expense_number: int
    title: str
    amount_minor_units: int
    currency: str
    occurred_on: datetime
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @field_serializer("occurred_on", "created_at", "updated_at")
    def _as_utc(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class CurrencySummaryOut(BaseModel):
    currency: str
    total_minor_units: int
    count: int
    average_minor_units: int
    display_total: str
    display_average: str


class ExpensePageOut(BaseModel):
    items: list[ExpenseOut]
    total_count: int
    page_count: int
    page: int
    page_size: int
    summary: list[CurrencySummaryOut] = Field(default_factory=list)


class NextNumberOut(BaseModel):
    next_number: int


class SequenceOut(BaseModel):
    sequence: int


class IdentityIn(BaseModel):
    """An identity already verified by the external provider."""

    model_config = ConfigDict(extra="ignore")

    external_identity_id: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    name: str = Field(..., min_length=1, max_length=120)
    picture: Optional[str] = Field(default=None, max_length=500)


class ProfileUpdateIn(BaseModel):
    name: str = Field(..., max_length=120)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sequential_id: str
    email: str
    display_name: str
    profile_image_ref: Optional[str]


class SessionOut(BaseModel):
    token: str
    user: UserOut
