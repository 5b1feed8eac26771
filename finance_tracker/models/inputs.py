"""
Input Models for Finance Tracker

Caller-supplied data is validated here before any backend sees it.
A failure is a validation error (never retried); services turn it into
a ``validation`` OperationResult instead of raising.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from finance_tracker.models.records import (
    TransactionType,
    coerce_datetime,
    normalize_date,
)


HEX_COLOR_PATTERN = r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$"

SORTABLE_TRANSACTION_FIELDS = ("date", "amount", "title", "category", "type")


class InputModel(BaseModel):
    """Base for caller input. Accepts snake_case or camelCase keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="forbid",
    )


# =============================================================================
# USERS
# =============================================================================

class RegisterRequest(InputModel):
    """New account details."""

    username: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class PasswordChange(InputModel):
    """Replacement password."""

    new_password: str = Field(..., min_length=6, max_length=128)


class SettingsPatch(InputModel):
    """Partial update of user settings."""

    currency: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=4,
        description="Currency symbol"
    )
    theme: Optional[str] = Field(
        default=None,
        pattern="^(light|dark)$"
    )
    notifications_enabled: Optional[bool] = None

    def as_settings_dict(self) -> dict:
        """Only the keys the caller actually supplied, in stored (camelCase) form."""
        return self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)


class ProfilePatch(InputModel):
    """Partial update of a user profile."""

    username: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    settings: Optional[SettingsPatch] = None


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionCreate(InputModel):
    """A new transaction. A missing or unparsable date means now."""

    title: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    date: datetime = Field(default=None, validate_default=True)
    description: Optional[str] = Field(default=None, max_length=1000)
    payment_method: Optional[str] = Field(default=None, max_length=50)

    @field_validator('date', mode='before')
    @classmethod
    def fallback_to_now(cls, v: Any) -> datetime:
        return normalize_date(v)


class TransactionPatch(InputModel):
    """
    Partial update of a transaction.

    Only fields present in the patch are applied; everything else keeps
    its stored value.
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[float] = Field(default=None, gt=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    payment_method: Optional[str] = Field(default=None, max_length=50)

    @field_validator('date', mode='before')
    @classmethod
    def fallback_to_now(cls, v: Any) -> datetime:
        return normalize_date(v)

    def changes(self) -> dict:
        """Supplied, non-null fields keyed by stored (snake_case) name."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class TransactionFilters(InputModel):
    """
    Listing filters for transactions.

    Unparsable dates and amounts are ignored rather than rejected.
    """

    type: Optional[TransactionType] = None
    category: Optional[str] = None
    q: Optional[str] = Field(default=None, description="Text searched in title, category and description")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    sort: str = Field(default="-date")

    @field_validator('start_date', 'end_date', mode='before')
    @classmethod
    def lenient_date(cls, v: Any) -> Optional[datetime]:
        return coerce_datetime(v)

    @field_validator('min_amount', 'max_amount', mode='before')
    @classmethod
    def lenient_amount(cls, v: Any) -> Optional[float]:
        if v is None or v == "" or isinstance(v, bool):
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @field_validator('category', 'q', mode='before')
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('sort')
    @classmethod
    def validate_sort(cls, v: str) -> str:
        field = v[1:] if v.startswith("-") else v
        if field not in SORTABLE_TRANSACTION_FIELDS:
            raise ValueError(
                f"sort must be one of {SORTABLE_TRANSACTION_FIELDS}, optionally prefixed with '-'"
            )
        return v

    @property
    def sort_field(self) -> str:
        return self.sort.lstrip("-")

    @property
    def sort_descending(self) -> bool:
        return self.sort.startswith("-")


# =============================================================================
# CATEGORIES
# =============================================================================

class CategoryCreate(InputModel):
    """A user-owned category."""

    name: str = Field(..., min_length=1, max_length=50)
    type: TransactionType
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(default=None, min_length=1, max_length=50)


class CategoryPatch(InputModel):
    """Partial update of a category. Type is fixed at creation."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR_PATTERN)
    icon: Optional[str] = Field(default=None, min_length=1, max_length=50)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetUpsert(InputModel):
    """
    Budget for one category and month.

    Month and year default to the current month when omitted.
    """

    category: str = Field(..., min_length=1, max_length=100)
    limit: float = Field(..., gt=0)
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = Field(default=None, ge=2000, le=9999)
