"""
Stored Record Models for Finance Tracker

These models define the one shape every record has, whichever backend
holds it. A record read from MongoDB and the same record read from the
JSON files must produce identical model instances.

DESIGN DECISION: Persisted field names are camelCase with the id under
``_id`` (the document-database convention); Python code uses snake_case.
Timestamps are always timezone-aware UTC.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# HELPERS
# =============================================================================

def utcnow() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    """Identifier for records created in the flat-file backend."""
    return uuid4().hex


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coerce_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a loosely-typed date value.

    Accepts datetimes, dates, ISO-8601 strings and epoch milliseconds.
    Returns None when the value is missing or cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def normalize_date(value: Any) -> datetime:
    """Parse a date, falling back to now when missing or invalid."""
    return coerce_datetime(value) or utcnow()


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction (also used for categories)."""
    INCOME = "income"
    EXPENSE = "expense"


class NotificationType(str, Enum):
    """Notification tags raised by the budget alert step."""
    BUDGET_WARNING = "budget_warning"
    BUDGET_EXCEEDED = "budget_exceeded"


class StorageMode(str, Enum):
    """Which backend answers service calls."""
    MONGO = "mongo"
    JSON = "json"


# =============================================================================
# BASE RECORD
# =============================================================================

class StoredRecord(BaseModel):
    """
    Common base for persisted records.

    Subclasses only declare their fields; conversion to and from the
    persisted document shape lives here.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )

    id: str = Field(
        default_factory=new_record_id,
        alias="_id",
        description="Opaque record identifier"
    )

    @classmethod
    def from_document(cls, document: dict) -> "StoredRecord":
        """Build a record from a stored document (either backend)."""
        data = dict(document)
        if "_id" in data:
            data["_id"] = str(data["_id"])
        return cls.model_validate(data)

    def to_json_document(self) -> dict:
        """Document shape for the flat-file backend."""
        return self.model_dump(by_alias=True, mode="json")

    def to_mongo_document(self) -> dict:
        """Document shape for MongoDB (``_id`` left to the database)."""
        return self.model_dump(by_alias=True, exclude={"id"})


# =============================================================================
# ENTITIES
# =============================================================================

class UserSettings(BaseModel):
    """Per-user presentation preferences."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    currency: str = "$"
    theme: str = "light"
    notifications_enabled: bool = True


class User(StoredRecord):
    """
    A registered user.

    CRITICAL: ``password`` holds a hash. Use ``public_view`` for anything
    leaving the service layer.
    """
    username: str
    email: str
    password: str
    settings: UserSettings = Field(default_factory=UserSettings)
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: Optional[UtcDatetime] = None

    def public_view(self) -> dict:
        """Serializable user without the password hash."""
        return self.model_dump(by_alias=True, mode="json", exclude={"password"})


class Transaction(StoredRecord):
    """An income or expense entry, owned by one user."""
    user: str
    title: str
    amount: float
    category: str
    type: TransactionType
    date: UtcDatetime = Field(default_factory=utcnow)
    description: Optional[str] = None
    payment_method: str = "Cash"
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: Optional[UtcDatetime] = None


class Category(StoredRecord):
    """
    A transaction category.

    ``user`` is None for the seeded global defaults, which nobody may
    modify or delete.
    """
    user: Optional[str] = None
    name: str
    type: TransactionType
    color: str = "#cccccc"
    icon: str = "fa-tag"
    created_at: UtcDatetime = Field(default_factory=utcnow)

    @property
    def is_global(self) -> bool:
        return self.user is None


class Budget(StoredRecord):
    """
    Monthly spending limit for one category.

    At most one per (user, category, month, year).
    """
    user: str
    category: str
    limit: float
    month: int
    year: int
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: Optional[UtcDatetime] = None


class Notification(StoredRecord):
    """
    A message for one user.

    No two notifications share the same (user, type, message).
    """
    user: str
    type: str
    message: str
    read: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)
