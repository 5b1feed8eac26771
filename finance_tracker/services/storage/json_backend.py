"""
JSON File Storage Implementation

Every service here reads the full collection, changes it in memory and
writes it back through JsonRecordStore, holding the file lock for the
whole sequence.

TRADEOFFS:
- Uniqueness (user email/username, budget key, notification key) is a
  linear scan over the collection on every write. Fine for one household.
- Filtering and sorting happen in Python and must match what the MongoDB
  implementation returns for the same call.
- Stored documents that no longer validate are skipped on read (and
  logged) but left untouched on disk.
"""

from pathlib import Path
from typing import Any, Iterable, Optional, Type, TypeVar, Union

from pydantic import ValidationError

from finance_tracker.log import get_logger
from finance_tracker.models.inputs import (
    BudgetUpsert,
    CategoryCreate,
    CategoryPatch,
    PasswordChange,
    ProfilePatch,
    RegisterRequest,
    TransactionCreate,
    TransactionFilters,
    TransactionPatch,
)
from finance_tracker.models.records import (
    Budget,
    Category,
    Notification,
    StoredRecord,
    Transaction,
    TransactionType,
    User,
    UserSettings,
    utcnow,
)
from finance_tracker.models.results import FailureReason, OperationResult
from finance_tracker.security import get_password_hash
from finance_tracker.services.storage.defaults import default_category_records
from finance_tracker.services.storage.interface import (
    BudgetStorageInterface,
    CategoryStorageInterface,
    NotificationStorageInterface,
    StorageBackend,
    TransactionStorageInterface,
    UserStorageInterface,
)
from finance_tracker.services.storage.json_store import JsonRecordStore


logger = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=StoredRecord)

USERS_FILE = "users.json"
TRANSACTIONS_FILE = "transactions.json"
CATEGORIES_FILE = "categories.json"
BUDGETS_FILE = "budgets.json"
NOTIFICATIONS_FILE = "notifications.json"


def _parse_record(
    model: Type[RecordT],
    document: Any,
    store: JsonRecordStore,
) -> Optional[RecordT]:
    """Validate one stored document; None (and a log line) if it is malformed."""
    if isinstance(document, dict):
        try:
            return model.from_document(document)
        except ValidationError as e:
            error = str(e)
    else:
        error = f"expected an object, found {type(document).__name__}"

    logger.warning(
        "json_record_skipped",
        path=str(store.path),
        record_id=str(document.get("_id")) if isinstance(document, dict) else None,
        error=error,
    )
    return None


def _parse_records(
    model: Type[RecordT],
    documents: Iterable[Any],
    store: JsonRecordStore,
) -> list[RecordT]:
    """Validate stored documents, skipping (and logging) malformed ones."""
    records = []
    for document in documents:
        record = _parse_record(model, document, store)
        if record is not None:
            records.append(record)
    return records


def _index_of(documents: list[dict], record_id: str) -> int:
    for idx, document in enumerate(documents):
        if isinstance(document, dict) and document.get("_id") == record_id:
            return idx
    return -1


def _owned_by(documents: Iterable[dict], user_id: str) -> list[dict]:
    return [d for d in documents if isinstance(d, dict) and d.get("user") == user_id]


# =============================================================================
# TRANSACTION FILTERING (mirrors the MongoDB query built in mongo_backend)
# =============================================================================

def transaction_matches(tx: Transaction, filters: TransactionFilters) -> bool:
    """Does a transaction pass every supplied filter?"""
    if filters.type and tx.type != filters.type:
        return False
    if filters.category and tx.category != filters.category:
        return False
    if filters.start_date and tx.date < filters.start_date:
        return False
    if filters.end_date and tx.date > filters.end_date:
        return False
    if filters.min_amount is not None and tx.amount < filters.min_amount:
        return False
    if filters.max_amount is not None and tx.amount > filters.max_amount:
        return False
    if filters.q:
        needle = filters.q.lower()
        haystacks = (tx.title, tx.category, tx.description or "")
        if not any(needle in text.lower() for text in haystacks):
            return False
    return True


def sort_transactions(transactions: list[Transaction], filters: TransactionFilters) -> list[Transaction]:
    field = filters.sort_field
    return sorted(
        transactions,
        key=lambda tx: getattr(tx, field),
        reverse=filters.sort_descending,
    )


# =============================================================================
# SERVICES
# =============================================================================

class JsonUserStorage(UserStorageInterface):
    """Users in ``users.json``."""

    def __init__(
        self,
        store: JsonRecordStore,
        default_settings: Optional[UserSettings] = None,
    ):
        self._store = store
        self._default_settings = default_settings or UserSettings()

    @staticmethod
    def _same(a: Optional[str], b: Optional[str]) -> bool:
        return (a or "").lower() == (b or "").lower()

    def _find(self, predicate) -> Optional[User]:
        for user in _parse_records(User, self._store.read_all(), self._store):
            if predicate(user):
                return user
        return None

    async def find_by_id(self, user_id: str) -> Optional[User]:
        return self._find(lambda u: u.id == user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        return self._find(lambda u: self._same(u.email, email))

    async def find_by_username(self, username: str) -> Optional[User]:
        return self._find(lambda u: self._same(u.username, username))

    async def create_user(self, fields: dict[str, Any]) -> OperationResult:
        try:
            request = RegisterRequest.model_validate(fields)
        except ValidationError as e:
            return OperationResult.invalid(e)

        with self._store.transaction() as documents:
            for document in documents:
                if not isinstance(document, dict):
                    continue
                if self._same(document.get("email"), request.email) or self._same(
                    document.get("username"), request.username
                ):
                    return OperationResult.failure(FailureReason.USER_EXISTS, "User already exists")

            user = User(
                username=request.username,
                email=request.email.lower(),
                password=get_password_hash(request.password),
                settings=self._default_settings.model_copy(),
            )
            documents.append(user.to_json_document())
            self._store.write_all(documents)

        return OperationResult.success(user)

    async def update_user(self, user_id: str, patch: dict[str, Any]) -> OperationResult:
        try:
            profile = ProfilePatch.model_validate(patch)
        except ValidationError as e:
            return OperationResult.invalid(e)

        with self._store.transaction() as documents:
            idx = _index_of(documents, user_id)
            current = _parse_record(User, documents[idx], self._store) if idx != -1 else None
            if current is None:
                return OperationResult.failure(FailureReason.NOT_FOUND, "User not found")

            others = [d for d in documents if isinstance(d, dict) and d.get("_id") != user_id]
            if profile.email is not None and any(self._same(d.get("email"), profile.email) for d in others):
                return OperationResult.failure(FailureReason.EMAIL_IN_USE, "Email already in use")
            if profile.username is not None and any(
                self._same(d.get("username"), profile.username) for d in others
            ):
                return OperationResult.failure(FailureReason.USERNAME_IN_USE, "Username already in use")

            settings = current.settings.model_dump(by_alias=True)
            if profile.settings is not None:
                settings.update(profile.settings.as_settings_dict())

            updated = User.model_validate({
                **current.model_dump(),
                "username": profile.username if profile.username is not None else current.username,
                "email": profile.email.lower() if profile.email is not None else current.email,
                "settings": settings,
                "updated_at": utcnow(),
            })
            documents[idx] = updated.to_json_document()
            self._store.write_all(documents)

        return OperationResult.success(updated)

    async def set_password(self, user_id: str, new_password: str) -> OperationResult:
        try:
            change = PasswordChange(new_password=new_password)
        except ValidationError as e:
            return OperationResult.invalid(e)

        with self._store.transaction() as documents:
            idx = _index_of(documents, user_id)
            if idx == -1:
                return OperationResult.failure(FailureReason.NOT_FOUND, "User not found")
            documents[idx] = {
                **documents[idx],
                "password": get_password_hash(change.new_password),
                "updatedAt": utcnow().isoformat(),
            }
            self._store.write_all(documents)

        return OperationResult.success()


class JsonTransactionStorage(TransactionStorageInterface):
    """Transactions in ``transactions.json``."""

    def __init__(self, store: JsonRecordStore):
        self._store = store

    async def list_for_user(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        transactions = _parse_records(
            Transaction, _owned_by(self._store.read_all(), user_id), self._store
        )
        matching = [tx for tx in transactions if transaction_matches(tx, filters)]
        return sort_transactions(matching, filters)

    async def create_for_user(self, user_id: str, fields: dict[str, Any]) -> OperationResult:
        try:
            payload = TransactionCreate.model_validate(fields)
        except ValidationError as e:
            return OperationResult.invalid(e)

        tx = Transaction(
            user=user_id,
            title=payload.title,
            amount=payload.amount,
            category=payload.category,
            type=payload.type,
            date=payload.date,
            description=payload.description,
            payment_method=payload.payment_method or "Cash",
        )
        with self._store.transaction() as documents:
            documents.append(tx.to_json_document())
            self._store.write_all(documents)

        return OperationResult.success(tx)

    async def update_for_user(
        self,
        user_id: str,
        transaction_id: str,
        patch: dict[str, Any],
    ) -> OperationResult:
        try:
            changes = TransactionPatch.model_validate(patch).changes()
        except ValidationError as e:
            return OperationResult.invalid(e)

        with self._store.transaction() as documents:
            idx = _index_of(documents, transaction_id)
            if idx == -1:
                return OperationResult.failure(FailureReason.NOT_FOUND, "Transaction not found")
            if documents[idx].get("user") != user_id:
                return OperationResult.failure(FailureReason.NOT_AUTHORIZED, "User not authorized")

            current = _parse_record(Transaction, documents[idx], self._store)
            if current is None:
                return OperationResult.failure(FailureReason.NOT_FOUND, "Transaction not found")

            updated = Transaction.model_validate({
                **current.model_dump(),
                **changes,
                "updated_at": utcnow(),
            })
            documents[idx] = updated.to_json_document()
            self._store.write_all(documents)

        return OperationResult.success(updated)

    async def delete_for_user(self, user_id: str, transaction_id: str) -> OperationResult:
        with self._store.transaction() as documents:
            idx = _index_of(documents, transaction_id)
            if idx == -1:
                return OperationResult.failure(FailureReason.NOT_FOUND, "Transaction not found")
            if documents[idx].get("user") != user_id:
                return OperationResult.failure(FailureReason.NOT_AUTHORIZED, "User not authorized")
            del documents[idx]
            self._store.write_all(documents)

        return OperationResult.success({"id": transaction_id})


class JsonCategoryStorage(CategoryStorageInterface):
    """Categories in ``categories.json``, seeded with the default catalog."""

    def __init__(self, store: JsonRecordStore):
        self._store = store

    def _ensure_seeded(self) -> None:
        with self._store.transaction() as documents:
            if documents:
                return
            seeded = [category.to_json_document() for category in default_category_records()]
            self._store.write_all(seeded)
            logger.info("categories_seeded", backend="json", count=len(seeded))

    async def list_for_user(
        self,
        user_id: str,
        type: Optional[TransactionType] = None,
    ) -> list[Category]:
        self._ensure_seeded()
        visible = [
            d for d in self._store.read_all()
            if isinstance(d, dict) and d.get("user") in (None, user_id)
        ]
        categories = _parse_records(Category, visible, self._store)
        if type is not None:
            categories = [c for c in categories if c.type == TransactionType(type)]
        return sorted(categories, key=lambda c: (c.type, c.name))

    async def create_for_user(self, user_id: str, fields: dict[str, Any]) -> OperationResult:
        try:
            payload = CategoryCreate.model_validate(fields)
        except ValidationError as e:
            return OperationResult.invalid(e)

        self._ensure_seeded()
        category = Category(
            user=user_id,
            name=payload.name,
            type=payload.type,
            color=payload.color or "#cccccc",
            icon=payload.icon or "fa-tag",
        )
        with self._store.transaction() as documents:
            documents.append(category.to_json_document())
            self._store.write_all(documents)

        return OperationResult.success(category)

    async def update_for_user(
        self,
        user_id: str,
        category_id: str,
        patch: dict[str, Any],
    ) -> OperationResult:
        try:
            changes = CategoryPatch.model_validate(patch).changes()
        except ValidationError as e:
            return OperationResult.invalid(e)

        self._ensure_seeded()
        with self._store.transaction() as documents:
            idx = _index_of(documents, category_id)
            if idx == -1:
                return OperationResult.failure(FailureReason.NOT_FOUND, "Category not found")
            # Global categories (user None) never match a real user id
            if documents[idx].get("user") != user_id:
                return OperationResult.failure(FailureReason.NOT_AUTHORIZED, "User not authorized")

            current = _parse_record(Category, documents[idx], self._store)
            if current is None:
                return OperationResult.failure(FailureReason.NOT_FOUND, "Category not found")

            updated = Category.model_validate({**current.model_dump(), **changes})
            documents[idx] = updated.to_json_document()
            self._store.write_all(documents)

        return OperationResult.success(updated)

    async def delete_for_user(self, user_id: str, category_id: str) -> OperationResult:
        self._ensure_seeded()
        with self._store.transaction() as documents:
            idx = _index_of(documents, category_id)
            if idx == -1:
                return OperationResult.failure(FailureReason.NOT_FOUND, "Category not found")
            if documents[idx].get("user") != user_id:
                return OperationResult.failure(FailureReason.NOT_AUTHORIZED, "User not authorized")
            del documents[idx]
            self._store.write_all(documents)

        return OperationResult.success({"id": category_id})


class JsonBudgetStorage(BudgetStorageInterface):
    """
    Budgets in ``budgets.json``.

    upsert_for_user is the only place the (user, category, month, year)
    uniqueness is enforced in this backend.
    """

    def __init__(self, store: JsonRecordStore):
        self._store = store

    async def list_for_user(
        self,
        user_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Budget]:
        budgets = _parse_records(Budget, _owned_by(self._store.read_all(), user_id), self._store)
        if month:
            budgets = [b for b in budgets if b.month == int(month)]
        if year:
            budgets = [b for b in budgets if b.year == int(year)]
        return sorted(budgets, key=lambda b: (-b.year, -b.month, b.category))

    async def upsert_for_user(self, user_id: str, fields: dict[str, Any]) -> OperationResult:
        try:
            payload = BudgetUpsert.model_validate(fields)
        except ValidationError as e:
            return OperationResult.invalid(e)

        now = utcnow()
        month = payload.month or now.month
        year = payload.year or now.year

        with self._store.transaction() as documents:
            idx = -1
            for i, document in enumerate(documents):
                if (
                    isinstance(document, dict)
                    and document.get("user") == user_id
                    and document.get("category") == payload.category
                    and document.get("month") == month
                    and document.get("year") == year
                ):
                    idx = i
                    break

            # A malformed stored budget under this key is overwritten
            current = _parse_record(Budget, documents[idx], self._store) if idx != -1 else None
            if current is None:
                budget = Budget(
                    user=user_id,
                    category=payload.category,
                    limit=payload.limit,
                    month=month,
                    year=year,
                    created_at=now,
                    updated_at=now,
                )
            else:
                budget = Budget.model_validate({
                    **current.model_dump(),
                    "limit": payload.limit,
                    "updated_at": now,
                })

            if idx == -1:
                documents.append(budget.to_json_document())
            else:
                documents[idx] = budget.to_json_document()
            self._store.write_all(documents)

        return OperationResult.success(budget)

    async def delete_for_user(self, user_id: str, budget_id: str) -> OperationResult:
        with self._store.transaction() as documents:
            idx = _index_of(documents, budget_id)
            if idx == -1:
                return OperationResult.failure(FailureReason.NOT_FOUND, "Budget not found")
            if documents[idx].get("user") != user_id:
                return OperationResult.failure(FailureReason.NOT_AUTHORIZED, "User not authorized")
            del documents[idx]
            self._store.write_all(documents)

        return OperationResult.success({"id": budget_id})


class JsonNotificationStorage(NotificationStorageInterface):
    """Notifications in ``notifications.json``."""

    def __init__(self, store: JsonRecordStore):
        self._store = store

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> list[Notification]:
        notifications = _parse_records(
            Notification, _owned_by(self._store.read_all(), user_id), self._store
        )
        if unread_only:
            notifications = [n for n in notifications if not n.read]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications[:limit] if limit else notifications

    async def find_matching(
        self,
        user_id: str,
        type: str,
        message: str,
    ) -> Optional[Notification]:
        for document in _owned_by(self._store.read_all(), user_id):
            if document.get("type") == type and document.get("message") == message:
                match = _parse_record(Notification, document, self._store)
                if match is not None:
                    return match
        return None

    async def create_for_user(self, user_id: str, type: str, message: str) -> OperationResult:
        with self._store.transaction() as documents:
            idx = -1
            for i, document in enumerate(documents):
                if (
                    isinstance(document, dict)
                    and document.get("user") == user_id
                    and document.get("type") == type
                    and document.get("message") == message
                ):
                    existing = _parse_record(Notification, document, self._store)
                    if existing is not None:
                        return OperationResult.success(existing)
                    idx = i
                    break

            notification = Notification(user=user_id, type=type, message=message)
            # A malformed stored duplicate is replaced, keeping the key unique
            if idx == -1:
                documents.append(notification.to_json_document())
            else:
                documents[idx] = notification.to_json_document()
            self._store.write_all(documents)

        return OperationResult.success(notification)

    async def mark_read(self, user_id: str, notification_id: str) -> OperationResult:
        with self._store.transaction() as documents:
            idx = _index_of(documents, notification_id)
            if idx == -1:
                return OperationResult.failure(FailureReason.NOT_FOUND, "Notification not found")
            if documents[idx].get("user") != user_id:
                return OperationResult.failure(FailureReason.NOT_AUTHORIZED, "User not authorized")
            notification = _parse_record(Notification, {**documents[idx], "read": True}, self._store)
            if notification is None:
                return OperationResult.failure(FailureReason.NOT_FOUND, "Notification not found")
            documents[idx] = {**documents[idx], "read": True}
            self._store.write_all(documents)

        return OperationResult.success(notification)


def create_json_backend(
    data_dir: Union[str, Path],
    default_settings: Optional[UserSettings] = None,
) -> StorageBackend:
    """Wire the five JSON services to their files under ``data_dir``."""
    data_dir = Path(data_dir)
    return StorageBackend(
        users=JsonUserStorage(JsonRecordStore(data_dir / USERS_FILE), default_settings),
        transactions=JsonTransactionStorage(JsonRecordStore(data_dir / TRANSACTIONS_FILE)),
        categories=JsonCategoryStorage(JsonRecordStore(data_dir / CATEGORIES_FILE)),
        budgets=JsonBudgetStorage(JsonRecordStore(data_dir / BUDGETS_FILE)),
        notifications=JsonNotificationStorage(JsonRecordStore(data_dir / NOTIFICATIONS_FILE)),
    )
