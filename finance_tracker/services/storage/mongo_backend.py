"""
MongoDB Storage Implementation

The document-database side of the storage layer. It implements the same
interfaces as the JSON backend and must return the same answers.

DESIGN DECISION: Uniqueness is enforced by indexes here (budget key,
notification key, user email) and upserts are single
``find_one_and_update`` calls, so each operation is atomic on the server.
Username uniqueness is case-insensitive and checked with an anchored
regex before writing, like the JSON backend's scan.

Owner references are stored as the owner's id string, the same value the
JSON backend stores, so records look identical on both sides.
"""

import re
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from bson import ObjectId
from pydantic import ValidationError
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from finance_tracker.config import StorageSettings
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
    StorageUnavailableError,
    TransactionStorageInterface,
    UserStorageInterface,
)


logger = get_logger(__name__)

USERS = "users"
TRANSACTIONS = "transactions"
CATEGORIES = "categories"
BUDGETS = "budgets"
NOTIFICATIONS = "notifications"


def redact_uri(uri: Optional[str]) -> str:
    """Hide credentials in a connection string before it is logged."""
    if not isinstance(uri, str):
        return ""
    return re.sub(r"(mongodb(?:\+srv)?://)([^@/]+)@", r"\1<redacted>@", uri, flags=re.IGNORECASE)


def _object_id(record_id: str) -> Optional[ObjectId]:
    """ObjectId for a record id, or None if it cannot be one."""
    if isinstance(record_id, ObjectId):
        return record_id
    if isinstance(record_id, str) and ObjectId.is_valid(record_id):
        return ObjectId(record_id)
    return None


def _case_insensitive(value: str) -> dict:
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


# =============================================================================
# CONNECTION
# =============================================================================

class MongoConnection:
    """
    Connection wrapper.

    Builds client options from StorageSettings (timeout, TLS overrides),
    verifies the server with ``ping`` and prepares the indexes.
    """

    def __init__(self, settings: StorageSettings, client: Optional[MongoClient] = None):
        self._settings = settings
        self._client = client
        self._database: Optional[Database] = None

    def client_options(self) -> dict[str, Any]:
        """Keyword arguments for MongoClient. Strict TLS unless overridden."""
        settings = self._settings
        options: dict[str, Any] = {
            "serverSelectionTimeoutMS": settings.server_selection_timeout_ms,
            "connectTimeoutMS": settings.server_selection_timeout_ms,
            "tz_aware": True,
        }

        uri = settings.uri or ""
        query = parse_qs(urlsplit(uri).query) if uri else {}
        tls_flag = (query.get("tls") or query.get("ssl") or [""])[0].strip().lower()
        if uri.startswith("mongodb+srv://") and tls_flag == "false":
            logger.warning(
                "mongo_tls_flag_ignored",
                uri=redact_uri(uri),
                hint="SRV connections require TLS; remove tls=false/ssl=false from the URI",
            )
            options["tls"] = True

        if settings.tls_insecure:
            options["tlsInsecure"] = True
        else:
            if settings.tls_allow_invalid_certs:
                options["tlsAllowInvalidCertificates"] = True
            if settings.tls_allow_invalid_hostnames:
                options["tlsAllowInvalidHostnames"] = True
        if settings.tls_ca_file:
            options["tlsCAFile"] = settings.tls_ca_file

        return options

    def connect(self) -> Database:
        """
        Open the client and verify the server answers.

        Fast connection failures are retried until the configured timeout
        has elapsed; nothing here blocks longer than that.

        Raises:
            StorageUnavailableError: on any driver error (timeout, auth,
                network, TLS, bad URI, unreadable CA file)
        """
        if self._database is not None:
            return self._database

        if self._client is None and not self._settings.uri:
            raise StorageUnavailableError("MONGO_URI not set")

        ca_file = self._settings.tls_ca_file
        if self._client is None and ca_file and not Path(ca_file).is_file():
            raise StorageUnavailableError(f"TLS CA file not found: {ca_file}")

        try:
            for attempt in Retrying(
                stop=stop_after_delay(self._settings.timeout_seconds) | stop_after_attempt(3),
                wait=wait_fixed(0.5),
                retry=retry_if_exception_type(ConnectionFailure),
                reraise=True,
            ):
                with attempt:
                    if self._client is None:
                        self._client = MongoClient(self._settings.uri, **self.client_options())
                    self._client.admin.command("ping")

            database = self._client.get_default_database(default=self._settings.db_name)
            ensure_indexes(database)
        except (PyMongoError, OSError, ValueError) as e:
            # The driver reports unreadable TLS files as OSError, some bad options as ValueError
            raise StorageUnavailableError(str(e)) from e

        self._database = database
        return database

    @property
    def client(self) -> Optional[MongoClient]:
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


def ensure_indexes(database: Database) -> None:
    """Create the indexes that back the uniqueness rules."""
    database[USERS].create_index([("email", ASCENDING)], unique=True)
    database[USERS].create_index([("username", ASCENDING)])
    database[TRANSACTIONS].create_index([("user", ASCENDING), ("date", DESCENDING)])
    database[CATEGORIES].create_index([("user", ASCENDING), ("type", ASCENDING), ("name", ASCENDING)])
    database[BUDGETS].create_index(
        [("user", ASCENDING), ("category", ASCENDING), ("month", ASCENDING), ("year", ASCENDING)],
        unique=True,
    )
    database[NOTIFICATIONS].create_index(
        [("user", ASCENDING), ("type", ASCENDING), ("message", ASCENDING)],
        unique=True,
    )


def build_transaction_query(user_id: str, filters: TransactionFilters) -> dict:
    """MongoDB filter equivalent to json_backend.transaction_matches."""
    query: dict[str, Any] = {"user": user_id}
    if filters.type:
        query["type"] = TransactionType(filters.type).value
    if filters.category:
        query["category"] = filters.category
    if filters.start_date or filters.end_date:
        query["date"] = {}
        if filters.start_date:
            query["date"]["$gte"] = filters.start_date
        if filters.end_date:
            query["date"]["$lte"] = filters.end_date
    if filters.min_amount is not None or filters.max_amount is not None:
        query["amount"] = {}
        if filters.min_amount is not None:
            query["amount"]["$gte"] = filters.min_amount
        if filters.max_amount is not None:
            query["amount"]["$lte"] = filters.max_amount
    if filters.q:
        pattern = {"$regex": re.escape(filters.q), "$options": "i"}
        query["$or"] = [
            {"title": pattern},
            {"category": pattern},
            {"description": pattern},
        ]
    return query


# =============================================================================
# SERVICES
# =============================================================================

class MongoUserStorage(UserStorageInterface):
    """Users in the ``users`` collection."""

    def __init__(self, database: Database, default_settings: Optional[UserSettings] = None):
        self._collection = database[USERS]
        self._default_settings = default_settings or UserSettings()

    def _find_one(self, query: dict) -> Optional[User]:
        document = self._collection.find_one(query)
        return User.from_document(document) if document else None

    async def find_by_id(self, user_id: str) -> Optional[User]:
        oid = _object_id(user_id)
        return self._find_one({"_id": oid}) if oid else None

    async def find_by_email(self, email: str) -> Optional[User]:
        return self._find_one({"email": _case_insensitive(email or "")})

    async def find_by_username(self, username: str) -> Optional[User]:
        return self._find_one({"username": _case_insensitive(username or "")})

    async def create_user(self, fields: dict[str, Any]) -> OperationResult:
        try:
            request = RegisterRequest.model_validate(fields)
        except ValidationError as e:
            return OperationResult.invalid(e)

        existing = self._collection.find_one({
            "$or": [
                {"email": _case_insensitive(request.email)},
                {"username": _case_insensitive(request.username)},
            ]
        })
        if existing:
            return OperationResult.failure(FailureReason.USER_EXISTS, "User already exists")

        user = User(
            username=request.username,
            email=request.email.lower(),
            password=get_password_hash(request.password),
            settings=self._default_settings.model_copy(),
        )
        try:
            inserted = self._collection.insert_one(user.to_mongo_document())
        except DuplicateKeyError:
            return OperationResult.failure(FailureReason.USER_EXISTS, "User already exists")

        return OperationResult.success(user.model_copy(update={"id": str(inserted.inserted_id)}))

    async def update_user(self, user_id: str, patch: dict[str, Any]) -> OperationResult:
        try:
            profile = ProfilePatch.model_validate(patch)
        except ValidationError as e:
            return OperationResult.invalid(e)

        oid = _object_id(user_id)
        document = self._collection.find_one({"_id": oid}) if oid else None
        if not document:
            return OperationResult.failure(FailureReason.NOT_FOUND, "User not found")

        if profile.email is not None and self._collection.find_one(
            {"_id": {"$ne": oid}, "email": _case_insensitive(profile.email)}
        ):
            return OperationResult.failure(FailureReason.EMAIL_IN_USE, "Email already in use")
        if profile.username is not None and self._collection.find_one(
            {"_id": {"$ne": oid}, "username": _case_insensitive(profile.username)}
        ):
            return OperationResult.failure(FailureReason.USERNAME_IN_USE, "Username already in use")

        current = User.from_document(document)
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
        try:
            self._collection.update_one(
                {"_id": oid},
                {"$set": {
                    "username": updated.username,
                    "email": updated.email,
                    "settings": settings,
                    "updatedAt": updated.updated_at,
                }},
            )
        except DuplicateKeyError:
            return OperationResult.failure(FailureReason.EMAIL_IN_USE, "Email already in use")

        return OperationResult.success(updated)

    async def set_password(self, user_id: str, new_password: str) -> OperationResult:
        try:
            change = PasswordChange(new_password=new_password)
        except ValidationError as e:
            return OperationResult.invalid(e)

        oid = _object_id(user_id)
        result = self._collection.update_one(
            {"_id": oid},
            {"$set": {"password": get_password_hash(change.new_password), "updatedAt": utcnow()}},
        ) if oid else None
        if result is None or result.matched_count == 0:
            return OperationResult.failure(FailureReason.NOT_FOUND, "User not found")
        return OperationResult.success()


class _OwnedCollection:
    """Lookup-with-ownership shared by the owned-entity services."""

    entity_name = "Record"

    def __init__(self, database: Database, name: str):
        self._collection = database[name]

    def _load_owned(self, user_id: str, record_id: str) -> tuple[Optional[dict], Optional[OperationResult]]:
        """
        Fetch a document the user owns.

        Returns (document, None) or (None, failure result).
        """
        oid = _object_id(record_id)
        document = self._collection.find_one({"_id": oid}) if oid else None
        if not document:
            return None, OperationResult.failure(
                FailureReason.NOT_FOUND, f"{self.entity_name} not found"
            )
        if document.get("user") != user_id:
            return None, OperationResult.failure(
                FailureReason.NOT_AUTHORIZED, "User not authorized"
            )
        return document, None

    def _delete_owned(self, user_id: str, record_id: str) -> OperationResult:
        document, failure = self._load_owned(user_id, record_id)
        if failure:
            return failure
        self._collection.delete_one({"_id": document["_id"]})
        return OperationResult.success({"id": record_id})


class MongoTransactionStorage(_OwnedCollection, TransactionStorageInterface):
    """Transactions in the ``transactions`` collection."""

    entity_name = "Transaction"

    def __init__(self, database: Database):
        super().__init__(database, TRANSACTIONS)

    async def list_for_user(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        direction = DESCENDING if filters.sort_descending else ASCENDING
        cursor = self._collection.find(build_transaction_query(user_id, filters)).sort(
            filters.sort_field, direction
        )
        return [Transaction.from_document(document) for document in cursor]

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
        inserted = self._collection.insert_one(tx.to_mongo_document())
        return OperationResult.success(tx.model_copy(update={"id": str(inserted.inserted_id)}))

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

        document, failure = self._load_owned(user_id, transaction_id)
        if failure:
            return failure

        current = Transaction.from_document(document)
        updated = Transaction.model_validate({
            **current.model_dump(),
            **changes,
            "updated_at": utcnow(),
        })
        stored = updated.to_mongo_document()
        self._collection.update_one({"_id": document["_id"]}, {"$set": stored})
        return OperationResult.success(updated)

    async def delete_for_user(self, user_id: str, transaction_id: str) -> OperationResult:
        return self._delete_owned(user_id, transaction_id)


class MongoCategoryStorage(_OwnedCollection, CategoryStorageInterface):
    """Categories in the ``categories`` collection, seeded lazily."""

    entity_name = "Category"

    def __init__(self, database: Database):
        super().__init__(database, CATEGORIES)

    def _ensure_seeded(self) -> None:
        if self._collection.count_documents({}, limit=1):
            return
        # Upserts keyed on the fixed catalog ids, so concurrent seeders converge
        seeded = 0
        for category in default_category_records():
            try:
                result = self._collection.update_one(
                    {"_id": ObjectId(category.id)},
                    {"$setOnInsert": category.to_mongo_document()},
                    upsert=True,
                )
            except DuplicateKeyError:
                continue
            if result.upserted_id is not None:
                seeded += 1
        if seeded:
            logger.info("categories_seeded", backend="mongo", count=seeded)

    async def list_for_user(
        self,
        user_id: str,
        type: Optional[TransactionType] = None,
    ) -> list[Category]:
        self._ensure_seeded()
        query: dict[str, Any] = {"user": {"$in": [None, user_id]}}
        if type is not None:
            query["type"] = TransactionType(type).value
        cursor = self._collection.find(query).sort([("type", ASCENDING), ("name", ASCENDING)])
        return [Category.from_document(document) for document in cursor]

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
        inserted = self._collection.insert_one(category.to_mongo_document())
        return OperationResult.success(category.model_copy(update={"id": str(inserted.inserted_id)}))

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
        document, failure = self._load_owned(user_id, category_id)
        if failure:
            return failure

        current = Category.from_document(document)
        updated = Category.model_validate({**current.model_dump(), **changes})
        if changes:
            self._collection.update_one(
                {"_id": document["_id"]},
                {"$set": {key: getattr(updated, key) for key in changes}},
            )
        return OperationResult.success(updated)

    async def delete_for_user(self, user_id: str, category_id: str) -> OperationResult:
        self._ensure_seeded()
        return self._delete_owned(user_id, category_id)


class MongoBudgetStorage(_OwnedCollection, BudgetStorageInterface):
    """Budgets in the ``budgets`` collection (unique index on the budget key)."""

    entity_name = "Budget"

    def __init__(self, database: Database):
        super().__init__(database, BUDGETS)

    async def list_for_user(
        self,
        user_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Budget]:
        query: dict[str, Any] = {"user": user_id}
        if month:
            query["month"] = int(month)
        if year:
            query["year"] = int(year)
        cursor = self._collection.find(query).sort(
            [("year", DESCENDING), ("month", DESCENDING), ("category", ASCENDING)]
        )
        return [Budget.from_document(document) for document in cursor]

    async def upsert_for_user(self, user_id: str, fields: dict[str, Any]) -> OperationResult:
        try:
            payload = BudgetUpsert.model_validate(fields)
        except ValidationError as e:
            return OperationResult.invalid(e)

        now = utcnow()
        key = {
            "user": user_id,
            "category": payload.category,
            "month": payload.month or now.month,
            "year": payload.year or now.year,
        }
        document = self._collection.find_one_and_update(
            key,
            {
                "$set": {"limit": payload.limit, "updatedAt": now},
                "$setOnInsert": {"createdAt": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return OperationResult.success(Budget.from_document(document))

    async def delete_for_user(self, user_id: str, budget_id: str) -> OperationResult:
        return self._delete_owned(user_id, budget_id)


class MongoNotificationStorage(_OwnedCollection, NotificationStorageInterface):
    """Notifications in the ``notifications`` collection (unique on user/type/message)."""

    entity_name = "Notification"

    def __init__(self, database: Database):
        super().__init__(database, NOTIFICATIONS)

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: Optional[int] = None,
    ) -> list[Notification]:
        query: dict[str, Any] = {"user": user_id}
        if unread_only:
            query["read"] = False
        cursor = self._collection.find(query).sort("createdAt", DESCENDING)
        if limit:
            cursor = cursor.limit(limit)
        return [Notification.from_document(document) for document in cursor]

    async def find_matching(
        self,
        user_id: str,
        type: str,
        message: str,
    ) -> Optional[Notification]:
        document = self._collection.find_one({"user": user_id, "type": type, "message": message})
        return Notification.from_document(document) if document else None

    async def create_for_user(self, user_id: str, type: str, message: str) -> OperationResult:
        document = self._collection.find_one_and_update(
            {"user": user_id, "type": type, "message": message},
            {"$setOnInsert": {"read": False, "createdAt": utcnow()}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return OperationResult.success(Notification.from_document(document))

    async def mark_read(self, user_id: str, notification_id: str) -> OperationResult:
        document, failure = self._load_owned(user_id, notification_id)
        if failure:
            return failure
        self._collection.update_one({"_id": document["_id"]}, {"$set": {"read": True}})
        return OperationResult.success(Notification.from_document({**document, "read": True}))


def create_mongo_backend(
    database: Database,
    default_settings: Optional[UserSettings] = None,
) -> StorageBackend:
    """Wire the five MongoDB services to one database."""
    return StorageBackend(
        users=MongoUserStorage(database, default_settings),
        transactions=MongoTransactionStorage(database),
        categories=MongoCategoryStorage(database),
        budgets=MongoBudgetStorage(database),
        notifications=MongoNotificationStorage(database),
    )
