"""Default category catalog, seeded as global (ownerless) categories."""

import hashlib

from finance_tracker.models.records import Category, TransactionType


DEFAULT_CATEGORIES = {
    TransactionType.EXPENSE: [
        {"name": "Food", "color": "#e74c3c", "icon": "fa-utensils"},
        {"name": "Transport", "color": "#3498db", "icon": "fa-bus"},
        {"name": "Rent", "color": "#9b59b6", "icon": "fa-home"},
        {"name": "Education", "color": "#f1c40f", "icon": "fa-book"},
        {"name": "Entertainment", "color": "#e67e22", "icon": "fa-film"},
        {"name": "Utilities", "color": "#1abc9c", "icon": "fa-bolt"},
        {"name": "Health", "color": "#2ecc71", "icon": "fa-heartbeat"},
        {"name": "Other", "color": "#95a5a6", "icon": "fa-tag"},
    ],
    TransactionType.INCOME: [
        {"name": "Allowance", "color": "#2ecc71", "icon": "fa-hand-holding-usd"},
        {"name": "Scholarship", "color": "#3498db", "icon": "fa-graduation-cap"},
        {"name": "Part-time Job", "color": "#9b59b6", "icon": "fa-briefcase"},
        {"name": "Freelance", "color": "#e67e22", "icon": "fa-laptop"},
        {"name": "Other", "color": "#95a5a6", "icon": "fa-tag"},
    ],
}


def default_category_id(category_type: TransactionType, name: str) -> str:
    """
    Fixed id for a catalog entry.

    24 hex digits, so MongoDB stores it as an ObjectId. Every process
    seeding the catalog writes the same ids.
    """
    key = f"{TransactionType(category_type).value}:{name}".encode("utf-8")
    return hashlib.sha256(key).hexdigest()[:24]


def default_category_records() -> list[Category]:
    """Fresh global Category records for the whole catalog."""
    return [
        Category(
            id=default_category_id(category_type, entry["name"]),
            user=None,
            type=category_type,
            **entry,
        )
        for category_type, entries in DEFAULT_CATEGORIES.items()
        for entry in entries
    ]
