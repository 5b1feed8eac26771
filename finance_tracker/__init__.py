"""
Finance Tracker - Storage Core

Keeps a household's transactions, categories, monthly budgets and
budget alerts, on MongoDB when it is reachable and on local JSON files
when it is not.

DESIGN PRINCIPLES:
1. Decide the storage backend once, at startup
2. Both backends answer with the same shapes and the same rules
3. Business outcomes are returned, not raised
4. Storage trouble never takes the process down
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
