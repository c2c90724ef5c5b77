"""Identity store adapter: async SQL access to accounts and the audit log."""

from gateway.adapters.identity_store.database import Database, ExecuteResult
from gateway.adapters.identity_store.repository import AccountRepository, UsageSummary

__all__ = [
    "AccountRepository",
    "Database",
    "ExecuteResult",
    "UsageSummary",
]
