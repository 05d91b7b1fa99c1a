"""Memory system: turn persistence, conversation context and usage ledger."""

from .models import ChatTurn, TurnStatus, UsageRecord
from .sqlite_store import SQLiteMemoryStore
from .context_store import ContextStore
from .usage_ledger import UsageLedger

__all__ = [
    "ChatTurn",
    "TurnStatus",
    "UsageRecord",
    "SQLiteMemoryStore",
    "ContextStore",
    "UsageLedger",
]
