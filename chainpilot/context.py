"""
Owner-keyed conversation context.
"""
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, List, Optional

from cachetools import TTLCache

# Entries kept per owner
MAX_HISTORY = 12


@dataclass
class ConversationEntry:
    role: str
    content: str
    # Structured payload attached to the turn, e.g. an extracted task list
    data: Optional[Any] = field(default=None, compare=False)


class ConversationContext:
    """
    Bounded recent history per owner.

    Owners idle longer than ``ttl`` seconds are forgotten, and at most
    ``max_owners`` are tracked at once.
    """

    def __init__(self, max_owners: int = 1000, ttl: float = 3600, max_history: int = MAX_HISTORY):
        self._histories: TTLCache = TTLCache(maxsize=max_owners, ttl=ttl)
        self._lock = threading.RLock()
        self.max_history = max_history

    def add(self, owner: str, role: str, content: str, data: Optional[Any] = None) -> None:
        with self._lock:
            history: Deque[ConversationEntry] = self._histories.get(owner) or deque(maxlen=self.max_history)
            history.append(ConversationEntry(role=role, content=content, data=data))
            # Re-assign to refresh the owner's TTL
            self._histories[owner] = history

    def history(self, owner: str, limit: Optional[int] = None) -> List[ConversationEntry]:
        with self._lock:
            entries = list(self._histories.get(owner) or ())
        return entries[-limit:] if limit else entries

    def last_data(self, owner: str, data_type: type) -> Optional[Any]:
        """Most recent attached payload of the given type"""
        for entry in reversed(self.history(owner)):
            if isinstance(entry.data, data_type):
                return entry.data
        return None

    def clear(self, owner: str) -> None:
        with self._lock:
            self._histories.pop(owner, None)
