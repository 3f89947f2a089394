# presence.py
import threading
from typing import Dict, Optional

import structlog

from errors import ValidationError
from models import PresenceEntry
from store import utc_now

logger = structlog.get_logger(__name__)


class PresenceTracker:
    """Connected / last-seen state for the fixed set of users."""

    def __init__(self, allowed_users: Dict[str, str]):
        self._lock = threading.Lock()
        self._entries = {
            user_id: PresenceEntry(id=user_id, name=name)
            for user_id, name in allowed_users.items()
        }

    def snapshot(self) -> Dict[str, PresenceEntry]:
        with self._lock:
            return {uid: entry.model_copy() for uid, entry in self._entries.items()}

    def get(self, user_id: str) -> Optional[PresenceEntry]:
        with self._lock:
            entry = self._entries.get(user_id)
            return entry.model_copy() if entry else None

    def connect(self, user_id: str) -> PresenceEntry:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                raise ValidationError("Invalid user")
            entry.connected = True
            entry.last_seen = utc_now()
            connected = entry.model_copy()
        logger.info("user_connected", user=user_id)
        return connected

    def heartbeat(self, user_id: str) -> bool:
        """Refresh ``lastSeen``; unknown users are ignored."""
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return False
            entry.last_seen = utc_now()
        return True

    def reset(self) -> None:
        with self._lock:
            for entry in self._entries.values():
                entry.connected = False
                entry.last_seen = None
