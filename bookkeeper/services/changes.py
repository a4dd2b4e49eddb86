"""
Per-owner change versions.

Every committed write bumps the owner's version. Viewers compare the version
carried by a change notification with the one returned by their own last
write and ignore notifications that are older.
"""
import threading
from typing import Dict


class ChangeTracker:
    def __init__(self):
        self._versions: Dict[str, int] = {}
        self._lock = threading.Lock()

    def current(self, owner_id: str) -> int:
        with self._lock:
            return self._versions.get(owner_id, 0)

    def bump(self, owner_id: str) -> int:
        with self._lock:
            version = self._versions.get(owner_id, 0) + 1
            self._versions[owner_id] = version
            return version
