# Storage - Abstract Backend
#
# Defines the StorageBackend contract that every persistence target
# (local file, remote contents API, ...) implements. Adding a backend
# means adding a subclass and a BackendTarget member; callers only ever
# see load/save/probe.

from abc import ABC, abstractmethod
from typing import Dict, Optional

from ..vault.models import BackendTarget, Snapshot, utcnow


class StorageBackend(ABC):
    """Abstract base class for snapshot storage backends.

    Lifecycle:
        1. ``probe()`` - verify the target is reachable/writable
        2. ``load()`` - read the full snapshot (empty if none exists yet)
        3. ``save()`` - replace the stored snapshot with a new one
    """

    def __init__(self, target: BackendTarget):
        self.target = target
        self._last_load: Optional[str] = None
        self._last_save: Optional[str] = None
        self._load_count: int = 0
        self._save_count: int = 0
        self._error_count: int = 0

    @property
    def label(self) -> str:
        return self.target.label

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    def load(self) -> Snapshot:
        """Return the stored snapshot.

        A resource that does not exist yet yields an empty Snapshot,
        never an error, so first run behaves like an empty vault.
        """

    @abstractmethod
    def save(self, snapshot: Snapshot) -> None:
        """Persist ``snapshot``, replacing any previous content."""

    @abstractmethod
    def probe(self) -> None:
        """Raise if the backend is unreachable or unwritable. Never mutates data."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def record_load(self) -> None:
        self._last_load = utcnow().isoformat()
        self._load_count += 1

    def record_save(self) -> None:
        self._last_save = utcnow().isoformat()
        self._save_count += 1

    def record_error(self) -> None:
        self._error_count += 1

    def get_stats(self) -> Dict[str, object]:
        """Return backend statistics."""
        return {
            "backend": self.label,
            "last_load": self._last_load,
            "last_save": self._last_save,
            "loads": self._load_count,
            "saves": self._save_count,
            "errors": self._error_count,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(target={self.target.value})"
