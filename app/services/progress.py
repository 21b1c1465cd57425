"""
Live progress of the in-flight catalog sync.

The sync-driving request writes; polling requests read. State sits behind a
ProgressStore so a single-instance deployment can keep it in memory while a
scaled-out one can back it with a shared cache.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from app.config import settings
from app.models.sync import SyncPhase, SyncProgress


class ProgressStore(ABC):
    """Holds one SyncProgress snapshot."""

    @abstractmethod
    def get(self) -> SyncProgress:
        pass

    @abstractmethod
    def set(self, progress: SyncProgress) -> None:
        pass

    @abstractmethod
    def reset(self) -> None:
        pass


class InMemoryProgressStore(ProgressStore):
    """Process-local store. Snapshots are never mutated after being stored."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = SyncProgress()

    def get(self) -> SyncProgress:
        with self._lock:
            return self._snapshot

    def set(self, progress: SyncProgress) -> None:
        with self._lock:
            self._snapshot = progress

    def reset(self) -> None:
        self.set(SyncProgress())


class ProgressTracker:
    """
    Mutations copy the current snapshot, apply the change and swap the copy in,
    so a reader sees either the old or the new state and never a mix.
    """

    def __init__(
        self,
        store: Optional[ProgressStore] = None,
        recent_limit: Optional[int] = None,
    ):
        self.store = store or InMemoryProgressStore()
        self.recent_limit = (
            recent_limit
            if recent_limit is not None
            else settings.stock_sync_recent_products_limit
        )
        self._write_lock = threading.Lock()

    def _update(self, **changes) -> SyncProgress:
        with self._write_lock:
            current = self.store.get()
            changes["updated_at"] = datetime.now(timezone.utc)
            updated = current.model_copy(update=changes)
            self.store.set(updated)
            return updated

    def reset(self) -> None:
        """Return to idle; called when the caller signals the run is over."""
        with self._write_lock:
            self.store.reset()

    def begin(self) -> SyncProgress:
        """Start a new run: fresh counters, phase connecting."""
        with self._write_lock:
            started = SyncProgress(
                phase="connecting", updated_at=datetime.now(timezone.utc)
            )
            self.store.set(started)
            return started

    def set_phase(
        self,
        phase: SyncPhase,
        current_product: Optional[str] = None,
        error: Optional[str] = None,
    ) -> SyncProgress:
        return self._update(phase=phase, current_product=current_product, error=error)

    def set_page_info(self, current: int, total: int) -> SyncProgress:
        return self._update(current_page=current, total_pages=total)

    def set_counts(self, processed: int, total: int) -> SyncProgress:
        return self._update(processed_count=processed, total_count=total)

    def push_recent(self, name: str) -> SyncProgress:
        with self._write_lock:
            current = self.store.get()
            recent = [*current.recent_products, name]
            if len(recent) > self.recent_limit:
                recent = recent[-self.recent_limit:]
            updated = current.model_copy(
                update={
                    "recent_products": recent,
                    "current_product": name,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            self.store.set(updated)
            return updated

    def read(self) -> SyncProgress:
        return self.store.get()


# Process-wide tracker shared by the sync routes
progress_tracker = ProgressTracker()
