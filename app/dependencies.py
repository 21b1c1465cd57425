"""
FastAPI dependency providers.
Services are created lazily, once per process, so importing the app never
opens a Supabase connection. Tests replace them via app.dependency_overrides.
"""

from functools import lru_cache

from app.services.catalog_store import CatalogStore
from app.services.movements import MovementReconciler
from app.services.progress import ProgressTracker, progress_tracker
from app.services.stock_sync import StockSyncDriver
from app.services.supabase_service import SupabaseService


@lru_cache
def get_store() -> CatalogStore:
    return SupabaseService()


def get_progress_tracker() -> ProgressTracker:
    return progress_tracker


@lru_cache
def get_sync_driver() -> StockSyncDriver:
    # One driver per process: its lock is what rejects overlapping syncs
    return StockSyncDriver(get_store(), tracker=get_progress_tracker())


@lru_cache
def get_movement_reconciler() -> MovementReconciler:
    return MovementReconciler(get_store())
