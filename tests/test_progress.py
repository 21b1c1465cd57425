"""
tests/test_progress.py — Sync progress tracker

Covers: run start and reset, bounded recent list, snapshot isolation
between readers and writers.
"""

import threading

from app.services.progress import InMemoryProgressStore, ProgressTracker


def test_starts_idle(tracker):
    progress = tracker.read()
    assert progress.phase == "idle"
    assert progress.processed_count == 0
    assert progress.recent_products == []


def test_begin_clears_previous_run(tracker):
    tracker.set_counts(40, 100)
    tracker.push_recent("OLD - product")
    tracker.set_phase("error", error="boom")

    started = tracker.begin()

    assert started.phase == "connecting"
    assert started.processed_count == 0
    assert started.recent_products == []
    assert started.error is None


def test_recent_products_keep_newest(tracker):
    for i in range(8):
        tracker.push_recent(f"P{i}")

    progress = tracker.read()
    assert progress.recent_products == ["P3", "P4", "P5", "P6", "P7"]
    assert progress.current_product == "P7"


def test_reset_returns_to_idle(tracker):
    tracker.begin()
    tracker.set_page_info(2, 5)
    tracker.reset()

    progress = tracker.read()
    assert progress.phase == "idle"
    assert progress.current_page == 0
    assert progress.total_pages == 0


def test_snapshots_are_not_mutated_by_later_updates(tracker):
    tracker.set_counts(1, 10)
    before = tracker.read()

    tracker.set_counts(2, 10)
    tracker.push_recent("P1")

    assert before.processed_count == 1
    assert before.recent_products == []
    assert tracker.read().processed_count == 2


def test_serialises_camel_case(tracker):
    tracker.set_page_info(1, 3)
    data = tracker.read().model_dump(by_alias=True)
    assert data["currentPage"] == 1
    assert data["totalPages"] == 3
    assert "recentProducts" in data


def test_concurrent_writers_never_lose_recent_entries():
    tracker = ProgressTracker(InMemoryProgressStore(), recent_limit=1000)

    def push(prefix):
        for i in range(100):
            tracker.push_recent(f"{prefix}-{i}")

    threads = [threading.Thread(target=push, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(tracker.read().recent_products) == 400
