"""
DocBridge Backend — Expiry Scheduler Unit Tests
=================================================

What:  Ordering, cancellation, rescheduling and heap compaction.
"""

from app.services.expiry import ExpiryScheduler


class TestExpiryScheduler:

    def test_pop_due_in_deadline_order(self):
        scheduler = ExpiryScheduler()
        scheduler.schedule("c", 30.0)
        scheduler.schedule("a", 10.0)
        scheduler.schedule("b", 20.0)

        due = scheduler.pop_due(25.0)

        assert [t.object_id for t in due] == ["a", "b"]
        assert len(scheduler) == 1
        assert "c" in scheduler

    def test_deadline_boundary_is_inclusive(self):
        scheduler = ExpiryScheduler()
        scheduler.schedule("a", 10.0)

        assert scheduler.pop_due(9.999) == []
        assert [t.object_id for t in scheduler.pop_due(10.0)] == ["a"]

    def test_equal_deadlines_keep_insertion_order(self):
        scheduler = ExpiryScheduler()
        for name in ["x", "y", "z"]:
            scheduler.schedule(name, 5.0)

        assert [t.object_id for t in scheduler.pop_due(5.0)] == ["x", "y", "z"]

    def test_cancelled_task_never_fires(self):
        scheduler = ExpiryScheduler()
        scheduler.schedule("a", 10.0)
        scheduler.schedule("b", 10.0)

        assert scheduler.cancel("a") is True
        assert scheduler.cancel("a") is False

        assert [t.object_id for t in scheduler.pop_due(100.0)] == ["b"]
        assert len(scheduler) == 0

    def test_reschedule_replaces_previous_task(self):
        scheduler = ExpiryScheduler()
        scheduler.schedule("a", 10.0)
        scheduler.schedule("a", 50.0, attempt=1)

        assert scheduler.pop_due(20.0) == []
        due = scheduler.pop_due(50.0)
        assert [(t.object_id, t.attempt) for t in due] == [("a", 1)]

    def test_next_deadline_skips_stale_entries(self):
        scheduler = ExpiryScheduler()
        assert scheduler.next_deadline() is None

        scheduler.schedule("a", 10.0)
        scheduler.schedule("b", 20.0)
        scheduler.cancel("a")

        assert scheduler.next_deadline() == 20.0

    def test_pending_snapshot(self):
        scheduler = ExpiryScheduler()
        scheduler.schedule("b", 20.0)
        scheduler.schedule("a", 10.0)

        pending = scheduler.pending()
        assert [t.object_id for t in pending] == ["a", "b"]

        # Snapshot is detached from the scheduler
        pending.clear()
        assert len(scheduler) == 2

    def test_heap_compacts_when_mostly_stale(self):
        scheduler = ExpiryScheduler()
        for i in range(500):
            scheduler.schedule(f"obj{i}", float(i))
        for i in range(499):
            scheduler.cancel(f"obj{i}")

        assert len(scheduler) == 1
        assert scheduler.heap_size <= 2 * len(scheduler) + ExpiryScheduler.COMPACT_SLACK
        assert [t.object_id for t in scheduler.pop_due(1000.0)] == ["obj499"]

    def test_repeated_reschedules_do_not_grow_heap_unbounded(self):
        scheduler = ExpiryScheduler()
        for i in range(1000):
            scheduler.schedule("same", float(i))

        assert len(scheduler) == 1
        assert scheduler.heap_size <= 2 + ExpiryScheduler.COMPACT_SLACK + 1
        assert scheduler.next_deadline() == 999.0
