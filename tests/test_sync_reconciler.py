import asyncio

from conftest import settle
from suvidha.services.sync_manager import SyncReconciler, SyncState


def fill(db, n):
    for i in range(n):
        db.enqueue("payment", {"txn_id": f"TXN{i}"}, online=False)


class FakeServer:
    """Stand-in for the sync endpoint. ``script`` lists per-call results."""

    def __init__(self, script=None):
        self.script = list(script or [])
        self.calls = []
        self.delivered = []

    async def __call__(self, batch):
        self.calls.append([r.local_id for r in batch])
        ok = self.script.pop(0) if self.script else True
        if isinstance(ok, Exception):
            raise ok
        if ok:
            self.delivered.extend(r.local_id for r in batch)
        return ok


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_reconciler(db, monitor, server, **kwargs):
    kwargs.setdefault("sleep", SleepRecorder())
    return SyncReconciler(db, monitor, deliver=server, **kwargs)


def test_offline_records_sync_after_reconnect(db, monitor):
    server = FakeServer()
    reconciler = make_reconciler(db, monitor, server)
    monitor.on_offline()
    fill(db, 5)

    async def scenario():
        monitor.on_online()
        await settle(reconciler)

    asyncio.run(scenario())

    assert db.count() == 0
    assert sorted(server.delivered) == [f"offline-{i:04d}" for i in range(1, 6)]
    assert len(server.delivered) == len(set(server.delivered))
    status = reconciler.get_sync_status()
    assert status["state"] == "idle"
    assert status["progress"] == 1.0
    assert status["remaining"] == 0


def test_first_online_after_boot_triggers_sync(db, monitor):
    fill(db, 2)
    server = FakeServer()
    reconciler = make_reconciler(db, monitor, server)

    async def scenario():
        monitor.on_heartbeat_success()
        await settle(reconciler)

    asyncio.run(scenario())
    assert db.count() == 0


def test_progress_and_remaining_reported(db, monitor):
    fill(db, 5)
    reconciler = make_reconciler(db, monitor, FakeServer(), batch_size=2)
    monitor.on_offline()
    seen = []
    reconciler.on_progress(lambda status: seen.append((status["state"], status["remaining"])))

    async def scenario():
        monitor.on_online()
        await settle(reconciler)

    asyncio.run(scenario())

    remaining = [r for _, r in seen]
    assert remaining[0] == 5
    assert remaining[1:4] == [3, 1, 0]
    assert remaining[-1] == 0
    assert remaining == sorted(remaining, reverse=True)
    assert seen[-1][0] == "idle"


def test_remaining_drops_by_one_per_record(db, monitor):
    fill(db, 49)
    reconciler = make_reconciler(db, monitor, FakeServer(), batch_size=1)
    monitor.on_offline()
    seen = []
    reconciler.on_progress(lambda status: seen.append(status["remaining"]))

    async def scenario():
        monitor.on_online()
        await settle(reconciler)

    asyncio.run(scenario())

    assert seen[:50] == list(range(49, -1, -1))
    assert seen[-1] == 0


def test_cancel_stops_sync_waiting_on_backoff(db, monitor):
    fill(db, 3)
    monitor.on_offline()

    async def scenario():
        entered = asyncio.Event()

        async def stall(delay):
            entered.set()
            await asyncio.Event().wait()

        reconciler = make_reconciler(db, monitor, FakeServer([False] * 10), sleep=stall)
        monitor.on_online()
        await entered.wait()
        reconciler.cancel()
        await settle(reconciler)
        return reconciler

    reconciler = asyncio.run(scenario())

    assert reconciler._task.cancelled()
    assert reconciler.state == SyncState.IDLE
    assert db.count() == 3
    assert db.list_records(status="in_flight") == []


def test_nothing_pending_stays_idle(db, monitor):
    server = FakeServer()
    reconciler = make_reconciler(db, monitor, server)

    result = asyncio.run(reconciler.reconcile())

    assert result == {"status": "success", "synced_count": 0}
    assert server.calls == []
    assert reconciler.state == SyncState.IDLE


def test_failed_batch_retried_with_backoff(db, monitor):
    fill(db, 2)
    monitor.on_online()
    server = FakeServer([False, RuntimeError("connection reset"), True])
    sleep = SleepRecorder()
    reconciler = make_reconciler(db, monitor, server, sleep=sleep)

    result = asyncio.run(reconciler.reconcile())

    assert result["status"] == "success"
    assert sleep.delays == [2.0, 4.0]
    assert db.count() == 0
    record = db.get_record("offline-0001")
    assert record.synced is True
    assert record.attempts == 2


def test_gives_up_after_max_rounds(db, monitor):
    fill(db, 3)
    monitor.on_online()
    server = FakeServer([False] * 10)
    sleep = SleepRecorder()
    reconciler = make_reconciler(db, monitor, server, sleep=sleep, max_rounds=3)

    result = asyncio.run(reconciler.reconcile())

    assert result["status"] == "error"
    assert result["synced_count"] == 0
    assert sleep.delays == [2.0, 4.0]
    assert db.count() == 3
    assert all(not r.synced and r.attempts == 3 for r in db.list_records())
    assert reconciler.get_sync_status()["remaining"] == 3


def test_backoff_is_capped(db, monitor):
    reconciler = make_reconciler(db, monitor, FakeServer())
    assert reconciler._backoff(1) == 2.0
    assert reconciler._backoff(3) == 8.0
    assert reconciler._backoff(20) == 300.0


def test_aborts_when_connectivity_drops(db, monitor):
    fill(db, 3)
    monitor.on_online()

    async def flaky(batch):
        monitor.on_offline()
        return True

    reconciler = make_reconciler(db, monitor, flaky, batch_size=1)
    result = asyncio.run(reconciler.reconcile())

    assert result["status"] == "aborted"
    assert result["synced_count"] == 1
    assert db.count() == 2
    assert db.list_records(status="in_flight") == []


def test_trigger_while_syncing_queues_single_rerun(db, monitor):
    fill(db, 2)
    monitor.on_offline()
    server = FakeServer()
    reconciler = make_reconciler(db, monitor, server)
    late = []

    original = server.__call__

    async def deliver(batch):
        if not late:
            late.append(db.enqueue("complaint", {"ticket_id": "CMP-late"}))
            first = reconciler.request_sync()
            second = reconciler.request_sync()
            assert first is second
        return await original(batch)

    reconciler._deliver = deliver

    async def scenario():
        monitor.on_online()
        await settle(reconciler)

    asyncio.run(scenario())

    assert db.count() == 0
    assert sorted(server.delivered) == ["offline-0001", "offline-0002", "offline-0003"]
    assert len(server.calls) == 2


def test_reconcile_while_syncing_is_skipped(db, monitor):
    fill(db, 1)
    monitor.on_online()
    nested = []

    async def deliver(batch):
        nested.append(await reconciler.reconcile())
        return True

    reconciler = make_reconciler(db, monitor, deliver)
    asyncio.run(reconciler.reconcile())

    assert nested == [{"status": "skipped", "reason": "sync_in_progress"}]
    assert db.count() == 0


def test_request_sync_without_loop_is_deferred(db, monitor):
    reconciler = make_reconciler(db, monitor, FakeServer())
    assert reconciler.request_sync() is None


def test_sync_writes_activity_log(db, monitor):
    fill(db, 1)
    monitor.on_online()
    reconciler = make_reconciler(db, monitor, FakeServer())
    asyncio.run(reconciler.reconcile())

    events = [log["event_type"] for log in db.get_recent_logs(limit=3)]
    assert events[0] == "sync_complete"
    assert "sync_start" in events
