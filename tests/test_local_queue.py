import pytest

from suvidha.services.local_db import STATUS_IN_FLIGHT, STATUS_PENDING, LocalDatabase


def fill(db, n, online=False):
    return [db.enqueue("payment", {"txn_id": f"TXN{i}", "amount": 100 + i}, online=online) for i in range(n)]


def test_enqueue_appends_unsynced_record(db):
    record = db.enqueue("complaint", {"ticket_id": "CMP-1"}, online=True)

    assert record.local_id == "offline-0001"
    assert record.synced is False
    assert record.created_online is True
    assert db.count() == 1

    stored = db.get_record(record.local_id)
    assert stored.payload == {"ticket_id": "CMP-1"}
    assert stored.created_online is True


def test_enqueue_rejects_unknown_kind(db):
    with pytest.raises(ValueError):
        db.enqueue("refund", {})
    assert db.count() == 0


def test_local_ids_are_unique(db):
    records = fill(db, 5)
    assert len({r.local_id for r in records}) == 5


def test_drain_marks_delivered_records(db):
    fill(db, 3)
    seen = []

    synced = db.drain(lambda record: seen.append(record.local_id) or True)

    assert synced == 3
    assert db.count() == 0
    assert all(db.get_record(local_id).synced for local_id in seen)


def test_drain_with_nothing_pending_is_noop(db):
    calls = []
    assert db.drain(calls.append) == 0
    assert calls == []


def test_drain_releases_unconfirmed_records(db):
    records = fill(db, 2)
    first = records[0].local_id

    synced = db.drain(lambda record: record.local_id == first)

    assert synced == 1
    assert db.count() == 1
    failed = db.get_record(records[1].local_id)
    assert failed.synced is False
    assert failed.attempts == 1
    assert failed.last_error == "delivery not confirmed"


def test_drain_callback_errors_release_record(db):
    fill(db, 1)

    def explode(record):
        raise RuntimeError("printer on fire")

    assert db.drain(explode) == 0
    assert db.count() == 1
    assert db.list_records(status=STATUS_PENDING)


def test_nested_drain_never_sees_claimed_records(db):
    fill(db, 3)
    inner_seen = []

    def outer(record):
        db.drain(lambda r: inner_seen.append(r.local_id) or True)
        return True

    assert db.drain(outer) == 3
    assert inner_seen == []
    assert db.count() == 0


def test_record_enqueued_during_drain_waits_for_next_drain(db):
    fill(db, 1)
    outer_seen = []

    def outer(record):
        outer_seen.append(record.local_id)
        db.enqueue("complaint", {"ticket_id": "late"})
        return True

    db.drain(outer)
    assert outer_seen == ["offline-0001"]
    assert db.count() == 1

    assert db.drain(lambda r: True) == 1
    assert db.count() == 0


def test_claims_are_exclusive(db):
    fill(db, 5)
    claim_a, batch_a = db.claim_pending(2)
    claim_b, batch_b = db.claim_pending()

    ids_a = {r.local_id for r in batch_a}
    ids_b = {r.local_id for r in batch_b}
    assert len(ids_a) == 2
    assert len(ids_b) == 3
    assert ids_a.isdisjoint(ids_b)

    # Confirming under the wrong claim changes nothing
    assert db.confirm(claim_b, list(ids_a)) == 0
    assert db.confirm(claim_a, list(ids_a)) == 2
    assert db.confirm(claim_a, list(ids_a)) == 0
    assert db.count() == 3


def test_release_counts_attempts_only_on_error(db):
    fill(db, 1)
    claim_id, batch = db.claim_pending()
    db.release(claim_id)
    assert db.get_record(batch[0].local_id).attempts == 0

    claim_id, batch = db.claim_pending()
    db.release(claim_id, error="HTTP 502")
    record = db.get_record(batch[0].local_id)
    assert record.attempts == 1
    assert record.last_error == "HTTP 502"


def test_in_flight_records_recovered_on_restart(tmp_path, ids):
    path = tmp_path / "restart.db"
    db = LocalDatabase(path, id_generator=ids)
    fill(db, 2)
    db.claim_pending()
    assert len(db.list_records(status=STATUS_IN_FLIGHT)) == 2

    reopened = LocalDatabase(path, id_generator=ids)
    assert reopened.count() == 2
    assert reopened.list_records(status=STATUS_IN_FLIGHT) == []
    assert len(reopened.list_records(status=STATUS_PENDING)) == 2


def test_count_survives_restart(tmp_path, ids):
    path = tmp_path / "persist.db"
    db = LocalDatabase(path, id_generator=ids)
    fill(db, 4)
    db.drain(lambda r: r.local_id == "offline-0001")

    assert LocalDatabase(path, id_generator=ids).count() == 3


def test_compact_only_removes_synced(db):
    fill(db, 3)
    db.drain(lambda r: r.local_id != "offline-0003")

    # Retention window keeps freshly synced rows
    assert db.compact(older_than_sec=3600) == 0

    assert db.compact(older_than_sec=0) == 2
    remaining = db.list_records()
    assert [r.local_id for r in remaining] == ["offline-0003"]
    assert db.count() == 1


def test_activity_log_newest_first(db):
    db.log_activity("sync_start", "pending", "first")
    db.log_activity("sync_complete", "completed", "second")

    logs = db.get_recent_logs(limit=2)
    assert [log["details"] for log in logs] == ["second", "first"]


def test_enqueue_writes_activity_log(db):
    record = db.enqueue("payment", {"txn_id": "TXN1"})
    latest = db.get_recent_logs(limit=1)[0]
    assert latest["event_type"] == "payment_queued"
    assert record.local_id in latest["details"]
