import asyncio
import itertools
import random

import pytest

from suvidha.config import Settings
from suvidha.runtime import KioskRuntime
from suvidha.services.ids import IdGenerator
from suvidha.services.local_db import LocalDatabase
from suvidha.services.offline_mode import ConnectivityMonitor
from suvidha.services.scheduler import VirtualScheduler
from suvidha.workflows.catalog import DemoBillLookup


class SequentialIds(IdGenerator):
    """Predictable local ids so assertions can name records."""

    def __init__(self):
        super().__init__(random.Random(7))
        self._seq = itertools.count(1)

    def local_id(self):
        return f"offline-{next(self._seq):04d}"


async def settle(reconciler):
    """Wait until the reconciler's background task (if any) has finished."""
    for _ in range(1000):
        task = reconciler._task
        if task is None or task.done():
            return
        await asyncio.sleep(0)
    raise AssertionError("sync task did not finish")


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def db(tmp_path, ids):
    return LocalDatabase(tmp_path / "queue.db", id_generator=ids)


@pytest.fixture
def monitor():
    return ConnectivityMonitor(max_failures_before_offline=3)


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("SUVIDHA_KIOSK_ID", "TEST-KIOSK")
    monkeypatch.setenv("SUVIDHA_DB_PATH", str(tmp_path / "kiosk.db"))
    monkeypatch.setenv("SUVIDHA_DEV_PANEL_ENABLED", "true")
    monkeypatch.setenv("SUVIDHA_IDLE_TIMEOUT_SEC", "120")
    return Settings()


@pytest.fixture
def delivered():
    """Local ids delivered by the fake sync endpoint, in delivery order."""
    return []


@pytest.fixture
def runtime(settings, scheduler, db, monitor, ids, delivered):
    async def deliver(batch):
        delivered.extend(record.local_id for record in batch)
        return True

    rt = KioskRuntime(
        settings=settings,
        scheduler=scheduler,
        db=db,
        monitor=monitor,
        ids=ids,
        bill_lookup=DemoBillLookup(random.Random(3)),
        deliver=deliver,
    )
    rt.start()
    yield rt
    rt.shutdown()
