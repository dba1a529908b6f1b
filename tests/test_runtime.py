import asyncio
from unittest.mock import patch

from conftest import settle
from suvidha.session.events import GoHome, Navigate, SelectPath, Start
from suvidha.session.states import Screen
from suvidha.workflows.bill_payment import BillPaymentWorkflow
from suvidha.workflows.complaint import ComplaintWorkflow


def open_guest(runtime, route=None):
    runtime.handle_event(Start())
    runtime.handle_event(SelectPath("guest"))
    if route:
        runtime.handle_event(Navigate(route))


def file_complaint(runtime):
    workflow = runtime.require_workflow(ComplaintWorkflow)
    workflow.apply_voice("street light not working")
    workflow.proceed()
    workflow.submit()
    return workflow


def test_route_opens_matching_workflow(runtime):
    open_guest(runtime, "bill/water")
    assert isinstance(runtime.workflow, BillPaymentWorkflow)
    assert runtime.workflow.service_type == "water"

    runtime.handle_event(Navigate("complaint"))
    assert isinstance(runtime.workflow, ComplaintWorkflow)

    runtime.handle_event(GoHome())
    assert runtime.workflow is None


def test_navigating_away_mid_payment_drops_it(runtime, scheduler, db):
    open_guest(runtime, "bill/electricity")
    workflow = runtime.workflow
    workflow.set_consumer_id("PSEB-999999")
    workflow.fetch_bill()
    workflow.confirm()
    workflow.pay("upi")

    runtime.handle_event(GoHome())
    scheduler.advance(10)

    assert db.count() == 0
    assert workflow.step.value == "pay"


def test_idle_timeout_discards_workflow(runtime, scheduler):
    open_guest(runtime, "complaint")
    scheduler.advance(120)

    assert runtime.session.screen == Screen.IDLE
    assert runtime.workflow is None


def test_offline_records_wait_for_reconnect(runtime, db, monitor, delivered):
    monitor.on_offline()
    open_guest(runtime, "complaint")
    workflow = file_complaint(runtime)

    assert db.count() == 1
    assert workflow.record.created_online is False
    assert runtime.workflow.receipt()["offline"] is True

    async def reconnect():
        runtime.network_signal("online")
        await settle(runtime.reconciler)

    asyncio.run(reconnect())
    assert db.count() == 0
    assert delivered == [workflow.record.local_id]


def test_enqueue_while_online_syncs_immediately(runtime, db, monitor, delivered):
    async def scenario():
        runtime.network_signal("online")
        await settle(runtime.reconciler)
        open_guest(runtime, "complaint")
        file_complaint(runtime)
        await settle(runtime.reconciler)

    asyncio.run(scenario())
    assert db.count() == 0
    assert len(delivered) == 1


def test_heartbeat_results_drive_connectivity(runtime, monitor):
    for _ in range(3):
        runtime.apply_heartbeat(False)
    assert monitor.is_offline()

    async def recover():
        runtime.apply_heartbeat(True, [{"action": "reset_session"}])
        await settle(runtime.reconciler)

    open_guest(runtime)
    asyncio.run(recover())
    assert monitor.is_online()
    assert runtime.session.screen == Screen.IDLE


def test_voice_command_navigates_and_switches_language(runtime):
    open_guest(runtime)

    command = runtime.apply_voice_command("pay my water bill")
    assert command.type == "navigate"
    assert runtime.session.active_route == "bill/water"

    runtime.apply_voice_command("switch to punjabi")
    assert runtime.language == "pa"


def test_status_listeners_see_changes(runtime, monitor):
    seen = []
    runtime.on_status(seen.append)

    runtime.handle_event(Start())
    monitor.on_offline()

    assert seen[0]["session"]["screen"] == "gateway"
    assert seen[-1]["connectivity"]["mode"] == "offline"


def test_mode_changes_logged(runtime, db, monitor):
    monitor.on_offline()
    latest = db.get_recent_logs(limit=1)[0]
    assert latest["event_type"] == "mode_change"
    assert latest["status"] == "offline"


def test_shutdown_cancels_pending_sync(runtime):
    with patch.object(runtime.reconciler, "cancel") as cancel:
        runtime.shutdown()
    cancel.assert_called_once_with()
