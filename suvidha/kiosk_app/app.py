"""
Kiosk App - Local service surface for the kiosk browser

The kiosk UI (served separately) talks to this FastAPI application on
port 8001. It forwards touch activity and connectivity signals, drives
the session screens and the active workflow, and exposes the operator
views (queue, activity logs, transition history).
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..runtime import KioskRuntime, WorkflowUnavailable
from ..session.events import Back, DevOverride, GoHome, Logout, Navigate, SelectPath, Start
from ..session.states import Screen
from ..workflows.bill_payment import BillPaymentWorkflow
from ..workflows.complaint import ComplaintWorkflow

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("KioskApp")


# ==================== Request Models ====================

class ActivityRequest(BaseModel):
    kind: str = "touch"


class SessionEventRequest(BaseModel):
    type: str
    path: Optional[str] = None
    route: Optional[str] = None
    screen: Optional[str] = None


class ScanRequest(BaseModel):
    mode: str


class OtpRequest(BaseModel):
    code: str


class ActionRequest(BaseModel):
    value: Optional[str] = None


class VoiceRequest(BaseModel):
    transcript: str


SIMPLE_EVENTS = {
    "start": Start,
    "logout": Logout,
    "go_home": GoHome,
    "back": Back,
}


def _workflow_response(ok: bool, workflow) -> dict:
    return {"ok": ok, "workflow": workflow.to_dict()}


def create_app(runtime: KioskRuntime) -> FastAPI:
    app = FastAPI(title="SUVIDHA Kiosk Edge")

    def require(kind):
        try:
            return runtime.require_workflow(kind)
        except WorkflowUnavailable as e:
            raise HTTPException(status_code=409, detail=str(e))

    # ==================== Health & Status ====================

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "mode": runtime.monitor.get_current_mode().value}

    @app.get("/api/status")
    async def get_status():
        return runtime.status()

    # ==================== Session ====================

    @app.post("/api/activity")
    async def activity(body: ActivityRequest):
        accepted = runtime.record_activity(body.kind)
        return {"accepted": accepted, "last_activity_at": runtime.session.last_activity_at}

    @app.post("/api/session/events")
    async def session_event(body: SessionEventRequest):
        try:
            if body.type in SIMPLE_EVENTS:
                event = SIMPLE_EVENTS[body.type]()
            elif body.type == "select_path":
                event = SelectPath(body.path or "")
            elif body.type == "navigate":
                event = Navigate(body.route or "")
            elif body.type == "dev_override":
                if not runtime.settings.DEV_PANEL_ENABLED:
                    raise HTTPException(status_code=403, detail="Dev panel disabled")
                screen = Screen(body.screen)
                identity = runtime.identity_provider.identity() if screen == Screen.CITIZEN_DASHBOARD else None
                event = DevOverride(screen, identity=identity, route=body.route)
            else:
                raise HTTPException(status_code=400, detail=f"Unknown session event: {body.type}")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

        runtime.record_activity("touch")
        session = runtime.handle_event(event)
        return session.to_dict()

    @app.get("/api/session/history")
    async def session_history():
        return {"history": runtime.controller.history}

    @app.post("/api/voice")
    async def voice_command(body: VoiceRequest):
        command = runtime.apply_voice_command(body.transcript)
        return {"command": command.to_dict(), "session": runtime.session.to_dict()}

    # ==================== Connectivity ====================

    @app.post("/api/network/{state}")
    async def network_signal(state: str):
        try:
            runtime.network_signal(state)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return runtime.monitor.get_status()

    # ==================== Citizen Auth ====================

    def require_auth():
        if runtime.auth_flow is None:
            raise HTTPException(status_code=409, detail="Not on the citizen login screen")
        runtime.record_activity("touch")
        return runtime.auth_flow

    @app.post("/api/auth/scan")
    async def auth_scan(body: ScanRequest):
        flow = require_auth()
        return {"ok": flow.start_scan(body.mode), "auth": flow.to_dict()}

    @app.post("/api/auth/otp/send")
    async def auth_send_otp():
        flow = require_auth()
        flow.send_otp()
        return {"ok": True, "auth": flow.to_dict()}

    @app.post("/api/auth/otp/verify")
    async def auth_verify_otp(body: OtpRequest):
        flow = require_auth()
        return {"ok": flow.verify_otp(body.code), "auth": flow.to_dict()}

    # ==================== Bill Payment ====================

    bill_actions = {
        "key": lambda wf, v: wf.press_key(v or ""),
        "consumer-id": lambda wf, v: wf.set_consumer_id(v or ""),
        "voice": lambda wf, v: wf.apply_voice(v or ""),
        "scan-qr": lambda wf, v: wf.scan_qr(),
        "fetch": lambda wf, v: wf.fetch_bill(),
        "confirm": lambda wf, v: wf.confirm(),
        "pay": lambda wf, v: wf.pay(v or ""),
        "back": lambda wf, v: wf.back(to_input=v == "input"),
    }

    @app.get("/api/bill")
    async def bill_state():
        return require(BillPaymentWorkflow).to_dict()

    @app.post("/api/bill/{action}")
    async def bill_action(action: str, body: ActionRequest):
        handler = bill_actions.get(action)
        if handler is None:
            raise HTTPException(status_code=404, detail=f"Unknown bill action: {action}")
        workflow = require(BillPaymentWorkflow)
        runtime.record_activity("touch")
        return _workflow_response(handler(workflow, body.value), workflow)

    # ==================== Complaint ====================

    complaint_actions = {
        "category": lambda wf, v: wf.select_category(v or ""),
        "voice": lambda wf, v: wf.apply_voice(v or ""),
        "proceed": lambda wf, v: wf.proceed(),
        "description": lambda wf, v: wf.set_description(v or ""),
        "photo": lambda wf, v: wf.attach_photo(v),
        "location": lambda wf, v: bool(wf.detect_location()),
        "submit": lambda wf, v: wf.submit(),
        "back": lambda wf, v: wf.back(),
    }

    @app.get("/api/complaint")
    async def complaint_state():
        return require(ComplaintWorkflow).to_dict()

    @app.post("/api/complaint/{action}")
    async def complaint_action(action: str, body: ActionRequest):
        handler = complaint_actions.get(action)
        if handler is None:
            raise HTTPException(status_code=404, detail=f"Unknown complaint action: {action}")
        workflow = require(ComplaintWorkflow)
        runtime.record_activity("touch")
        return _workflow_response(handler(workflow, body.value), workflow)

    # ==================== Sync & Operator ====================

    @app.get("/api/sync")
    async def sync_status():
        return runtime.reconciler.get_sync_status()

    @app.post("/api/sync")
    async def manual_sync():
        if not runtime.monitor.is_online():
            raise HTTPException(status_code=409, detail="Kiosk is offline")
        runtime.sync_now()
        return runtime.reconciler.get_sync_status()

    @app.get("/api/queue")
    async def queue_records(status: Optional[str] = None, limit: int = 50):
        records = runtime.db.list_records(status=status, limit=limit)
        return {"pending_count": runtime.db.count(), "records": [r.to_dict() for r in records]}

    @app.get("/api/logs")
    async def activity_logs(limit: int = 50):
        return {"logs": runtime.db.get_recent_logs(limit)}

    return app
