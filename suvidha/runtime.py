"""
runtime.py - Kiosk runtime

Wires the session controller, the offline queue and the sync reconciler
together. The two halves never call each other directly: the session side
writes records into the store, the sync side observes connectivity and
drains the store.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Union

from .config import Settings
from .services.api_client import KioskApiClient
from .services.ids import IdGenerator
from .services.local_db import LocalDatabase
from .services.offline_mode import ConnectivityMonitor
from .services.scheduler import AsyncioScheduler, Scheduler
from .services.sync_manager import Deliver, SyncReconciler
from .session.auth import CitizenAuthFlow, DemoIdentityProvider
from .session.controller import SessionController
from .session.events import Authenticated, DevOverride, Navigate
from .session.states import COMPLAINT, CitizenIdentity, Screen, Session, route_service_type
from .workflows.bill_payment import BillPaymentWorkflow
from .workflows.catalog import DemoBillLookup
from .workflows.complaint import ComplaintWorkflow, Geolocator
from .workflows.voice import VoiceCommand, parse_voice_command

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("KioskRuntime")

Workflow = Union[BillPaymentWorkflow, ComplaintWorkflow]

LANGUAGES = ("en", "hi", "pa")


class WorkflowUnavailable(LookupError):
    """Raised when an action targets a workflow that is not on screen."""


class KioskRuntime:
    """Owns every long-lived kiosk component."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        scheduler: Optional[Scheduler] = None,
        db: Optional[LocalDatabase] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        ids: Optional[IdGenerator] = None,
        bill_lookup: Optional[DemoBillLookup] = None,
        geolocator: Optional[Geolocator] = None,
        identity_provider: Optional[DemoIdentityProvider] = None,
        deliver: Optional[Deliver] = None,
        api_client: Optional[KioskApiClient] = None,
    ):
        self.settings = settings or Settings()
        self.scheduler = scheduler or AsyncioScheduler()
        self.ids = ids or IdGenerator()
        self.db = db or LocalDatabase(self.settings.DB_PATH, id_generator=self.ids)
        self.monitor = monitor or ConnectivityMonitor(self.settings.MAX_FAILURES_BEFORE_OFFLINE)
        self.bill_lookup = bill_lookup or DemoBillLookup()
        self.geolocator = geolocator
        self.identity_provider = identity_provider or DemoIdentityProvider()
        self.api_client = api_client

        self.reconciler = SyncReconciler(
            self.db,
            self.monitor,
            server_url=self.settings.SERVER_URL,
            api_token=self.settings.API_KEY,
            kiosk_id=self.settings.KIOSK_ID,
            deliver=deliver,
            batch_size=self.settings.SYNC_BATCH_SIZE,
            max_rounds=self.settings.SYNC_MAX_ROUNDS,
            base_delay=self.settings.SYNC_BASE_DELAY_SEC,
            max_delay=self.settings.SYNC_MAX_DELAY_SEC,
            compact_after=self.settings.COMPACT_AFTER_SEC,
            timeout=self.settings.SYNC_TIMEOUT_SEC,
        )
        self.controller = SessionController(self.scheduler, idle_timeout=self.settings.IDLE_TIMEOUT_SEC)

        self.auth_flow: Optional[CitizenAuthFlow] = None
        self.workflow: Optional[Workflow] = None
        self.language = "en"

        self._on_status_callbacks: List[Callable] = []

        self.controller.on_change(self._on_session_change)
        self.monitor.on_mode_change(self._on_mode_change)
        self.reconciler.on_progress(lambda status: self._notify_status())

    @property
    def session(self) -> Session:
        return self.controller.session

    def start(self):
        self.controller.start()
        logger.info(f"Kiosk runtime started ({self.settings.KIOSK_ID}), {self.db.count()} records pending")

    def shutdown(self):
        self._close_auth_flow()
        self._close_workflow()
        self.controller.shutdown()
        self.reconciler.cancel()
        logger.info("Kiosk runtime stopped")

    # ==================== Session ====================

    def handle_event(self, event) -> Session:
        return self.controller.advance(event)

    def record_activity(self, kind: str = "touch") -> bool:
        return self.controller.record_activity(kind)

    def _on_session_change(self, old: Session, new: Session, event):
        if new.screen == Screen.CITIZEN_AUTH and old.screen != Screen.CITIZEN_AUTH:
            self.auth_flow = CitizenAuthFlow(self.scheduler, self._on_authenticated, self.identity_provider)
        elif old.screen == Screen.CITIZEN_AUTH and new.screen != Screen.CITIZEN_AUTH:
            self._close_auth_flow()

        if (old.screen, old.active_route) != (new.screen, new.active_route):
            self._close_workflow()
            self.workflow = self._open_workflow(new.active_route)

        if isinstance(event, Authenticated):
            self.db.log_activity('citizen_login', 'completed', new.citizen.name if new.citizen else None)

        self._notify_status()

    def _on_authenticated(self, identity: CitizenIdentity):
        self.handle_event(Authenticated(identity))

    def _close_auth_flow(self):
        if self.auth_flow is not None:
            self.auth_flow.cancel()
            self.auth_flow = None

    # ==================== Workflows ====================

    def _open_workflow(self, route: Optional[str]) -> Optional[Workflow]:
        service_type = route_service_type(route)
        if service_type:
            return BillPaymentWorkflow(
                service_type,
                self.scheduler,
                self.db,
                self.monitor,
                ids=self.ids,
                lookup=self.bill_lookup,
                on_complete=self._on_record_created,
            )
        if route == COMPLAINT:
            return ComplaintWorkflow(
                self.db,
                self.monitor,
                ids=self.ids,
                geolocator=self.geolocator,
                on_complete=self._on_record_created,
            )
        return None

    def _close_workflow(self):
        if self.workflow is not None:
            self.workflow.cancel()
            self.workflow = None

    def _on_record_created(self, workflow: Workflow):
        logger.info(f"{workflow.kind} queued as {workflow.record.local_id}")
        if self.monitor.is_online():
            self.reconciler.request_sync()
        self._notify_status()

    def require_workflow(self, kind: type) -> Workflow:
        if not isinstance(self.workflow, kind):
            raise WorkflowUnavailable(f"No {kind.__name__} on screen")
        return self.workflow

    def apply_voice_command(self, transcript: str) -> VoiceCommand:
        command = parse_voice_command(transcript)
        if command.type == "navigate":
            self.handle_event(Navigate(command.route))
        elif command.type == "language" and command.language in LANGUAGES:
            self.language = command.language
            logger.info(f"Language switched to {command.language}")
        return command

    # ==================== Connectivity & Sync ====================

    def network_signal(self, state: str):
        """Online/offline signal forwarded by the kiosk browser."""
        if state == "online":
            self.monitor.on_online()
        elif state == "offline":
            self.monitor.on_offline()
        else:
            raise ValueError(f"Unknown network state: {state}")

    def _on_mode_change(self, old_mode, new_mode, reason):
        self.db.log_activity('mode_change', new_mode.value, f"{old_mode.value} -> {new_mode.value}: {reason}")
        self._notify_status()

    def sync_now(self) -> Optional[asyncio.Task]:
        if not self.monitor.is_online():
            logger.warning("Manual sync requested while offline")
            return None
        return self.reconciler.request_sync()

    def apply_heartbeat(self, reachable: bool, commands: Optional[List] = None):
        """Feed one heartbeat result to the connectivity monitor."""
        if reachable:
            self.monitor.on_heartbeat_success()
            self._handle_commands(commands)
        else:
            self.monitor.on_heartbeat_failure("heartbeat unreachable")

    def _handle_commands(self, commands: Optional[List]):
        for command in commands or []:
            action = command.get("action") if isinstance(command, dict) else command
            logger.info(f"Server command: {action}")
            if action == "sync_now":
                self.sync_now()
            elif action == "reset_session":
                self.handle_event(DevOverride(Screen.IDLE))
            else:
                logger.warning(f"Unknown server command: {action}")

    async def heartbeat_loop(self):
        """Blocking requests calls run in a worker thread; results are applied on the loop."""
        if self.api_client is None:
            logger.warning("No API client configured, heartbeat disabled")
            return
        while True:
            try:
                reachable, commands = await asyncio.to_thread(
                    self.api_client.heartbeat,
                    self.db.count(),
                    self.reconciler.state.value,
                )
                self.apply_heartbeat(reachable, commands)
            except Exception as e:
                logger.error(f"Heartbeat loop error: {e}")
            await asyncio.sleep(self.settings.HEARTBEAT_INTERVAL_SEC)

    # ==================== Status ====================

    def on_status(self, callback: Callable):
        """
        Register a callback for status changes.

        Callback signature: (status: dict)
        """
        self._on_status_callbacks.append(callback)

    def _notify_status(self):
        if not self._on_status_callbacks:
            return
        status = self.status()
        for callback in list(self._on_status_callbacks):
            try:
                callback(status)
            except Exception as e:
                logger.error(f"Status callback error: {e}")

    def status(self) -> Dict:
        return {
            "kiosk_id": self.settings.KIOSK_ID,
            "session": self.session.to_dict(),
            "language": self.language,
            "connectivity": self.monitor.get_status(),
            "sync": self.reconciler.get_sync_status(),
            "pending_count": self.db.count(),
            "auth": self.auth_flow.to_dict() if self.auth_flow else None,
            "workflow": self.workflow.to_dict() if self.workflow else None,
        }
