"""
auth.py - Citizen authentication flow (simulated)

Biometric scan and OTP verification against a demo identity provider.
No real identity check happens here; the flow only decides when the
session controller receives an Authenticated event.
"""

import logging
from typing import Callable, Dict, List, Optional

from ..services.scheduler import Scheduler, TimerHandle
from .states import CitizenIdentity

logger = logging.getLogger("CitizenAuth")

DEMO_CITIZEN = CitizenIdentity(
    name="Vivek Kumar",
    contact_ref="+91 98XXX XX890",
    extra={
        "aadhaar": "XXXX-XXXX-4829",
        "address": "H.No 234, Sector 5, Ludhiana, Punjab",
    },
)
DEMO_OTP = "482916"

SCAN_MODES = ("thumb", "face")
SCAN_STEP = 3
SCAN_TICK_SEC = 0.06
SCAN_HANDOFF_SEC = 1.2
OTP_HANDOFF_SEC = 1.0

OTP_MISMATCH_MESSAGE = "Wrong OTP, see correct OTP below"


class DemoIdentityProvider:
    """Identity provider stand-in with a single known citizen."""

    def __init__(self, identity: CitizenIdentity = DEMO_CITIZEN, otp: str = DEMO_OTP):
        self._identity = identity
        self._otp = otp

    @property
    def expected_otp(self) -> str:
        return self._otp

    def identity(self) -> CitizenIdentity:
        return self._identity


class CitizenAuthFlow:
    """One authentication attempt, discarded when the auth screen is left."""

    def __init__(self, scheduler: Scheduler, on_authenticated: Callable[[CitizenIdentity], None],
                 provider: Optional[DemoIdentityProvider] = None):
        self.scheduler = scheduler
        self.provider = provider or DemoIdentityProvider()
        self._on_authenticated = on_authenticated
        self._handles: List[TimerHandle] = []

        self.mode: Optional[str] = None
        self.scanning = False
        self.scan_progress = 0
        self.otp_sent = False
        self.error = ""
        self.authenticated = False

    def _after(self, delay: float, callback: Callable):
        self._handles = [h for h in self._handles if h.active]
        self._handles.append(self.scheduler.after(delay, callback))

    # ==================== Biometric ====================

    def start_scan(self, mode: str) -> bool:
        if self.authenticated or mode not in SCAN_MODES:
            return False
        self.mode = mode
        self.scanning = True
        self.scan_progress = 0
        self.error = ""
        logger.info(f"Biometric scan started ({mode})")
        self._after(SCAN_TICK_SEC, self._scan_tick)
        return True

    def _scan_tick(self):
        if not self.scanning:
            return
        self.scan_progress = min(100, self.scan_progress + SCAN_STEP)
        if self.scan_progress < 100:
            self._after(SCAN_TICK_SEC, self._scan_tick)
            return
        self.scanning = False
        self.authenticated = True
        logger.info("Biometric scan complete")
        self._after(SCAN_HANDOFF_SEC, self._handoff)

    # ==================== OTP ====================

    def send_otp(self):
        self.mode = "otp"
        self.otp_sent = True
        self.error = ""
        logger.info("OTP sent")

    def verify_otp(self, code: str) -> bool:
        if self.authenticated:
            return False
        if (code or "").strip() != self.provider.expected_otp:
            self.error = OTP_MISMATCH_MESSAGE
            logger.info("OTP mismatch")
            return False
        self.error = ""
        self.authenticated = True
        self._after(OTP_HANDOFF_SEC, self._handoff)
        return True

    # ==================== Lifecycle ====================

    def _handoff(self):
        self._on_authenticated(self.provider.identity())

    def cancel(self):
        for handle in self._handles:
            handle.cancel()
        self._handles = []
        self.scanning = False

    def to_dict(self) -> Dict:
        data = {
            "mode": self.mode,
            "scanning": self.scanning,
            "scan_progress": self.scan_progress,
            "otp_sent": self.otp_sent,
            "error": self.error,
            "authenticated": self.authenticated,
        }
        if self.otp_sent:
            # Prototype shows the expected code on screen
            data["demo_otp"] = self.provider.expected_otp
        return data
