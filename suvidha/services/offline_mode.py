"""
offline_mode.py - Connectivity Monitor

This module tracks the kiosk's online/offline state. The state is only
ever derived from the environment: browser online/offline signals
forwarded by the kiosk UI, and heartbeat success or failure against the
central server. Application code observes it but never sets it.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Connectivity")


class ConnectivityMode(Enum):
    """Kiosk network modes."""
    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"    # Boot, before the first signal


class ConnectivityMonitor:
    """
    Observes connectivity and notifies listeners of transitions.

    Reconnect callbacks fire on offline -> online, and on the first
    unknown -> online after boot so records left over from a previous run
    get reconciled.
    """

    def __init__(self, max_failures_before_offline: int = 3):
        self.current_mode: ConnectivityMode = ConnectivityMode.UNKNOWN
        self.last_heartbeat_success: Optional[datetime] = None
        self.last_change: Optional[datetime] = None
        self.consecutive_failures: int = 0
        self.max_failures_before_offline = max_failures_before_offline

        self._on_mode_change_callbacks: List[Callable] = []
        self._on_reconnect_callbacks: List[Callable] = []

        logger.info("ConnectivityMonitor initialized")

    # ==================== Mode Management ====================

    def get_current_mode(self) -> ConnectivityMode:
        return self.current_mode

    def is_online(self) -> bool:
        return self.current_mode == ConnectivityMode.ONLINE

    def is_offline(self) -> bool:
        return self.current_mode == ConnectivityMode.OFFLINE

    def _set_mode(self, new_mode: ConnectivityMode, reason: str = ""):
        """
        Set the mode and trigger callbacks.

        Args:
            new_mode: The new mode to set
            reason: Reason for the mode change (for logging)
        """
        if new_mode == self.current_mode:
            return

        old_mode = self.current_mode
        self.current_mode = new_mode
        self.last_change = datetime.now()

        logger.info(f"Mode changed: {old_mode.value} -> {new_mode.value} | Reason: {reason}")

        for callback in list(self._on_mode_change_callbacks):
            try:
                callback(old_mode, new_mode, reason)
            except Exception as e:
                logger.error(f"Mode change callback error: {e}")

        if new_mode == ConnectivityMode.ONLINE:
            for callback in list(self._on_reconnect_callbacks):
                try:
                    callback()
                except Exception as e:
                    logger.error(f"Reconnect callback error: {e}")

    # ==================== Environment Signals ====================

    def on_online(self):
        """Browser reported the network as reachable."""
        self.consecutive_failures = 0
        self._set_mode(ConnectivityMode.ONLINE, "online event")

    def on_offline(self):
        """Browser reported the network as unreachable."""
        self.consecutive_failures = self.max_failures_before_offline
        self._set_mode(ConnectivityMode.OFFLINE, "offline event")

    # ==================== Heartbeat Handling ====================

    def on_heartbeat_success(self):
        """Called when a heartbeat/handshake to the server succeeds."""
        self.last_heartbeat_success = datetime.now()
        self.consecutive_failures = 0
        self._set_mode(ConnectivityMode.ONLINE, "heartbeat ok")

    def on_heartbeat_failure(self, error: str = ""):
        """Called when a heartbeat/handshake to the server fails."""
        self.consecutive_failures += 1

        logger.warning(
            f"Heartbeat failed ({self.consecutive_failures}/{self.max_failures_before_offline}): {error}"
        )

        if self.consecutive_failures >= self.max_failures_before_offline:
            self._set_mode(
                ConnectivityMode.OFFLINE,
                f"Connection lost after {self.consecutive_failures} failures"
            )

    # ==================== Callbacks ====================

    def on_mode_change(self, callback: Callable):
        """
        Register a callback for mode changes.

        Callback signature: (old_mode: ConnectivityMode, new_mode: ConnectivityMode, reason: str)
        """
        self._on_mode_change_callbacks.append(callback)

    def on_reconnect(self, callback: Callable):
        """
        Register a callback for when connection is restored.

        Callback signature: ()
        """
        self._on_reconnect_callbacks.append(callback)

    # ==================== Status Report ====================

    def get_status(self) -> dict:
        return {
            "mode": self.current_mode.value,
            "is_online": self.is_online(),
            "last_heartbeat": self.last_heartbeat_success.isoformat() if self.last_heartbeat_success else None,
            "consecutive_failures": self.consecutive_failures,
        }
