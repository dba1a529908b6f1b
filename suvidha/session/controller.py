"""
controller.py - Session Controller

Owns the single kiosk Session, applies events through the pure
transition function and runs the idle timer. The timer is single-shot:
every qualifying activity event (and every screen or route change)
cancels the pending fire and arms a new one. When it fires, the guard is
evaluated against the session as it is at that moment.
"""

import logging
from collections import deque
from dataclasses import replace
from typing import Callable, Deque, Dict, List, Optional

from ..services.scheduler import Scheduler, TimerHandle
from .events import IdleTimeout, event_name
from .machine import advance, can_idle_reset
from .states import Session

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("SessionController")

QUALIFYING_ACTIVITY = frozenset({"pointer", "touch", "key", "click"})


class SessionController:
    """Top-level kiosk screen state machine with idle reset."""

    def __init__(self, scheduler: Scheduler, idle_timeout: float = 120.0, history_size: int = 30):
        self.scheduler = scheduler
        self.idle_timeout = idle_timeout
        self._session = Session(last_activity_at=scheduler.now())
        self._idle_handle: Optional[TimerHandle] = None
        self._history: Deque[Dict] = deque(maxlen=history_size)
        self._on_change_callbacks: List[Callable] = []
        self.idle_timeouts_fired = 0

    @property
    def session(self) -> Session:
        return self._session

    @property
    def history(self) -> List[Dict]:
        """Recent transitions, newest first."""
        return list(self._history)

    def on_change(self, callback: Callable):
        """
        Register a callback for session changes.

        Callback signature: (old: Session, new: Session, event)
        """
        self._on_change_callbacks.append(callback)

    def start(self):
        self._arm_idle_timer()

    def shutdown(self):
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    # ==================== Events ====================

    def advance(self, event) -> Session:
        old = self._session
        new = advance(old, event)
        name = event_name(event)

        if new is old:
            logger.debug(f"Ignored {name} on {old.screen.value}")
            return old

        self._session = new
        self._history.appendleft({
            "at": self.scheduler.now(),
            "from": old.screen.value,
            "to": new.screen.value,
            "route": new.active_route,
            "trigger": name,
        })
        logger.info(
            f"Screen changed: {old.screen.value}[{old.active_route}] -> "
            f"{new.screen.value}[{new.active_route}] | Trigger: {name}"
        )

        self._arm_idle_timer()

        for callback in list(self._on_change_callbacks):
            try:
                callback(old, new, event)
            except Exception as e:
                logger.error(f"Session change callback error: {e}")

        return new

    def record_activity(self, kind: str = "touch") -> bool:
        """Pointer/touch/key/click activity. Other kinds are ignored."""
        if kind not in QUALIFYING_ACTIVITY:
            return False
        self._session = replace(self._session, last_activity_at=self.scheduler.now())
        self._arm_idle_timer()
        return True

    # ==================== Idle Timer ====================

    def _arm_idle_timer(self):
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        self._idle_handle = self.scheduler.after(self.idle_timeout, self._on_idle_timer)

    def _on_idle_timer(self):
        self._idle_handle = None
        if not can_idle_reset(self._session.view):
            return
        self.idle_timeouts_fired += 1
        logger.info("Idle timeout -> reset")
        self.advance(IdleTimeout())
