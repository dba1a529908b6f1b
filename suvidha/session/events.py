"""
events.py - Session events

Everything that can move the kiosk between screens. Events are plain
immutable values; the transition function decides what they mean in the
current state.
"""

from dataclasses import dataclass
from typing import Optional

from .states import CitizenIdentity, Screen


@dataclass(frozen=True)
class Start:
    """Attraction screen tapped."""


@dataclass(frozen=True)
class SelectPath:
    path: str  # "guest" | "citizen"

    def __post_init__(self):
        if self.path not in ("guest", "citizen"):
            raise ValueError(f"Unknown path: {self.path}")


@dataclass(frozen=True)
class Authenticated:
    identity: CitizenIdentity


@dataclass(frozen=True)
class Logout:
    pass


@dataclass(frozen=True)
class GoHome:
    pass


@dataclass(frozen=True)
class IdleTimeout:
    pass


@dataclass(frozen=True)
class Navigate:
    route: str


@dataclass(frozen=True)
class Back:
    pass


@dataclass(frozen=True)
class DevOverride:
    """Debug escape hatch: jump straight to a screen."""

    screen: Screen
    identity: Optional[CitizenIdentity] = None
    route: Optional[str] = None

    def __post_init__(self):
        if self.screen == Screen.CITIZEN_DASHBOARD and self.identity is None:
            raise ValueError("citizen-dashboard override needs an identity")


def event_name(event) -> str:
    return type(event).__name__
