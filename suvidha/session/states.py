"""
states.py - Kiosk screen states

The session is a tagged union of screen variants. Each variant only
carries the data that is valid on that screen: a route exists only on
the guest and citizen dashboard screens, a citizen identity only on the
citizen dashboard.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class Screen(str, Enum):
    IDLE = "idle"
    GATEWAY = "gateway"
    CITIZEN_AUTH = "citizen-auth"
    GUEST = "guest"
    CITIZEN_DASHBOARD = "citizen-dashboard"


class Mode(str, Enum):
    GUEST = "guest"
    CITIZEN = "citizen"


# Routes inside the guest / citizen dashboard screens
HOME = "home"
COMPLAINT = "complaint"
ADMIN = "admin"
BILL_PREFIX = "bill/"
SERVICE_TYPES = ("electricity", "water", "gas")

# Exempt from idle timeout
IDLE_EXEMPT_ROUTES = frozenset({ADMIN})


def bill_route(service_type: str) -> str:
    return f"{BILL_PREFIX}{service_type}"


def parse_route(path: str) -> Optional[str]:
    """
    Normalize a route path ("/", "/bill/water", "complaint", ...).

    Returns None for paths outside the four kiosk destinations.
    """
    cleaned = (path or "").strip().strip("/").lower()
    if cleaned in ("", HOME):
        return HOME
    if cleaned in (COMPLAINT, ADMIN):
        return cleaned
    if cleaned.startswith(BILL_PREFIX):
        service = cleaned[len(BILL_PREFIX):]
        if service in SERVICE_TYPES:
            return bill_route(service)
    return None


def route_service_type(route: Optional[str]) -> Optional[str]:
    if route and route.startswith(BILL_PREFIX):
        return route[len(BILL_PREFIX):]
    return None


@dataclass(frozen=True)
class CitizenIdentity:
    """Opaque identity handed over by the identity provider."""

    name: str
    contact_ref: str = ""
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "contact_ref": self.contact_ref, **self.extra}


@dataclass(frozen=True)
class IdleView:
    screen = Screen.IDLE


@dataclass(frozen=True)
class GatewayView:
    screen = Screen.GATEWAY


@dataclass(frozen=True)
class CitizenAuthView:
    screen = Screen.CITIZEN_AUTH


@dataclass(frozen=True)
class GuestView:
    route: str = HOME
    screen = Screen.GUEST


@dataclass(frozen=True)
class CitizenDashboardView:
    citizen: CitizenIdentity
    route: str = HOME
    screen = Screen.CITIZEN_DASHBOARD


ScreenView = Union[IdleView, GatewayView, CitizenAuthView, GuestView, CitizenDashboardView]


@dataclass(frozen=True)
class Session:
    """Immutable snapshot of the kiosk session."""

    view: ScreenView = field(default_factory=IdleView)
    last_activity_at: float = 0.0

    @property
    def screen(self) -> Screen:
        return self.view.screen

    @property
    def mode(self) -> Optional[Mode]:
        if isinstance(self.view, GuestView):
            return Mode.GUEST
        if isinstance(self.view, CitizenDashboardView):
            return Mode.CITIZEN
        return None

    @property
    def active_route(self) -> Optional[str]:
        return getattr(self.view, "route", None)

    @property
    def citizen(self) -> Optional[CitizenIdentity]:
        return getattr(self.view, "citizen", None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "screen": self.screen.value,
            "mode": self.mode.value if self.mode else None,
            "active_route": self.active_route,
            "citizen": self.citizen.to_dict() if self.citizen else None,
            "last_activity_at": self.last_activity_at,
        }
