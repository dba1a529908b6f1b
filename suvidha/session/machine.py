"""
machine.py - Pure session transition function

``advance(session, event)`` returns the next session. It never touches
clocks or timers, so every rule can be exercised without real time.
Events that are not valid in the current screen leave the session
unchanged.
"""

from dataclasses import replace
from typing import Callable, Dict, Type

from .events import (
    Authenticated,
    Back,
    DevOverride,
    GoHome,
    IdleTimeout,
    Logout,
    Navigate,
    SelectPath,
    Start,
)
from .states import (
    HOME,
    IDLE_EXEMPT_ROUTES,
    CitizenAuthView,
    CitizenDashboardView,
    GatewayView,
    GuestView,
    IdleView,
    Screen,
    ScreenView,
    Session,
    parse_route,
)

Handler = Callable[[ScreenView, object], ScreenView]


def _start(view, event):
    if isinstance(view, IdleView):
        return GatewayView()
    return view


def _select_path(view, event):
    if not isinstance(view, GatewayView):
        return view
    if event.path == "guest":
        return GuestView(route=HOME)
    return CitizenAuthView()


def _authenticated(view, event):
    # Stale callbacks from an abandoned auth screen are ignored
    if not isinstance(view, CitizenAuthView) or event.identity is None:
        return view
    return CitizenDashboardView(citizen=event.identity, route=HOME)


def _logout(view, event):
    if isinstance(view, CitizenDashboardView):
        return GatewayView()
    return view


def _go_home(view, event):
    if isinstance(view, (GuestView, CitizenDashboardView)):
        return replace(view, route=HOME)
    return IdleView()


def _idle_timeout(view, event):
    if not can_idle_reset(view):
        return view
    return IdleView()


def _navigate(view, event):
    route = parse_route(event.route)
    if route is None or not isinstance(view, (GuestView, CitizenDashboardView)):
        return view
    return replace(view, route=route)


def _back(view, event):
    if isinstance(view, CitizenAuthView):
        return GatewayView()
    if isinstance(view, GuestView):
        return GatewayView() if view.route == HOME else replace(view, route=HOME)
    return view


def _dev_override(view, event):
    route = parse_route(event.route or HOME) or HOME
    if event.screen == Screen.IDLE:
        return IdleView()
    if event.screen == Screen.GATEWAY:
        return GatewayView()
    if event.screen == Screen.CITIZEN_AUTH:
        return CitizenAuthView()
    if event.screen == Screen.GUEST:
        return GuestView(route=route)
    return CitizenDashboardView(citizen=event.identity, route=route)


TRANSITIONS: Dict[Type, Handler] = {
    Start: _start,
    SelectPath: _select_path,
    Authenticated: _authenticated,
    Logout: _logout,
    GoHome: _go_home,
    IdleTimeout: _idle_timeout,
    Navigate: _navigate,
    Back: _back,
    DevOverride: _dev_override,
}


def can_idle_reset(view: ScreenView) -> bool:
    """Idle reset applies off the idle screen and outside admin."""
    if isinstance(view, IdleView):
        return False
    return getattr(view, "route", None) not in IDLE_EXEMPT_ROUTES


def advance(session: Session, event) -> Session:
    """
    Apply one event to the session.

    Raises:
        TypeError: for objects that are not session events
    """
    handler = TRANSITIONS.get(type(event))
    if handler is None:
        raise TypeError(f"Not a session event: {event!r}")

    new_view = handler(session.view, event)
    if new_view == session.view:
        return session
    return replace(session, view=new_view)
