"""
Session module

Kiosk screen state machine, idle reset and citizen authentication.
"""

from .controller import SessionController
from .machine import advance
from .states import Screen, Session

__all__ = ['SessionController', 'advance', 'Screen', 'Session']
