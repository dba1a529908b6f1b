"""
Services module for the SUVIDHA kiosk.

Provides the offline queue, sync reconciliation, connectivity tracking
and the central server client.
"""

from .api_client import KioskApiClient
from .ids import IdGenerator
from .local_db import LocalDatabase, QueueRecord
from .offline_mode import ConnectivityMode, ConnectivityMonitor
from .scheduler import AsyncioScheduler, VirtualScheduler
from .sync_manager import SyncReconciler, SyncState

__all__ = [
    'KioskApiClient',
    'IdGenerator',
    'LocalDatabase',
    'QueueRecord',
    'ConnectivityMode',
    'ConnectivityMonitor',
    'AsyncioScheduler',
    'VirtualScheduler',
    'SyncReconciler',
    'SyncState',
]
