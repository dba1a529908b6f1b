"""
SUVIDHA kiosk edge engine.

Session screens, guided payment and complaint workflows, and the offline
queue that forwards completed records to the central server.
"""

__version__ = "0.1.0"
