"""
Kiosk App Module

Local HTTP service surface used by the kiosk browser.
"""

from .app import create_app

__all__ = ['create_app']
