"""
api_client.py - Central server client

Handshake and heartbeat against the SUVIDHA server. Heartbeat results
are what the Connectivity Monitor uses to decide online/offline.
"""

import logging
import platform
import socket
from typing import Dict, List, Optional, Tuple

import requests

logger = logging.getLogger("KioskApiClient")


class KioskApiClient:
    def __init__(self, base_url, api_key, kiosk_id, name=None, ssl_verify=True, version="2.1.0"):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.kiosk_id = kiosk_id
        self.name = name or platform.node()
        self.version = version
        self.session = requests.Session()
        self.session.verify = ssl_verify
        self.session.headers.update({
            'X-KIOSK-API-KEY': self.api_key,
            'Accept': 'application/json'
        })
        self.kiosk_config: Dict = {}

    def handshake(self) -> Tuple[bool, Optional[Dict]]:
        """
        Registers the kiosk with the server and fetches its config.

        Returns:
            (success, config) where config is None on failure
        """
        endpoint = f"{self.base_url}/kiosk/handshake"
        payload = {
            "kiosk_id": self.kiosk_id,
            "name": self.name,
            "version": self.version,
            "ip_local": self._get_ip(),
            "python_version": platform.python_version(),
        }

        try:
            logger.info(f"Handshaking with {endpoint}...")
            response = self.session.post(endpoint, json=payload, timeout=15)
            response.raise_for_status()
            data = response.json()

            if data.get('status') == 'success':
                self.kiosk_config = data.get('data', {})
                logger.info(f"Handshake Success! Kiosk: {self.kiosk_config.get('name', self.name)}")
                return True, self.kiosk_config

            logger.warning(f"Handshake Failed: {data.get('message')}")
            return False, None

        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Network Error during Handshake: {e}")
            return False, None

    def heartbeat(self, pending_count=0, sync_state="idle") -> Tuple[bool, List]:
        """
        Sends a lightweight heartbeat with queue status.

        Returns:
            (reachable, commands) - commands the server wants the kiosk to run
        """
        endpoint = f"{self.base_url}/kiosk/heartbeat"
        payload = {
            "kiosk_id": self.kiosk_id,
            "status": "online",
            "version": self.version,
            "pending_count": pending_count,
            "sync_state": sync_state,
        }

        try:
            response = self.session.post(endpoint, json=payload, timeout=5)
            response.raise_for_status()

            data = response.json()
            if data.get('status') == 'success' and 'commands' in data:
                return True, data['commands']

            return True, []
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Heartbeat Error: {e}")
            return False, []

    # ========== Helper Methods ==========

    def _get_ip(self):
        """Get local IP address."""
        try:
            s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            s.connect(("8.8.8.8", 80))
            ip = s.getsockname()[0]
            s.close()
            return ip
        except OSError:
            return "127.0.0.1"
