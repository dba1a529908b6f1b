"""
status_bridge.py - Local WebSocket status bridge for the kiosk UI

Pushes connectivity, pending count and sync progress to the kiosk
browser, and accepts lightweight activity pings so touch events can reset
the idle timer without an HTTP round trip.
"""

import asyncio
import json
import logging
from typing import Dict, Optional, Set

import websockets

from ..runtime import KioskRuntime

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("StatusBridge")


class StatusBridge:
    def __init__(self, runtime: KioskRuntime):
        self.runtime = runtime
        self.clients: Set = set()
        self._last_broadcast: Optional[str] = None
        runtime.on_status(self._on_status)

    def status_message(self, status: Optional[Dict] = None) -> Dict:
        status = status or self.runtime.status()
        sync = status["sync"]
        return {
            "type": "status",
            "data": {
                "online": status["connectivity"]["is_online"],
                "mode": status["connectivity"]["mode"],
                "pending_sync_count": status["pending_count"],
                "sync_state": sync["state"],
                "sync_progress": sync["progress"],
                "sync_remaining": sync["remaining"],
                "screen": status["session"]["screen"],
                "active_route": status["session"]["active_route"],
            },
        }

    def handle_message(self, data: Dict) -> Optional[Dict]:
        """
        Build the reply for one client message.

        Supports:
        - activity: touch/pointer/key/click from the UI (resets idle timer)
        - get_status / get_pending
        - ping
        """
        msg_type = data.get("type")

        # ==================== Activity ====================
        if msg_type == "activity":
            accepted = self.runtime.record_activity(data.get("kind", "touch"))
            return {"type": "activity_ack", "accepted": accepted}

        # ==================== Status Request ====================
        elif msg_type == "get_status":
            return self.status_message()

        # ==================== Pending Count ====================
        elif msg_type == "get_pending":
            return {"type": "pending_info", "count": self.runtime.db.count()}

        # ==================== Ping/Pong ====================
        elif msg_type == "ping":
            return {"type": "pong", "timestamp": data.get("timestamp")}

        logger.warning(f"Unknown message type: {msg_type}")
        return {"type": "error", "error": f"Unknown message type: {msg_type}"}

    async def handler(self, websocket):
        logger.info(f"Client connected: {websocket.remote_address}")
        self.clients.add(websocket)

        try:
            await websocket.send(json.dumps(self.status_message()))

            async for message in websocket:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.error("Invalid JSON received")
                    await websocket.send(json.dumps({"type": "error", "error": "Invalid JSON format"}))
                    continue

                reply = self.handle_message(data if isinstance(data, dict) else {})
                if reply is not None:
                    await websocket.send(json.dumps(reply))

        except websockets.exceptions.ConnectionClosed:
            logger.info("Client disconnected")
        finally:
            self.clients.discard(websocket)

    # ==================== Broadcast ====================

    def _on_status(self, status: Dict):
        if not self.clients:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.create_task(self.broadcast_status(status))

    async def broadcast_status(self, status: Optional[Dict] = None):
        """Broadcast current status to all connected clients."""
        if not self.clients:
            return

        message = json.dumps(self.status_message(status))
        if message == self._last_broadcast:
            return
        self._last_broadcast = message

        await asyncio.gather(
            *[client.send(message) for client in list(self.clients)],
            return_exceptions=True
        )

    async def serve(self, host: str = "0.0.0.0", port: int = 8002):
        """
        Start the bridge and run until cancelled.

        Args:
            host: Interface to bind
            port: Port to listen on (default: 8002)
        """
        async with websockets.serve(self.handler, host, port):
            logger.info(f"Status bridge started on ws://{host}:{port}")
            await asyncio.Future()
