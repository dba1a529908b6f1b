import asyncio
import sys

import uvicorn

from suvidha.config import ENV_PATH, get_settings
from suvidha.kiosk_app import create_app
from suvidha.network.status_bridge import StatusBridge
from suvidha.runtime import KioskRuntime
from suvidha.services.api_client import KioskApiClient


async def run_kiosk(settings, client):
    runtime = KioskRuntime(settings=settings, api_client=client)
    runtime.start()

    app = create_app(runtime)
    server = uvicorn.Server(uvicorn.Config(
        app, host=settings.KIOSK_HOST, port=settings.KIOSK_PORT, log_level="info"
    ))
    bridge = StatusBridge(runtime)

    print(f"[*] Kiosk service on http://{settings.KIOSK_HOST}:{settings.KIOSK_PORT}")
    print(f"[*] Status bridge on ws://{settings.KIOSK_HOST}:{settings.BRIDGE_PORT}")

    tasks = [
        asyncio.create_task(bridge.serve(settings.KIOSK_HOST, settings.BRIDGE_PORT)),
        asyncio.create_task(runtime.heartbeat_loop()),
    ]
    try:
        # uvicorn returns on SIGINT/SIGTERM; the rest follows it down
        await server.serve()
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        runtime.shutdown()


def main():
    print("=== SUVIDHA Kiosk Edge ===")

    # 1. Load configuration
    settings = get_settings()
    if not ENV_PATH.exists():
        print(f"[!] {ENV_PATH} not found, using environment/defaults")

    print(f"[*] Kiosk ID: {settings.KIOSK_ID}")
    print(f"[*] Server: {settings.SERVER_URL}")
    print(f"[*] Queue DB: {settings.DB_PATH}")

    # 2. Handshake (single attempt; the kiosk must work offline)
    client = KioskApiClient(
        base_url=settings.SERVER_URL,
        api_key=settings.API_KEY,
        kiosk_id=settings.KIOSK_ID,
        name=settings.KIOSK_NAME,
        ssl_verify=settings.SSL_VERIFY,
    )
    print("[*] Initiating Handshake...")
    success, config = client.handshake()
    if success:
        print(f"[*] Handshake Success! Config keys: {sorted((config or {}).keys())}")
    else:
        print("[!] Handshake failed. Starting in offline-capable mode.")

    # 3. Run service, bridge and heartbeat
    try:
        asyncio.run(run_kiosk(settings, client))
    except KeyboardInterrupt:
        print("\n[!] Shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    main()
