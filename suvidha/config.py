"""
config.py - Kiosk configuration

Settings are read from the environment. A kiosk provisioned in the field
keeps its values in config/kiosk.env, which is loaded before the settings
object is built.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
CONFIG_DIR = BASE_DIR / "config"
ENV_PATH = CONFIG_DIR / "kiosk.env"
DATA_DIR = BASE_DIR / "data"


def load_env_file(path):
    """Simple replacement for load_dotenv to avoid external dependency."""
    if not os.path.exists(path):
        return False
    with open(path, 'r') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, val = line.split('=', 1)
            os.environ.setdefault(key.strip(), val.strip())
    return True


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Runtime settings, snapshotted from the environment on construction."""

    def __init__(self):
        self.KIOSK_ID: str = os.getenv("SUVIDHA_KIOSK_ID", "SUVIDHA-KIOSK-001")
        self.KIOSK_NAME: str = os.getenv("SUVIDHA_KIOSK_NAME", "SUVIDHA Setu Kiosk")
        self.SERVER_URL: str = os.getenv("SUVIDHA_SERVER_URL", "http://localhost:8000/api/v1")
        self.API_KEY: str = os.getenv("SUVIDHA_API_KEY", "")
        self.SSL_VERIFY: bool = _env_bool("SUVIDHA_SSL_VERIFY", "true")

        self.DB_PATH: str = os.getenv("SUVIDHA_DB_PATH", str(DATA_DIR / "kiosk_queue.db"))

        # Session
        self.IDLE_TIMEOUT_SEC: float = float(os.getenv("SUVIDHA_IDLE_TIMEOUT_SEC", "120"))

        # Connectivity
        self.HEARTBEAT_INTERVAL_SEC: float = float(os.getenv("SUVIDHA_HEARTBEAT_INTERVAL_SEC", "15"))
        self.MAX_FAILURES_BEFORE_OFFLINE: int = int(os.getenv("SUVIDHA_MAX_FAILURES_BEFORE_OFFLINE", "3"))

        # Sync reconciler (retry with exponential backoff)
        self.SYNC_BATCH_SIZE: int = int(os.getenv("SUVIDHA_SYNC_BATCH_SIZE", "25"))
        self.SYNC_MAX_ROUNDS: int = int(os.getenv("SUVIDHA_SYNC_MAX_ROUNDS", "5"))
        self.SYNC_BASE_DELAY_SEC: float = float(os.getenv("SUVIDHA_SYNC_BASE_DELAY_SEC", "2"))
        self.SYNC_MAX_DELAY_SEC: float = float(os.getenv("SUVIDHA_SYNC_MAX_DELAY_SEC", "300"))
        self.SYNC_TIMEOUT_SEC: float = float(os.getenv("SUVIDHA_SYNC_TIMEOUT_SEC", "30"))
        # Synced records older than this are compacted away
        self.COMPACT_AFTER_SEC: float = float(os.getenv("SUVIDHA_COMPACT_AFTER_SEC", "86400"))

        # Local service surface
        self.KIOSK_HOST: str = os.getenv("SUVIDHA_KIOSK_HOST", "0.0.0.0")
        self.KIOSK_PORT: int = int(os.getenv("SUVIDHA_KIOSK_PORT", "8001"))
        self.BRIDGE_PORT: int = int(os.getenv("SUVIDHA_BRIDGE_PORT", "8002"))
        self.DEV_PANEL_ENABLED: bool = _env_bool("SUVIDHA_DEV_PANEL_ENABLED", "false")


def get_settings(env_path=ENV_PATH) -> Settings:
    """Load the kiosk env file (if present) and build a Settings snapshot."""
    load_env_file(env_path)
    return Settings()
