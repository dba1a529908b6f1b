"""
ids.py - Identifier generation

Injected wherever an identifier is minted so tests can pin the values.
"""

import random
import time
import uuid
from typing import Optional


class IdGenerator:
    """Generates queue, transaction and complaint ticket identifiers."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def local_id(self) -> str:
        return f"offline-{uuid.uuid4()}"

    def transaction_id(self) -> str:
        return f"TXN{int(time.time() * 1000) % 10**10:010d}{self._rng.randint(10, 99)}"

    def complaint_id(self) -> str:
        return f"CMP-{time.strftime('%Y%m%d')}-{self._rng.randint(1000, 9999)}"
