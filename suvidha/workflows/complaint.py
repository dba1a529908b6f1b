"""
complaint.py - Complaint (grievance) workflow

Steps: category -> details -> done. The ticket is queued on entering the
done step; leaving the screen earlier drops the draft.
"""

import logging
from enum import Enum
from typing import Callable, Dict, Optional, Sequence, Tuple

from ..services.ids import IdGenerator
from ..services.local_db import LocalDatabase, QueueRecord, utc_now_iso
from ..services.offline_mode import ConnectivityMonitor
from .catalog import DEFAULT_CATEGORIES, ComplaintCategory, detect_category, find_category

logger = logging.getLogger("Complaint")

# Ludhiana, used when the kiosk cannot locate itself
DEFAULT_LOCATION = {"lat": "30.9010", "lng": "75.8573"}

SAVE_FAILED_MESSAGE = "Could not save the complaint, please retry"

Geolocator = Callable[[], Tuple[float, float]]


class ComplaintStep(str, Enum):
    CATEGORY = "category"
    DETAILS = "details"
    DONE = "done"


class ComplaintWorkflow:
    """Guided filing of one complaint ticket."""

    kind = "complaint"

    def __init__(
        self,
        store: LocalDatabase,
        monitor: ConnectivityMonitor,
        ids: Optional[IdGenerator] = None,
        categories: Sequence[ComplaintCategory] = DEFAULT_CATEGORIES,
        geolocator: Optional[Geolocator] = None,
        on_complete: Optional[Callable] = None,
    ):
        self.store = store
        self.monitor = monitor
        self.ids = ids or IdGenerator()
        self.categories = tuple(categories)
        self.geolocator = geolocator
        self._on_complete = on_complete

        self.step = ComplaintStep.CATEGORY
        self.category: Optional[ComplaintCategory] = None
        self.description = ""
        self.voice_transcript: Optional[str] = None
        self.photo: Optional[str] = None
        self.location: Optional[Dict[str, str]] = None
        self.ticket_id = ""
        self.error = ""
        self.record: Optional[QueueRecord] = None

    # ==================== Category ====================

    def select_category(self, key_or_label: str, proceed: bool = True) -> bool:
        if self.step == ComplaintStep.DONE:
            return False
        category = find_category(key_or_label, self.categories)
        if category is None:
            self.error = f"Unknown category: {key_or_label}"
            return False
        self.category = category
        self.error = ""
        if proceed:
            self.step = ComplaintStep.DETAILS
        return True

    def apply_voice(self, transcript: str) -> bool:
        """
        Append a spoken description.

        When no category has been chosen yet, the transcript is also used
        to detect one. Detection never changes the step.
        """
        transcript = (transcript or "").strip()
        if self.step == ComplaintStep.DONE or not transcript:
            return False

        self.description = f"{self.description}. {transcript}" if self.description else transcript
        self.voice_transcript = transcript

        if self.category is None:
            match = detect_category(transcript, self.categories)
            if match:
                self.category = match
                logger.info(f"Detected category: {match.label}")
        self.error = ""
        return True

    def proceed(self) -> bool:
        if self.step != ComplaintStep.CATEGORY:
            return False
        if self.category is None:
            self.error = "Please select a category"
            return False
        self.error = ""
        self.step = ComplaintStep.DETAILS
        return True

    # ==================== Details ====================

    def set_description(self, text: str) -> bool:
        if self.step != ComplaintStep.DETAILS:
            return False
        self.description = text or ""
        self.error = ""
        return True

    def attach_photo(self, data_ref: Optional[str]) -> bool:
        """Attach (or with None, remove) a photo reference."""
        if self.step != ComplaintStep.DETAILS:
            return False
        self.photo = data_ref
        return True

    def detect_location(self) -> Dict[str, str]:
        location = None
        if self.geolocator is not None:
            try:
                lat, lng = self.geolocator()
                location = {"lat": f"{lat:.4f}", "lng": f"{lng:.4f}"}
            except Exception as e:
                logger.warning(f"Location detection failed, using default: {e}")
        self.location = location or dict(DEFAULT_LOCATION)
        return self.location

    def submit(self) -> bool:
        if self.step != ComplaintStep.DETAILS:
            return False
        if not self.description.strip():
            self.error = "Please describe the problem"
            return False

        ticket_id = self.ids.complaint_id()
        record = self.store.enqueue(
            self.kind,
            {
                "ticket_id": ticket_id,
                "category": self.category.label,
                "description": self.description,
                "has_photo": self.photo is not None,
                "location": self.location,
                "timestamp": utc_now_iso(),
            },
            online=self.monitor.is_online(),
        )
        if record is None:
            self.error = SAVE_FAILED_MESSAGE
            logger.error(f"Complaint {ticket_id} could not be saved, staying on details step")
            return False

        self.record = record
        self.ticket_id = ticket_id
        self.step = ComplaintStep.DONE
        self.error = ""
        logger.info(f"Complaint registered: {ticket_id} ({self.category.label})")
        if self._on_complete:
            self._on_complete(self)
        return True

    def back(self) -> bool:
        if self.step != ComplaintStep.DETAILS:
            return False
        self.step = ComplaintStep.CATEGORY
        self.error = ""
        return True

    # ==================== Lifecycle ====================

    def cancel(self):
        if self.step != ComplaintStep.DONE and (self.category or self.description):
            logger.info("Complaint draft discarded")

    def receipt(self) -> Optional[Dict]:
        if self.step != ComplaintStep.DONE:
            return None
        receipt = {
            "ticket_id": self.ticket_id,
            "category": self.category.label,
            "description": self.description,
            "location": self.location,
            "offline": not (self.record and self.record.created_online),
        }
        if self.record:
            receipt["local_id"] = self.record.local_id
            receipt["timestamp"] = self.record.payload.get("timestamp")
        return receipt

    def to_dict(self) -> Dict:
        return {
            "workflow": "complaint",
            "step": self.step.value,
            "category": self.category.label if self.category else None,
            "description": self.description,
            "has_photo": self.photo is not None,
            "location": self.location,
            "ticket_id": self.ticket_id,
            "error": self.error,
            "categories": [c.label for c in self.categories],
            "receipt": self.receipt(),
        }
