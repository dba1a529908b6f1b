"""
catalog.py - Demo bill lookup and complaint catalog

Both are injectable into the workflow machines; these implementations
stand in for the utility back-ends until the kiosk is wired to them.
"""

import logging
import random
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

logger = logging.getLogger("Catalog")


# ==================== Complaint Categories ====================

@dataclass(frozen=True)
class ComplaintCategory:
    key: str
    label: str
    keywords: Tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        lower = text.lower()
        if any(kw in lower for kw in self.keywords):
            return True
        return self.label.lower() in lower


DEFAULT_CATEGORIES: Tuple[ComplaintCategory, ...] = (
    ComplaintCategory("street_light", "Street Light", ("street light", "streetlight", "light pole", "lamp")),
    ComplaintCategory("water_supply", "Water Supply", ("water", "tap", "pipeline", "leak")),
    ComplaintCategory("garbage", "Garbage Collection", ("garbage", "waste", "trash", "dustbin")),
    ComplaintCategory("roads", "Roads & Potholes", ("road", "pothole", "footpath")),
    ComplaintCategory("power", "Power Outage", ("power", "electricity", "outage", "no light", "transformer")),
    ComplaintCategory("sewage", "Sewage & Drainage", ("sewage", "drain", "gutter", "overflow")),
    ComplaintCategory("other", "Other", ()),
)


def detect_category(text: str,
                    categories: Sequence[ComplaintCategory] = DEFAULT_CATEGORIES) -> Optional[ComplaintCategory]:
    """First category in catalog order whose keywords or label appear in the text."""
    if not text or not text.strip():
        return None
    for category in categories:
        if category.matches(text):
            return category
    return None


def find_category(key_or_label: str,
                  categories: Sequence[ComplaintCategory] = DEFAULT_CATEGORIES) -> Optional[ComplaintCategory]:
    wanted = (key_or_label or "").strip().lower()
    for category in categories:
        if wanted in (category.key, category.label.lower()):
            return category
    return None


# ==================== Bills ====================

UNIT_LABELS = {"electricity": "kWh", "water": "KL", "gas": "Cylinders"}

# Sample ids returned by the simulated QR scan
QR_SAMPLE_IDS = {"electricity": "PSEB-123456", "water": "PHED-789012", "gas": "GPL-345678"}

DEMO_NAMES = ("Vivek Kumar", "Anjali Sharma", "Ramesh Patel", "Priya Singh", "Sunil Verma")
DEMO_DUE_DATE = "2026-03-15"
DEMO_LAST_PAYMENT_DATE = "2026-01-20"


@dataclass
class Bill:
    consumer_id: str
    service_type: str
    name: str
    amount: float
    units: int
    unit_label: str
    due_date: str = DEMO_DUE_DATE
    last_payment_date: str = DEMO_LAST_PAYMENT_DATE
    meter_no: str = ""

    @property
    def masked_name(self) -> str:
        return mask_name(self.name)

    def to_dict(self) -> Dict:
        return {
            "consumer_id": self.consumer_id,
            "service_type": self.service_type,
            "name": self.masked_name,
            "amount": self.amount,
            "units": self.units,
            "unit_label": self.unit_label,
            "due_date": self.due_date,
            "last_payment_date": self.last_payment_date,
            "meter_no": self.meter_no,
        }


def mask_name(name: str) -> str:
    """Keep the first letter of each word: ``Rajesh Kumar`` -> ``R***** K****``."""
    if not name or not name.strip():
        return "***"
    return " ".join(word[0] + "*" * (len(word) - 1) for word in name.split())


class DemoBillLookup:
    """
    Fail-open bill lookup.

    Known demo consumers resolve to fixed bills; any other id gets a
    synthesized bill, so a non-empty consumer id always yields a bill.
    """

    KNOWN_BILLS: Dict[Tuple[str, str], Dict] = {
        ("electricity", "PSEB-123456"): {"name": "Rajesh Kumar", "amount": 1245.0, "units": 156},
        ("water", "PHED-789012"): {"name": "Anjali Sharma", "amount": 385.0, "units": 18},
        ("gas", "GPL-345678"): {"name": "Priya Singh", "amount": 903.0, "units": 1},
    }

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def lookup(self, service_type: str, consumer_id: str) -> Bill:
        key = (service_type, consumer_id.strip().upper())
        known = self.KNOWN_BILLS.get(key)
        if known:
            return self._build(key, **known)

        logger.info(f"No record for {key[1]} ({service_type}), generating bill")
        return self._build(
            key,
            name=self._rng.choice(DEMO_NAMES),
            amount=float(int(self._rng.random() * 2000) + 200),
            units=int(self._rng.random() * 200 + 10),
        )

    def _build(self, key: Tuple[str, str], name: str, amount: float, units: int) -> Bill:
        service_type, consumer_id = key
        return Bill(
            consumer_id=consumer_id,
            service_type=service_type,
            name=name,
            amount=amount,
            units=units,
            unit_label=UNIT_LABELS.get(service_type, "units"),
            meter_no=f"MTR-{self._rng.randint(1000000, 9999999)}",
        )
