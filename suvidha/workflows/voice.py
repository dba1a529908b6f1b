"""
voice.py - Transcript interpretation

The kiosk browser does speech recognition; this module only interprets
the resulting text.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..session.states import COMPLAINT, bill_route

CONSUMER_ID_PATTERN = re.compile(r"\b([A-Z]{2,5})[\s-]*(\d{4,8})\b")

LANGUAGE_KEYWORDS = {
    "hi": ("hindi", "हिंदी", "हिन्दी"),
    "pa": ("punjabi", "ਪੰਜਾਬੀ"),
    "en": ("english",),
}

ROUTE_KEYWORDS = (
    (bill_route("electricity"), ("electricity", "bijli", "power bill", "light bill")),
    (bill_route("water"), ("water", "pani")),
    (bill_route("gas"), ("gas", "cylinder", "lpg")),
    (COMPLAINT, ("complaint", "grievance", "shikayat", "problem")),
)


@dataclass(frozen=True)
class VoiceCommand:
    type: str  # "navigate" | "language" | "unknown"
    route: Optional[str] = None
    language: Optional[str] = None

    def to_dict(self):
        return {"type": self.type, "route": self.route, "language": self.language}


def extract_consumer_id(transcript: str) -> Optional[str]:
    """
    Pull a consumer id such as ``PSEB-123456`` out of spoken text.

    "my number is pseb 123456" -> "PSEB-123456"
    """
    match = CONSUMER_ID_PATTERN.search((transcript or "").upper())
    if not match:
        return None
    return f"{match.group(1)}-{match.group(2)}"


def normalize_transcript_id(transcript: str) -> str:
    """Fallback when no id pattern is found: whitespace to dashes, upper-cased."""
    return re.sub(r"\s+", "-", (transcript or "").strip()).upper()


def parse_voice_command(transcript: str) -> VoiceCommand:
    text = (transcript or "").strip().lower()
    if not text:
        return VoiceCommand("unknown")

    for language, words in LANGUAGE_KEYWORDS.items():
        if any(word in text for word in words):
            return VoiceCommand("language", language=language)

    for route, words in ROUTE_KEYWORDS:
        if any(word in text for word in words):
            return VoiceCommand("navigate", route=route)

    return VoiceCommand("unknown")
