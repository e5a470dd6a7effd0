"""
Context Extractor - heuristic travel signal mining

Pulls budget, duration, destination, travel style and interest hints out of a
single user utterance. Every rule is independent and several may fire for the
same utterance. The rules are lossy on purpose: the output feeds prompt
construction, not an NLU layer, and repeated mentions are kept as repeats.
"""

import re
from typing import List, Optional
from pydantic import BaseModel, Field


TRAVEL_STYLES = [
    "adventure", "relaxation", "luxury", "budget",
    "backpack", "family", "solo", "romantic",
]

INTERESTS = [
    "culture", "history", "food", "nature", "beach", "mountain",
    "city", "nightlife", "shopping", "art", "architecture",
]

BUDGET_TRIGGER = re.compile(r"budget|afford|spend|\$")
# amount after or before a currency marker: "$2000", "usd 300", "2000 dollars", "150eur"
BUDGET_AMOUNT = re.compile(
    r"(?:\$|usd|euros?|eur|€)\s*(\d+)|(\d+)\s*(?:dollars?|\$|usd|euros?|eur|€)"
)
DURATION = re.compile(r"(\d+)\s*(?:day|week|month|night)")
# case-sensitive: runs on the original utterance
DESTINATION = re.compile(
    r"\b([A-Z][a-zA-Z\s]+?)(?=\s+(?:weather|trip|visit|in|to)\b|\.|,|$)"
)


class ExtractedSignals(BaseModel):
    """Signals found in one utterance"""

    budget: Optional[str] = None
    budget_mentioned: bool = False
    duration: Optional[str] = None
    destination: Optional[str] = None
    travel_styles: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)


def _extract_budget(lower_message: str, signals: ExtractedSignals):
    if not BUDGET_TRIGGER.search(lower_message):
        return
    match = BUDGET_AMOUNT.search(lower_message)
    if match:
        signals.budget = match.group(1) or match.group(2)
    elif "budget" in lower_message:
        signals.budget_mentioned = True


def _extract_destination(message: str) -> Optional[str]:
    for match in DESTINATION.finditer(message):
        candidate = match.group(1).strip()
        # the pronoun opens most sentences and is never a place
        if candidate == "I" or candidate.startswith("I "):
            continue
        return candidate
    return None


def extract_signals(message: str) -> ExtractedSignals:
    """Apply every extraction rule to one utterance"""
    lower_message = message.lower()
    signals = ExtractedSignals()

    _extract_budget(lower_message, signals)

    duration_match = DURATION.search(lower_message)
    if duration_match:
        signals.duration = duration_match.group(0)

    signals.destination = _extract_destination(message)

    signals.travel_styles = [style for style in TRAVEL_STYLES if style in lower_message]
    signals.interests = [interest for interest in INTERESTS if interest in lower_message]

    return signals
