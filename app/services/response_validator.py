"""
Response Validator - fast local checks on a generated reply

Two blocking rules decide whether one corrective regeneration is worth it:
a reply shorter than MIN_RESPONSE_LENGTH, or a reply that talks about the
question instead of answering it. Hedging and hallucination markers are only
reported as advisory issues and never ask for a retry.
"""

import re
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

MIN_RESPONSE_LENGTH = 50

META_COMMENTARY_MARKERS = ("your question", "you asked")

ADVISORY_PATTERNS = [
    ("according to my database", re.compile(r"according to my database", re.IGNORECASE)),
    ("as of my last update", re.compile(r"as of my last update", re.IGNORECASE)),
    ("I have access to", re.compile(r"I have access to", re.IGNORECASE)),
    ("I think", re.compile(r"\bI think\b", re.IGNORECASE)),
    ("probably", re.compile(r"\bprobably\b", re.IGNORECASE)),
    ("it might be", re.compile(r"\bit might be\b", re.IGNORECASE)),
]


class ValidationResult(BaseModel):
    """Outcome of validating one reply"""

    should_retry: bool = False
    issues: List[str] = Field(default_factory=list)


def validate_response(response: str, external_data: Optional[Dict[str, Any]] = None) -> ValidationResult:
    """Check a reply; the first blocking rule that fires ends the check"""
    if len(response) < MIN_RESPONSE_LENGTH:
        return ValidationResult(should_retry=True, issues=["Response too short"])

    lower_response = response.lower()
    if any(marker in lower_response for marker in META_COMMENTARY_MARKERS):
        return ValidationResult(should_retry=True, issues=["Response is meta-commentary"])

    issues = [
        f"Potential hallucination pattern detected: {label}"
        for label, pattern in ADVISORY_PATTERNS
        if pattern.search(response)
    ]
    return ValidationResult(should_retry=False, issues=issues)
