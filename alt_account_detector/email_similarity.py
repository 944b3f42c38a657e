"""Email address pattern matching between accounts."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .models import EMAIL_SIMILARITY, DetectorResult
from .repository import DetectionRepository

SAME_DOMAIN_WEIGHT = 30
SIMILAR_USERNAME_WEIGHT = 50
SUBSTRING_WEIGHT = 25
SEQUENTIAL_WEIGHT = 40
MAX_SEQUENTIAL_GAP = 5
FLAG_THRESHOLD = 50
MAX_SUFFIX_DIGITS = 18

_PUNCTUATION = re.compile(r"[._-]")
_TRAILING_DIGITS = re.compile(r"(\d+)$")


@dataclass(frozen=True, slots=True)
class EmailSimilarity:
    score: int
    reasons: Tuple[str, ...]


def split_email(email: str) -> Optional[Tuple[str, str]]:
    """Return ``(local, domain)`` lower-cased, or None unless there is exactly one ``@``."""
    parts = email.lower().split("@")
    if len(parts) != 2:
        return None
    return parts[0], parts[1]


def normalize_local(local: str) -> str:
    return _PUNCTUATION.sub("", local)


def _sequential_suffix(local: str, other_local: str) -> bool:
    match = _TRAILING_DIGITS.search(local)
    other_match = _TRAILING_DIGITS.search(other_local)
    if not match or not other_match:
        return False
    if local[: match.start()] != other_local[: other_match.start()]:
        return False
    return _suffix_gap_within(match.group(1), other_match.group(1))


def _suffix_gap_within(digits: str, other_digits: str) -> bool:
    digits = digits.lstrip("0") or "0"
    other_digits = other_digits.lstrip("0") or "0"
    if len(digits) > MAX_SUFFIX_DIGITS or len(other_digits) > MAX_SUFFIX_DIGITS:
        # Oversized suffixes only match when identical.
        return digits == other_digits
    return abs(int(digits) - int(other_digits)) <= MAX_SEQUENTIAL_GAP


def compare_emails(email: str, other_email: str) -> Optional[EmailSimilarity]:
    """Score how likely two addresses were registered by the same person.

    Every rule fires at most once and the weights are simply added. Returns
    None when either address is not comparable.
    """
    parts = split_email(email)
    other_parts = split_email(other_email)
    if parts is None or other_parts is None:
        return None

    local, domain = parts
    other_local, other_domain = other_parts
    score = 0
    reasons: List[str] = []

    if domain == other_domain:
        score += SAME_DOMAIN_WEIGHT
        reasons.append("same_domain")

    normalized = normalize_local(local)
    other_normalized = normalize_local(other_local)
    if normalized == other_normalized:
        score += SIMILAR_USERNAME_WEIGHT
        reasons.append("similar_username")
    elif normalized and other_normalized and (normalized in other_normalized or other_normalized in normalized):
        score += SUBSTRING_WEIGHT
        reasons.append("username_substring")

    if _sequential_suffix(local, other_local):
        score += SEQUENTIAL_WEIGHT
        reasons.append("sequential_numbers")

    return EmailSimilarity(score=score, reasons=tuple(reasons))


class EmailSimilarityDetector:
    def __init__(self, repository: DetectionRepository):
        self.repository = repository

    def detect(self, user_id: str, email: Optional[str]) -> DetectorResult:
        if not email or split_email(email) is None:
            return DetectorResult.empty(EMAIL_SIMILARITY)

        suspects: List[str] = []
        patterns = []
        users = sorted(self.repository.get_all_users(), key=lambda user: user.id)
        for user in users:
            if user.id == user_id or not user.email or user.email.lower() == email.lower():
                continue
            similarity = compare_emails(email, user.email)
            if similarity is None or similarity.score < FLAG_THRESHOLD:
                continue
            suspects.append(user.id)
            patterns.append(
                {
                    "user_id": user.id,
                    "email": user.email,
                    "similarity": similarity.score,
                    "reasons": list(similarity.reasons),
                }
            )

        if not suspects:
            return DetectorResult.empty(EMAIL_SIMILARITY)

        # Capped below 100: matching addresses alone are never conclusive.
        return DetectorResult(
            method=EMAIL_SIMILARITY,
            suspects=suspects,
            confidence=min(60 + 10 * len(suspects), 90),
            evidence={"patterns": patterns},
        )
