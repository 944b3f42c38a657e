from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

IP_MATCH = "ip_match"
DEVICE_FINGERPRINT = "device_fingerprint"
EMAIL_SIMILARITY = "email_similarity"
BEHAVIOR_PATTERN = "behavior_pattern"

# Canonical ordering used when joining method names on a report.
DETECTION_METHODS = (IP_MATCH, DEVICE_FINGERPRINT, EMAIL_SIMILARITY, BEHAVIOR_PATTERN)

EVIDENCE_KEYS = {
    IP_MATCH: "ip_match",
    DEVICE_FINGERPRINT: "device_match",
    EMAIL_SIMILARITY: "email_match",
    BEHAVIOR_PATTERN: "behavior_match",
}

SIMILARITY_KEYS = {
    IP_MATCH: "ip_similarity",
    DEVICE_FINGERPRINT: "device_similarity",
    EMAIL_SIMILARITY: "email_similarity",
    BEHAVIOR_PATTERN: "behavior_similarity",
}


@dataclass(frozen=True, slots=True)
class SessionRecord:
    user_id: str
    ip_address: str
    created_at: datetime
    last_activity: datetime
    device_fingerprint: Optional[str] = None
    timezone: Optional[str] = None
    platform: Optional[str] = None
    browser_version: Optional[str] = None
    screen_resolution: Optional[str] = None


@dataclass(frozen=True, slots=True)
class UserRecord:
    id: str
    email: Optional[str] = None
    username: Optional[str] = None


@dataclass(slots=True)
class DetectorResult:
    method: str
    suspects: List[str] = field(default_factory=list)
    confidence: int = 0
    evidence: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls, method: str) -> "DetectorResult":
        return cls(method=method)

    def flags(self, user_id: str) -> bool:
        return user_id in self.suspects


@dataclass(slots=True)
class AltDetectionReport:
    suspected_alt_user_id: str
    main_account_user_id: str
    detection_method: str
    confidence_score: int
    evidence: Dict[str, Any]
    status: str
    severity: str
    action_taken: str
    false_positive_probability: int
    similarity_metrics: Dict[str, int]
    auto_generated: bool = True
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @property
    def methods(self) -> List[str]:
        return [method.strip() for method in self.detection_method.split(",") if method.strip()]

    def with_storage_fields(self, report_id: str, created_at: datetime) -> "AltDetectionReport":
        return replace(self, id=report_id, created_at=created_at)
