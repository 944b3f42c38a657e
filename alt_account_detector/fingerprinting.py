from __future__ import annotations

from typing import Optional

from .models import DEVICE_FINGERPRINT, DetectorResult
from .repository import DetectionRepository

USER_WEIGHT = 40


class DeviceFingerprintDetector:
    def __init__(self, repository: DetectionRepository):
        self.repository = repository

    def detect(self, user_id: str, fingerprint: Optional[str]) -> DetectorResult:
        if not fingerprint:
            return DetectorResult.empty(DEVICE_FINGERPRINT)

        matched = [
            session
            for session in self.repository.get_sessions_by_fingerprint(fingerprint)
            if session.user_id != user_id
        ]
        if not matched:
            return DetectorResult.empty(DEVICE_FINGERPRINT)

        # Fingerprint collisions are rarer and harder to fake than shared IPs.
        suspects = sorted({session.user_id for session in matched})
        sample = min(matched, key=lambda session: (session.created_at, session.user_id))
        return DetectorResult(
            method=DEVICE_FINGERPRINT,
            suspects=suspects,
            confidence=min(len(suspects) * USER_WEIGHT, 100),
            evidence={
                "shared_fingerprint": fingerprint,
                "total_sessions": len(matched),
                "unique_users_count": len(suspects),
                "device_details": {
                    "screen_resolution": sample.screen_resolution,
                    "platform": sample.platform,
                    "browser_version": sample.browser_version,
                },
            },
        )
