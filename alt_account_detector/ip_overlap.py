from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List

from .models import IP_MATCH, DetectorResult, SessionRecord
from .repository import DetectionRepository

USER_WEIGHT = 25
BURST_BONUS = 10


class IPOverlapDetector:
    """Flags other accounts that logged in from the triggering IP address.

    A shared address on its own is weak evidence (NAT, households, campus
    networks), so every distinct account only adds a quarter of the scale.
    Logins packed closely together on that address push the score up.
    """

    def __init__(self, repository: DetectionRepository, time_window: timedelta):
        self.repository = repository
        self.time_window = time_window

    def detect(self, user_id: str, ip_address: str) -> DetectorResult:
        matched = [
            session for session in self.repository.get_sessions_by_ip(ip_address) if session.user_id != user_id
        ]
        if not matched:
            return DetectorResult.empty(IP_MATCH)

        suspects = sorted({session.user_id for session in matched})
        confidence = min(len(suspects) * USER_WEIGHT, 100)
        confidence += BURST_BONUS * self._burst_count(matched)

        return DetectorResult(
            method=IP_MATCH,
            suspects=suspects,
            confidence=min(confidence, 100),
            evidence=self._evidence(ip_address, matched, suspects),
        )

    def _burst_count(self, sessions: List[SessionRecord]) -> int:
        created = sorted(session.created_at for session in sessions)
        return sum(1 for earlier, later in zip(created, created[1:]) if later - earlier < self.time_window)

    def _evidence(self, ip_address: str, sessions: List[SessionRecord], suspects: List[str]) -> Dict[str, Any]:
        ordered = sorted(sessions, key=lambda session: (session.created_at, session.user_id))
        return {
            "shared_ip": ip_address,
            "total_sessions": len(sessions),
            "unique_users_count": len(suspects),
            "session_times": [
                {
                    "user_id": session.user_id,
                    "created_at": session.created_at,
                    "last_activity": session.last_activity,
                }
                for session in ordered
            ],
        }
