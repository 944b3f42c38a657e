from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Set, Tuple

from .models import BEHAVIOR_PATTERN, DetectorResult, SessionRecord
from .repository import DetectionRepository

TIMEZONE_WEIGHT = 20
ACTIVITY_HOURS_WEIGHT = 15
BROWSER_WEIGHT = 10
HOUR_OVERLAP_RATIO = 0.7


def _utc_hour(moment: datetime) -> int:
    if moment.tzinfo is None:
        return moment.hour
    return moment.astimezone(timezone.utc).hour


class BehaviorProfile:
    """Login habits of one account, condensed from its session history."""

    def __init__(self, sessions: Iterable[SessionRecord]):
        self.timezones: Set[str] = set()
        self.hours: Set[int] = set()
        self.browsers: Set[str] = set()
        for session in sessions:
            self.observe(session)

    def observe(self, session: SessionRecord) -> None:
        if session.timezone:
            self.timezones.add(session.timezone)
        if session.browser_version:
            self.browsers.add(session.browser_version)
        self.hours.add(_utc_hour(session.created_at))

    def hour_overlap(self, other: "BehaviorProfile") -> float:
        if not self.hours or not other.hours:
            return 0.0
        return len(self.hours & other.hours) / max(len(self.hours), len(other.hours))

    def compare(self, other: "BehaviorProfile") -> Tuple[int, List[str]]:
        score = 0
        matches: List[str] = []
        if self.timezones and other.timezones and self.timezones & other.timezones:
            score += TIMEZONE_WEIGHT
            matches.append("timezone_match")
        if self.hour_overlap(other) > HOUR_OVERLAP_RATIO:
            score += ACTIVITY_HOURS_WEIGHT
            matches.append("activity_hours_match")
        if self.browsers and other.browsers and self.browsers & other.browsers:
            score += BROWSER_WEIGHT
            matches.append("browser_match")
        return score, matches


class BehaviorPatternDetector:
    def __init__(self, repository: DetectionRepository, threshold: int):
        self.repository = repository
        self.threshold = threshold

    def detect(self, user_id: str) -> DetectorResult:
        if self.repository.get_user(user_id) is None:
            return DetectorResult.empty(BEHAVIOR_PATTERN)

        profile = BehaviorProfile(self.repository.get_all_sessions_for_user(user_id))

        sessions_by_user: Dict[str, List[SessionRecord]] = defaultdict(list)
        for session in self.repository.get_all_sessions():
            if session.user_id != user_id:
                sessions_by_user[session.user_id].append(session)

        suspects: List[str] = []
        behavior_matches = []
        for other_user_id in sorted(sessions_by_user):
            score, matches = profile.compare(BehaviorProfile(sessions_by_user[other_user_id]))
            if score >= self.threshold:
                suspects.append(other_user_id)
                behavior_matches.append({"user_id": other_user_id, "score": score, "matches": matches})

        if not suspects:
            return DetectorResult.empty(BEHAVIOR_PATTERN)

        return DetectorResult(
            method=BEHAVIOR_PATTERN,
            suspects=suspects,
            confidence=min(50 + 15 * len(suspects), 85),
            evidence={"behavior_matches": behavior_matches},
        )
