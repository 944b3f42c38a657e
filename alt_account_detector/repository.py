from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence
from uuid import uuid4

from .errors import ReportNotFoundError
from .models import AltDetectionReport, SessionRecord, UserRecord

REVIEWABLE_FIELDS = ("status", "reviewed_by", "review_notes", "action_taken")


class DetectionRepository(Protocol):
    """Storage operations the detection engine and its HTTP layer rely on."""

    def get_all_sessions_for_user(self, user_id: str) -> List[SessionRecord]: ...

    def get_all_sessions(self) -> List[SessionRecord]: ...

    def get_sessions_by_ip(self, ip_address: str) -> List[SessionRecord]: ...

    def get_sessions_by_fingerprint(self, fingerprint: str) -> List[SessionRecord]: ...

    def get_all_users(self) -> List[UserRecord]: ...

    def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    def create_alt_detection_report(self, report: AltDetectionReport) -> AltDetectionReport: ...

    def find_alt_detection_reports(
        self, suspected_alt_user_id: str, main_account_user_id: str
    ) -> List[AltDetectionReport]: ...

    def list_alt_detection_reports(
        self, status: Optional[str] = None, user_id: Optional[str] = None
    ) -> List[AltDetectionReport]: ...

    def get_alt_detection_report(self, report_id: str) -> Optional[AltDetectionReport]: ...

    def update_alt_detection_report(self, report_id: str, updates: Mapping[str, Any]) -> AltDetectionReport: ...


class RunStore(Protocol):
    """Bookkeeping for queued detection runs."""

    def save_run(
        self,
        task_id: str,
        request: Mapping[str, Any],
        reports: Sequence[AltDetectionReport],
        error: Optional[str] = None,
    ) -> None: ...

    def get_run(self, task_id: str) -> Optional[Dict[str, Any]]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def review_updates(updates: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
    """Restrict an update to the review fields and stamp the review time."""
    changes = {key: value for key, value in updates.items() if key in REVIEWABLE_FIELDS and value is not None}
    if "status" in changes or "reviewed_by" in changes:
        changes["reviewed_at"] = now
    return changes


def filter_reports(
    reports: Iterable[AltDetectionReport],
    status: Optional[str] = None,
    user_id: Optional[str] = None,
) -> List[AltDetectionReport]:
    selected = [
        report
        for report in reports
        if (status is None or report.status == status)
        and (user_id is None or user_id in (report.suspected_alt_user_id, report.main_account_user_id))
    ]
    selected.sort(key=lambda report: report.created_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
    return selected


class InMemoryRepository:
    """Thread-safe in-process store, used for embedding the engine and in tests."""

    def __init__(
        self,
        sessions: Iterable[SessionRecord] = (),
        users: Iterable[UserRecord] = (),
    ) -> None:
        self._lock = threading.Lock()
        self._sessions: List[SessionRecord] = list(sessions)
        self._users: Dict[str, UserRecord] = {user.id: user for user in users}
        self._reports: Dict[str, AltDetectionReport] = {}
        self._runs: Dict[str, Dict[str, Any]] = {}
        self.calls: Dict[str, int] = defaultdict(int)

    def add_session(self, session: SessionRecord) -> None:
        with self._lock:
            self._sessions.append(session)

    def add_user(self, user: UserRecord) -> None:
        with self._lock:
            self._users[user.id] = user

    def _record(self, operation: str) -> None:
        self.calls[operation] += 1

    def get_all_sessions_for_user(self, user_id: str) -> List[SessionRecord]:
        with self._lock:
            self._record("get_all_sessions_for_user")
            return [session for session in self._sessions if session.user_id == user_id]

    def get_all_sessions(self) -> List[SessionRecord]:
        with self._lock:
            self._record("get_all_sessions")
            return list(self._sessions)

    def get_sessions_by_ip(self, ip_address: str) -> List[SessionRecord]:
        with self._lock:
            self._record("get_sessions_by_ip")
            return [session for session in self._sessions if session.ip_address == ip_address]

    def get_sessions_by_fingerprint(self, fingerprint: str) -> List[SessionRecord]:
        with self._lock:
            self._record("get_sessions_by_fingerprint")
            return [session for session in self._sessions if session.device_fingerprint == fingerprint]

    def get_all_users(self) -> List[UserRecord]:
        with self._lock:
            self._record("get_all_users")
            return list(self._users.values())

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            self._record("get_user")
            return self._users.get(user_id)

    def create_alt_detection_report(self, report: AltDetectionReport) -> AltDetectionReport:
        stored = report.with_storage_fields(str(uuid4()), _utcnow())
        with self._lock:
            self._record("create_alt_detection_report")
            self._reports[stored.id] = stored
        return stored

    def find_alt_detection_reports(
        self, suspected_alt_user_id: str, main_account_user_id: str
    ) -> List[AltDetectionReport]:
        with self._lock:
            return [
                report
                for report in self._reports.values()
                if report.suspected_alt_user_id == suspected_alt_user_id
                and report.main_account_user_id == main_account_user_id
            ]

    def list_alt_detection_reports(
        self, status: Optional[str] = None, user_id: Optional[str] = None
    ) -> List[AltDetectionReport]:
        with self._lock:
            reports = list(self._reports.values())
        return filter_reports(reports, status=status, user_id=user_id)

    def get_alt_detection_report(self, report_id: str) -> Optional[AltDetectionReport]:
        with self._lock:
            return self._reports.get(report_id)

    def update_alt_detection_report(self, report_id: str, updates: Mapping[str, Any]) -> AltDetectionReport:
        with self._lock:
            current = self._reports.get(report_id)
            if current is None:
                raise ReportNotFoundError(report_id)
            updated = replace(current, **review_updates(updates, _utcnow()))
            self._reports[report_id] = updated
            return updated

    def save_run(
        self,
        task_id: str,
        request: Mapping[str, Any],
        reports: Sequence[AltDetectionReport],
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._runs[task_id] = {
                "task_id": task_id,
                "request": dict(request),
                "report_ids": [report.id for report in reports],
                "error": error,
                "created_at": _utcnow(),
            }

    def get_run(self, task_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            run = self._runs.get(task_id)
            return dict(run) if run is not None else None
