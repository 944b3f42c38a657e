from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence
from uuid import uuid4

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument

from .errors import ReportNotFoundError
from .models import AltDetectionReport, SessionRecord, UserRecord
from .repository import review_updates

_SESSION_FIELDS = (
    "user_id",
    "ip_address",
    "created_at",
    "last_activity",
    "device_fingerprint",
    "timezone",
    "platform",
    "browser_version",
    "screen_resolution",
)


class MongoRepository:
    """MongoDB-backed store for session telemetry, users and detection reports."""

    def __init__(
        self,
        uri: str = "mongodb://mongo:27017/",
        database: str = "alt_detection",
        client: Optional[MongoClient] = None,
        timeout_ms: int = 5000,
    ) -> None:
        self.client = client or MongoClient(uri, serverSelectionTimeoutMS=timeout_ms, socketTimeoutMS=timeout_ms)
        self.db = self.client[database]
        self.sessions = self.db["sessions"]
        self.users = self.db["users"]
        self.reports = self.db["alt_detection_reports"]
        self.runs = self.db["detection_runs"]

    def ensure_indexes(self) -> None:
        self.sessions.create_index("user_id")
        self.sessions.create_index("ip_address")
        self.sessions.create_index("device_fingerprint")
        self.users.create_index("id", unique=True)
        self.reports.create_index("id", unique=True)
        self.reports.create_index([("suspected_alt_user_id", ASCENDING), ("main_account_user_id", ASCENDING)])
        self.reports.create_index("status")
        self.runs.create_index("task_id", unique=True)

    def get_all_sessions_for_user(self, user_id: str) -> List[SessionRecord]:
        return self._find_sessions({"user_id": user_id})

    def get_all_sessions(self) -> List[SessionRecord]:
        return self._find_sessions({})

    def get_sessions_by_ip(self, ip_address: str) -> List[SessionRecord]:
        return self._find_sessions({"ip_address": ip_address})

    def get_sessions_by_fingerprint(self, fingerprint: str) -> List[SessionRecord]:
        return self._find_sessions({"device_fingerprint": fingerprint})

    def get_all_users(self) -> List[UserRecord]:
        return [self.document_to_user(document) for document in self.users.find({})]

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        document = self.users.find_one({"id": user_id})
        if document is None:
            return None
        return self.document_to_user(document)

    def create_alt_detection_report(self, report: AltDetectionReport) -> AltDetectionReport:
        stored = report.with_storage_fields(str(uuid4()), datetime.now(timezone.utc))
        self.reports.insert_one(self.serialize_report(stored))
        return stored

    def find_alt_detection_reports(
        self, suspected_alt_user_id: str, main_account_user_id: str
    ) -> List[AltDetectionReport]:
        cursor = self.reports.find(
            {"suspected_alt_user_id": suspected_alt_user_id, "main_account_user_id": main_account_user_id}
        ).sort("created_at", ASCENDING)
        return [self.document_to_report(document) for document in cursor]

    def list_alt_detection_reports(
        self, status: Optional[str] = None, user_id: Optional[str] = None
    ) -> List[AltDetectionReport]:
        query: MutableMapping[str, Any] = {}
        if status is not None:
            query["status"] = status
        if user_id is not None:
            query["$or"] = [{"suspected_alt_user_id": user_id}, {"main_account_user_id": user_id}]
        cursor = self.reports.find(query).sort("created_at", DESCENDING)
        return [self.document_to_report(document) for document in cursor]

    def get_alt_detection_report(self, report_id: str) -> Optional[AltDetectionReport]:
        document = self.reports.find_one({"id": report_id})
        if document is None:
            return None
        return self.document_to_report(document)

    def update_alt_detection_report(self, report_id: str, updates: Mapping[str, Any]) -> AltDetectionReport:
        changes = review_updates(updates, datetime.now(timezone.utc))
        document = self.reports.find_one_and_update(
            {"id": report_id},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            raise ReportNotFoundError(report_id)
        return self.document_to_report(document)

    def save_run(
        self,
        task_id: str,
        request: Mapping[str, Any],
        reports: Sequence[AltDetectionReport],
        error: Optional[str] = None,
    ) -> None:
        document: MutableMapping[str, Any] = {
            "task_id": task_id,
            "request": dict(request),
            "report_ids": [report.id for report in reports],
            "error": error,
            "created_at": datetime.now(timezone.utc),
        }
        self.runs.replace_one({"task_id": task_id}, document, upsert=True)

    def get_run(self, task_id: str) -> Optional[Dict[str, Any]]:
        document = self.runs.find_one({"task_id": task_id})
        if document is None:
            return None

        document.pop("_id", None)
        return document

    def _find_sessions(self, query: Mapping[str, Any]) -> List[SessionRecord]:
        return [self.document_to_session(document) for document in self.sessions.find(query)]

    @staticmethod
    def document_to_session(document: Mapping[str, Any]) -> SessionRecord:
        return SessionRecord(**{name: document.get(name) for name in _SESSION_FIELDS})

    @staticmethod
    def document_to_user(document: Mapping[str, Any]) -> UserRecord:
        return UserRecord(id=str(document["id"]), email=document.get("email"), username=document.get("username"))

    @staticmethod
    def serialize_report(report: AltDetectionReport) -> Dict[str, Any]:
        return asdict(report)

    @staticmethod
    def document_to_report(document: Mapping[str, Any]) -> AltDetectionReport:
        fields = {key: value for key, value in document.items() if key != "_id"}
        return AltDetectionReport(**fields)
