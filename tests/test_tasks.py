from datetime import datetime, timedelta, timezone

import pytest

from alt_account_detector import (
    AltDetectionEngine,
    DetectorFailedError,
    InMemoryRepository,
    ReportEmissionError,
    SessionRecord,
    UserRecord,
)
from alt_account_detector import tasks

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_session(user_id: str, minutes_ago: int) -> SessionRecord:
    created = NOW - timedelta(minutes=minutes_ago)
    return SessionRecord(
        user_id=user_id,
        ip_address="10.0.0.9",
        created_at=created,
        last_activity=created,
        device_fingerprint="fp-9",
    )


def build_repository(cls=InMemoryRepository):
    return cls(
        sessions=[make_session("main", 300), make_session("other", 200), make_session("alt", 0)],
        users=[UserRecord(id="main"), UserRecord(id="other"), UserRecord(id="alt")],
    )


def install(monkeypatch, repo):
    monkeypatch.setattr(tasks, "_REPOSITORY", repo)
    monkeypatch.setattr(tasks, "_ENGINE", AltDetectionEngine(repo))


def test_process_detection_records_completed_run(monkeypatch):
    repo = build_repository()
    install(monkeypatch, repo)

    payload = tasks.process_detection.run("task-ok", "alt", "10.0.0.9", "fp-9", None)

    run = repo.get_run("task-ok")
    assert run["error"] is None
    assert run["report_ids"] == [report["id"] for report in payload]
    assert {report["main_account_user_id"] for report in payload} == {"main", "other"}


class OfflineRepository(InMemoryRepository):
    def get_sessions_by_ip(self, ip_address):
        raise ConnectionError("store unavailable")


def test_process_detection_records_detector_failure(monkeypatch):
    repo = build_repository(OfflineRepository)
    install(monkeypatch, repo)

    with pytest.raises(DetectorFailedError):
        tasks.process_detection.run("task-x", "alt", "10.0.0.9", "fp-9", None)

    run = repo.get_run("task-x")
    assert run is not None
    assert run["report_ids"] == []
    assert "ip_match" in run["error"]
    assert run["request"]["user_id"] == "alt"


class PartialWriteRepository(InMemoryRepository):
    def create_alt_detection_report(self, report):
        if report.main_account_user_id == "other":
            raise TimeoutError("write timed out")
        return super().create_alt_detection_report(report)


def test_process_detection_records_partial_writes(monkeypatch):
    repo = build_repository(PartialWriteRepository)
    install(monkeypatch, repo)

    with pytest.raises(ReportEmissionError) as excinfo:
        tasks.process_detection.run("task-partial", "alt", "10.0.0.9", "fp-9", None)

    run = repo.get_run("task-partial")
    assert run["report_ids"] == [report.id for report in excinfo.value.persisted]
    assert len(run["report_ids"]) == 1
    assert "other" in run["error"]
