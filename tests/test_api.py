from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from alt_account_detector import AltDetectionEngine, InMemoryRepository, SessionRecord, UserRecord
from alt_account_detector.api import create_app

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def build_repository() -> InMemoryRepository:
    sessions = [
        SessionRecord(
            user_id=user_id,
            ip_address="10.0.0.1",
            created_at=NOW - timedelta(minutes=offset),
            last_activity=NOW,
            device_fingerprint="fp-1",
            timezone="UTC",
            platform="Linux x86_64",
            browser_version="Firefox 125",
            screen_resolution="1366x768",
        )
        for user_id, offset in (("main", 30), ("alt", 0))
    ]
    users = [UserRecord(id="main", email="gamer42@mail.com"), UserRecord(id="alt", email="gamer44@mail.com")]
    return InMemoryRepository(sessions=sessions, users=users)


def build_client(repo: InMemoryRepository | None = None) -> TestClient:
    repo = repo or build_repository()
    return TestClient(create_app(AltDetectionEngine(repo)))


def detect_payload() -> dict:
    return {
        "user_id": "alt",
        "ip_address": "10.0.0.1",
        "device_fingerprint": "fp-1",
        "email": "gamer44@mail.com",
    }


def test_healthcheck():
    response = build_client().get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_detect_endpoint_returns_reports():
    client = build_client()

    response = client.post("/detect", json=detect_payload())
    assert response.status_code == 200

    body = response.json()
    assert body["user_id"] == "alt"
    assert len(body["reports"]) == 1
    report = body["reports"][0]
    assert report["main_account_user_id"] == "main"
    assert report["detection_method"] == "ip_match, device_fingerprint, email_similarity"
    # ip 25, device 40, email 70; boosted by three signals
    assert report["confidence_score"] == 100
    assert report["severity"] == "critical"
    assert report["status"] == "confirmed"
    assert report["evidence"]["email_match"]["patterns"][0]["reasons"] == ["same_domain", "sequential_numbers"]
    assert report["similarity_metrics"]["ip_similarity"] == 25


def test_list_and_review_reports():
    client = build_client()
    created = client.post("/detect", json=detect_payload()).json()["reports"][0]

    listing = client.get("/reports", params={"status": "confirmed"})
    assert listing.status_code == 200
    assert [report["id"] for report in listing.json()] == [created["id"]]

    for user_id in ("main", "alt"):
        per_user = client.get(f"/users/{user_id}/reports")
        assert [report["id"] for report in per_user.json()] == [created["id"]]

    review = client.patch(
        f"/reports/{created['id']}",
        json={"status": "false_positive", "reviewed_by": "mod-7", "review_notes": "siblings on one PC"},
    )
    assert review.status_code == 200
    reviewed = review.json()
    assert reviewed["status"] == "false_positive"
    assert reviewed["reviewed_by"] == "mod-7"
    assert reviewed["reviewed_at"] is not None
    assert reviewed["confidence_score"] == created["confidence_score"]

    assert client.get("/reports", params={"status": "confirmed"}).json() == []
    assert client.get(f"/reports/{created['id']}").json()["review_notes"] == "siblings on one PC"


def test_review_rejects_unknown_status_and_missing_report():
    client = build_client()
    created = client.post("/detect", json=detect_payload()).json()["reports"][0]

    assert client.patch(f"/reports/{created['id']}", json={"status": "banned"}).status_code == 422
    assert client.patch("/reports/missing", json={"status": "confirmed"}).status_code == 404
    assert client.get("/reports/missing").status_code == 404


class BrokenRepository(InMemoryRepository):
    def get_sessions_by_ip(self, ip_address):
        raise ConnectionError("database offline")


def test_detector_failure_maps_to_bad_gateway():
    repo = BrokenRepository(users=[UserRecord(id="alt")])
    response = build_client(repo).post("/detect", json=detect_payload())
    assert response.status_code == 502
    assert "ip_match" in response.json()["detail"]


def test_async_detection_and_task_status(monkeypatch):
    repo = build_repository()
    client = build_client(repo)
    queued = []

    def fake_enqueue(**kwargs):
        queued.append(kwargs)
        return "task-1"

    monkeypatch.setattr("alt_account_detector.api.enqueue_detection", fake_enqueue)

    response = client.post("/detect/async", json=detect_payload())
    assert response.status_code == 202
    assert response.json() == {"task_id": "task-1", "status": "queued"}
    assert queued == [detect_payload()]

    assert client.get("/tasks/task-1").json()["status"] == "pending"

    reports = AltDetectionEngine(repo).detect_alt_accounts("alt", "10.0.0.1", "fp-1", "gamer44@mail.com")
    repo.save_run("task-1", detect_payload(), reports)

    status = client.get("/tasks/task-1").json()
    assert status["status"] == "completed"
    assert status["report_ids"] == [report.id for report in reports]


def test_review_rejects_unknown_action():
    client = build_client()
    created = client.post("/detect", json=detect_payload()).json()["reports"][0]

    assert client.patch(f"/reports/{created['id']}", json={"action_taken": "ban_forever"}).status_code == 422

    review = client.patch(f"/reports/{created['id']}", json={"action_taken": "none", "reviewed_by": "mod-2"})
    assert review.status_code == 200
    assert review.json()["action_taken"] == "none"
