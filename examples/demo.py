from datetime import datetime, timedelta, timezone

from alt_account_detector import (
    AltDetectionEngine,
    DetectionConfig,
    InMemoryRepository,
    SessionRecord,
    UserRecord,
)


def build_session(now: datetime, user: str, ip: str, fingerprint: str | None, minutes_ago: int) -> SessionRecord:
    created = now - timedelta(minutes=minutes_ago)
    return SessionRecord(
        user_id=user,
        ip_address=ip,
        created_at=created,
        last_activity=created + timedelta(minutes=20),
        device_fingerprint=fingerprint,
        timezone="America/New_York",
        platform="Win32",
        browser_version="Chrome 124",
        screen_resolution="1920x1080",
    )


def main() -> None:
    now = datetime.now(timezone.utc)
    repository = InMemoryRepository(
        sessions=[
            build_session(now, "scammer12", "198.51.100.23", "fp-9f2c", minutes_ago=240),
            build_session(now, "scammer12", "198.51.100.23", "fp-9f2c", minutes_ago=45),
            build_session(now, "flatmate", "198.51.100.23", "fp-71aa", minutes_ago=20),
            build_session(now, "scammer15", "198.51.100.23", "fp-9f2c", minutes_ago=0),
        ],
        users=[
            UserRecord(id="scammer12", email="scammer12@mail.com"),
            UserRecord(id="flatmate", email="jo.taylor@example.org"),
            UserRecord(id="scammer15", email="scammer15@mail.com"),
        ],
    )
    engine = AltDetectionEngine(repository, DetectionConfig())

    reports = engine.detect_alt_accounts(
        "scammer15",
        "198.51.100.23",
        device_fingerprint="fp-9f2c",
        email="scammer15@mail.com",
    )

    for report in reports:
        print(f"{report.suspected_alt_user_id} -> {report.main_account_user_id}")
        print(f"  methods:    {report.detection_method}")
        print(f"  confidence: {report.confidence_score} (false positive {report.false_positive_probability})")
        print(f"  severity:   {report.severity} / {report.status} / {report.action_taken}")
        print(f"  metrics:    {report.similarity_metrics}")


if __name__ == "__main__":
    main()
