from datetime import timedelta

from alt_account_detector import DetectionConfig


def test_defaults():
    config = DetectionConfig()
    assert config.behavior_similarity_threshold == 80
    assert config.time_window == timedelta(minutes=60)
    assert config.max_accounts_per_ip == 3
    assert config.max_accounts_per_device == 2
    assert config.dedupe_reports is False


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("ALT_DETECTION_BEHAVIOR_SIMILARITY_THRESHOLD", "40")
    monkeypatch.setenv("ALT_DETECTION_TIME_WINDOW_MINUTES", "15")
    monkeypatch.setenv("ALT_DETECTION_DETECTOR_TIMEOUT", "2.5")
    monkeypatch.setenv("ALT_DETECTION_DEDUPE_REPORTS", "yes")
    monkeypatch.setenv("ALT_DETECTION_MAX_WORKERS", "")

    config = DetectionConfig.from_env()

    assert config.behavior_similarity_threshold == 40
    assert config.time_window == timedelta(minutes=15)
    assert config.detector_timeout_seconds == 2.5
    assert config.dedupe_reports is True
    assert config.max_workers == 4
