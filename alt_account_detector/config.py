from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import NamedTuple


class SeverityDecision(NamedTuple):
    status: str
    severity: str
    action_taken: str


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class DetectionConfig:
    """Thresholds and runtime options for the alt-account detection engine.

    ``ip_similarity_threshold``, ``device_similarity_threshold``,
    ``max_accounts_per_ip`` and ``max_accounts_per_device`` are carried for a
    policy layer above the engine. None of the detectors gate on them.
    """

    ip_similarity_threshold: int = 85
    device_similarity_threshold: int = 90
    behavior_similarity_threshold: int = 80
    time_window_minutes: int = 60
    max_accounts_per_ip: int = 3
    max_accounts_per_device: int = 2
    detector_timeout_seconds: float = 30.0
    max_workers: int = 4
    dedupe_reports: bool = False

    @property
    def time_window(self) -> timedelta:
        return timedelta(minutes=self.time_window_minutes)

    def evaluate_severity(self, confidence: int) -> SeverityDecision:
        if confidence >= 90:
            return SeverityDecision("confirmed", "critical", "verification_required")
        if confidence >= 75:
            return SeverityDecision("pending", "high", "verification_required")
        if confidence >= 60:
            return SeverityDecision("pending", "medium", "none")
        return SeverityDecision("pending", "low", "none")

    @classmethod
    def from_env(cls, prefix: str = "ALT_DETECTION_") -> "DetectionConfig":
        defaults = cls()
        return cls(
            ip_similarity_threshold=_env_int(f"{prefix}IP_SIMILARITY_THRESHOLD", defaults.ip_similarity_threshold),
            device_similarity_threshold=_env_int(
                f"{prefix}DEVICE_SIMILARITY_THRESHOLD", defaults.device_similarity_threshold
            ),
            behavior_similarity_threshold=_env_int(
                f"{prefix}BEHAVIOR_SIMILARITY_THRESHOLD", defaults.behavior_similarity_threshold
            ),
            time_window_minutes=_env_int(f"{prefix}TIME_WINDOW_MINUTES", defaults.time_window_minutes),
            max_accounts_per_ip=_env_int(f"{prefix}MAX_ACCOUNTS_PER_IP", defaults.max_accounts_per_ip),
            max_accounts_per_device=_env_int(f"{prefix}MAX_ACCOUNTS_PER_DEVICE", defaults.max_accounts_per_device),
            detector_timeout_seconds=_env_float(f"{prefix}DETECTOR_TIMEOUT", defaults.detector_timeout_seconds),
            max_workers=_env_int(f"{prefix}MAX_WORKERS", defaults.max_workers),
            dedupe_reports=_env_bool(f"{prefix}DEDUPE_REPORTS", defaults.dedupe_reports),
        )
