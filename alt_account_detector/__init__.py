"""Alt-account detection engine."""

from .config import DetectionConfig
from .detection_engine import AltDetectionEngine
from .errors import (
    AltDetectionError,
    DetectionTimeoutError,
    DetectorFailedError,
    ReportEmissionError,
    ReportNotFoundError,
)
from .models import AltDetectionReport, DetectorResult, SessionRecord, UserRecord
from .repository import DetectionRepository, InMemoryRepository

__all__ = [
    "DetectionConfig",
    "AltDetectionEngine",
    "AltDetectionError",
    "DetectionTimeoutError",
    "DetectorFailedError",
    "ReportEmissionError",
    "ReportNotFoundError",
    "AltDetectionReport",
    "DetectorResult",
    "SessionRecord",
    "UserRecord",
    "DetectionRepository",
    "InMemoryRepository",
]
