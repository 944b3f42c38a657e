from __future__ import annotations

import logging
import os
from dataclasses import asdict
from typing import Any, Dict, List, MutableMapping, Optional
from uuid import uuid4

from celery import Celery
from fastapi.encoders import jsonable_encoder

from .config import DetectionConfig
from .detection_engine import AltDetectionEngine
from .errors import AltDetectionError, ReportEmissionError
from .persistence import MongoRepository
from .webhook import notifier_from_env

logger = logging.getLogger(__name__)


def _broker_url() -> str:
    return os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")


def _result_backend() -> str:
    return os.getenv("CELERY_RESULT_BACKEND", _broker_url())


def _mongodb_uri() -> str:
    return os.getenv("MONGODB_URI", "mongodb://mongo:27017/")


def _mongodb_database() -> str:
    return os.getenv("MONGODB_DATABASE", "alt_detection")


celery_app = Celery("alt_account_detector", broker=_broker_url(), backend=_result_backend())
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

_ENGINE: Optional[AltDetectionEngine] = None
_REPOSITORY: Optional[MongoRepository] = None


def _get_repository() -> MongoRepository:
    global _REPOSITORY
    if _REPOSITORY is None:
        _REPOSITORY = MongoRepository(uri=_mongodb_uri(), database=_mongodb_database())
        _REPOSITORY.ensure_indexes()
    return _REPOSITORY


def _get_engine() -> AltDetectionEngine:
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = AltDetectionEngine(
            _get_repository(),
            DetectionConfig.from_env(),
            notifier=notifier_from_env(source="async"),
        )
    return _ENGINE


@celery_app.task(name="alt_account_detector.process_detection")
def process_detection(
    task_id: str,
    user_id: str,
    ip_address: str,
    device_fingerprint: Optional[str] = None,
    email: Optional[str] = None,
) -> List[MutableMapping[str, Any]]:
    engine = _get_engine()
    repo = _get_repository()
    request: Dict[str, Any] = {
        "user_id": user_id,
        "ip_address": ip_address,
        "device_fingerprint": device_fingerprint,
        "email": email,
    }
    try:
        reports = engine.detect_alt_accounts(user_id, ip_address, device_fingerprint, email)
    except AltDetectionError as exc:
        # Failed runs are recorded too; partial writes keep their persisted ids.
        persisted = exc.persisted if isinstance(exc, ReportEmissionError) else []
        repo.save_run(task_id, request, persisted, error=str(exc))
        raise
    repo.save_run(task_id, request, reports)
    return [jsonable_encoder(asdict(report)) for report in reports]


def enqueue_detection(
    user_id: str,
    ip_address: str,
    device_fingerprint: Optional[str] = None,
    email: Optional[str] = None,
) -> str:
    task_id = str(uuid4())
    process_detection.apply_async(
        args=[task_id, user_id, ip_address, device_fingerprint, email],
        task_id=task_id,
    )
    logger.debug("Queued alt detection task %s for user %s", task_id, user_id)
    return task_id
