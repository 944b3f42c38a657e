from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .config import DetectionConfig
from .detection_engine import AltDetectionEngine
from .errors import DetectionTimeoutError, DetectorFailedError, ReportEmissionError, ReportNotFoundError
from .models import AltDetectionReport
from .persistence import MongoRepository
from .repository import DetectionRepository
from .tasks import enqueue_detection
from .webhook import notifier_from_env

ReviewStatus = Literal["pending", "investigating", "confirmed", "false_positive"]
ReviewAction = Literal["none", "verification_required"]


class DetectRequest(BaseModel):
    user_id: str
    ip_address: str
    device_fingerprint: Optional[str] = None
    email: Optional[str] = None


class ReportResponse(BaseModel):
    id: Optional[str] = None
    suspected_alt_user_id: str
    main_account_user_id: str
    detection_method: str
    confidence_score: int
    evidence: Dict[str, Any]
    status: str
    severity: str
    action_taken: str
    auto_generated: bool
    false_positive_probability: int
    similarity_metrics: Dict[str, int]
    created_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class DetectResponse(BaseModel):
    user_id: str
    reports: List[ReportResponse]


class ReviewRequest(BaseModel):
    status: Optional[ReviewStatus] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    action_taken: Optional[ReviewAction] = None


class TaskEnqueueResponse(BaseModel):
    task_id: str
    status: str


class TaskStatusResponse(BaseModel):
    task_id: str
    status: str
    report_ids: List[str] = []
    error: Optional[str] = None


def _serialize_report(report: AltDetectionReport) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        suspected_alt_user_id=report.suspected_alt_user_id,
        main_account_user_id=report.main_account_user_id,
        detection_method=report.detection_method,
        confidence_score=report.confidence_score,
        evidence=report.evidence,
        status=report.status,
        severity=report.severity,
        action_taken=report.action_taken,
        auto_generated=report.auto_generated,
        false_positive_probability=report.false_positive_probability,
        similarity_metrics=report.similarity_metrics,
        created_at=report.created_at,
        reviewed_by=report.reviewed_by,
        review_notes=report.review_notes,
        reviewed_at=report.reviewed_at,
    )


def create_app(
    engine: AltDetectionEngine | None = None,
    repository: DetectionRepository | None = None,
    mongodb_uri: str | None = None,
    mongodb_database: str | None = None,
) -> FastAPI:
    app = FastAPI(title="Alt Account Detector API", version="1.0.0")
    if repository is None:
        repository = engine.repository if engine is not None else MongoRepository(
            uri=mongodb_uri or os.getenv("MONGODB_URI", "mongodb://mongo:27017/"),
            database=mongodb_database or os.getenv("MONGODB_DATABASE", "alt_detection"),
        )
    app.state.repository = repository
    app.state.engine = engine or AltDetectionEngine(
        repository,
        DetectionConfig.from_env(),
        notifier=notifier_from_env(source="sync"),
    )

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/detect", response_model=DetectResponse)
    def detect(request: DetectRequest) -> DetectResponse:
        try:
            reports = app.state.engine.detect_alt_accounts(
                request.user_id,
                request.ip_address,
                request.device_fingerprint,
                request.email,
            )
        except DetectionTimeoutError as exc:
            raise HTTPException(status_code=504, detail=str(exc)) from exc
        except DetectorFailedError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        except ReportEmissionError as exc:
            raise HTTPException(
                status_code=502,
                detail={
                    "message": str(exc),
                    "persisted_report_ids": [report.id for report in exc.persisted],
                    "failed_main_account_ids": sorted(exc.failures),
                },
            ) from exc
        return DetectResponse(user_id=request.user_id, reports=[_serialize_report(report) for report in reports])

    @app.post("/detect/async", response_model=TaskEnqueueResponse, status_code=202)
    def queue_detection(request: DetectRequest) -> TaskEnqueueResponse:
        task_id = enqueue_detection(
            user_id=request.user_id,
            ip_address=request.ip_address,
            device_fingerprint=request.device_fingerprint,
            email=request.email,
        )
        return TaskEnqueueResponse(task_id=task_id, status="queued")

    @app.get("/tasks/{task_id}", response_model=TaskStatusResponse)
    def task_status(task_id: str) -> TaskStatusResponse:
        record = app.state.repository.get_run(task_id)
        if record is None:
            return TaskStatusResponse(task_id=task_id, status="pending")

        status = "failed" if record.get("error") else "completed"
        return TaskStatusResponse(
            task_id=task_id,
            status=status,
            report_ids=[str(report_id) for report_id in record.get("report_ids", [])],
            error=record.get("error"),
        )

    @app.get("/reports", response_model=List[ReportResponse])
    def list_reports(status: Optional[str] = None) -> List[ReportResponse]:
        reports = app.state.repository.list_alt_detection_reports(status=status)
        return [_serialize_report(report) for report in reports]

    @app.get("/users/{user_id}/reports", response_model=List[ReportResponse])
    def user_reports(user_id: str) -> List[ReportResponse]:
        reports = app.state.repository.list_alt_detection_reports(user_id=user_id)
        return [_serialize_report(report) for report in reports]

    @app.get("/reports/{report_id}", response_model=ReportResponse)
    def get_report(report_id: str) -> ReportResponse:
        report = app.state.repository.get_alt_detection_report(report_id)
        if report is None:
            raise HTTPException(status_code=404, detail=f"alt detection report {report_id} not found")
        return _serialize_report(report)

    @app.patch("/reports/{report_id}", response_model=ReportResponse)
    def review_report(report_id: str, review: ReviewRequest) -> ReportResponse:
        try:
            report = app.state.repository.update_alt_detection_report(report_id, review.model_dump(exclude_none=True))
        except ReportNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _serialize_report(report)

    return app


app = create_app()
