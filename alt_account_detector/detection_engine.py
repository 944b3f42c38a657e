from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .behavior_analyzer import BehaviorPatternDetector
from .config import DetectionConfig
from .email_similarity import EmailSimilarityDetector
from .errors import DetectionTimeoutError, DetectorFailedError, ReportEmissionError
from .fingerprinting import DeviceFingerprintDetector
from .ip_overlap import IPOverlapDetector
from .models import (
    BEHAVIOR_PATTERN,
    DETECTION_METHODS,
    DEVICE_FINGERPRINT,
    EMAIL_SIMILARITY,
    EVIDENCE_KEYS,
    IP_MATCH,
    SIMILARITY_KEYS,
    AltDetectionReport,
    DetectorResult,
)
from .repository import DetectionRepository
from .webhook import NullNotifier, ReportNotifier

logger = logging.getLogger(__name__)

MULTI_SIGNAL_BOOST = 10


class AltDetectionEngine:
    """Runs the four alt-account detectors for one login and files reports.

    Each call is scoped to a single triggering user: detectors only ever
    relate that user to others, and the triggering user is always recorded
    as the suspected alt of every account it is linked to.
    """

    def __init__(
        self,
        repository: DetectionRepository,
        config: DetectionConfig | None = None,
        notifier: ReportNotifier | None = None,
    ):
        self.repository = repository
        self.config = config or DetectionConfig()
        self.notifier = notifier or NullNotifier()
        self.ip_detector = IPOverlapDetector(repository, self.config.time_window)
        self.device_detector = DeviceFingerprintDetector(repository)
        self.email_detector = EmailSimilarityDetector(repository)
        self.behavior_detector = BehaviorPatternDetector(repository, self.config.behavior_similarity_threshold)

    def detect_alt_accounts(
        self,
        user_id: str,
        ip_address: str,
        device_fingerprint: Optional[str] = None,
        email: Optional[str] = None,
    ) -> List[AltDetectionReport]:
        results = self.run_detectors(user_id, ip_address, device_fingerprint, email)
        drafts = self.combine_results(user_id, results)
        reports = self._emit(drafts)
        logger.info(
            "Alt detection for user %s produced %d report(s) (%s)",
            user_id,
            len(reports),
            ", ".join(f"{method}={results[method].confidence}" for method in DETECTION_METHODS),
        )
        return reports

    def run_detectors(
        self,
        user_id: str,
        ip_address: str,
        device_fingerprint: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Dict[str, DetectorResult]:
        jobs: List[Tuple[str, Callable[[], DetectorResult]]] = [
            (IP_MATCH, lambda: self.ip_detector.detect(user_id, ip_address)),
            (DEVICE_FINGERPRINT, lambda: self.device_detector.detect(user_id, device_fingerprint)),
            (EMAIL_SIMILARITY, lambda: self.email_detector.detect(user_id, email)),
            (BEHAVIOR_PATTERN, lambda: self.behavior_detector.detect(user_id)),
        ]
        timeout = self.config.detector_timeout_seconds
        executor = ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="alt-detector")
        try:
            futures: Dict[str, Future[DetectorResult]] = {method: executor.submit(job) for method, job in jobs}
            _, pending = wait(futures.values(), timeout=timeout)
            if pending:
                raise DetectionTimeoutError([method for method, future in futures.items() if future in pending], timeout)

            results: Dict[str, DetectorResult] = {}
            for method, future in futures.items():
                exc = future.exception()
                if exc is not None:
                    raise DetectorFailedError(method, exc) from exc
                results[method] = future.result()
                logger.debug(
                    "%s detector for user %s: confidence=%d suspects=%s",
                    method,
                    user_id,
                    results[method].confidence,
                    results[method].suspects,
                )
            return results
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def combine_results(self, user_id: str, results: Mapping[str, DetectorResult]) -> List[AltDetectionReport]:
        """Merge detector output into one unsaved report per suspect account."""
        ordered = [results[method] for method in DETECTION_METHODS if method in results]
        similarity_metrics = {SIMILARITY_KEYS[result.method]: result.confidence for result in ordered}
        suspects = sorted({suspect for result in ordered for suspect in result.suspects} - {user_id})

        reports: List[AltDetectionReport] = []
        for suspect in suspects:
            firing = [result for result in ordered if result.flags(suspect)]
            confidence = max(result.confidence for result in firing)
            if len(firing) > 1:
                confidence = min(confidence + MULTI_SIGNAL_BOOST * len(firing), 100)
            confidence = max(0, min(confidence, 100))
            decision = self.config.evaluate_severity(confidence)

            reports.append(
                AltDetectionReport(
                    suspected_alt_user_id=user_id,
                    main_account_user_id=suspect,
                    detection_method=", ".join(result.method for result in firing),
                    confidence_score=confidence,
                    evidence={EVIDENCE_KEYS[result.method]: result.evidence for result in firing},
                    status=decision.status,
                    severity=decision.severity,
                    action_taken=decision.action_taken,
                    false_positive_probability=max(0, 100 - confidence),
                    similarity_metrics=dict(similarity_metrics),
                )
            )
        return reports

    def _emit(self, drafts: List[AltDetectionReport]) -> List[AltDetectionReport]:
        if not drafts:
            return []

        executor = ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="alt-report")
        try:
            futures = [(draft, executor.submit(self._emit_one, draft)) for draft in drafts]
            wait([future for _, future in futures])
        finally:
            executor.shutdown(wait=True)

        persisted: List[AltDetectionReport] = []
        failures: Dict[str, BaseException] = {}
        for draft, future in futures:
            exc = future.exception()
            if exc is not None:
                logger.warning(
                    "Failed to persist alt detection report %s -> %s: %s",
                    draft.suspected_alt_user_id,
                    draft.main_account_user_id,
                    exc,
                )
                failures[draft.main_account_user_id] = exc
                continue
            report, created = future.result()
            persisted.append(report)
            if created:
                self.notifier.notify(report)

        if failures:
            raise ReportEmissionError(persisted, failures)
        return persisted

    def _emit_one(self, draft: AltDetectionReport) -> Tuple[AltDetectionReport, bool]:
        if self.config.dedupe_reports:
            existing = self.repository.find_alt_detection_reports(
                draft.suspected_alt_user_id, draft.main_account_user_id
            )
            if existing:
                logger.info(
                    "Skipping duplicate alt detection report %s -> %s",
                    draft.suspected_alt_user_id,
                    draft.main_account_user_id,
                )
                return existing[-1], False
        return self.repository.create_alt_detection_report(draft), True
