from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from .models import AltDetectionReport


class AltDetectionError(RuntimeError):
    pass


class DetectorFailedError(AltDetectionError):
    def __init__(self, method: str, cause: BaseException) -> None:
        super().__init__(f"{method} detector failed: {cause}")
        self.method = method
        self.cause = cause


class DetectionTimeoutError(AltDetectionError):
    def __init__(self, pending: Sequence[str], timeout: float) -> None:
        super().__init__(f"detectors did not finish within {timeout:.1f}s: {', '.join(pending)}")
        self.pending = list(pending)
        self.timeout = timeout


class ReportEmissionError(AltDetectionError):
    """Raised after a run when one or more report writes failed.

    ``persisted`` holds the reports that were written; ``failures`` maps the
    main account id of each unwritten report to the exception raised by the
    repository.
    """

    def __init__(
        self,
        persisted: Sequence[AltDetectionReport],
        failures: Mapping[str, BaseException],
    ) -> None:
        super().__init__(f"failed to persist {len(failures)} alt detection report(s): {', '.join(sorted(failures))}")
        self.persisted: List[AltDetectionReport] = list(persisted)
        self.failures: Dict[str, BaseException] = dict(failures)


class ReportNotFoundError(AltDetectionError):
    def __init__(self, report_id: str) -> None:
        super().__init__(f"alt detection report {report_id} not found")
        self.report_id = report_id
