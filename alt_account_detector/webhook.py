from __future__ import annotations

import logging
import os
from dataclasses import asdict
from typing import Any, Mapping, MutableMapping, Optional, Protocol

import httpx
from fastapi.encoders import jsonable_encoder

from .models import AltDetectionReport


logger = logging.getLogger(__name__)


class ReportNotifier(Protocol):
    def notify(self, report: AltDetectionReport) -> None: ...


class NullNotifier:
    def notify(self, report: AltDetectionReport) -> None:
        return None


def resolve_webhook_url(default: Optional[str] = None) -> Optional[str]:
    """Return the report webhook URL from environment or provided default."""
    return os.getenv("ALT_DETECTION_WEBHOOK_URL", default)


def build_report_payload(report: AltDetectionReport, source: str = "engine") -> MutableMapping[str, Any]:
    """Create a JSON-serializable payload describing a persisted report."""
    payload: MutableMapping[str, Any] = {
        "event": "alt_detection_report.created",
        "source": source,
        "report": asdict(report),
    }
    return jsonable_encoder(payload)  # normalizes datetimes and nested evidence


def deliver_webhook(
    webhook_url: Optional[str],
    payload: Mapping[str, Any],
    transport: Optional[httpx.BaseTransport] = None,
) -> None:
    """Send the payload to the configured webhook endpoint if present."""
    if not webhook_url:
        return

    try:
        with httpx.Client(timeout=5.0, transport=transport) as client:
            response = client.post(str(webhook_url), json=payload)
            response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("Failed to deliver alt detection webhook to %s: %s", webhook_url, exc)


class WebhookNotifier:
    def __init__(
        self,
        webhook_url: Optional[str],
        source: str = "engine",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.source = source
        self.transport = transport

    def notify(self, report: AltDetectionReport) -> None:
        deliver_webhook(self.webhook_url, build_report_payload(report, self.source), transport=self.transport)


def notifier_from_env(source: str = "engine") -> ReportNotifier:
    webhook_url = resolve_webhook_url()
    if not webhook_url:
        return NullNotifier()
    return WebhookNotifier(webhook_url, source=source)
