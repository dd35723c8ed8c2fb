"""Operational health monitor for result retrieval.

Every terminal retrieval outcome is recorded here. Health is derived from the
counters: ``critical`` once captcha enforcement has been seen (sticky until an
explicit reset), ``warning`` while the consecutive-failure streak is at or
above the alert threshold, ``healthy`` otherwise.

Webhook alerts raised inside a running event loop are posted from a worker
thread; ``drain_alerts`` waits for them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Set

import requests

from .result_config import ALERT_THRESHOLD, CAPTCHA_KEYWORDS

logger = logging.getLogger(__name__)

ALERT_TIMEOUT = 5
CAPTCHA_RECOMMENDATION = "Captchas cannot be solved automatically; look for alternative data sources."


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class HealthMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0
    consecutive_failures: int = 0
    last_success_time: Optional[datetime] = None
    last_failure_time: Optional[datetime] = None
    captcha_enforcement_detected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key in ("last_success_time", "last_failure_time"):
            value = payload.get(key)
            payload[key] = value.isoformat() if value else None
        return payload


def is_captcha_enforcement(error_text: Optional[str], keywords: Sequence[str] = CAPTCHA_KEYWORDS) -> bool:
    lowered = (error_text or "").lower()
    if not lowered:
        return False
    return any(keyword in lowered for keyword in keywords)


class OperationalMonitor:
    def __init__(
        self,
        alert_threshold: int = ALERT_THRESHOLD,
        webhook_url: Optional[str] = None,
        captcha_keywords: Sequence[str] = CAPTCHA_KEYWORDS,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.alert_threshold = alert_threshold
        self.webhook_url = webhook_url
        self.captcha_keywords = tuple(k.lower() for k in captcha_keywords)
        self._now = now
        self._metrics = HealthMetrics()
        self._pending_alerts: Set["asyncio.Task[None]"] = set()

    def record_request(self, success: bool, elapsed_ms: float, error_text: Optional[str] = None) -> None:
        m = self._metrics
        m.total_requests += 1
        if success:
            m.successful_requests += 1
            m.consecutive_failures = 0
            m.last_success_time = self._now()
        else:
            m.failed_requests += 1
            m.consecutive_failures += 1
            m.last_failure_time = self._now()
            if is_captcha_enforcement(error_text, self.captcha_keywords):
                m.captcha_enforcement_detected = True
                self._alert_captcha_enforcement(error_text or "")

        # n counts this sample; n - 1 is the count before it.
        n = m.total_requests
        m.average_response_time = (m.average_response_time * (n - 1) + float(elapsed_ms)) / n

        if m.consecutive_failures >= self.alert_threshold:
            self._alert_consecutive_failures()

    def get_metrics(self) -> HealthMetrics:
        return replace(self._metrics)

    def get_success_rate(self) -> float:
        m = self._metrics
        if m.total_requests == 0:
            return 0.0
        return m.successful_requests / m.total_requests * 100.0

    def get_health_status(self) -> HealthStatus:
        if self._metrics.captcha_enforcement_detected:
            return HealthStatus.CRITICAL
        if self._metrics.consecutive_failures >= self.alert_threshold:
            return HealthStatus.WARNING
        return HealthStatus.HEALTHY

    def is_healthy(self) -> bool:
        return self.get_health_status() is HealthStatus.HEALTHY

    def reset_metrics(self) -> None:
        self._metrics = HealthMetrics()
        logger.info("monitoring metrics reset")

    def _alert_consecutive_failures(self) -> None:
        m = self._metrics
        logger.warning(
            "%d consecutive retrieval failures (last at %s); the board site may have changed its behaviour",
            m.consecutive_failures,
            m.last_failure_time.isoformat() if m.last_failure_time else "unknown",
        )
        self._send_alert(
            "consecutive_failures",
            {
                "count": m.consecutive_failures,
                "last_failure": m.last_failure_time.isoformat() if m.last_failure_time else None,
            },
        )

    def _alert_captcha_enforcement(self, error_text: str) -> None:
        logger.error("captcha enforcement detected on the board site: %s", error_text[:200])
        self._send_alert(
            "captcha_enforcement",
            {
                "detected_at": self._now().isoformat(),
                "recommendation": CAPTCHA_RECOMMENDATION,
            },
        )

    async def drain_alerts(self) -> None:
        """Wait for webhook dispatches started from inside an event loop."""

        if self._pending_alerts:
            await asyncio.gather(*list(self._pending_alerts), return_exceptions=True)

    def _send_alert(self, kind: str, data: Dict[str, Any]) -> None:
        if not self.webhook_url:
            return
        payload = {"type": kind, **data, "timestamp": self._now().isoformat()}
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._post_alert(kind, payload)
            return
        # requests blocks; keep it off the loop thread.
        task = loop.create_task(asyncio.to_thread(self._post_alert, kind, payload))
        self._pending_alerts.add(task)
        task.add_done_callback(self._alert_finished)

    def _alert_finished(self, task: "asyncio.Task[None]") -> None:
        self._pending_alerts.discard(task)
        if task.cancelled():
            logger.warning("alert dispatch cancelled before completion")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("alert dispatch crashed: %s", exc)

    def _post_alert(self, kind: str, payload: Dict[str, Any]) -> None:
        try:
            resp = requests.post(self.webhook_url, json=payload, timeout=ALERT_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.error("failed to dispatch %s alert: %s", kind, exc)


__all__ = [
    "HealthStatus",
    "HealthMetrics",
    "OperationalMonitor",
    "is_captcha_enforcement",
]
