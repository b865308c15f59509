# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Alert Notifier — Delivers health alerts to the notification channel.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict

import httpx

logger = logging.getLogger("catalog.notifier")

ALERT_OPEN = "open"
ALERT_CLOSED = "closed"


@dataclass
class Alert:
    policy: str
    metric: str
    observed_value: float
    threshold: float
    state: str = ALERT_OPEN
    timestamp: float = 0.0

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = datetime.fromtimestamp(
            self.timestamp, tz=timezone.utc,
        ).isoformat()
        return payload


class Notifier(ABC):
    @abstractmethod
    async def send(self, alert: Alert) -> bool:
        """Deliver an alert. Returns True when the channel accepted it."""
        ...


class LogNotifier(Notifier):
    """Fallback channel when no webhook is configured."""

    async def send(self, alert: Alert) -> bool:
        log = logger.error if alert.state == ALERT_OPEN else logger.info
        log(
            "ALERT %s: %s %s=%.3f (threshold %.3f)",
            alert.state.upper(), alert.policy, alert.metric,
            alert.observed_value, alert.threshold,
            extra={"policy": alert.policy},
        )
        return True


class WebhookNotifier(Notifier):
    """POSTs the alert as JSON to an incoming-webhook URL."""

    def __init__(self, url: str, timeout: float = 10.0) -> None:
        self._url = url
        self._timeout = timeout

    async def send(self, alert: Alert) -> bool:
        logger.info("Alert webhook: %s state=%s", alert.policy, alert.state)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=alert.to_payload())
                resp.raise_for_status()
                return True
        except httpx.HTTPError as e:
            logger.error(
                "Alert delivery failed: %s — %s", self._url, e,
                extra={"policy": alert.policy},
            )
            return False


def build_notifier(url: str, timeout: float = 10.0) -> Notifier:
    return WebhookNotifier(url, timeout) if url else LogNotifier()
