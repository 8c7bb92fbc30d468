"""
Pharmacy Discovery — Prescription Request Notifications

Builds the notification payload for a new prescription request and fans it
out to candidate pharmacies through a NotificationDispatcher.  The realtime
channel is always used; email and sms follow each pharmacy's
notification_preferences.

Dispatchers:
    LoggingDispatcher   default; records the intent in the log
    WebhookDispatcher   POSTs JSON to DISCOVERY_NOTIFY_WEBHOOK_URL via requests
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests

from agent_03_discovery_engine.algorithms.records import Pharmacy

logger = logging.getLogger(__name__)

STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_NOT_FOUND = "not_found"

REQUEST_TIMEOUT_S = 10


class NotificationDispatcher(ABC):
    @abstractmethod
    def dispatch(self, recipient_id: str, channel: str, payload: dict[str, Any]) -> str:
        """Deliver payload to recipient on channel. Returns STATUS_SENT or STATUS_FAILED."""


class LoggingDispatcher(NotificationDispatcher):
    def dispatch(self, recipient_id: str, channel: str, payload: dict[str, Any]) -> str:
        logger.info(
            "Notification [%s] -> pharmacy %s: %s (priority=%s)",
            channel, recipient_id, payload.get("message"), payload.get("priority"),
        )
        return STATUS_SENT


class WebhookDispatcher(NotificationDispatcher):
    """POST each notification to a webhook. Non-2xx or transport errors → failed."""

    def __init__(self, url: str, session: requests.Session | None = None, timeout: float = REQUEST_TIMEOUT_S):
        self.url = url
        self.session = session or requests.Session()
        self.timeout = timeout

    def dispatch(self, recipient_id: str, channel: str, payload: dict[str, Any]) -> str:
        body = {"recipient_id": recipient_id, "channel": channel, "notification": payload}
        try:
            resp = self.session.post(self.url, json=body, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.Timeout:
            logger.warning("Notification webhook timed out for pharmacy %s (%s)", recipient_id, channel)
            return STATUS_FAILED
        except requests.exceptions.RequestException as e:
            logger.warning("Notification webhook failed for pharmacy %s (%s): %s", recipient_id, channel, e)
            return STATUS_FAILED
        return STATUS_SENT


def build_notification(request: dict[str, Any]) -> dict[str, Any]:
    """
    Payload for a prescription request.

    ``request`` carries prescription_request_id, patient_id, patient_name,
    urgency, medications (list) and estimated_value.
    """
    urgency = request.get("urgency") or "normal"
    patient = request.get("patient_name") or request.get("patient_id") or "a patient"
    return {
        "type": "prescription_request",
        "title": "New Prescription Request",
        "message": f"New prescription request from {patient}",
        "data": {
            "prescription_request_id": request.get("prescription_request_id"),
            "patient_id": request.get("patient_id"),
            "urgency": urgency,
            "medications": len(request.get("medications") or []),
            "estimated_value": request.get("estimated_value"),
        },
        "priority": "high" if urgency == "emergency" else "medium",
    }


def channels_for(pharmacy: Pharmacy) -> list[str]:
    channels = ["realtime"]
    prefs = pharmacy.notification_preferences or {}
    if prefs.get("email"):
        channels.append("email")
    if prefs.get("sms"):
        channels.append("sms")
    return channels


def notify_pharmacy(
    dispatcher: NotificationDispatcher,
    pharmacy: Pharmacy,
    payload: dict[str, Any],
) -> str:
    """Send on every channel; sent only if every channel succeeded."""
    status = STATUS_SENT
    for channel in channels_for(pharmacy):
        try:
            result = dispatcher.dispatch(pharmacy.pharmacy_id, channel, payload)
        except Exception:
            logger.exception("Dispatcher error for pharmacy %s on %s", pharmacy.pharmacy_id, channel)
            result = STATUS_FAILED
        if result != STATUS_SENT:
            status = STATUS_FAILED
    return status
