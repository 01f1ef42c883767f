"""
KubeHealth - Slack Delivery
Posts the composed report to a Slack incoming webhook, exactly once.
"""

import logging
from typing import Protocol
from urllib.parse import urlsplit

import requests

from kubehealth.config import KubeHealthError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10
_MAX_ERROR_BODY = 200


class DeliveryError(KubeHealthError):
    """The webhook rejected the message or could not be reached."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class Sender(Protocol):
    def post(self, payload: str) -> None:
        """Deliver the payload or raise DeliveryError."""
        ...


class SlackWebhookSender:
    """Sender for Slack incoming webhooks: {"text": payload}."""

    def __init__(self, webhook_url, timeout=DEFAULT_TIMEOUT_SECONDS, session=None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests

    def post(self, payload):
        """Send the report. No retries; the next scheduled run is the retry."""
        try:
            response = self.session.post(
                self.webhook_url, json={"text": payload}, timeout=self.timeout
            )
        except requests.RequestException as e:
            detail = _redact(str(e), self.webhook_url)
            raise DeliveryError(
                f"Slack webhook request failed: {e.__class__.__name__}: {detail}"
            ) from e

        if not 200 <= response.status_code < 300:
            body = (response.text or "")[:_MAX_ERROR_BODY]
            raise DeliveryError(
                f"Slack webhook returned HTTP {response.status_code}: {body}",
                status_code=response.status_code,
            )

        logger.info("Report delivered to Slack (%d chars)", len(payload))


def _redact(text, webhook_url):
    """Strip the webhook URL and its path (the secret part) from error text."""
    if not webhook_url:
        return text
    text = text.replace(webhook_url, "***")
    path = urlsplit(webhook_url).path
    if path and path != "/":
        text = text.replace(path, "/***")
    return text
