"""
Slack delivery for eventdigest

Posts messages to Slack incoming webhooks. A channel reference is the
webhook URL itself, as resolved by the ChannelMap.

A non-2xx response is final and raised as DeliveryError. Transport failures
(connect errors, timeouts) are retried with backoff first.
"""

import logging
from typing import Any, Protocol

import httpx

from eventdigest.batching.models import SummaryArtifact
from eventdigest.core.errors import DeliveryError
from eventdigest.core.retry import DELIVERY_RETRY_CONFIG, RetryConfig, RetryError, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class Notifier(Protocol):
    """Delivery capability used by the flush transaction."""

    def deliver(self, channel_ref: str, message: SummaryArtifact | dict[str, Any] | str) -> None: ...


def _as_payload(message: SummaryArtifact | dict[str, Any] | str) -> dict[str, Any]:
    if isinstance(message, SummaryArtifact):
        return message.to_message()
    if isinstance(message, str):
        return {"text": message}
    if isinstance(message, dict):
        return dict(message)
    raise DeliveryError(f"Cannot deliver a message of type {type(message).__name__}")


def _redact(url: str) -> str:
    """Webhook URLs are credentials; keep only the host for logs."""
    try:
        return httpx.URL(url).host or "<webhook>"
    except httpx.InvalidURL:
        return "<invalid webhook>"


class SlackWebhookNotifier:
    """Delivers messages to Slack incoming webhooks."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
        retry_config: RetryConfig = DELIVERY_RETRY_CONFIG,
    ):
        """
        Args:
            timeout: Request timeout in seconds
            client: Preconfigured httpx client
            retry_config: Backoff policy for transport errors
        """
        self._timeout = timeout
        self._client = client
        self.retry_config = retry_config

    def _get_client(self) -> httpx.Client:
        """Lazy-initialize the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def deliver(self, channel_ref: str, message: SummaryArtifact | dict[str, Any] | str) -> None:
        """
        Post a message to a Slack webhook.

        Raises:
            DeliveryError: On a non-2xx response or exhausted transport retries
        """
        payload = _as_payload(message)
        if not payload.get("text") and not payload.get("blocks"):
            raise DeliveryError("Refusing to deliver an empty message")

        client = self._get_client()
        host = _redact(channel_ref)

        try:
            response = call_with_retry(
                lambda: client.post(channel_ref, json=payload),
                config=self.retry_config,
                description=f"slack_webhook[{host}]",
            )
        except RetryError as e:
            raise DeliveryError(f"Slack webhook unreachable ({host}): {e}") from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"Slack webhook request failed ({host}): {e}") from e

        if not response.is_success:
            body = response.text[:200]
            raise DeliveryError(
                f"Slack webhook returned {response.status_code} ({host}): {body}",
                status_code=response.status_code,
            )

        logger.debug(f"Delivered message to {host}")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


if __name__ == "__main__":
    import fire

    def send(webhook_url: str, text: str = "eventdigest test message"):
        """Post a plain text message to a webhook."""
        SlackWebhookNotifier().deliver(webhook_url, {"text": text})
        return {"delivered": True}

    fire.Fire({"send": send})
