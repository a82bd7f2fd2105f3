"""Message delivery to Slack."""

from eventdigest.delivery.slack import Notifier, SlackWebhookNotifier

__all__ = ["Notifier", "SlackWebhookNotifier"]
