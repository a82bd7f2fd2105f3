"""
eventdigest: batched, AI-summarized webhook digests for Slack.

Webhook events are stored per project, flushed when a batch is full or stale,
summarized chunk by chunk, consolidated, delivered, and only then deleted.
"""

__version__ = "0.1.0"
