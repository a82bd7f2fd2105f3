"""
Summarization for eventdigest

This module turns batches of events into Slack messages:
- Prompts for chunk summaries and consolidation
- JSON validation of model output
- OpenAI-backed summarizer and consolidator
"""

from eventdigest.summarize.schemas import SlackMessageSchema, validate_slack_message
from eventdigest.summarize.summarizer import OpenAIDigestSummarizer

__all__ = [
    "OpenAIDigestSummarizer",
    "SlackMessageSchema",
    "validate_slack_message",
]
