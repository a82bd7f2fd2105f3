"""
OpenAI Digest Summarizer for eventdigest

Implements the two model-backed capabilities of a flush:
1. summarize_chunk: one chunk of events -> a Slack message
2. consolidate: the partial summaries of a flush -> one Slack message

Responses are requested as JSON objects and validated with pydantic.
Transient API failures are retried with backoff; anything else surfaces as a
SummarizerError or ConsolidationError for the orchestrator to handle.
"""

import logging

from openai import OpenAI, OpenAIError

from eventdigest.batching.models import Event, SummaryArtifact
from eventdigest.core.errors import ConsolidationError, SummarizerError
from eventdigest.core.retry import OPENAI_RETRY_CONFIG, RetryConfig, RetryError, call_with_retry
from eventdigest.summarize.prompts.digest import (
    DEFAULT_MAX_PAYLOAD_TOKENS,
    DIGEST_MODEL,
    PayloadTruncator,
    build_chunk_messages,
    build_consolidation_messages,
)
from eventdigest.summarize.schemas import validate_with_retry

logger = logging.getLogger(__name__)

DEFAULT_MAX_COMPLETION_TOKENS = 4096


class OpenAIDigestSummarizer:
    """
    Summarizer and consolidator backed by OpenAI chat completions.

    The client is created lazily so constructing the summarizer never needs
    network access or a key.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DIGEST_MODEL,
        max_payload_tokens: int = DEFAULT_MAX_PAYLOAD_TOKENS,
        max_completion_tokens: int = DEFAULT_MAX_COMPLETION_TOKENS,
        client: OpenAI | None = None,
        retry_config: RetryConfig = OPENAI_RETRY_CONFIG,
    ):
        """
        Initialize the summarizer.

        Args:
            api_key: OpenAI API key (defaults to OPENAI_API_KEY in the environment)
            model: Chat model to use
            max_payload_tokens: Token budget for each event payload in a prompt
            max_completion_tokens: Completion budget per call
            client: Preconfigured OpenAI client
            retry_config: Backoff policy for transient API errors
        """
        self.model = model
        self.max_completion_tokens = max_completion_tokens
        self.retry_config = retry_config
        self.truncator = PayloadTruncator(max_payload_tokens)
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> OpenAI:
        """Get or create the OpenAI client."""
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key) if self._api_key else OpenAI()
        return self._client

    def summarize_chunk(self, events: list[Event], project_key: str) -> SummaryArtifact:
        """
        Summarize one chunk of events.

        Raises:
            SummarizerError: If the call fails or the response is not a valid message
        """
        if not events:
            raise SummarizerError(f"Empty chunk for {project_key}")

        messages = build_chunk_messages(events, project_key, self.truncator)
        try:
            return self._complete(messages, f"summarize_chunk[{project_key}]")
        except (OpenAIError, RetryError, ValueError) as e:
            raise SummarizerError(f"Chunk summarization failed for {project_key}: {e}") from e

    def consolidate(self, partial_texts: list[str], project_key: str) -> SummaryArtifact:
        """
        Merge partial summaries into one message.

        Raises:
            ConsolidationError: If the call fails or the response is not a valid message
        """
        if not partial_texts:
            raise ConsolidationError(f"Nothing to consolidate for {project_key}")

        messages = build_consolidation_messages(partial_texts, project_key)
        try:
            return self._complete(messages, f"consolidate[{project_key}]")
        except (OpenAIError, RetryError, ValueError) as e:
            raise ConsolidationError(f"Consolidation failed for {project_key}: {e}") from e

    def _complete(self, messages: list[dict], description: str) -> SummaryArtifact:
        client = self._get_client()

        response = call_with_retry(
            lambda: client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_completion_tokens=self.max_completion_tokens,
                response_format={"type": "json_object"},
            ),
            config=self.retry_config,
            description=description,
        )

        response_text = response.choices[0].message.content or "{}"
        result = validate_with_retry(response_text)

        if not result.valid:
            logger.error(f"LLM response validation failed for {description}: {result.error}")
            raise ValueError(f"Invalid Slack message from model: {result.error}")

        return result.data.to_artifact()


if __name__ == "__main__":
    import json

    import fire

    def chunk(events_file: str, project_key: str = "demo", model: str = DIGEST_MODEL):
        """
        Summarize events from a JSON file (a list of payload objects).

        Args:
            events_file: Path to JSON list of payloads
            project_key: Project to attribute the events to
            model: Model to use
        """
        with open(events_file) as f:
            payloads = json.load(f)

        events = [Event.new(project_key, "unknown", {"raw": p}) for p in payloads]
        artifact = OpenAIDigestSummarizer(model=model).summarize_chunk(events, project_key)
        return artifact.to_message()

    fire.Fire({"chunk": chunk})
