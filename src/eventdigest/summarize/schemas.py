"""
JSON Schema Validation for Slack summaries

Validates LLM output as a Slack message: a plain-text fallback plus a list of
Block Kit blocks. Supports a second, repaired validation attempt.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from eventdigest.batching.models import SummaryArtifact

logger = logging.getLogger(__name__)

# Slack rejects section text longer than this
MAX_SECTION_TEXT = 3000


class SlackMessageSchema(BaseModel):
    """A Slack incoming-webhook message."""

    text: str = Field(..., description="Plain text fallback for clients that don't support blocks")
    blocks: list[dict[str, Any]] = Field(default_factory=list, description="Slack Block Kit blocks")

    @model_validator(mode="before")
    @classmethod
    def handle_missing_fields(cls, data: Any) -> Any:
        """Derive a fallback text from the blocks when the model omitted it."""
        if isinstance(data, dict):
            if data.get("blocks") is None:
                data["blocks"] = []
            if not data.get("text"):
                data["text"] = _first_block_text(data["blocks"]) or ""
        return data

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("text must not be empty")
        return v

    @field_validator("blocks")
    @classmethod
    def blocks_have_type(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for i, block in enumerate(v):
            if "type" not in block:
                raise ValueError(f"block {i} has no type")
        return v

    def to_artifact(self) -> SummaryArtifact:
        return SummaryArtifact(text=self.text, blocks=list(self.blocks))


def _first_block_text(blocks: Any) -> str | None:
    if not isinstance(blocks, list):
        return None
    for block in blocks:
        if not isinstance(block, dict):
            continue
        text = block.get("text")
        if isinstance(text, dict) and text.get("text"):
            return str(text["text"])[:MAX_SECTION_TEXT]
        if isinstance(text, str) and text:
            return text[:MAX_SECTION_TEXT]
    return None


@dataclass
class ValidationResult:
    """Result of schema validation."""

    valid: bool
    data: SlackMessageSchema | None = None
    error: str | None = None
    raw_json: dict | None = None


def validate_slack_message(json_str: str | dict) -> ValidationResult:
    """
    Validate a Slack message.

    Args:
        json_str: JSON string or dict to validate

    Returns:
        ValidationResult with parsed data or error
    """
    if isinstance(json_str, str):
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            return ValidationResult(valid=False, error=f"Invalid JSON: {e}")
    else:
        data = json_str

    if not isinstance(data, dict):
        return ValidationResult(valid=False, error="Expected a JSON object")

    try:
        validated = SlackMessageSchema.model_validate(data)
    except ValidationError as e:
        return ValidationResult(valid=False, error=str(e), raw_json=data)

    return ValidationResult(valid=True, data=validated, raw_json=data)


def fix_common_issues(json_str: str) -> str:
    """
    Attempt to fix common JSON issues from LLM output.

    Args:
        json_str: Potentially malformed JSON string

    Returns:
        Fixed JSON string
    """
    # Remove markdown code blocks
    if "```json" in json_str:
        json_str = json_str.split("```json")[-1]
    if "```" in json_str:
        json_str = json_str.split("```")[0]

    json_str = json_str.strip()

    if not json_str.startswith("{"):
        start_idx = json_str.find("{")
        if start_idx != -1:
            json_str = json_str[start_idx:]

    if not json_str.endswith("}"):
        end_idx = json_str.rfind("}")
        if end_idx != -1:
            json_str = json_str[: end_idx + 1]

    return json_str


def validate_with_retry(json_str: str, max_attempts: int = 2) -> ValidationResult:
    """
    Validate JSON with automatic fix attempts.

    Returns:
        ValidationResult from best attempt
    """
    attempt = 0
    last_result = None

    while attempt < max_attempts:
        attempt += 1

        if attempt > 1:
            json_str = fix_common_issues(json_str)

        result = validate_slack_message(json_str)
        if result.valid:
            return result

        last_result = result
        logger.debug(f"Validation attempt {attempt} failed: {result.error}")

    return last_result or ValidationResult(valid=False, error="Validation failed")


if __name__ == "__main__":
    import fire

    def validate(json_file: str | None = None, json_str: str | None = None):
        """Validate a JSON file or string as a Slack message."""
        if json_file:
            with open(json_file) as f:
                content = f.read()
        elif json_str:
            content = json_str
        else:
            content = '{"text": "3 pushes to main", "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": "*3 pushes*"}}]}'

        result = validate_with_retry(content)
        return {
            "valid": result.valid,
            "error": result.error,
            "text": result.data.text if result.data else None,
            "block_count": len(result.data.blocks) if result.data else 0,
        }

    def schema():
        """Show the Pydantic schema as JSON Schema."""
        print(json.dumps(SlackMessageSchema.model_json_schema(), indent=2))

    fire.Fire({"validate": validate, "schema": schema})
