"""
Planner Sync — AI Intent Parser.

The assistant's model replies with a JSON object describing what to create.
This module turns that raw reply into a typed ParsedIntent. Calling the
model itself happens outside this project.
"""

from __future__ import annotations

import json
import logging
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared JSON contract with the assistant's system prompt
# ---------------------------------------------------------------------------


class IntentDetails(BaseModel):
    """Optional details of an intent. Keys are camelCase in the model's JSON."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    description: str | None = None
    is_urgent: bool = Field(False, alias="isUrgent")
    is_important: bool = Field(False, alias="isImportant")
    estimated_duration: int | None = Field(None, alias="estimatedDuration", ge=1)
    due_date: str | None = Field(None, alias="dueDate")      # YYYY-MM-DD
    tags: list[str] = Field(default_factory=list)
    color: str | None = None
    start_time: str | None = Field(None, alias="startTime")  # ISO 8601, may be garbage
    end_time: str | None = Field(None, alias="endTime")
    notes: str | None = None


class ParsedIntent(BaseModel):
    """Structured intent extracted by the assistant.

    JSON example:
    {
        "action": "time_block",
        "title": "Team sync",
        "details": {"startTime": "2025-11-02T14:00:00Z", "endTime": "2025-11-02T15:00:00Z"},
        "reasoning": "User asked to block time for a meeting"
    }
    """

    model_config = ConfigDict(extra="ignore")

    action: str = "general"   # "task" | "time_block"; anything else is conversational
    title: str = ""
    details: IntentDetails = Field(default_factory=IntentDetails)
    reasoning: str = ""


# ---------------------------------------------------------------------------
# Response cleaning
# ---------------------------------------------------------------------------

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from the model's raw response."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def parse_intent(raw: str | dict | None) -> ParsedIntent | None:
    """Parse the assistant's reply (dict or raw text) into a ParsedIntent.

    Extra prose around the JSON object is ignored. Returns None when no
    valid intent can be read.
    """
    if raw is None:
        return None

    if isinstance(raw, dict):
        data = raw
    else:
        cleaned = _clean_llm_response(raw)
        match = _JSON_OBJECT.search(cleaned)
        if not match:
            logger.info("No JSON object in assistant reply: %s", cleaned[:80])
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse assistant reply as JSON: %s, raw: '%s'", exc, cleaned)
            return None

    try:
        intent = ParsedIntent.model_validate(data)
    except ValidationError as exc:
        logger.warning("Assistant reply does not match the intent contract: %s", exc)
        return None

    logger.info("Parsed intent: %s '%s'", intent.action, intent.title)
    return intent
