"""Relevance filter: classify a raw announcement and normalise its text."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from civic_alerts.common.constants import MAX_FILTER_INPUT_CHARS
from civic_alerts.pipeline.ai import AiClient, extract_first_json_object

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterResult:
    is_relevant: bool
    normalized_text: str

    def to_dict(self) -> dict:
        return {"isRelevant": self.is_relevant, "normalizedText": self.normalized_text}


def filter_message(
    text: str,
    ai_client: AiClient | None,
    system_instruction: str | None,
) -> FilterResult | None:
    """Return the filter verdict, or None when the input or the reply is unusable.

    AI transport failures are raised as ExternalServiceError by the client.
    """
    if not isinstance(text, str) or not text.strip():
        logger.warning("filter input is empty")
        return None
    if len(text) > MAX_FILTER_INPUT_CHARS:
        logger.warning("filter input too long: %d chars (max %d)", len(text), MAX_FILTER_INPUT_CHARS)
        return None
    if ai_client is None or not system_instruction:
        logger.error("filter called without an AI client or system instruction")
        return None

    reply = ai_client.complete(system_instruction, text)
    parsed = extract_first_json_object(reply)
    if parsed is None:
        logger.warning("filter reply carried no JSON object")
        return None

    is_relevant = parsed.get("isRelevant")
    normalized_text = parsed.get("normalizedText")
    if not isinstance(is_relevant, bool) or not isinstance(normalized_text, str):
        logger.warning("filter reply has wrong field types: %s", sorted(parsed))
        return None

    return FilterResult(is_relevant=is_relevant, normalized_text=normalized_text)
