"""Structured extractor: pins, street sections and timespans from normalised text.

The AI reply is untrusted. Every entry is re-validated here and malformed
entries are dropped one by one; only a reply without any JSON object fails
the stage.
"""

from __future__ import annotations

import logging
from typing import Any

from civic_alerts.common.constants import MAX_EXTRACT_INPUT_CHARS
from civic_alerts.common.models import ExtractedData, Pin, StreetSection, Timespan
from civic_alerts.common.text import flatten_newlines
from civic_alerts.pipeline.ai import AiClient, extract_first_json_object

logger = logging.getLogger(__name__)


def _valid_timespans(raw: Any) -> tuple[Timespan, ...]:
    spans = []
    for item in raw:
        if isinstance(item, dict) and isinstance(item.get("start"), str) and isinstance(item.get("end"), str):
            spans.append(Timespan(start=item["start"], end=item["end"]))
    return tuple(spans)


def _valid_pins(raw: Any) -> tuple[Pin, ...]:
    if not isinstance(raw, list):
        return ()
    pins = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        address = item.get("address")
        if not isinstance(address, str) or not address.strip():
            continue
        if not isinstance(item.get("timespans"), list):
            continue
        pins.append(Pin(address=address, timespans=_valid_timespans(item["timespans"])))
    return tuple(pins)


def _valid_streets(raw: Any) -> tuple[StreetSection, ...]:
    if not isinstance(raw, list):
        return ()
    streets = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        if not all(isinstance(item.get(key), str) for key in ("street", "from", "to")):
            continue
        if not isinstance(item.get("timespans"), list):
            continue
        streets.append(
            StreetSection(
                street=item["street"],
                from_=item["from"],
                to=item["to"],
                timespans=_valid_timespans(item["timespans"]),
            )
        )
    return tuple(streets)


def parse_extracted_data(payload: dict) -> ExtractedData:
    entity = payload.get("responsible_entity")
    markdown = payload.get("markdown_text")
    return ExtractedData(
        responsible_entity=entity if isinstance(entity, str) else "",
        pins=_valid_pins(payload.get("pins")),
        streets=_valid_streets(payload.get("streets")),
        markdown_text=markdown if isinstance(markdown, str) else "",
    )


def extract_structured_data(
    normalized_text: str,
    ai_client: AiClient | None,
    system_instruction: str | None,
) -> ExtractedData | None:
    if not isinstance(normalized_text, str):
        return None
    text = flatten_newlines(normalized_text)
    if not text:
        logger.warning("extraction input is empty")
        return None
    if len(text) > MAX_EXTRACT_INPUT_CHARS:
        logger.warning("extraction input too long: %d chars (max %d)", len(text), MAX_EXTRACT_INPUT_CHARS)
        return None
    if ai_client is None or not system_instruction:
        logger.error("extraction called without an AI client or system instruction")
        return None

    reply = ai_client.complete(system_instruction, text)
    parsed = extract_first_json_object(reply)
    if parsed is None:
        logger.warning("extraction reply carried no JSON object")
        return None
    return parse_extracted_data(parsed)
