"""AI collaborator: one system instruction plus one input text, free-form reply."""

from __future__ import annotations

import json
from typing import Any

import openai
from openai import OpenAI

from civic_alerts.common.config_loader import resolve_secret
from civic_alerts.common.errors import ExternalServiceError

_DECODER = json.JSONDecoder()


class AiClient:
    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        timeout_seconds: float = 60.0,
        base_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = model
        # No SDK-level retries: a timeout fails the stage for this pass.
        self.client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0,
        )

    def complete(self, system_instruction: str, text: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": text},
                ],
                temperature=0,
            )
        except openai.APITimeoutError as exc:
            raise ExternalServiceError("AI request timed out", service="ai") from exc
        except openai.OpenAIError as exc:
            raise ExternalServiceError(f"AI request failed: {exc}", service="ai") from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


def build_ai_client(ai_config: dict) -> AiClient:
    api_key = resolve_secret(ai_config.get("api_key_env"), purpose="the AI collaborator")
    return AiClient(
        model=ai_config["model"],
        api_key=api_key,
        timeout_seconds=float(ai_config["timeout_seconds"]),
        base_url=ai_config.get("base_url"),
    )


def extract_first_json_object(text: str) -> dict | None:
    """Return the first well-formed JSON object embedded in free-form text."""
    start = text.find("{")
    while start != -1:
        try:
            value, _end = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None
