"""Domain errors and failure typing."""

from __future__ import annotations

from typing import Iterable


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that halt one message or one source."""

    error_code = "STAGE_ERROR"


class ValidationError(StageError):
    """Input rejected before any external call was made."""

    error_code = "VALIDATION_ERROR"


class ExternalServiceError(StageError):
    """AI, geocoder or street graph call failed, timed out or returned garbage."""

    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, message: str, *, service: str | None = None) -> None:
        super().__init__(message)
        self.service = service


class UnresolvedAddressError(StageError):
    """Geometry construction refused because some addresses have no coordinates."""

    error_code = "UNRESOLVED_ADDRESS"

    def __init__(self, addresses: Iterable[str]) -> None:
        self.addresses = list(addresses)
        super().__init__(
            f"Failed to geocode {len(self.addresses)} addresses: {', '.join(self.addresses)}"
        )
