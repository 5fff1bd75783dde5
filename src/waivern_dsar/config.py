"""Configuration models for detection and discovery runs.

All configuration objects are immutable pydantic models that reject unknown
fields. Each offers `from_properties()` for dictionary-based creation, e.g.
from a discovery file or a request payload.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field


class ContentHandlingMode(Enum):
    """How much of an evidence item the detection engine may read.

    Modes are ordered: each mode allows everything the previous one does.
    """

    METADATA_ONLY = "METADATA_ONLY"
    """Only metadata classification runs; content is never read."""

    CONTENT_SCAN = "CONTENT_SCAN"
    """Text content is scanned with the pattern catalog."""

    FULL_CONTENT = "FULL_CONTENT"
    """Content is scanned and may be retained for review."""

    @property
    def rank(self) -> int:
        """Position of this mode in the ordering of modes."""
        return _MODE_RANK[self]

    def allows_content_scan(self) -> bool:
        """Check whether this mode permits reading text content."""
        return self.rank >= ContentHandlingMode.CONTENT_SCAN.rank


_MODE_RANK = {
    ContentHandlingMode.METADATA_ONLY: 0,
    ContentHandlingMode.CONTENT_SCAN: 1,
    ContentHandlingMode.FULL_CONTENT: 2,
}


class BaseConfiguration(BaseModel):
    """Base class for pipeline configuration objects.

    Features:
        - Pydantic validation for type safety
        - Immutable (frozen) for configuration integrity
        - Strict validation (no extra fields allowed)
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_assignment=True,
    )

    @classmethod
    def from_properties(cls, properties: dict[str, Any]) -> Self:
        """Create configuration from properties dictionary with validation.

        Args:
            properties: Dictionary containing configuration properties

        Returns:
            Validated configuration instance

        Raises:
            ValidationError: If properties are invalid

        """
        return cls.model_validate(properties)


class DetectionConfig(BaseConfiguration):
    """Configuration for the detection engine."""

    content_mode: ContentHandlingMode = Field(
        default=ContentHandlingMode.METADATA_ONLY,
        description="Content handling mode gating the content-reading stages",
    )
    max_content_bytes: int = Field(
        default=512_000,
        gt=0,
        description="Hard cap on the number of bytes of text scanned per item",
    )
    max_matches_per_pattern: int = Field(
        default=500,
        gt=0,
        description="Maximum number of matches evaluated per pattern",
    )
    enable_ocr: bool = Field(
        default=False,
        description="Run the optional document-content classifier stage",
    )
    enable_llm: bool = Field(
        default=False,
        description="Run the optional LLM category classifier stage",
    )
    llm_max_input_chars: int = Field(
        default=20_000,
        gt=0,
        description="Maximum number of characters sent to the LLM classifier",
    )


class RateLimitConfig(BaseConfiguration):
    """Sliding-window rate limit applied per case."""

    max_requests: int = Field(default=10, gt=0)
    window_seconds: float = Field(default=60.0, gt=0)

    @property
    def window_ms(self) -> int:
        """Window length in milliseconds."""
        return int(self.window_seconds * 1000)


class DiscoveryConfig(BaseConfiguration):
    """Configuration for a discovery run."""

    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum number of source queries executed concurrently",
    )
    connector_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Time budget for a single connector call",
    )
    source_filter: tuple[str, ...] | None = Field(
        default=None,
        description="Restrict the run to these source ids; None means all enabled sources",
    )
    minimum_identifier_confidence: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Discovered identifiers below this confidence are discarded",
    )
