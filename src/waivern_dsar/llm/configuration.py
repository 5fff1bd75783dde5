"""Configuration for the LLM service with environment fallback."""

from __future__ import annotations

import os
from typing import Any, Self, override

from pydantic import Field, field_validator

from waivern_dsar.config import BaseConfiguration
from waivern_dsar.llm.anthropic import AnthropicLLMService
from waivern_dsar.llm.base import BaseLLMService


class LLMServiceConfiguration(BaseConfiguration):
    """Configuration for the LLM service.

    Attributes:
        provider: LLM provider name (only anthropic is supported)
        api_key: API key for the selected provider
        model: Optional model name (uses provider-specific default if None)

    """

    provider: str = Field(default="anthropic", description="LLM provider")
    api_key: str = Field(description="API key for the provider")
    model: str | None = Field(
        default=None, description="Model name (provider default if None)"
    )

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate that the provider is supported and normalise its case."""
        provider_lower = v.lower()
        if provider_lower != "anthropic":
            raise ValueError(f"Provider must be 'anthropic', got: {v}")
        return provider_lower

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Validate that the API key is not empty."""
        if not v or not v.strip():
            raise ValueError("API key cannot be empty")
        return v.strip()

    @classmethod
    @override
    def from_properties(cls, properties: dict[str, Any]) -> Self:
        """Create configuration from properties with environment fallback.

        Environment variables used:
        - ANTHROPIC_API_KEY: API key for Anthropic
        - ANTHROPIC_MODEL: Model for Anthropic

        Args:
            properties: Configuration properties dictionary

        Returns:
            Validated configuration instance

        Raises:
            ValidationError: If configuration is invalid

        """
        config_data = properties.copy()
        if "api_key" not in config_data:
            config_data["api_key"] = os.getenv("ANTHROPIC_API_KEY", "")
        if "model" not in config_data and os.getenv("ANTHROPIC_MODEL"):
            config_data["model"] = os.getenv("ANTHROPIC_MODEL")
        return cls.model_validate(config_data)

    def create_service(self) -> BaseLLMService:
        """Create the LLM service described by this configuration."""
        return AnthropicLLMService(api_key=self.api_key, model_name=self.model)
