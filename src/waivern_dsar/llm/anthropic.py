"""Anthropic LLM service implementation."""

from __future__ import annotations

import logging
from typing import override

from langchain_anthropic import ChatAnthropic
from pydantic import SecretStr

from waivern_dsar.llm.base import BaseLLMService
from waivern_dsar.llm.errors import LLMConfigurationError, LLMConnectionError

logger = logging.getLogger(__name__)

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-5-20250929"


class AnthropicLLMService(BaseLLMService):
    """Service for interacting with Anthropic's Claude models via LangChain."""

    def __init__(self, api_key: str, model_name: str | None = None) -> None:
        """Initialise the Anthropic LLM service.

        Args:
            api_key: Anthropic API key
            model_name: The Anthropic model to use

        Raises:
            LLMConfigurationError: If the API key is empty

        """
        if not api_key:
            raise LLMConfigurationError("Anthropic API key is required.")

        self.model_name = model_name or DEFAULT_ANTHROPIC_MODEL
        self._api_key = api_key
        self._llm: ChatAnthropic | None = None
        logger.info(f"Initialised Anthropic LLM service with model: {self.model_name}")

    @override
    def analyse_data(self, text: str, analysis_prompt: str) -> str:
        """Analyse text using the LLM with a custom prompt.

        Args:
            text: The text content to analyse
            analysis_prompt: The prompt/instructions for analysis

        Returns:
            LLM analysis response as string

        Raises:
            LLMConnectionError: If LLM request fails

        """
        try:
            logger.debug(f"Analysing text (length: {len(text)} chars)")
            full_prompt = f"{analysis_prompt}\n\nText to analyse:\n{text}"
            response = self._get_llm().invoke(full_prompt)
            return self._extract_content(response)
        except Exception as e:
            # Message text may echo prompt content
            logger.error(f"Text analysis failed: {type(e).__name__}")
            raise LLMConnectionError(f"LLM text analysis failed: {type(e).__name__}") from e

    def _get_llm(self) -> ChatAnthropic:
        """Get or create the LangChain LLM instance."""
        if self._llm is None:
            self._llm = ChatAnthropic(
                model_name=self.model_name,
                api_key=SecretStr(self._api_key),
                temperature=0,
                max_tokens_to_sample=1024,
                timeout=60,
                stop=None,
            )
            logger.debug("Created LangChain ChatAnthropic instance")
        return self._llm
