"""Base LLM service interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from langchain_core.messages import BaseMessage


class BaseLLMService(ABC):
    """Abstract base class for LLM service implementations.

    The detection engine only depends on this interface, so any provider
    can back the optional category classifier stage.
    """

    @abstractmethod
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

    def _extract_content(self, response: BaseMessage) -> str:
        """Extract string content from a LangChain response.

        Responses may carry a plain string, a list of text blocks or a dict.

        Args:
            response: LangChain BaseMessage response

        Returns:
            Extracted text content as string

        """
        content = response.content  # type: ignore[reportUnknownMemberType,reportUnknownVariableType]

        if isinstance(content, str):
            return content.strip()

        text_parts: list[str] = []
        for item in content:  # type: ignore[reportUnknownVariableType]
            if isinstance(item, dict) and "text" in item:
                text_parts.append(str(item["text"]))  # type: ignore[reportUnknownArgumentType]
            else:
                text_parts.append(str(item))  # type: ignore[reportUnknownArgumentType]
        return " ".join(text_parts).strip()
