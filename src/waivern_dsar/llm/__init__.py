"""LLM service used by the optional category classifier stage."""

from .anthropic import AnthropicLLMService
from .base import BaseLLMService
from .configuration import LLMServiceConfiguration
from .errors import LLMConfigurationError, LLMConnectionError, LLMServiceError
from .json_utils import extract_json_from_llm_response

__all__ = [
    "AnthropicLLMService",
    "BaseLLMService",
    "LLMConfigurationError",
    "LLMConnectionError",
    "LLMServiceConfiguration",
    "LLMServiceError",
    "extract_json_from_llm_response",
]
