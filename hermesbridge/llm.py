"""Completion backend for Anthropic Claude models."""

import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional, Protocol, Union

import anthropic
from anthropic import Anthropic

from hermesbridge.constants import SUPPORTED_MODELS
from hermesbridge.errors import (
    UpstreamAuthError,
    UpstreamError,
    UpstreamNetworkError,
    UpstreamRateLimited,
    UpstreamTimeout,
)

logger = logging.getLogger(__name__)

SystemPrompt = Union[str, list[dict]]


class CompletionBackend(Protocol):
    """Anything that turns a system prompt and a user message into text."""

    def complete(self, system_prompt: SystemPrompt, user_text: str) -> str:
        ...


@dataclass
class ModelDescriptor:
    """Descriptor for an LLM model."""

    provider: Literal["anthropic"]
    name: str
    max_output_tokens: int
    temperature: float = 0.7


def map_upstream_error(error: anthropic.APIError) -> UpstreamError:
    """Map an SDK exception onto the upstream error taxonomy.

    Args:
        error: Exception raised by the Anthropic client

    Returns:
        The matching UpstreamError subclass instance
    """
    if isinstance(error, anthropic.RateLimitError):
        return UpstreamRateLimited("Rate limit exceeded", cause=error)
    if isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return UpstreamAuthError("Authentication failed", cause=error)
    # APITimeoutError is a subclass of APIConnectionError
    if isinstance(error, anthropic.APITimeoutError):
        return UpstreamTimeout("Request timed out", cause=error)
    if isinstance(error, anthropic.APIConnectionError):
        return UpstreamNetworkError("Connection failed", cause=error)
    return UpstreamError(str(error), cause=error)


class LLM:
    """Anthropic Claude completion backend."""

    def __init__(self, descriptor: ModelDescriptor, api_key: Optional[str] = None, client: Optional[Anthropic] = None):
        """Initialize LLM client.

        Args:
            descriptor: Model descriptor
            api_key: Anthropic API key
            client: Pre-built client (tests)
        """
        self.descriptor = descriptor

        if descriptor.provider != "anthropic":
            raise ValueError(f"Only Anthropic models are supported. Got: {descriptor.provider}")

        # Failures surface to the user immediately; nothing retries
        self.client = client or Anthropic(api_key=api_key, max_retries=0)

    def complete(
        self,
        system_prompt: SystemPrompt,
        user_text: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Generate a completion for one user message.

        Args:
            system_prompt: String or structured blocks with cache_control
            user_text: The user's message
            temperature: Optional temperature override
            max_tokens: Optional max tokens override

        Returns:
            Concatenated text of the response

        Raises:
            UpstreamError: Categorized backend failure
        """
        kwargs: dict[str, Any] = {
            "model": self.descriptor.name,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_text}],
            "temperature": temperature if temperature is not None else self.descriptor.temperature,
            "max_tokens": max_tokens if max_tokens is not None else self.descriptor.max_output_tokens,
        }

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            mapped = map_upstream_error(e)
            logger.error("Completion failed (%s): %s", type(mapped).__name__, e)
            raise mapped from e

        return "".join(block.text for block in response.content if block.type == "text")

    @classmethod
    def parse_model_string(cls, model_str: str) -> ModelDescriptor:
        """Parse model string into ModelDescriptor.

        Args:
            model_str: Model string (e.g., "anthropic:claude-sonnet-4-5")

        Returns:
            ModelDescriptor

        Raises:
            ValueError: If model string is invalid
        """
        if model_str not in SUPPORTED_MODELS:
            raise ValueError(
                f"Unsupported model: {model_str}. "
                f"Supported: {', '.join(SUPPORTED_MODELS.keys())}"
            )

        model_config = SUPPORTED_MODELS[model_str]
        return ModelDescriptor(
            provider=model_config["provider"],
            name=model_config["name"],
            max_output_tokens=model_config["max_output_tokens"],
        )
