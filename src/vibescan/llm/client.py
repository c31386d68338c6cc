"""Streaming LLM client wrapper using LiteLLM.

Provides a single streaming completion call for any LiteLLM-supported
provider. The caller's API key is passed per request and never stored.
Provider failures are mapped onto the vibescan error hierarchy here.
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import litellm

from vibescan.errors import InvalidCredentialsError, RateLimitedError, ServiceError
from vibescan.models.llm_config import LLMConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenUsage:
    """Token usage reported by the provider.

    Attributes:
        prompt_tokens: Input tokens billed
        completion_tokens: Output tokens billed
    """

    prompt_tokens: int
    completion_tokens: int


@dataclass(frozen=True)
class StreamDelta:
    """One piece of a streaming completion.

    Attributes:
        text: Content delta (may be empty)
        usage: Usage summary, present on the chunk that carries it
    """

    text: str = ""
    usage: TokenUsage | None = None


def _extract_usage(chunk: Any) -> TokenUsage | None:
    usage = getattr(chunk, "usage", None)
    if not usage:
        return None
    prompt = getattr(usage, "prompt_tokens", None) or 0
    completion = getattr(usage, "completion_tokens", None) or 0
    if not prompt and not completion:
        return None
    return TokenUsage(prompt_tokens=int(prompt), completion_tokens=int(completion))


def _extract_text(chunk: Any) -> str:
    choices = getattr(chunk, "choices", None)
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    if delta is None:
        return ""
    return getattr(delta, "content", None) or ""


class LLMClient:
    """Streaming LLM client using LiteLLM.

    Supports every provider in VALID_PROVIDERS through one interface.
    """

    def __init__(self, config: LLMConfig) -> None:
        """Initialize LLM client with configuration.

        Args:
            config: Provider, model and sampling settings
        """
        self.config = config

    def _completion_kwargs(
        self,
        system_prompt: str,
        user_message: str,
        api_key: str,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.config.get_litellm_model_name(),
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "api_key": api_key,
            "stream": True,
            "stream_options": {"include_usage": True},
            "timeout": self.config.request_timeout,
        }
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base
        return kwargs

    async def stream_complete(
        self,
        system_prompt: str,
        user_message: str,
        api_key: str,
    ) -> AsyncIterator[StreamDelta]:
        """Stream a completion.

        Args:
            system_prompt: System prompt
            user_message: User message
            api_key: Caller-supplied provider API key

        Yields:
            StreamDelta for every content delta and for the usage summary

        Raises:
            InvalidCredentialsError: The provider rejected the key
            RateLimitedError: The provider is rate limiting the key
            ServiceError: Any other provider failure
        """
        provider = self.config.provider
        try:
            response = await litellm.acompletion(
                **self._completion_kwargs(system_prompt, user_message, api_key)
            )
            async for chunk in response:
                text = _extract_text(chunk)
                usage = _extract_usage(chunk)
                if text or usage:
                    yield StreamDelta(text=text, usage=usage)

        except litellm.exceptions.AuthenticationError as e:
            raise InvalidCredentialsError(f"Invalid {provider} API key") from e
        except litellm.exceptions.RateLimitError as e:
            raise RateLimitedError(
                f"{provider} rate limit exceeded. Please wait and try again."
            ) from e
        except litellm.exceptions.APIConnectionError as e:
            raise ServiceError(f"Connection failed to {provider}: {e}") from e
        except litellm.exceptions.APIError as e:
            status = getattr(e, "status_code", None)
            if status == 401:
                raise InvalidCredentialsError(f"Invalid {provider} API key") from e
            if status == 429:
                raise RateLimitedError(
                    f"{provider} rate limit exceeded. Please wait and try again."
                ) from e
            raise ServiceError(f"{provider} API error: {status}") from e
        except Exception as e:
            raise ServiceError(f"LLM completion failed: {e}") from e
