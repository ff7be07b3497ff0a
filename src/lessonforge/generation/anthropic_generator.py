"""Generation capability backed by the Anthropic Messages API."""

import logging
import os

from anthropic import (
    APIConnectionError,
    APIError,
    AsyncAnthropic,
    InternalServerError,
    RateLimitError,
)
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from lessonforge.config import ModelConfig
from lessonforge.errors import GenerationCapabilityError
from lessonforge.generation.protocols import Prompt

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (RateLimitError, APIConnectionError, InternalServerError)


class AnthropicGenerator:
    """Generate component source with Claude.

    Rate limits, connection failures and server errors are retried with
    exponential backoff. Anything else, or an empty response, becomes a
    GenerationCapabilityError.
    """

    def __init__(
        self,
        config: ModelConfig | None = None,
        api_key: str | None = None,
        client: AsyncAnthropic | None = None,
    ) -> None:
        """Initialize generator.

        Args:
            config: Model settings (defaults to ModelConfig())
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            client: Pre-built client, mainly for tests
        """
        self.config = config or ModelConfig()
        self.model_name = self.config.model
        # Retries are handled here, not by the SDK.
        self._client = client or AsyncAnthropic(
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY"), max_retries=0
        )

    async def generate(self, prompt: Prompt) -> str:
        """Request one component source.

        Raises:
            GenerationCapabilityError: If the API fails after retries or returns no text
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=30),
                retry=retry_if_exception_type(_TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.warning(
                            "Retrying generation (attempt %d)", attempt.retry_state.attempt_number
                        )
                    response = await self._client.messages.create(
                        model=self.config.model,
                        system=prompt.system,
                        messages=[{"role": "user", "content": prompt.user}],
                        max_tokens=self.config.max_tokens,
                        temperature=self.config.temperature,
                    )
        except APIError as e:
            raise GenerationCapabilityError(f"Generation request failed: {e}", cause=e) from e

        text = "\n".join(block.text for block in response.content if hasattr(block, "text"))
        if not text.strip():
            raise GenerationCapabilityError("Generation returned an empty response")
        return text
