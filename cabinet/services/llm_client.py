"""Generation client protocol and Anthropic implementation."""

from typing import Protocol, runtime_checkable

import structlog
from anthropic import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AsyncAnthropic,
    InternalServerError,
    RateLimitError,
)
from pydantic import BaseModel, Field
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cabinet.config import settings
from cabinet.errors import CompletionError

logger = structlog.get_logger()

# Transient provider failures worth retrying
RETRIABLE_EXCEPTIONS = (
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    InternalServerError,
)

DEFAULT_MAX_TOKENS = 1024
DEFAULT_TEMPERATURE = 0.5


class TokenUsage(BaseModel):
    """Exact token accounting reported by a provider."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class CompletionResult(BaseModel):
    """Text produced by a generation call and its optional usage."""

    content: str
    usage: TokenUsage | None = None


@runtime_checkable
class CompletionClient(Protocol):
    """Generation capability used by every cabinet role."""

    async def complete(
        self,
        role: str,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> CompletionResult:
        """Generate a reply for ``role`` from chat ``messages``."""
        ...


class AnthropicCompletionClient:
    """Anthropic-backed generation client.

    Transport failures are retried with exponential backoff before being
    surfaced as CompletionError.
    """

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        model: str | None = None,
        max_attempts: int = 3,
    ):
        """Initialize client.

        Args:
            client: Optional AsyncAnthropic client for dependency injection.
                   If not provided, creates one from settings.
            model: Model name. Defaults to settings.
            max_attempts: Attempts per call before giving up
        """
        if client is not None:
            self._client = client
        elif settings.anthropic_api_key:
            self._client = AsyncAnthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.anthropic_timeout_seconds,
            )
        else:
            # Allow initialization without API key for testing
            self._client = None
        self.model = model or settings.anthropic_model
        self.max_attempts = max_attempts

    async def complete(
        self,
        role: str,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> CompletionResult:
        """Generate a reply.

        Args:
            role: Cabinet role issuing the call, used for logging
            messages: Chat messages; "system" entries become the system prompt
            temperature: Sampling temperature
            max_tokens: Output token ceiling

        Returns:
            CompletionResult with text and provider usage

        Raises:
            CompletionError: If the client is unconfigured or the call fails
        """
        if self._client is None:
            raise CompletionError(
                "Anthropic client not initialized. "
                "Set ANTHROPIC_API_KEY environment variable."
            )

        system, chat = split_system_prompt(messages)

        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=30),
            retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
            before_sleep=before_sleep_log(logger, log_level=20),  # INFO level
            reraise=True,
        )
        async def inner():
            return await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens or DEFAULT_MAX_TOKENS,
                temperature=(
                    DEFAULT_TEMPERATURE if temperature is None else temperature
                ),
                system=system,
                messages=chat,
            )

        try:
            response = await inner()
        except APIError as e:
            logger.error("completion failed", role=role, error=str(e))
            raise CompletionError(f"Anthropic API error: {e}") from e
        except Exception as e:
            logger.error("completion failed", role=role, error=str(e))
            raise CompletionError(f"Completion failed: {e}") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "text", None)
        )
        usage = None
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
            )
        return CompletionResult(content=text, usage=usage)


def split_system_prompt(
    messages: list[dict[str, str]],
) -> tuple[str, list[dict[str, str]]]:
    """Separate system entries and merge consecutive same-role turns.

    The Messages API takes the system prompt out of band and requires
    alternating user/assistant turns starting with a user turn.

    Returns:
        Tuple of (system_prompt, chat_messages)
    """
    system_parts: list[str] = []
    chat: list[dict[str, str]] = []
    for message in messages:
        role = message.get("role", "user")
        content = message.get("content", "")
        if role == "system":
            system_parts.append(content)
            continue
        if role != "assistant":
            role = "user"
        if chat and chat[-1]["role"] == role:
            chat[-1]["content"] += "\n\n" + content
        else:
            chat.append({"role": role, "content": content})

    if not chat or chat[0]["role"] != "user":
        chat.insert(0, {"role": "user", "content": "Please begin."})
    return "\n\n".join(system_parts), chat
