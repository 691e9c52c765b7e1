"""LiteLLM client wrapper: embeddings, completions and API key validation.

Every network call of the pipeline goes through this module. Retries use
LiteLLM's built-in ``num_retries``; every call carries a timeout. Provider
errors are wrapped into the pipeline's own exception types at this boundary.
"""

from __future__ import annotations

import os

import litellm

from codeparity.config import EmbeddingCfg, GenerationCfg
from codeparity.exceptions import CompletionServiceError, EmbeddingServiceError

litellm.suppress_debug_info = True


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str, api_base: str | None = None) -> None:
    """Check that the API key env var required by *model* is set.

    A model pointed at a custom *api_base* (e.g. a local server) is not checked.

    Raises:
        EnvironmentError: If the required key is missing from the environment.
    """
    if api_base:
        return
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)
    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 1024,
    temperature: float = 0.0,
    num_retries: int = 3,
    timeout: float | None = None,
    api_base: str | None = None,
) -> str:
    """Call litellm.completion() with retry. Returns the content string.

    Raises:
        litellm.exceptions.APIError: On persistent API failure after retries.
    """
    kwargs: dict = {}
    if api_base:
        kwargs["api_base"] = api_base
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
        timeout=timeout,
        **kwargs,
    )
    return response.choices[0].message.content or ""


def embed_many(
    model: str,
    texts: list[str],
    num_retries: int = 3,
    timeout: float | None = None,
    api_base: str | None = None,
) -> list[list[float]]:
    """Embed *texts* in one litellm.embedding() call, returned in input order."""
    kwargs: dict = {}
    if api_base:
        kwargs["api_base"] = api_base
    response = litellm.embedding(
        model=model,
        input=texts,
        num_retries=num_retries,
        timeout=timeout,
        **kwargs,
    )
    data = list(response.data)
    # providers may return items out of order; "index" is authoritative
    if all(_field(d, "index") is not None for d in data):
        data.sort(key=lambda d: _field(d, "index"))
    return [list(_field(d, "embedding")) for d in data]


def _field(item, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


# ------------------------------------------------------------------
# Service adapters
# ------------------------------------------------------------------


class LiteLLMEmbedder:
    """Embedding backend for EmbeddingWriter and the report generator."""

    def __init__(self, config: EmbeddingCfg) -> None:
        self.config = config

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* with one request.

        Raises:
            EmbeddingServiceError: On any provider failure or malformed response.
        """
        try:
            return embed_many(
                self.config.model,
                texts,
                num_retries=self.config.num_retries,
                timeout=self.config.timeout,
                api_base=self.config.api_base,
            )
        except Exception as exc:
            raise EmbeddingServiceError(
                f"{self.config.model} embedding of {len(texts)} texts failed: {exc}"
            ) from exc


class LiteLLMCompleter:
    """Completion backend for the report generator."""

    def __init__(self, config: GenerationCfg) -> None:
        self.config = config

    def complete(self, system: str, prompt: str) -> str:
        """Send one system + user message pair and return the reply text.

        Raises:
            CompletionServiceError: On any provider failure or an empty reply.
        """
        try:
            text = complete(
                self.config.model,
                [
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.config.max_tokens,
                num_retries=self.config.num_retries,
                timeout=self.config.timeout,
                api_base=self.config.api_base,
            )
        except Exception as exc:
            raise CompletionServiceError(f"{self.config.model} completion failed: {exc}") from exc
        if not text.strip():
            raise CompletionServiceError(f"{self.config.model} returned an empty reply")
        return text
