# backends.py
# Pluggable model backends behind one uniform contract.
#
# The engine only ever sees Backend.send(prompt) -> BackendResponse. Provider
# SDK errors are converted here; send() does not raise for transport or API
# failures.

import os
from abc import ABC, abstractmethod

import httpx
import ollama
from openai import AsyncOpenAI, OpenAIError

from asset_agent.config import Settings
from asset_agent.errors import BackendError
from asset_agent.models import BackendResponse


class Backend(ABC):
    """A model provider that turns one prompt into one response."""

    name: str = "backend"

    @abstractmethod
    async def send(self, prompt: str) -> BackendResponse:
        ...

    def is_configured(self) -> bool:
        return True


class OpenRouterBackend(Backend):
    """
    Any OpenAI-compatible chat completions endpoint; OpenRouter by default.

    Example:
        backend = OpenRouterBackend(model="anthropic/claude-3.5-haiku")
        response = await backend.send("Plan the following request...")
    """

    name = "openrouter"

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str = "https://openrouter.ai/api/v1",
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self._api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        self._client = client or AsyncOpenAI(base_url=base_url, api_key=self._api_key or "unset")

    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, prompt: str) -> BackendResponse:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as exc:
            return BackendResponse.error(f"{self.name} request failed: {exc}")

        if not response.choices or not response.choices[0].message.content:
            return BackendResponse.error(f"{self.name} returned an empty response.")
        return BackendResponse.ok(response.choices[0].message.content.strip())


class OllamaBackend(Backend):
    """A local Ollama server."""

    name = "ollama"

    def __init__(
        self,
        model: str,
        host: str = "http://localhost:11434",
        client: ollama.AsyncClient | None = None,
    ) -> None:
        self.model = model
        self._client = client or ollama.AsyncClient(host=host)

    def is_configured(self) -> bool:
        return bool(self.model)

    async def send(self, prompt: str) -> BackendResponse:
        try:
            response = await self._client.chat(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except (ollama.ResponseError, httpx.HTTPError, ConnectionError) as exc:
            return BackendResponse.error(f"{self.name} request failed: {exc}")

        content = response.message.content if response.message else None
        if not content:
            return BackendResponse.error(f"{self.name} returned an empty response.")
        return BackendResponse.ok(content.strip())


BACKENDS: dict[str, type[Backend]] = {
    "openrouter": OpenRouterBackend,
    "ollama": OllamaBackend,
}


def create_backend(settings: Settings) -> Backend:
    """Build the backend named by `settings.backend`."""
    if settings.backend == "openrouter":
        return OpenRouterBackend(
            model=settings.model,
            api_key=settings.openrouter_api_key,
            base_url=settings.base_url,
        )
    if settings.backend == "ollama":
        return OllamaBackend(model=settings.model, host=settings.ollama_host)
    raise BackendError(
        f"Unknown backend '{settings.backend}'. Choose one of: {', '.join(BACKENDS)}."
    )
