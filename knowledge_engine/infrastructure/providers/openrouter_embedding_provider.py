"""OpenRouter-based embedding provider — calls the /embeddings endpoint.

OpenAI-compatible response: ``{"data": [{"index": i, "embedding": [...]}]}``.
The adapter reorders by index and returns a plain list of vectors (a
single string input yields a singleton batch).
"""

import logging
from typing import Any

import httpx

from knowledge_engine.application.interfaces.embedding_provider import EmbeddingProvider
from knowledge_engine.domain.exceptions import EmbeddingFormatError, EmbeddingProviderError

logger = logging.getLogger(__name__)

# nomic-embed-text models require a task prefix; other models do not.
_NOMIC_DOCUMENT_PREFIX = "search_document: "
_NOMIC_QUERY_PREFIX = "search_query: "


class OpenRouterEmbeddingProvider(EmbeddingProvider):
    """Infrastructure adapter — generates embeddings via OpenRouter /embeddings API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        app_name: str = "Knowledge Engine",
        model: str = "google/gemini-embedding-001",
        model_dimensions: int = 768,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._app_name = app_name
        self._model = model
        self._dimensions = model_dimensions
        self._timeout = timeout
        self._http_client = http_client

    @property
    def provider_name(self) -> str:
        return "openrouter"

    @property
    def model(self) -> str:
        return self._model

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": self._app_name,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient(timeout=self._timeout)

    @property
    def _is_nomic(self) -> bool:
        """Whether the configured model is a nomic model requiring task prefixes."""
        return "nomic" in self._model.lower()

    async def request(self, inputs: str | list[str], *, query: bool = False) -> Any:
        texts = [inputs] if isinstance(inputs, str) else list(inputs)
        if self._is_nomic:
            prefix = _NOMIC_QUERY_PREFIX if query else _NOMIC_DOCUMENT_PREFIX
            texts = [f"{prefix}{t}" for t in texts]

        url = f"{self._base_url}/embeddings"
        payload: dict[str, Any] = {
            "model": self._model,
            "input": texts,
            "dimensions": self._dimensions,
        }

        client = await self._get_client()
        should_close = self._http_client is None

        try:
            response = await client.post(
                url, headers=self._get_headers(), json=payload, timeout=self._timeout
            )
        except httpx.TimeoutException as exc:
            raise EmbeddingProviderError(
                provider=self.provider_name,
                status_code=None,
                message=f"Request timed out after {self._timeout}s",
            ) from exc
        except httpx.HTTPError as exc:
            raise EmbeddingProviderError(
                provider=self.provider_name,
                status_code=None,
                message=f"Transport error: {exc}",
            ) from exc
        finally:
            if should_close:
                await client.aclose()

        if response.status_code != 200:
            error_text = response.text[:500]
            logger.error("Embedding API error %d: %s", response.status_code, error_text)
            raise EmbeddingProviderError(
                provider=self.provider_name,
                status_code=response.status_code,
                message=error_text,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingFormatError(
                f"Provider returned a non-JSON body: {response.text[:200]!r}"
            ) from exc

        if not isinstance(data, dict):
            raise EmbeddingFormatError("Provider response is not a JSON object")
        if "error" in data:
            error = data["error"] if isinstance(data["error"], dict) else {"message": data["error"]}
            raise EmbeddingProviderError(
                provider=self.provider_name,
                status_code=error.get("code", 500),
                message=error.get("message", "Unknown error"),
            )

        embeddings_data = data.get("data")
        if not isinstance(embeddings_data, list) or not embeddings_data:
            raise EmbeddingFormatError("Provider response carries no embeddings")

        # Sort by index to ensure correct ordering
        try:
            embeddings_data = sorted(embeddings_data, key=lambda x: x.get("index", 0))
            result = [item["embedding"] for item in embeddings_data]
        except (AttributeError, KeyError, TypeError) as exc:
            raise EmbeddingFormatError(f"Malformed embeddings entry: {exc}") from exc

        logger.debug(
            "Generated %d embeddings (model=%s)",
            len(result),
            self._model,
        )
        return result
