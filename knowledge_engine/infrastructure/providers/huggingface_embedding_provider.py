"""Hugging Face inference embedding provider — calls the feature-extraction pipeline.

Uses the same injected-or-short-lived httpx client pattern as the
OpenRouter adapter. Default model: BAAI/bge-base-en-v1.5 (768 dimensions).

The feature-extraction endpoint answers a single string with either a flat
vector or a singleton batch ``[[...]]``, and a list of strings with a list
of vectors. The payload is returned as-is; shape handling lives in the
EmbeddingClient.
"""

import logging
from typing import Any

import httpx

from knowledge_engine.application.interfaces.embedding_provider import EmbeddingProvider
from knowledge_engine.domain.exceptions import EmbeddingFormatError, EmbeddingProviderError

logger = logging.getLogger(__name__)


class HuggingFaceEmbeddingProvider(EmbeddingProvider):
    """Infrastructure adapter — generates embeddings via the HF inference router."""

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://router.huggingface.co/hf-inference/models",
        model: str = "BAAI/bge-base-en-v1.5",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._http_client = http_client

    @property
    def provider_name(self) -> str:
        return "huggingface"

    @property
    def model(self) -> str:
        return self._model

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Return the injected client or create a new one."""
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient(timeout=self._timeout)

    async def request(self, inputs: str | list[str], *, query: bool = False) -> Any:
        # Feature extraction has no task modes; queries and documents embed alike.
        url = f"{self._base_url}/{self._model}"
        payload: dict[str, Any] = {"inputs": inputs}

        client = await self._get_client()
        should_close = self._http_client is None

        try:
            response = await client.post(
                url, headers=self._get_headers(), json=payload, timeout=self._timeout
            )
        except httpx.TimeoutException as exc:
            logger.warning("Embedding request timed out after %.1fs (model=%s)", self._timeout, self._model)
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
            self._raise_provider_error(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingFormatError(
                f"Provider returned a non-JSON body: {response.text[:200]!r}"
            ) from exc

        logger.debug(
            "Embedding response received (model=%s, inputs=%d)",
            self._model,
            len(inputs) if isinstance(inputs, list) else 1,
        )
        return data

    def _raise_provider_error(self, response: httpx.Response) -> None:
        """Raise EmbeddingProviderError from a non-200 httpx Response."""
        try:
            data = response.json()
            message = data.get("error", response.text) if isinstance(data, dict) else response.text
        except ValueError:
            message = response.text

        logger.error(
            "Embedding API error %d: %s", response.status_code, str(message)[:500]
        )
        raise EmbeddingProviderError(
            provider=self.provider_name,
            status_code=response.status_code,
            message=str(message)[:500],
        )
