"""Abstract interface (port) for the external embedding provider."""

from abc import ABC, abstractmethod
from typing import Any


class EmbeddingProvider(ABC):
    """Port for raw embedding requests — implemented in the infrastructure layer.

    Adapters only move bytes: they submit ``inputs`` and hand back the
    decoded JSON payload. Unwrapping, dimension checks and degeneracy checks
    belong to the EmbeddingClient.
    """

    @abstractmethod
    async def request(self, inputs: str | list[str], *, query: bool = False) -> Any:
        """Submit one text or a batch of texts to the provider.

        ``query`` marks a retrieval question rather than a document chunk;
        adapters for asymmetric models use it to pick the task prefix.

        Returns:
            The decoded payload: a flat numeric list, a list of such lists,
            or a singleton batch ``[[...]]`` for a single input.

        Raises:
            EmbeddingProviderError: non-success status or timeout.
            EmbeddingFormatError: the body is not valid JSON.
        """
        ...

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """The model identifier sent with each request."""
        ...
