"""Composition root — wires infrastructure to the application layer.

``KnowledgeEngine`` owns the process-wide resources (database engine and
the shared httpx client) and hands out services built on top of them.

Usage:
    async with KnowledgeEngine.from_settings() as engine:
        await engine.ingestion.ingest_document("handbook.txt", text)
        passages = await engine.retrieval.context_for("How do I reset a password?")
"""

import logging

import httpx

from knowledge_engine.application.interfaces.embedding_provider import EmbeddingProvider
from knowledge_engine.application.services import (
    ConsistencyDiagnostics,
    EmbeddingClient,
    IngestionService,
    RetrievalService,
)
from knowledge_engine.config import Settings, get_settings
from knowledge_engine.domain.exceptions import ConfigurationError
from knowledge_engine.infrastructure.database.repositories import SQLAlchemyRecordStore
from knowledge_engine.infrastructure.database.session import Database
from knowledge_engine.infrastructure.logging.log_config import setup_logging
from knowledge_engine.infrastructure.providers import (
    HuggingFaceEmbeddingProvider,
    OpenRouterEmbeddingProvider,
)

logger = logging.getLogger(__name__)


def build_embedding_provider(
    settings: Settings, http_client: httpx.AsyncClient | None = None
) -> EmbeddingProvider:
    """Instantiate the provider adapter named by ``settings.embedding_provider``."""
    if settings.embedding_provider == "openrouter":
        api_key = settings.openrouter_api_key.strip()
        if not api_key:
            raise ConfigurationError(
                "OPENROUTER_API_KEY is required when EMBEDDING_PROVIDER=openrouter"
            )
        return OpenRouterEmbeddingProvider(
            api_key=api_key,
            base_url=settings.openrouter_base_url,
            app_name=settings.openrouter_app_name,
            model=settings.embedding_model,
            model_dimensions=settings.embedding_dimensions,
            timeout=settings.embedding_timeout_seconds,
            http_client=http_client,
        )

    if not settings.huggingface_api_token.strip():
        logger.warning(
            "HUGGINGFACE_API_TOKEN is not configured; requests will be anonymous "
            "and may be rate limited."
        )
    return HuggingFaceEmbeddingProvider(
        api_token=settings.huggingface_api_token.strip(),
        base_url=settings.huggingface_base_url,
        model=settings.embedding_model,
        timeout=settings.embedding_timeout_seconds,
        http_client=http_client,
    )


class KnowledgeEngine:
    """All services for one database and one embedding model."""

    def __init__(
        self,
        settings: Settings,
        *,
        database: Database | None = None,
        provider: EmbeddingProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self._owns_http_client = http_client is None and provider is None
        self._http_client = http_client
        if self._owns_http_client:
            self._http_client = httpx.AsyncClient(timeout=settings.embedding_timeout_seconds)

        self.database = database or Database(settings.database_url, echo=settings.database_echo)
        self.provider = provider or build_embedding_provider(settings, self._http_client)

        self.embedding_client = EmbeddingClient(
            self.provider,
            settings.embedding_dimensions,
            batch_size=settings.embedding_batch_size,
            max_concurrency=settings.embedding_max_concurrency,
        )
        self.store = SQLAlchemyRecordStore(
            self.database.session_factory,
            settings.embedding_dimensions,
            timeout=settings.store_timeout_seconds,
        )
        self.ingestion = IngestionService(
            self.embedding_client,
            self.store,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
        )
        self.retrieval = RetrievalService(
            self.embedding_client,
            self.store,
            default_threshold=settings.retrieval_threshold,
            default_max_results=settings.retrieval_max_results,
        )
        self.diagnostics = ConsistencyDiagnostics(self.store)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "KnowledgeEngine":
        settings = settings or get_settings()
        setup_logging(settings)
        return cls(settings)

    async def startup(self) -> None:
        """Create the schema (and the pgvector extension) if missing."""
        await self.database.create_all()
        logger.info(
            "Knowledge engine ready — provider=%s, model=%s, dims=%d",
            self.provider.provider_name,
            self.provider.model,
            self.settings.embedding_dimensions,
        )

    async def aclose(self) -> None:
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
        await self.database.dispose()

    async def __aenter__(self) -> "KnowledgeEngine":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
