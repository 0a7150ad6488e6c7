"""SQLAlchemy implementation of RecordStore — store-side cosine ranking.

Two dialects are supported with one query shape:

* PostgreSQL + pgvector: ``1 - (embedding <=> CAST(:query AS vector))``
* SQLite: the ``kb_cosine_similarity`` SQL function registered by
  ``Database`` (the same arithmetic as the brute-force ranking)

In both cases the statement is
``WHERE <filter> AND similarity >= :threshold ORDER BY similarity DESC, id ASC
LIMIT :max_results`` — the metadata filter narrows the candidate set before
the cap is applied.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy import (
    Boolean,
    Float,
    String,
    and_,
    case,
    cast,
    delete,
    func,
    literal,
    select,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from pgvector.sqlalchemy import Vector

from knowledge_engine.application.interfaces.record_store import RecordStore
from knowledge_engine.domain.entities import KnowledgeRecord, RankedRecord
from knowledge_engine.domain.exceptions import EmbeddingDimensionError, StoreError
from knowledge_engine.domain.filters import FILE_ID_KEY, MetadataFilter, coerce_filter
from knowledge_engine.domain.ranking import validate_ranking_params
from knowledge_engine.domain.vectors import format_embedding, resolve_embedding
from knowledge_engine.infrastructure.database.models.knowledge_record_models import (
    KnowledgeRecordModel,
)
from knowledge_engine.infrastructure.database.session import SQLITE_COSINE_FUNCTION

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_TIMEOUT = 30.0


class SQLAlchemyRecordStore(RecordStore):
    """Concrete record store backed by PostgreSQL + pgvector or SQLite."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dimensions: int,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
    ):
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        self._session_factory = session_factory
        self._dimensions = dimensions
        self._timeout = timeout

    @property
    def dimensions(self) -> int:
        return self._dimensions

    # ── Write path ──────────────────────────────────────────────────

    async def insert(
        self,
        content: str,
        embedding: Any,
        metadata: dict[str, Any],
        category: str | None = None,
    ) -> KnowledgeRecord:
        if not content or not content.strip():
            raise StoreError("Refusing to store a record with empty content")
        vector = resolve_embedding(embedding, self._dimensions, context="insert")
        metadata = dict(metadata or {})

        async def op(session: AsyncSession) -> KnowledgeRecord:
            model = KnowledgeRecordModel(
                content=content,
                embedding=vector,
                metadata_=metadata,
                category=category,
            )
            session.add(model)
            await session.flush()
            return KnowledgeRecord(
                id=model.id,
                content=content,
                embedding=vector,
                metadata=metadata,
                category=category,
                created_at=model.created_at,
            )

        record = await self._run("insert", op, write=True)
        logger.debug("Stored record %d (fileId=%s)", record.id, record.file_id)
        return record

    async def delete_by_document(self, file_id: str) -> int:
        async def op(session: AsyncSession) -> int:
            predicate = self._filter_clause(session, MetadataFilter.for_file(file_id))
            statement = (
                delete(KnowledgeRecordModel)
                .where(predicate)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(statement)
            return result.rowcount or 0

        count = await self._run("delete_by_document", op, write=True)
        if count > 0:
            logger.info("Deleted %d records for %s=%s", count, FILE_ID_KEY, file_id)
        return count

    async def delete_all(self) -> int:
        async def op(session: AsyncSession) -> int:
            result = await session.execute(
                delete(KnowledgeRecordModel).execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

        count = await self._run("delete_all", op, write=True)
        logger.info("Deleted all %d records", count)
        return count

    # ── Read paths ──────────────────────────────────────────────────

    async def fetch_all(
        self, metadata_filter: MetadataFilter | dict[str, Any] | None = None
    ) -> list[KnowledgeRecord]:
        predicate_filter = coerce_filter(metadata_filter)

        async def op(session: AsyncSession) -> list[KnowledgeRecord]:
            query = select(KnowledgeRecordModel).order_by(KnowledgeRecordModel.id.asc())
            if not predicate_filter.is_empty:
                query = query.where(self._filter_clause(session, predicate_filter))
            result = await session.execute(query)
            return [self._to_entity(model) for model in result.scalars().all()]

        return await self._run("fetch_all", op)

    async def get(self, record_id: int) -> KnowledgeRecord | None:
        async def op(session: AsyncSession) -> KnowledgeRecord | None:
            model = await session.get(KnowledgeRecordModel, record_id)
            return self._to_entity(model) if model is not None else None

        return await self._run("get", op)

    async def count(
        self, metadata_filter: MetadataFilter | dict[str, Any] | None = None
    ) -> int:
        predicate_filter = coerce_filter(metadata_filter)

        async def op(session: AsyncSession) -> int:
            query = select(func.count(KnowledgeRecordModel.id))
            if not predicate_filter.is_empty:
                query = query.where(self._filter_clause(session, predicate_filter))
            return int((await session.execute(query)).scalar_one())

        return await self._run("count", op)

    async def list_categories(self) -> list[str]:
        async def op(session: AsyncSession) -> list[str]:
            query = (
                select(KnowledgeRecordModel.category)
                .where(KnowledgeRecordModel.category.is_not(None))
                .distinct()
                .order_by(KnowledgeRecordModel.category.asc())
            )
            return list((await session.execute(query)).scalars().all())

        return await self._run("list_categories", op)

    async def rank(
        self,
        query_embedding: Any,
        threshold: float,
        max_results: int,
        metadata_filter: MetadataFilter | dict[str, Any] | None = None,
    ) -> list[RankedRecord]:
        validate_ranking_params(threshold, max_results)
        vector = resolve_embedding(query_embedding, self._dimensions, context="query")
        predicate_filter = coerce_filter(metadata_filter)
        query_text = format_embedding(vector)

        async def op(session: AsyncSession) -> list[RankedRecord]:
            similarity = self._similarity_expr(session, query_text)

            conditions = []
            if not predicate_filter.is_empty:
                # Filter narrows the candidates first; LIMIT only sees survivors.
                predicate = self._filter_clause(session, predicate_filter)
                # CASE guarantees rows outside the filter are never scored.
                similarity = case((predicate, similarity))
                conditions.append(predicate)
            conditions.append(similarity >= threshold)

            query = (
                select(KnowledgeRecordModel, similarity.label("similarity"))
                .where(and_(*conditions))
                .order_by(similarity.desc(), KnowledgeRecordModel.id.asc())
                .limit(max_results)
            )
            result = await session.execute(query)
            return [
                RankedRecord(record=self._to_entity(model), similarity=float(score))
                for model, score in result.all()
            ]

        try:
            ranked = await self._run("rank", op)
        except StoreError as exc:
            # Both dialects abort on a stored vector of another length.
            mismatch = await self._first_length_mismatch(len(vector), predicate_filter)
            if mismatch is None:
                raise
            record_id, length = mismatch
            logger.error("Record %d has %d dimensions, query has %d", record_id, length, len(vector))
            raise EmbeddingDimensionError(
                len(vector), length, record_id=record_id, context="ranking"
            ) from exc
        logger.debug(
            "Store ranking returned %d records (threshold=%.3f, max_results=%d, filter=%s)",
            len(ranked),
            threshold,
            max_results,
            predicate_filter.as_dict(),
        )
        return ranked

    async def _first_length_mismatch(
        self, expected: int, metadata_filter: MetadataFilter
    ) -> tuple[int, int] | None:
        """Lowest-id candidate whose embedding length is not ``expected``."""
        for record in await self.fetch_all(metadata_filter):
            if len(record.embedding) != expected:
                return record.id, len(record.embedding)
        return None

    # ── SQL building blocks ─────────────────────────────────────────

    @staticmethod
    def _dialect(session: AsyncSession) -> str:
        return session.bind.dialect.name

    def _similarity_expr(self, session: AsyncSession, query_text: str) -> ColumnElement[float]:
        if self._dialect(session) == "postgresql":
            distance = KnowledgeRecordModel.embedding.op("<=>", return_type=Float)(
                cast(literal(query_text, String), Vector())
            )
            return 1 - distance
        return getattr(func, SQLITE_COSINE_FUNCTION)(
            KnowledgeRecordModel.embedding, literal(query_text, String), type_=Float
        )

    def _filter_clause(
        self, session: AsyncSession, metadata_filter: MetadataFilter
    ) -> ColumnElement[bool]:
        column = KnowledgeRecordModel.metadata_
        if self._dialect(session) == "postgresql":
            # JSONB containment is type-sensitive: {"chunkIndex": 1} != {"chunkIndex": "1"}
            return column.op("@>", return_type=Boolean)(
                cast(literal(json.dumps(metadata_filter.as_dict()), String), JSONB)
            )

        clauses = []
        for key, value in metadata_filter:
            path = f'$."{key}"'
            json_type = func.json_type(column, path)
            if isinstance(value, bool):
                clauses.append(json_type == ("true" if value else "false"))
            elif isinstance(value, int):
                clauses.append(json_type == "integer")
                clauses.append(func.json_extract(column, path) == value)
            else:
                clauses.append(json_type == "text")
                clauses.append(func.json_extract(column, path) == value)
        return and_(*clauses)

    @staticmethod
    def _to_entity(model: KnowledgeRecordModel) -> KnowledgeRecord:
        return KnowledgeRecord(
            id=model.id,
            content=model.content,
            embedding=model.embedding,
            metadata=dict(model.metadata_ or {}),
            category=model.category,
            created_at=model.created_at,
        )

    # ── Session / error boundary ────────────────────────────────────

    async def _run(
        self,
        operation: str,
        op: Callable[[AsyncSession], Awaitable[T]],
        *,
        write: bool = False,
    ) -> T:
        """Run ``op`` in its own session; translate failures into StoreError."""

        async def in_session() -> T:
            async with self._session_factory() as session:
                if write:
                    async with session.begin():
                        return await op(session)
                return await op(session)

        try:
            return await asyncio.wait_for(in_session(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Store %s timed out after %.1fs", operation, self._timeout)
            raise StoreError(f"Store {operation} timed out after {self._timeout}s") from exc
        except SQLAlchemyError as exc:
            logger.error("Store %s failed: %s", operation, exc)
            raise StoreError(f"Store {operation} failed: {exc}") from exc
