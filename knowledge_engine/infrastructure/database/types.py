"""Column types shared by the ORM models."""

from sqlalchemy import JSON, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator

from pgvector.sqlalchemy import Vector

from knowledge_engine.domain.vectors import format_embedding, parse_embedding

# JSONB on PostgreSQL (for @> containment), plain JSON elsewhere.
MetadataJSON = JSON().with_variant(JSONB(), "postgresql")


class EmbeddingType(TypeDecorator):
    """Embedding column that accepts either vector encoding.

    PostgreSQL stores a pgvector ``vector``; other dialects store the
    bracketed textual encoding with full ``repr`` precision. Loaded values
    are always canonical ``EmbeddingVector`` tuples, whatever the backend
    hands back (text, list or numpy array).
    """

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Vector())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            # pgvector's own bind processor renders the list
            return list(parse_embedding(value))
        return format_embedding(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return parse_embedding(value)
