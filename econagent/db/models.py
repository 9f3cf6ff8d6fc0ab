# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────────────────┐   ┌──────────────────────────────┐
# │  inegi_indicadores           │   │  banxico_series              │
# ├──────────────────────────────┤   ├──────────────────────────────┤
# │ id (PK, text)                │   │ id (PK, text)  e.g. SF43718  │
# │ descripcion (text)           │   │ titulo (text)                │
# │ embedding (vector(512)) NULL │   │ embedding (vector(512)) NULL │
# └──────────────────────────────┘   └──────────────────────────────┘
#
# ┌──────────────────────────────────────────────┐
# │  api_keys                                    │
# ├──────────────────────────────────────────────┤
# │ id (PK)                                      │
# │ user_id (text)                               │
# │ provider (text)  groq/openai/google/         │
# │                  anthropic/inegi/banxico     │
# │ key (text, base64 as written by settings UI) │
# │ created_at                                   │
# │ UNIQUE (user_id, provider)                   │
# └──────────────────────────────────────────────┘
#
# The catalog tables are filled by offline import jobs; embeddings are
# backfilled later, so `embedding` is NULL for rows not yet embedded.
# =============================================================================

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from econagent.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all ORM models."""

    pass


class InegiIndicator(Base):
    """One INEGI BIE/BISE indicator from the catalog."""

    __tablename__ = "inegi_indicadores"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Full catalog path, e.g. "Tipo de cambio / Pesos por dólar / ...".
    # The text before the first "/" is used as the short display label.
    descripcion: Mapped[str] = mapped_column(Text, nullable=False)

    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<InegiIndicator(id={self.id})>"


class BanxicoSeries(Base):
    """One Banxico SIE series from the catalog."""

    __tablename__ = "banxico_series"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # "<ruta_serie> > <nombre_serie>". The text before the first "." is
    # used as the short display label.
    titulo: Mapped[str] = mapped_column(Text, nullable=False)

    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<BanxicoSeries(id={self.id})>"


class ProviderCredential(Base):
    """
    A user's secret for one provider (LLM backend or data source).

    Missing rows are the normal case: a user who never configured a Groq
    key simply has no Groq provider in their fallback chain.
    """

    __tablename__ = "api_keys"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_api_keys_user_provider"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    key: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ProviderCredential(user_id={self.user_id}, "
            f"provider={self.provider})>"
        )


# =============================================================================
# Database Indexes
# =============================================================================
#
# Full-text GIN indexes match the exact expression used by the lexical
# search (`to_tsvector('spanish', ...)`); PostgreSQL only uses an expression
# index when the query expression is identical.
#
# HNSW indexes on the embedding columns serve the cosine-distance ordering
# of the semantic search. NULL embeddings are simply not indexed.
# =============================================================================

inegi_fts_idx = Index(
    "idx_inegi_descripcion_fts",
    func.to_tsvector("spanish", InegiIndicator.descripcion),
    postgresql_using="gin",
)

banxico_fts_idx = Index(
    "idx_banxico_titulo_fts",
    func.to_tsvector("spanish", BanxicoSeries.titulo),
    postgresql_using="gin",
)

inegi_embedding_idx = Index(
    "idx_inegi_embedding_hnsw",
    InegiIndicator.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": 16, "ef_construction": 64},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)

banxico_embedding_idx = Index(
    "idx_banxico_embedding_hnsw",
    BanxicoSeries.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": 16, "ef_construction": 64},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)
