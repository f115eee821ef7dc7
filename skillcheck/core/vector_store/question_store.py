"""
QuestionStore - nearest-neighbour lookups over stored embeddings.

On PostgreSQL embeddings live in pgvector columns and ranking happens in SQL:
``ORDER BY embedding <=> :query LIMIT k`` served by the HNSW
``vector_cosine_ops`` indexes from the migration. Cosine similarity is
``1 - distance``.

SQLite (local runs and tests) has no vector type. There the rows matching the
topic filters are ranked by cosine similarity in numpy.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
from pgvector.sqlalchemy import Vector
from sqlalchemy import Float, bindparam
from sqlalchemy.orm import Query, Session

from ..db.models import EMBEDDING_DIM, DocumentChunk, McqItem
from ..utils.similarity import to_numeric_vector

logger = logging.getLogger(__name__)


@dataclass
class Neighbor:
    id: Any
    question: str
    score: float


def _rank(query: Sequence[float], rows: Iterable[Any]) -> List[tuple]:
    """(row, cosine score) pairs sorted by descending score."""
    query_vec = np.asarray(query, dtype=float)
    query_norm = np.linalg.norm(query_vec)
    if query_norm == 0:
        return []

    ranked = []
    for row in rows:
        vector = to_numeric_vector(row.embedding)
        if not vector:
            continue
        n = min(len(vector), len(query_vec))
        candidate = np.asarray(vector[:n], dtype=float)
        denom = np.linalg.norm(candidate) * np.linalg.norm(query_vec[:n])
        if denom == 0:
            continue
        ranked.append((row, float(np.dot(candidate, query_vec[:n]) / denom)))

    ranked.sort(key=lambda pair: pair[1], reverse=True)
    return ranked


class QuestionStore:
    """Similarity queries over the question bank and the grounding corpus.

    Args:
        session: Open session
        use_pgvector: Rank in SQL with pgvector; detected from the session's
            dialect when omitted
    """

    def __init__(self, session: Session, use_pgvector: Optional[bool] = None):
        self._session = session
        if use_pgvector is None:
            use_pgvector = session.get_bind().dialect.name == "postgresql"
        self._use_pgvector = use_pgvector

    def nearest(self, query: Query, column, embedding: Sequence[float], top_k: int) -> Query:
        """Add cosine distance to `query`, nearest first, limited to `top_k`.

        Rows come back as (entity, distance) tuples.
        """
        target = bindparam("query_embedding", [float(v) for v in embedding], type_=Vector(EMBEDDING_DIM))
        distance = column.op("<=>", return_type=Float)(target)
        return query.add_columns(distance.label("distance")).order_by(distance).limit(top_k)

    def _ranked(self, query: Query, column, embedding: Sequence[float], top_k: int) -> List[tuple]:
        if self._use_pgvector:
            return [(row, 1.0 - float(distance)) for row, distance in self.nearest(query, column, embedding, top_k)]
        return _rank(embedding, query.all())[:top_k]

    def bank_neighbors(
        self,
        embedding: Optional[Sequence[float]],
        topic: str,
        subtopic: Optional[str] = None,
        top_k: int = 5,
        exclude_ids: Optional[Iterable[Any]] = None,
    ) -> List[Neighbor]:
        """Closest bank questions within a topic (and subtopic, when given)."""
        if not embedding:
            return []

        query = self._session.query(McqItem).filter(
            McqItem.topic == topic,
            McqItem.embedding.isnot(None),
        )
        if subtopic:
            query = query.filter(McqItem.subtopic == subtopic)
        excluded = list(exclude_ids or [])
        if excluded:
            query = query.filter(McqItem.id.notin_(excluded))

        return [
            Neighbor(id=row.id, question=row.question, score=score)
            for row, score in self._ranked(query, McqItem.embedding, embedding, top_k)
        ]

    def document_context(
        self,
        topic: str,
        subtopic: Optional[str] = None,
        query_embedding: Optional[Sequence[float]] = None,
        top_k: int = 8,
    ) -> List[Dict[str, Any]]:
        """Grounding passages for question generation.

        Ranked by similarity when a query embedding is given and the chunks
        carry embeddings, otherwise newest first. Falls back to the whole topic
        when the subtopic has no chunks.
        """
        topic_query = self._session.query(DocumentChunk).filter(DocumentChunk.topic == topic)
        query = topic_query
        if subtopic:
            scoped = topic_query.filter(DocumentChunk.subtopic == subtopic)
            if scoped.first() is not None:
                query = scoped

        chosen = []
        if query_embedding:
            embedded = query.filter(DocumentChunk.embedding.isnot(None))
            chosen = self._ranked(embedded, DocumentChunk.embedding, query_embedding, top_k)
        if not chosen:
            rows = query.order_by(DocumentChunk.created_at.desc()).limit(top_k).all()
            chosen = [(row, None) for row in rows]

        logger.debug(f"document_context: topic={topic}, subtopic={subtopic}, hits={len(chosen)}")
        return [
            {
                "title": row.title,
                "url": row.url,
                "content": row.content,
                "score": score,
            }
            for row, score in chosen
        ]
