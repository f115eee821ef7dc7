"""Tests for the embedding column type and QuestionStore ranking."""

import numpy as np
from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from skillcheck.core.db import DocumentChunk, McqItem
from skillcheck.core.db.models import EmbeddingVector
from skillcheck.core.vector_store import QuestionStore


class TestEmbeddingVector:
    """Tests for the pgvector/JSON embedding type."""

    def test_postgres_uses_vector_column(self):
        impl = EmbeddingVector().load_dialect_impl(postgresql.dialect())
        assert isinstance(impl, Vector)

    def test_sqlite_uses_json(self):
        impl = EmbeddingVector().load_dialect_impl(sqlite.dialect())
        assert isinstance(impl, JSON)

    def test_loaded_values_are_float_lists(self):
        loaded = EmbeddingVector().process_result_value(np.array([1, 0.5, 0]), postgresql.dialect())
        assert loaded == [1.0, 0.5, 0.0]
        assert isinstance(loaded, list)

    def test_none_passes_through(self):
        assert EmbeddingVector().process_bind_param(None, sqlite.dialect()) is None


class TestPgvectorQuery:
    """Tests for the SQL built for pgvector ranking."""

    def test_orders_by_cosine_distance_with_limit(self):
        store = QuestionStore(Session(), use_pgvector=True)
        query = store.nearest(Session().query(McqItem), McqItem.embedding, [1.0, 0.0, 0.0], 3)

        sql = str(query.statement.compile(dialect=postgresql.dialect()))

        assert "<=>" in sql
        assert "ORDER BY" in sql
        assert "LIMIT" in sql

    def test_dialect_detection(self, db_manager):
        with db_manager.get_session() as session:
            assert QuestionStore(session)._use_pgvector is False


class TestBankNeighbors:
    """Tests for QuestionStore.bank_neighbors on SQLite."""

    def test_ranks_by_cosine_within_topic(self, db_manager, bank_question):
        near = bank_question(1, embedding=[1.0, 0.1, 0.0])
        far = bank_question(2, embedding=[0.0, 1.0, 0.0])
        bank_question(3, topic="CSS", subtopic="Grid", embedding=[1.0, 0.0, 0.0])

        with db_manager.get_session() as session:
            neighbors = QuestionStore(session).bank_neighbors([1.0, 0.0, 0.0], "React", "Hooks", top_k=5)

        assert [n.id for n in neighbors] == [near, far]
        assert neighbors[0].score > 0.99
        assert neighbors[1].score == 0.0

    def test_excluded_ids_and_limit(self, db_manager, bank_question):
        first = bank_question(1, embedding=[1.0, 0.0, 0.0])
        second = bank_question(2, embedding=[0.9, 0.1, 0.0])
        bank_question(3, embedding=[0.0, 1.0, 0.0])

        with db_manager.get_session() as session:
            neighbors = QuestionStore(session).bank_neighbors(
                [1.0, 0.0, 0.0], "React", top_k=1, exclude_ids=[first]
            )

        assert [n.id for n in neighbors] == [second]

    def test_no_embedding_returns_nothing(self, db_manager, bank_question):
        bank_question(1, embedding=[1.0, 0.0, 0.0])
        with db_manager.get_session() as session:
            assert QuestionStore(session).bank_neighbors(None, "React") == []


class TestDocumentContext:
    """Tests for QuestionStore.document_context."""

    def test_subtopic_falls_back_to_topic(self, db_manager, seed_documents):
        with db_manager.get_session() as session:
            context = QuestionStore(session).document_context("CSS", "Animations")

        assert {c["title"] for c in context} == {"CSS Flexbox guide", "CSS Grid guide"}
        assert all(c["score"] is None for c in context)

    def test_ranked_when_chunks_have_embeddings(self, db_manager):
        with db_manager.get_session() as session:
            for title, embedding in (("Closures", [0.0, 1.0, 0.0]), ("Promises", [1.0, 0.0, 0.0])):
                session.add(DocumentChunk(
                    topic="JavaScript", subtopic=title, title=title,
                    url=f"https://docs.example.com/js/{title.lower()}",
                    content=f"{title} notes", embedding=embedding,
                ))

        with db_manager.get_session() as session:
            context = QuestionStore(session).document_context(
                "JavaScript", query_embedding=[1.0, 0.0, 0.0], top_k=1
            )

        assert [c["title"] for c in context] == ["Promises"]
        assert context[0]["score"] == 1.0

    def test_unembedded_chunks_used_when_query_has_embedding(self, db_manager, seed_documents):
        with db_manager.get_session() as session:
            context = QuestionStore(session).document_context("React", "Hooks", query_embedding=[1.0, 0.0, 0.0])

        assert [c["title"] for c in context] == ["React Hooks guide"]


class TestQuestionStoreSurface:
    """Tests for what QuestionStore offers callers."""

    def test_public_methods(self):
        public = {name for name in dir(QuestionStore) if not name.startswith("_")}
        assert public == {"nearest", "bank_neighbors", "document_context"}
