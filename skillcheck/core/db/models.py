"""
SQLAlchemy ORM Models for the Skill Evaluation engine

This module defines the database models for the adaptive evaluation flow:
- Attempts: One 60-question evaluation run per user
- AttemptQuestions: Binding of a bank question to an ordinal slot of an attempt
- McqItems: Reusable multiple-choice questions (the question bank)
- McqExplanations: Explanations for bank questions (exposed only in results)
- DocumentChunks: Grounding corpus used when generating new questions
"""

from sqlalchemy import (
    Column, String, Integer, Text, TIMESTAMP, ForeignKey, Index, TypeDecorator,
    Boolean, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.dialects.postgresql import UUID as PostgreSQL_UUID, JSONB
from pgvector.sqlalchemy import Vector
import uuid
from datetime import datetime

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB, "postgresql")

# Width of text-embedding-3-small vectors
EMBEDDING_DIM = 1536


# UUID type that works with both PostgreSQL and SQLite
class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise stores as String(36).
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PostgreSQL_UUID(as_uuid=True))
        else:
            return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        else:
            if isinstance(value, uuid.UUID):
                return str(value)
            else:
                return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return value
        else:
            if isinstance(value, uuid.UUID):
                return value
            else:
                return uuid.UUID(value)


# Embedding column: pgvector on PostgreSQL, JSON list elsewhere
class EmbeddingVector(TypeDecorator):
    """Platform-independent embedding type.

    Uses a pgvector `vector(EMBEDDING_DIM)` column on PostgreSQL so similarity
    search runs in SQL with the cosine operator. Other databases store a JSON
    list. Values always load as a list of floats.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(Vector(EMBEDDING_DIM))
        else:
            return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return [float(v) for v in value]

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return [float(v) for v in value]


class Attempt(Base):
    """One evaluation run for one user.

    Only one attempt per user may be in_progress at a time; this is enforced by
    AttemptService, not by a constraint.
    """
    __tablename__ = "user_attempts"
    __table_args__ = (
        Index('idx_attempts_user_status', 'user_id', 'status'),
        Index('idx_attempts_user_created', 'user_id', 'created_at'),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(), nullable=False)
    status = Column(String(20), nullable=False, default="in_progress")
    total_questions = Column(Integer, nullable=False, default=60)
    questions_answered = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    started_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    completed_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    # session_count, pause_count, time_spent_seconds, last_session_at, paused
    attempt_metadata = Column("metadata", JSONType, nullable=True)

    # Relationships
    questions = relationship(
        "AttemptQuestion",
        back_populates="attempt",
        cascade="all, delete-orphan",
        order_by="AttemptQuestion.question_order",
    )

    def __repr__(self):
        return (
            f"<Attempt(id={self.id}, status='{self.status}', "
            f"answered={self.questions_answered}/{self.total_questions})>"
        )


class McqItem(Base):
    """Reusable multiple-choice question stored independently of any attempt."""
    __tablename__ = "mcq_items"
    __table_args__ = (
        Index('idx_mcq_topic_difficulty', 'topic', 'difficulty'),
        Index('idx_mcq_topic_subtopic', 'topic', 'subtopic'),
        Index('idx_mcq_content_key', 'content_key', unique=True),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(), nullable=True)
    topic = Column(String(255), nullable=False)
    subtopic = Column(String(255), nullable=True)
    version = Column(String(50), nullable=True)
    difficulty = Column(String(20), nullable=False)  # Easy|Medium|Hard
    bloom_level = Column(String(20), nullable=False)
    question = Column(Text, nullable=False)
    code = Column(Text, nullable=True)
    options = Column(JSONType, nullable=False)  # exactly 4 strings
    correct_index = Column(Integer, nullable=False)
    citations = Column(JSONType, nullable=True)  # [{"title": ..., "url": ...}]
    embedding = Column(EmbeddingVector(), nullable=True)
    content_key = Column(String(64), nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    # Relationships
    explanations = relationship("McqExplanation", back_populates="mcq", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<McqItem(id={self.id}, topic='{self.topic}', difficulty='{self.difficulty}')>"


class McqExplanation(Base):
    """Explanation text for a bank question."""
    __tablename__ = "mcq_explanations"
    __table_args__ = (
        Index('idx_mcq_explanations_mcq', 'mcq_id'),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    mcq_id = Column(UUID(), ForeignKey("mcq_items.id", ondelete="CASCADE"), nullable=False)
    explanation = Column(Text, nullable=False)
    user_id = Column(UUID(), nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    mcq = relationship("McqItem", back_populates="explanations")

    def __repr__(self):
        return f"<McqExplanation(id={self.id}, mcq_id={self.mcq_id})>"


class AttemptQuestion(Base):
    """A bank question bound to one ordinal slot of one attempt.

    At most one row per (attempt_id, question_order); the unique constraint is
    what serialises concurrent assignment of the same slot.
    """
    __tablename__ = "attempt_questions"
    __table_args__ = (
        UniqueConstraint('attempt_id', 'question_order', name='uq_attempt_question_order'),
        Index('idx_attempt_questions_attempt', 'attempt_id', 'question_order'),
        Index('idx_attempt_questions_question', 'question_id'),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    attempt_id = Column(UUID(), ForeignKey("user_attempts.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(UUID(), ForeignKey("mcq_items.id"), nullable=False)
    question_order = Column(Integer, nullable=False)  # 1-based
    user_answer_index = Column(Integer, nullable=True)
    is_correct = Column(Boolean, nullable=True)
    answered_at = Column(TIMESTAMP, nullable=True)
    time_spent_seconds = Column(Integer, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    # Relationships
    attempt = relationship("Attempt", back_populates="questions")
    mcq = relationship("McqItem")

    @property
    def is_answered(self) -> bool:
        return self.user_answer_index is not None or self.answered_at is not None

    def __repr__(self):
        return (
            f"<AttemptQuestion(attempt_id={self.attempt_id}, order={self.question_order}, "
            f"question_id={self.question_id})>"
        )


class DocumentChunk(Base):
    """Chunk of reference documentation used to ground generated questions."""
    __tablename__ = "document_chunks"
    __table_args__ = (
        Index('idx_document_chunks_topic', 'topic', 'subtopic'),
    )

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    topic = Column(String(255), nullable=False)
    subtopic = Column(String(255), nullable=True)
    title = Column(String(500), nullable=True)
    url = Column(String(1000), nullable=False)
    content = Column(Text, nullable=False)
    embedding = Column(EmbeddingVector(), nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<DocumentChunk(id={self.id}, topic='{self.topic}', url='{self.url}')>"
