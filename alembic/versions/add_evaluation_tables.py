"""Add evaluation tables for adaptive skill assessment

Revision ID: add_evaluation_tables
Revises:
Create Date: 2026-10-18

Tables created:
1. mcq_items - Reusable multiple-choice question bank
2. mcq_explanations - Explanations for bank questions (exposed only in results)
3. document_chunks - Grounding corpus for question generation
4. user_attempts - One 60-question evaluation run per user
5. attempt_questions - Bank question bound to one slot of one attempt
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from pgvector.sqlalchemy import Vector

# Width of text-embedding-3-small vectors
EMBEDDING_DIM = 1536


# revision identifiers, used by Alembic.
revision: str = 'add_evaluation_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # Question bank
    op.create_table(
        'mcq_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('topic', sa.String(255), nullable=False),
        sa.Column('subtopic', sa.String(255), nullable=True),
        sa.Column('version', sa.String(50), nullable=True),
        sa.Column('difficulty', sa.String(20), nullable=False),
        sa.Column('bloom_level', sa.String(20), nullable=False),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('code', sa.Text(), nullable=True),
        sa.Column('options', postgresql.JSONB, nullable=False),
        sa.Column('correct_index', sa.Integer(), nullable=False),
        sa.Column('citations', postgresql.JSONB, nullable=True),
        sa.Column('embedding', Vector(EMBEDDING_DIM), nullable=True),
        sa.Column('content_key', sa.String(64), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('correct_index BETWEEN 0 AND 3', name='ck_mcq_correct_index'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_mcq_topic_difficulty', 'mcq_items', ['topic', 'difficulty'])
    op.create_index('idx_mcq_topic_subtopic', 'mcq_items', ['topic', 'subtopic'])
    op.create_index('idx_mcq_content_key', 'mcq_items', ['content_key'], unique=True)
    op.create_index(
        'idx_mcq_embedding_hnsw', 'mcq_items', ['embedding'],
        postgresql_using='hnsw',
        postgresql_ops={'embedding': 'vector_cosine_ops'},
    )

    op.create_table(
        'mcq_explanations',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('mcq_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.text('NOW()')),
        sa.ForeignKeyConstraint(['mcq_id'], ['mcq_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_mcq_explanations_mcq', 'mcq_explanations', ['mcq_id'])

    # Grounding corpus
    op.create_table(
        'document_chunks',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('topic', sa.String(255), nullable=False),
        sa.Column('subtopic', sa.String(255), nullable=True),
        sa.Column('title', sa.String(500), nullable=True),
        sa.Column('url', sa.String(1000), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('embedding', Vector(EMBEDDING_DIM), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_document_chunks_topic', 'document_chunks', ['topic', 'subtopic'])
    op.create_index(
        'idx_document_chunks_embedding_hnsw', 'document_chunks', ['embedding'],
        postgresql_using='hnsw',
        postgresql_ops={'embedding': 'vector_cosine_ops'},
    )

    # Attempts
    op.create_table(
        'user_attempts',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='in_progress'),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('questions_answered', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.TIMESTAMP(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('completed_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('metadata', postgresql.JSONB, nullable=True),
        sa.CheckConstraint('questions_answered <= total_questions', name='ck_attempt_answered_le_total'),
        sa.CheckConstraint('correct_count <= questions_answered', name='ck_attempt_correct_le_answered'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_attempts_user_status', 'user_attempts', ['user_id', 'status'])
    op.create_index('idx_attempts_user_created', 'user_attempts', ['user_id', 'created_at'])

    op.create_table(
        'attempt_questions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('attempt_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('question_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('question_order', sa.Integer(), nullable=False),
        sa.Column('user_answer_index', sa.Integer(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('answered_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(), nullable=False, server_default=sa.text('NOW()')),
        sa.ForeignKeyConstraint(['attempt_id'], ['user_attempts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['question_id'], ['mcq_items.id']),
        sa.UniqueConstraint('attempt_id', 'question_order', name='uq_attempt_question_order'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_attempt_questions_attempt', 'attempt_questions', ['attempt_id', 'question_order'])
    op.create_index('idx_attempt_questions_question', 'attempt_questions', ['question_id'])


def downgrade() -> None:
    op.drop_table('attempt_questions')
    op.drop_table('user_attempts')
    op.drop_table('document_chunks')
    op.drop_table('mcq_explanations')
    op.drop_table('mcq_items')
