"""Shared fixtures: in-memory database, ontology, bank seeding and fake providers."""

import itertools
import json
import uuid
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from skillcheck.core.config import config_loader
from skillcheck.core.db import (
    Attempt,
    AttemptQuestion,
    DatabaseManager,
    DocumentChunk,
    McqExplanation,
    McqItem,
)
from skillcheck.core.interfaces import EmbeddingProvider, LLMProvider
from skillcheck.core.utils.mcq import compute_content_key

TOPIC_MAP = {
    "React": ["Hooks", "State", "Rendering"],
    "JavaScript": ["Closures", "Promises"],
    "CSS": ["Flexbox", "Grid"],
}

TOPIC_WEIGHTS = {"React": 0.5, "JavaScript": 0.3, "CSS": 0.2}

CODE_SNIPPET = "```tsx\nconst [count, setCount] = useState(0);\nuseEffect(() => {\n  setCount(count + 1);\n}, []);\n```"

_BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)
_attempt_question_index = itertools.count(100_000)


@pytest.fixture(autouse=True)
def ontology(monkeypatch):
    """Small fixed ontology instead of config/ontology.yaml."""
    monkeypatch.setattr(config_loader, "get_topic_map", lambda: {k: list(v) for k, v in TOPIC_MAP.items()})
    monkeypatch.setattr(config_loader, "get_topic_weights", lambda: dict(TOPIC_WEIGHTS))
    return TOPIC_MAP


@pytest.fixture
def db_manager():
    """SQLite-backed DatabaseManager with all tables created."""
    manager = DatabaseManager("sqlite://")
    manager.init_db()
    yield manager
    manager.close()


@pytest.fixture
def user_id():
    return uuid.uuid4()


def add_mcq(
    session,
    index,
    topic="React",
    subtopic="Hooks",
    difficulty="Easy",
    bloom_level="Understand",
    code=None,
    embedding=None,
    correct_index=0,
    explanation=None,
    citations=None,
):
    """Insert one bank question; `index` keeps text and created_at unique."""
    question = f"Bank question {index}: what does {topic} {subtopic} case {index} do?"
    item = McqItem(
        topic=topic,
        subtopic=subtopic,
        difficulty=difficulty,
        bloom_level=bloom_level,
        question=question,
        code=code,
        options=[f"Option {index}-{i}" for i in range(4)],
        correct_index=correct_index,
        citations=citations if citations is not None else [
            {"title": f"{topic} docs", "url": f"https://docs.example.com/{topic.lower()}/{index}"}
        ],
        embedding=embedding,
        content_key=compute_content_key(question),
        created_at=_BASE_TIME + timedelta(seconds=index),
    )
    session.add(item)
    session.flush()
    if explanation:
        session.add(McqExplanation(mcq_id=item.id, explanation=explanation))
    return item


@pytest.fixture
def seed_bank(db_manager):
    """Seed a bank covering every topic and difficulty.

    Returns a callable: seed_bank(per_cell=3, with_code=True) -> list of ids.
    """
    def _seed(per_cell=3, with_code=True):
        ids = []
        index = 1000
        with db_manager.get_session() as session:
            for topic, subtopics in TOPIC_MAP.items():
                for difficulty in ("Easy", "Medium", "Hard"):
                    for n in range(per_cell):
                        index += 1
                        item = add_mcq(
                            session,
                            index,
                            topic=topic,
                            subtopic=subtopics[n % len(subtopics)],
                            difficulty=difficulty,
                            bloom_level=("Remember", "Understand", "Apply")[n % 3],
                            code=CODE_SNIPPET if with_code and n % 2 == 0 else None,
                        )
                        ids.append(item.id)
        return ids

    return _seed


@pytest.fixture
def bank_question(db_manager):
    """bank_question(index, **fields) -> id of one inserted bank question."""
    def _add(index, **fields):
        with db_manager.get_session() as session:
            return add_mcq(session, index, **fields).id
    return _add


@pytest.fixture
def seed_documents(db_manager):
    """Grounding chunks for every topic."""
    with db_manager.get_session() as session:
        for topic, subtopics in TOPIC_MAP.items():
            for subtopic in subtopics:
                session.add(DocumentChunk(
                    topic=topic,
                    subtopic=subtopic,
                    title=f"{topic} {subtopic} guide",
                    url=f"https://docs.example.com/{topic.lower()}/{subtopic.lower()}",
                    content=f"{subtopic} in {topic} explained with examples and caveats.",
                ))


@pytest.fixture
def make_attempt(db_manager):
    """Build an attempt with physical rows.

    make_attempt(user_id, assigned=60, answered=None, correct=None,
                 status="in_progress", orders=None) -> attempt id

    Every row is answered unless `answered` is given. Answered rows
    alternate correct/incorrect unless `correct` is given (then the first
    `correct` answered rows are correct). `orders` overrides which
    question_order values get rows.
    """
    def _make(
        user_id,
        assigned=60,
        answered=None,
        correct=None,
        status="in_progress",
        orders=None,
        total=60,
        topic_cycle=("React", "JavaScript", "CSS"),
    ):
        orders = list(orders) if orders is not None else list(range(1, assigned + 1))
        answered = len(orders) if answered is None else answered
        now = _BASE_TIME
        with db_manager.get_session() as session:
            attempt = Attempt(
                user_id=user_id,
                status=status,
                total_questions=total,
                questions_answered=answered,
                correct_count=0,
                started_at=now,
                completed_at=now if status == "completed" else None,
                attempt_metadata={"session_count": 1, "pause_count": 0, "time_spent_seconds": 0},
            )
            session.add(attempt)
            session.flush()

            correct_total = 0
            for position, order in enumerate(orders):
                topic = topic_cycle[position % len(topic_cycle)]
                subtopic = TOPIC_MAP[topic][position % len(TOPIC_MAP[topic])]
                mcq = add_mcq(
                    session,
                    index=next(_attempt_question_index),
                    topic=topic,
                    subtopic=subtopic,
                    difficulty=("Easy", "Medium", "Hard")[position % 3],
                    correct_index=0,
                    explanation=f"Explanation for slot {order}",
                )
                row = AttemptQuestion(
                    attempt_id=attempt.id,
                    question_id=mcq.id,
                    question_order=order,
                )
                if position < answered:
                    is_correct = position < correct if correct is not None else position % 2 == 0
                    row.user_answer_index = 0 if is_correct else 1
                    row.is_correct = is_correct
                    row.answered_at = now
                    row.time_spent_seconds = 10
                    correct_total += int(is_correct)
                session.add(row)

            attempt.correct_count = correct_total
            return attempt.id

    return _make


@pytest.fixture
def count_rows(db_manager):
    """count_rows(attempt_id) -> number of AttemptQuestion rows."""
    def _count(attempt_id):
        with db_manager.get_session() as session:
            return session.query(AttemptQuestion).filter(AttemptQuestion.attempt_id == attempt_id).count()
    return _count


@pytest.fixture
def load_attempt(db_manager):
    """load_attempt(attempt_id) -> detached Attempt."""
    def _load(attempt_id):
        with db_manager.get_session() as session:
            return session.query(Attempt).filter(Attempt.id == attempt_id).first()
    return _load


@pytest.fixture
def draft_json():
    """draft_json(**overrides) -> a valid generator draft as the LLM would return it."""
    return _draft_json


def _draft_json(**overrides):
    draft = {
        "topic": "React",
        "subtopic": "Hooks",
        "difficulty": "Easy",
        "bloom_level": "Understand",
        "question": "Which hook lets a function component keep local state between renders?",
        "code": None,
        "options": ["useState", "useMemo", "useRef", "useId"],
        "correct_index": 0,
        "explanation": "useState stores state that survives re-renders.",
        "citations": [{"title": "React docs", "url": "https://react.dev/reference/react/useState"}],
    }
    draft.update(overrides)
    return json.dumps(draft)


@pytest.fixture
def fake_llm():
    """LLMProvider mock; set .complete.return_value / .side_effect per test."""
    llm = MagicMock(spec=LLMProvider)
    llm.name = "fake"
    llm.model_name = "fake-model"
    return llm


@pytest.fixture
def offline_llm(fake_llm):
    """LLMProvider whose every call fails, forcing the deterministic paths."""
    fake_llm.complete.side_effect = RuntimeError("provider offline")
    return fake_llm


@pytest.fixture
def fake_embedder():
    embedder = MagicMock(spec=EmbeddingProvider)
    embedder.model_name = "fake-embedding"
    embedder.embed_one.return_value = [1.0, 0.0, 0.0]
    embedder.embed.side_effect = lambda texts: [[1.0, 0.0, 0.0] for _ in texts]
    return embedder
