"""Question Generator.

Runs only when no acceptable bank candidate exists. Each round retrieves
grounding context, asks the LLM for a draft, validates it, and rejects
near-duplicates of what the attempt has already asked. Rounds follow a fixed
relaxation schedule (exact, relaxed, strict); after the last round the
generator gives up and returns None. An invalid draft is never persisted.
"""

import json
import logging
import random
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from sqlalchemy.exc import IntegrityError

from ...api.core.exceptions import ExternalServiceError
from ..db import DatabaseManager
from ..db.models import McqExplanation, McqItem
from ..interfaces import EmbeddingProvider, LLMProvider
from ..utils.mcq import (
    build_embedding_text,
    compute_content_key,
    extract_first_code_fence,
    has_valid_code_block,
    normalize_code_block,
    parse_json_object,
    question_repeats_code_block,
)
from ..utils.selection import calculate_coverage_weights, weighted_random_index
from ..utils.similarity import jaccard_similarity, max_cosine_similarity
from ..utils.timeout import call_with_timeout
from ..vector_store import QuestionStore
from .config import DEFAULT_CONFIG, SelectionConfig
from .ontology import get_subtopics, get_topic_list
from .prompts import (
    CODING_RULE,
    JUDGE_CODING_RULE,
    NON_CODING_RULE,
    QUESTION_GENERATOR_SYSTEM_PROMPT,
    QUESTION_GENERATOR_USER_PROMPT,
    QUESTION_JUDGE_SYSTEM_PROMPT,
    QUESTION_JUDGE_USER_PROMPT,
    RELAXED_INSTRUCTION,
    STRICT_INSTRUCTION,
    format_context_lines,
    format_negative_examples,
)
from .types import BloomLevel, GeneratedQuestion, LLMResult, SelectionCriteria, SimilarityGate

logger = logging.getLogger(__name__)

# Relaxation schedule, one entry per generation round
MODE_EXACT = "exact"
MODE_RELAXED = "relaxed"
MODE_STRICT = "strict"
RELAXATION_SCHEDULE = (MODE_EXACT, MODE_RELAXED, MODE_STRICT)


@dataclass
class AskedQuestion:
    """What the generator needs to know about a question already in the attempt."""
    question: str
    content_key: Optional[str] = None
    embedding: Optional[List[float]] = None


@dataclass
class GenerationOutcome:
    question_id: Any
    question: GeneratedQuestion
    rounds: int
    adopted_existing: bool = False


@dataclass
class JudgeVerdict:
    verdict: str  # "approve" | "revise"
    reasons: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


def mode_for_round(round_number: int) -> str:
    """1-based round -> relaxation mode; rounds past the schedule stay strict."""
    index = min(max(round_number, 1), len(RELAXATION_SCHEDULE)) - 1
    return RELAXATION_SCHEDULE[index]


def _extract_code_from_question(question: str, code: Optional[str]):
    """Move a fenced block out of the prose into the code field when code is empty."""
    if code and code.strip():
        return question, code
    hit = extract_first_code_fence(question)
    if not hit:
        return question, code
    lang, body = hit
    stripped = re.sub(r"```[A-Za-z0-9_+-]*[ \t]*\n.*?\n?```", "", question, count=1, flags=re.DOTALL).strip()
    return stripped, f"```{lang or 'tsx'}\n{body}\n```"


def validate_draft(
    data: Dict[str, Any],
    criteria: SelectionCriteria,
    topic: str,
    subtopic: Optional[str],
    mode: str,
    code_min_lines: int = 3,
    code_max_lines: int = 50,
) -> LLMResult[GeneratedQuestion]:
    """Turn a parsed LLM draft into a GeneratedQuestion, or explain why not.

    Topic and difficulty always come from the request, not the draft. The
    Bloom level and subtopic may come from the draft in relaxed mode.
    """
    question = data.get("question")
    if not isinstance(question, str) or not question.strip():
        return LLMResult.failure("missing_question")

    options = data.get("options")
    if not isinstance(options, list) or len(options) != 4:
        return LLMResult.failure("options_must_be_four")
    if any(not isinstance(o, str) or not o.strip() for o in options):
        return LLMResult.failure("empty_option")
    options = [o.strip() for o in options]
    if len({o.lower() for o in options}) != 4:
        return LLMResult.failure("duplicate_options")

    correct_index = data.get("correct_index")
    if isinstance(correct_index, bool) or not isinstance(correct_index, int):
        return LLMResult.failure("invalid_correct_index")
    if not 0 <= correct_index <= 3:
        return LLMResult.failure("correct_index_out_of_range")

    raw_code = data.get("code")
    if raw_code is not None and not isinstance(raw_code, str):
        return LLMResult.failure("invalid_code")
    question, raw_code = _extract_code_from_question(question.strip(), raw_code)
    code = normalize_code_block(raw_code)

    if criteria.coding_mode:
        if not code:
            return LLMResult.failure("missing_code_block")
        if not has_valid_code_block(code, code_min_lines, code_max_lines):
            return LLMResult.failure("code_block_line_count")
        if question_repeats_code_block(question, code):
            return LLMResult.failure("code_repeated_in_question")

    bloom = criteria.preferred_bloom_level
    draft_bloom = BloomLevel.parse(data.get("bloom_level"))
    if mode == MODE_RELAXED and draft_bloom is not None:
        bloom = draft_bloom.value
    bloom = bloom or (draft_bloom.value if draft_bloom else BloomLevel.UNDERSTAND.value)

    chosen_subtopic = subtopic
    if mode == MODE_RELAXED or not chosen_subtopic:
        draft_subtopic = data.get("subtopic")
        allowed = get_subtopics(topic)
        if isinstance(draft_subtopic, str) and draft_subtopic.strip() in allowed:
            chosen_subtopic = draft_subtopic.strip()

    citations = []
    for c in data.get("citations") or []:
        if isinstance(c, dict) and isinstance(c.get("url"), str) and c["url"].strip():
            citations.append({"title": str(c.get("title") or ""), "url": c["url"].strip()})

    explanation = data.get("explanation")
    version = data.get("version")

    return LLMResult.success(GeneratedQuestion(
        topic=topic,
        subtopic=chosen_subtopic,
        difficulty=criteria.difficulty,
        bloom_level=bloom,
        question=question,
        options=options,
        correct_index=correct_index,
        code=code,
        explanation=explanation.strip() if isinstance(explanation, str) and explanation.strip() else None,
        citations=citations,
        version=version if isinstance(version, str) and version.strip() else None,
    ))


class QuestionJudge:
    """Optional LLM review of a draft against its context and bank neighbours.

    The verdict is advisory: the exam pipeline logs it and never blocks on it.
    """

    def __init__(self, llm: LLMProvider, config: Optional[SelectionConfig] = None):
        self._llm = llm
        self._config = config or DEFAULT_CONFIG

    def review(
        self,
        question: GeneratedQuestion,
        context: Sequence[Dict[str, Any]],
        neighbors: Sequence[str],
        coding_mode: bool,
    ) -> LLMResult[JudgeVerdict]:
        gen = self._config.generation
        coding_rule = (
            JUDGE_CODING_RULE.format(min_lines=gen.code_min_lines, max_lines=gen.code_max_lines)
            if coding_mode else ""
        )
        system_prompt = QUESTION_JUDGE_SYSTEM_PROMPT.format(coding_rule=coding_rule)
        user_prompt = QUESTION_JUDGE_USER_PROMPT.format(
            context=format_context_lines(context, max_items=6, content_length=500),
            mcq_json=json.dumps(asdict(question), indent=2),
            neighbors="\n".join(f"- {n[:240]}" for n in neighbors) or "(none)",
        )
        try:
            raw = call_with_timeout(
                self._llm.complete, self._config.timeouts.judge_seconds,
                system_prompt, user_prompt, json_mode=True,
            )
            data = parse_json_object(raw)
        except TimeoutError:
            return LLMResult.failure("llm_timeout")
        except ValueError:
            return LLMResult.failure("malformed_json")
        except Exception as e:
            logger.warning(f"question_judge_error: error={e.__class__.__name__}: {e}")
            return LLMResult.failure("llm_error")

        verdict = str(data.get("verdict", "")).strip().lower()
        if verdict not in ("approve", "revise"):
            return LLMResult.failure("invalid_verdict")
        return LLMResult.success(JudgeVerdict(
            verdict=verdict,
            reasons=[str(r) for r in data.get("reasons") or []],
            suggestions=[str(s) for s in data.get("suggestions") or []],
        ))


class QuestionGenerator:
    """Generate, validate, de-duplicate and persist a new bank question.

    Args:
        db_manager: Database manager providing sessions
        llm: Completion provider
        embedder: Embedding provider; without one the embedding gates are skipped
        config: Selection configuration
        rng: Random source for topic/subtopic choice when criteria leave it open
        judge: Optional advisory judge
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        llm: Optional[LLMProvider],
        embedder: Optional[EmbeddingProvider] = None,
        config: Optional[SelectionConfig] = None,
        rng: Optional[random.Random] = None,
        judge: Optional[QuestionJudge] = None,
    ):
        self._db = db_manager
        self._llm = llm
        self._embedder = embedder
        self._config = config or DEFAULT_CONFIG
        self._rng = rng or random.Random()
        self._judge = judge if self._config.generation.judge_enabled else None

    def generate(
        self,
        attempt_id: Any,
        user_id: Any,
        criteria: SelectionCriteria,
        asked: Sequence[AskedQuestion],
        topic_distribution: Optional[Dict[str, int]] = None,
    ) -> Optional[GenerationOutcome]:
        """Run up to ``max_attempts`` rounds. Returns None when every round fails."""
        if self._llm is None:
            logger.warning(f"generation_skipped: attempt_id={attempt_id}, reason=llm_unavailable")
            return None

        gen = self._config.generation
        asked_keys: Set[str] = {a.content_key for a in asked if a.content_key}
        asked_texts = [a.question for a in asked if a.question]
        asked_embeddings = [a.embedding for a in asked if a.embedding]
        negative_examples = asked_texts[-gen.negative_examples_lookback:]

        topic = self._resolve_topic(criteria, topic_distribution or {})

        for round_number in range(1, gen.max_attempts + 1):
            mode = mode_for_round(round_number)
            subtopic = self._resolve_subtopic(topic, criteria.preferred_subtopic, mode)

            draft = self._draft(attempt_id, criteria, topic, subtopic, mode, negative_examples)
            if draft is None:
                continue
            question, context = draft

            try:
                gate, embedding = self._similarity_gate(
                    attempt_id, question, asked_keys, asked_texts, asked_embeddings
                )
            except (TimeoutError, ExternalServiceError) as e:
                logger.warning(f"generation_embedding_failed: attempt_id={attempt_id}, error={e.__class__.__name__}")
                continue
            if gate is not None:
                negative_examples = (negative_examples + [question.question])[-gen.negative_examples_limit:]
                continue

            if self._judge is not None:
                self._run_judge(attempt_id, question, context, criteria.coding_mode, embedding)

            question_id, adopted = self._persist(question, embedding, user_id)
            logger.info(
                f"question_generated: attempt_id={attempt_id}, question_id={question_id}, round={round_number}, "
                f"mode={mode}, topic={question.topic}, subtopic={question.subtopic}, adopted={adopted}"
            )
            return GenerationOutcome(question_id, question, round_number, adopted_existing=adopted)

        logger.warning(f"generation_exhausted: attempt_id={attempt_id}, rounds={gen.max_attempts}")
        return None

    def _resolve_topic(self, criteria: SelectionCriteria, topic_distribution: Dict[str, int]) -> str:
        topics = get_topic_list()
        if criteria.preferred_topic:
            return criteria.preferred_topic
        weights = calculate_coverage_weights(topic_distribution, topics, min_weight=1.0)
        return topics[weighted_random_index([weights[t] for t in topics], self._rng)]

    def _resolve_subtopic(self, topic: str, preferred: Optional[str], mode: str) -> Optional[str]:
        """Match the preferred subtopic against the ontology (loosely)."""
        if mode == MODE_RELAXED:
            return None
        subtopics = get_subtopics(topic)
        if preferred:
            wanted = preferred.lower()
            for s in subtopics:
                if s == preferred or wanted in s.lower() or s.lower() in wanted:
                    return s
        if subtopics:
            return subtopics[int(self._rng.random() * len(subtopics)) % len(subtopics)]
        return preferred

    def _retrieve_context(self, topic: str, subtopic: Optional[str], coding_mode: bool) -> List[Dict[str, Any]]:
        query_text = subtopic or f"{topic} fundamentals"
        query_text += " code example implementation" if coding_mode else " explanation concepts"

        query_embedding = None
        if self._embedder is not None:
            query_embedding = call_with_timeout(
                self._embedder.embed_one, self._config.timeouts.embedding_seconds, query_text
            )

        with self._db.get_session() as session:
            return QuestionStore(session).document_context(
                topic, subtopic, query_embedding=query_embedding, top_k=self._config.generation.context_top_k
            )

    def _draft(
        self,
        attempt_id: Any,
        criteria: SelectionCriteria,
        topic: str,
        subtopic: Optional[str],
        mode: str,
        negative_examples: List[str],
    ):
        """One LLM round: (GeneratedQuestion, context) or None."""
        gen = self._config.generation
        try:
            context = self._retrieve_context(topic, subtopic, criteria.coding_mode)
        except (TimeoutError, ExternalServiceError) as e:
            logger.warning(f"generation_context_failed: attempt_id={attempt_id}, error={e.__class__.__name__}")
            return None
        if not context:
            logger.warning(f"generation_no_context: attempt_id={attempt_id}, topic={topic}, subtopic={subtopic}")
            return None

        coding_rule = (
            CODING_RULE.format(min_lines=gen.code_min_lines, max_lines=gen.code_max_lines)
            if criteria.coding_mode else NON_CODING_RULE
        )
        extra = ""
        if mode == MODE_RELAXED:
            extra = RELAXED_INSTRUCTION.format(topic=topic)
        elif mode == MODE_STRICT:
            extra = STRICT_INSTRUCTION

        bloom = criteria.preferred_bloom_level or BloomLevel.UNDERSTAND.value
        labels = f"topic={topic} | subtopic={subtopic or 'any'} | difficulty={criteria.difficulty} | bloom={bloom}"
        subtopics = get_subtopics(topic)
        system_prompt = QUESTION_GENERATOR_SYSTEM_PROMPT.format(coding_rule=coding_rule)
        user_prompt = QUESTION_GENERATOR_USER_PROMPT.format(
            labels=labels,
            subtopics_hint=f"Available subtopics for this topic: {', '.join(subtopics)}." if subtopics else "",
            context=format_context_lines(context),
            negative_examples=format_negative_examples(negative_examples),
            extra_instructions=extra,
            topic=topic,
            difficulty=criteria.difficulty,
            bloom_level=bloom,
            code_placeholder='"```tsx\\n...\\n```"' if criteria.coding_mode else "null",
        )

        try:
            raw = call_with_timeout(
                self._llm.complete, self._config.timeouts.generator_seconds,
                system_prompt, user_prompt, json_mode=True,
            )
            data = parse_json_object(raw)
        except TimeoutError:
            logger.warning(f"generation_round_failed: attempt_id={attempt_id}, mode={mode}, reason=llm_timeout")
            return None
        except ValueError:
            logger.warning(f"generation_round_failed: attempt_id={attempt_id}, mode={mode}, reason=malformed_json")
            return None
        except Exception as e:
            logger.warning(
                f"generation_round_failed: attempt_id={attempt_id}, mode={mode}, "
                f"reason=llm_error, error={e.__class__.__name__}: {e}"
            )
            return None

        result = validate_draft(
            data, criteria, topic, subtopic, mode,
            code_min_lines=gen.code_min_lines, code_max_lines=gen.code_max_lines,
        )
        if not result.ok:
            logger.warning(f"generation_round_failed: attempt_id={attempt_id}, mode={mode}, reason={result.reason}")
            return None
        return result.value, context

    def _similarity_gate(
        self,
        attempt_id: Any,
        question: GeneratedQuestion,
        asked_keys: Set[str],
        asked_texts: List[str],
        asked_embeddings: List[List[float]],
    ):
        """Return (gate, embedding); gate is None when the draft passes.

        Raises:
            TimeoutError, ExternalServiceError: If the draft cannot be embedded
        """
        cfg = self._config

        if compute_content_key(question.question) in asked_keys:
            return self._gate_hit(attempt_id, SimilarityGate.CONTENT_KEY), None

        normalized = question.question.lower().strip()
        for text in asked_texts:
            if text.lower().strip() == normalized:
                return self._gate_hit(attempt_id, SimilarityGate.TEXT_OVERLAP), None
            if jaccard_similarity(text, question.question) >= cfg.similarity.text_jaccard_threshold:
                return self._gate_hit(attempt_id, SimilarityGate.TEXT_OVERLAP), None

        if self._embedder is None:
            return None, None

        embedding_text = build_embedding_text(
            question.topic, question.question, question.options, question.difficulty,
            question.bloom_level, question.subtopic, question.version,
        )
        embedding = call_with_timeout(
            self._embedder.embed_one, cfg.timeouts.embedding_seconds, embedding_text
        )

        with self._db.get_session() as session:
            neighbors = QuestionStore(session).bank_neighbors(
                embedding, question.topic, question.subtopic, top_k=cfg.generation.neighbor_top_k
            )
        if neighbors and neighbors[0].score >= cfg.generation.neighbor_high_similarity_threshold:
            return self._gate_hit(attempt_id, SimilarityGate.BANK_NEIGHBOR, neighbors[0].score), embedding

        if asked_embeddings:
            top = max_cosine_similarity(embedding, asked_embeddings)
            if top >= cfg.similarity.attempt_threshold:
                return self._gate_hit(attempt_id, SimilarityGate.ATTEMPT_EMBEDDING, top), embedding

        return None, embedding

    @staticmethod
    def _gate_hit(attempt_id: Any, gate: SimilarityGate, score: Optional[float] = None) -> SimilarityGate:
        suffix = f", top_score={score:.3f}" if score is not None else ""
        logger.warning(f"generation_similarity_gate_hit: attempt_id={attempt_id}, reason={gate.value}{suffix}")
        return gate

    def _run_judge(
        self,
        attempt_id: Any,
        question: GeneratedQuestion,
        context,
        coding_mode: bool,
        embedding: Optional[List[float]],
    ) -> None:
        with self._db.get_session() as session:
            neighbors = [
                n.question for n in QuestionStore(session).bank_neighbors(
                    embedding, question.topic, question.subtopic,
                    top_k=self._config.generation.neighbor_top_k,
                )
            ]
        result = self._judge.review(question, context, neighbors, coding_mode)
        if result.ok:
            logger.info(
                f"question_judge_verdict: attempt_id={attempt_id}, verdict={result.value.verdict}, "
                f"reasons={len(result.value.reasons)}"
            )
        else:
            logger.info(f"question_judge_skipped: attempt_id={attempt_id}, reason={result.reason}")

    def _persist(self, question: GeneratedQuestion, embedding: Optional[List[float]], user_id: Any):
        """Insert into the bank; a content_key conflict adopts the existing row."""
        content_key = compute_content_key(question.question)
        try:
            with self._db.get_session() as session:
                item = McqItem(
                    user_id=user_id,
                    topic=question.topic,
                    subtopic=question.subtopic,
                    version=question.version,
                    difficulty=question.difficulty,
                    bloom_level=question.bloom_level,
                    question=question.question,
                    code=question.code,
                    options=question.options,
                    correct_index=question.correct_index,
                    citations=question.citations,
                    embedding=embedding,
                    content_key=content_key,
                )
                session.add(item)
                session.flush()
                if question.explanation:
                    session.add(McqExplanation(mcq_id=item.id, explanation=question.explanation, user_id=user_id))
                return item.id, False
        except IntegrityError:
            with self._db.get_session() as session:
                existing = session.query(McqItem).filter(McqItem.content_key == content_key).first()
                if existing is None:
                    raise
                logger.info(f"question_generated_duplicate: reason=content_key_conflict, question_id={existing.id}")
                return existing.id, True
