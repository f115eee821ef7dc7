"""Prompt templates for the evaluation pipeline.

Templates use str.format placeholders; literal braces are doubled.
"""

from typing import Dict, List, Optional, Sequence

CRITERIA_SELECTOR_SYSTEM_PROMPT = """You are an intelligent question selector for a comprehensive frontend skills evaluation. Analyze the attempt state and decide the profile of the next question so that the full exam stays balanced.

BALANCE REQUIREMENTS:
1. Difficulty distribution: {easy_target} Easy, {medium_target} Medium, {hard_target} Hard (total {total_questions} questions)
2. Coding threshold: at least {coding_target} coding questions
3. Topic balance: respect topic weights, no single topic above 40% of the exam
4. Bloom diversity: spread questions over several Bloom levels per difficulty tier
5. Subtopic distribution: avoid clustering on one subtopic

TOPIC WEIGHTS & SUBTOPICS:
{topic_breakdown}

AVAILABLE BLOOM LEVELS:
{bloom_levels}

Only select topics and subtopics that appear above. Never pick a difficulty whose remaining quota is 0.

Return STRICT JSON with exactly these keys:
{{
  "difficulty": "Easy" | "Medium" | "Hard",
  "coding_mode": true | false,
  "preferred_topic": "one topic from the list",
  "preferred_subtopic": "one subtopic of that topic",
  "preferred_bloom_level": "one Bloom level",
  "reasoning": "1-2 sentences"
}}"""

CRITERIA_SELECTOR_USER_PROMPT = """Current attempt state:
- Questions answered: {questions_answered}/{total_questions}
- Remaining: {remaining}

Distribution progress:
- Easy: {easy_count}/{easy_target} ({easy_remaining} remaining)
- Medium: {medium_count}/{medium_target} ({medium_remaining} remaining)
- Hard: {hard_count}/{hard_target} ({hard_remaining} remaining)
- Coding: {coding_count} (need at least {coding_target}, {coding_needed} more needed)

Coverage so far:
- Topics: {topic_list}
- Subtopics: {subtopic_list}
- Bloom levels: {bloom_list}

Determine the optimal criteria for question #{next_order}."""

QUESTION_GENERATOR_SYSTEM_PROMPT = """You write multiple-choice questions for a frontend engineering skills evaluation.

RULES:
- Return STRICT JSON only.
- Exactly four plausible options and exactly one correct answer.
- Ground the question in the provided context and cite 1-2 of its sources.
- Prefer practical debugging, code review and real-world scenarios over trivia.
{coding_rule}"""

CODING_RULE = """- Coding mode is ON: put a fenced js/tsx code block of {min_lines}-{max_lines} lines in the dedicated "code" field. Do NOT repeat the snippet inside the question text; refer to it in prose (e.g. "Given the code below..."). The "code" field is REQUIRED."""

NON_CODING_RULE = """- Coding mode is OFF: do not include a code block; set "code" to null."""

QUESTION_GENERATOR_USER_PROMPT = """Labels: {labels}
{subtopics_hint}
CONTEXT:
{context}
{negative_examples}
{extra_instructions}
Return JSON only, in this shape:
{{
  "topic": "{topic}",
  "subtopic": "subtopic name",
  "difficulty": "{difficulty}",
  "bloom_level": "{bloom_level}",
  "question": "The question text",
  "code": {code_placeholder},
  "options": ["Option A", "Option B", "Option C", "Option D"],
  "correct_index": 0,
  "explanation": "Why the correct option is right and the others are wrong",
  "citations": [{{"title": "Source title", "url": "https://..."}}]
}}"""

RELAXED_INSTRUCTION = "The subtopic is only a suggestion: any subtopic of {topic} and any Bloom level is acceptable."

STRICT_INSTRUCTION = (
    "Previous drafts were rejected. Follow the labels exactly, return exactly 4 non-empty options, "
    "a correct_index between 0 and 3, and output nothing but the JSON object."
)

QUESTION_JUDGE_SYSTEM_PROMPT = """You are an MCQ quality judge. Evaluate clarity, correctness, option plausibility, a single correct answer, appropriate difficulty and Bloom level, citations grounded in context, and DUPLICATE RISK.
If the MCQ is semantically similar to any provided neighbor item, the verdict is "revise".
{coding_rule}
Return STRICT JSON: {{"verdict": "approve" | "revise", "reasons": ["..."], "suggestions": ["..."]}}"""

JUDGE_CODING_RULE = (
    "Coding mode is ON: the MCQ must include a js/tsx fenced block between {min_lines} and {max_lines} lines, "
    "the options must reflect the code's behavior, and the question must not repeat the snippet inline."
)

QUESTION_JUDGE_USER_PROMPT = """Context:
{context}

MCQ to evaluate (JSON):
{mcq_json}

Similar existing items (avoid duplicates):
{neighbors}

Assess and return only JSON as specified."""


def format_histogram(histogram: Dict[str, int]) -> str:
    if not histogram:
        return "none yet"
    return ", ".join(f"{key}: {count}" for key, count in histogram.items())


def format_topic_breakdown(topic_map: Dict[str, List[str]], weights: Optional[Dict[str, float]] = None) -> str:
    weights = weights or {}
    ordered = sorted(topic_map.items(), key=lambda item: -float(weights.get(item[0], 0)))
    lines = []
    for topic, subtopics in ordered:
        shown = ", ".join(subtopics[:5])
        more = "..." if len(subtopics) > 5 else ""
        weight = weights.get(topic)
        weight_text = f"{float(weight) * 100:.1f}% weight " if weight is not None else ""
        lines.append(f"{topic}: {weight_text}({len(subtopics)} subtopics) - {shown}{more}")
    return "\n".join(lines)


def format_context_lines(items: Sequence[Dict[str, str]], max_items: int = 8, content_length: int = 700) -> str:
    """Numbered context passages: title and URL, then a content preview."""
    lines = []
    for i, item in enumerate(list(items)[:max_items]):
        title = item.get("title")
        header = f"{i + 1}. {title} - {item.get('url', '')}" if title else f"{i + 1}. {item.get('url', '')}"
        lines.append(f"{header}\n{(item.get('content') or '')[:content_length]}")
    return "\n\n".join(lines) if lines else "(no context available)"


def format_negative_examples(examples: Sequence[str], limit: int = 8) -> str:
    kept = [e for e in examples if isinstance(e, str) and e.strip()][-limit:]
    if not kept:
        return ""
    numbered = "\n".join(f"{i + 1}. {e[:240]}" for i, e in enumerate(kept))
    return (
        "Avoid similar gists (already asked or rejected):\n"
        f"{numbered}\n"
        "Do not copy these. Aim for different angles or scenarios.\n"
    )
