"""Helpers for multiple-choice question content.

Covers content hashing, embedding text, fenced-code handling and parsing of
JSON objects out of LLM responses.
"""

import hashlib
import json
import re
from typing import Any, Dict, Optional, Sequence, Tuple

OPTION_LABELS = "ABCD"

_FENCE_RE = re.compile(r"```([A-Za-z0-9_+-]*)[ \t]*\n(.*?)\n?```", re.DOTALL)
_GIST_RE = re.compile(r"[`*_~>\-\s]+")


def compute_content_key(question: str) -> str:
    """Dedup hash of a question's text.

    Markdown punctuation and whitespace runs are collapsed so trivially
    reformatted copies of the same question share a key.
    """
    gist = _GIST_RE.sub(" ", (question or "").lower()).strip()[:600]
    return hashlib.sha256(gist.encode("utf-8")).hexdigest()


def build_embedding_text(
    topic: str,
    question: str,
    options: Sequence[str],
    difficulty: str,
    bloom_level: str,
    subtopic: Optional[str] = None,
    version: Optional[str] = None,
) -> str:
    """Text representation of a question used for embedding."""
    labels = [f"Topic: {topic}"]
    if subtopic:
        labels.append(f"Subtopic: {subtopic}")
    if version:
        labels.append(f"Version: {version}")
    labels.append(f"Difficulty: {difficulty}")
    labels.append(f"Bloom: {bloom_level}")

    option_lines = "\n".join(
        f"{OPTION_LABELS[i]}. {opt}" for i, opt in enumerate(options[:4])
    )
    return "\n\n".join([" | ".join(labels), f"Q: {question}", option_lines])


def extract_first_code_fence(text: str) -> Optional[Tuple[str, str]]:
    """Return (language, content) of the first fenced block in text, if any."""
    match = _FENCE_RE.search(text or "")
    if not match:
        return None
    return match.group(1).lower(), match.group(2)


def normalize_code_block(code: Optional[str], default_lang: str = "tsx") -> Optional[str]:
    """Ensure code is wrapped in a fence. Empty input yields None."""
    if not code or not code.strip():
        return None
    stripped = code.strip()
    if stripped.startswith("```"):
        return stripped
    return f"```{default_lang}\n{stripped}\n```"


def has_valid_code_block(code: Optional[str], min_lines: int = 3, max_lines: int = 50) -> bool:
    """True if `code` holds a fenced block whose body is min_lines..max_lines long."""
    hit = extract_first_code_fence(code or "")
    if not hit:
        return False
    _, body = hit
    lines = [line for line in body.splitlines() if line.strip()]
    return min_lines <= len(lines) <= max_lines


def question_repeats_code_block(question: str, code: Optional[str]) -> bool:
    """True if the question prose repeats the code snippet inline.

    Checks for a fenced block in the prose and for the snippet body appearing
    verbatim (whitespace-insensitive).
    """
    if not code:
        return False
    if extract_first_code_fence(question or ""):
        return True

    hit = extract_first_code_fence(code)
    body = hit[1] if hit else code
    squashed_body = re.sub(r"\s+", "", body)
    if len(squashed_body) < 20:
        return False
    return squashed_body in re.sub(r"\s+", "", question or "")


def parse_json_object(response_text: str) -> Dict[str, Any]:
    """Parse the first JSON object out of an LLM response.

    Handles bare JSON, JSON wrapped in markdown fences, and JSON embedded in
    surrounding prose.

    Raises:
        ValueError: If no JSON object can be parsed
    """
    clean_text = (response_text or "").strip()
    if clean_text.startswith("```"):
        clean_text = re.sub(r"^```(?:json)?\n?", "", clean_text)
        clean_text = re.sub(r"\n?```$", "", clean_text)

    try:
        parsed = json.loads(clean_text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    # Fall back to the outermost {...} span
    start = clean_text.find("{")
    end = clean_text.rfind("}")
    if start != -1 and end > start:
        try:
            parsed = json.loads(clean_text[start:end + 1])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    raise ValueError(f"Could not parse LLM response as JSON: {response_text[:200] if response_text else ''}")
