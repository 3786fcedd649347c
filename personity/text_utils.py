"""Low-level text helpers shared by the heuristic detectors.

No dependency on config or any other project module.
"""

import json
import re

_TOPIC_PREFIX = re.compile(r"^(understand|learn about|research|explore|investigate)", re.IGNORECASE)
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_CODE_FENCE = re.compile(r"```(?:json)?\s*")


def split_sentences(text: str) -> list[str]:
    """Split on runs of sentence punctuation, dropping empty fragments."""
    return [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def long_words(text: str, min_len: int) -> list[str]:
    """Space-separated words strictly longer than min_len, in order."""
    return [w for w in text.split(" ") if len(w) > min_len]


def key_phrase(text: str, min_len: int = 5, count: int = 3) -> str:
    return " ".join(long_words(text, min_len)[:count])


def extract_main_topic(objective: str, max_len: int = 50) -> str:
    """Strip a leading research verb and truncate the objective for templates."""
    topic = _TOPIC_PREFIX.sub("", objective, count=1).strip()
    if len(topic) > max_len:
        topic = topic[:max_len] + "..."
    return topic or "the research topic"


def normalize(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    text = re.sub(r"[^\w\s']", " ", text.lower())
    return " ".join(text.split())


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text.strip()).strip()


def extract_json_object(text: str) -> dict:
    """Parse the outermost {...} block in a model reply.

    Raises:
        ValueError: No object found, or the block is not valid JSON
            (json.JSONDecodeError is a ValueError).
    """
    match = _JSON_OBJECT.search(text)
    if not match:
        raise ValueError("No JSON object found in response")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("Response JSON is not an object")
    return parsed
