"""Score a candidate AI reply before it is sent to the respondent.

A reply starts at 10 points and loses points for each rule it breaks:
canned politeness, enthusiasm filler, running long, ignoring what the
respondent just said, repeating an earlier question, or not asking anything.
"""

import re

from config.config_loader import QualityThresholds
from personity.models import QualityScore, SurveyMode
from personity.text_utils import key_phrase, long_words, normalize, split_sentences


BANNED_PHRASES = [
    "could you tell me a bit more",
    "i'd love to hear more",
    "any extra details would be helpful",
    "could you walk me through",
    "that's really interesting",
    "thanks for sharing that",
    "thanks for sharing",
    "that's interesting",
]

FILLER_PHRASES = [
    "great!",
    "awesome!",
    "perfect!",
    "excellent!",
    "wonderful!",
    "fantastic!",
]

_REFERENCE_PHRASES = ["you mentioned", "you said", "earlier you", "you described", "you told me"]
_DISCOVERY_PROBES = ["why", "how often", "what impact", "what problem"]

_MAX_SCORE = 10
_MIN_SCORE = 1


def calculate_similarity(first: str, second: str) -> float:
    """Share of meaningful words (> 3 chars) the two strings have in common, 0..1."""
    words1 = normalize(first).split()
    words2 = normalize(second).split()
    total = max(len(words1), len(words2))
    if total == 0:
        return 0.0
    common = [w for w in words1 if len(w) > 3 and w in words2]
    return len(common) / total


def _is_repeat(reply: str, previous: str, ratio: float) -> bool:
    a, b = normalize(reply), normalize(previous)
    if not a or not b:
        return False
    if a == b:
        return True
    return calculate_similarity(reply, previous) > ratio


def validate_response_quality(
    ai_response: str,
    last_user_response: str,
    previous_ai_questions: list[str],
    mode: SurveyMode,
    thresholds: QualityThresholds | None = None,
) -> QualityScore:
    thresholds = thresholds or QualityThresholds()
    issues: list[str] = []
    suggestions: list[str] = []
    score = _MAX_SCORE

    response_lower = ai_response.lower()

    for phrase in BANNED_PHRASES:
        if phrase in response_lower:
            score -= 3
            issues.append(f'Contains banned phrase: "{phrase}"')
            suggestions.append("Use direct questions instead of polite filler")

    for phrase in FILLER_PHRASES:
        if phrase in response_lower:
            score -= 2
            issues.append(f'Contains filler phrase: "{phrase}"')
            suggestions.append("Remove enthusiasm markers, stay neutral")

    sentence_count = len(split_sentences(ai_response))
    if sentence_count > thresholds.max_sentences:
        score -= 2
        issues.append(f"Too long: {sentence_count} sentences (max {thresholds.max_sentences})")
        suggestions.append(f"Keep responses to 1-{thresholds.max_sentences} sentences maximum")

    has_reference = any(p in response_lower for p in _REFERENCE_PHRASES) or any(
        w.lower() in response_lower for w in long_words(last_user_response, 5)
    )
    if not has_reference and len(last_user_response) > thresholds.min_response_length:
        score -= 3
        issues.append("No reference to previous user response")
        suggestions.append("Reference specific words/phrases from their last answer")

    if any(_is_repeat(ai_response, q, thresholds.similarity_ratio) for q in previous_ai_questions):
        score -= 4
        issues.append("Question is too similar to previous questions")
        suggestions.append("Ask about a different aspect or move to next topic")

    if "?" not in ai_response:
        score -= 1
        issues.append("Not clearly a question")
        suggestions.append("End with a clear question")

    if mode == SurveyMode.PRODUCT_DISCOVERY:
        has_probe = any(p in response_lower for p in _DISCOVERY_PROBES)
        if not has_probe and len(last_user_response) > 30:
            score -= 2
            issues.append("Missing product discovery probe (why/how often/impact)")
            suggestions.append("Probe for pain points, frequency, or impact")

    score = max(_MIN_SCORE, min(_MAX_SCORE, score))
    return QualityScore(
        score=score,
        passed=score >= thresholds.min_quality_score,
        issues=issues,
        suggestions=suggestions,
    )


def suggest_improvement(ai_response: str, last_user_response: str, quality: QualityScore) -> str:
    """Mechanically repair a failed reply when regeneration is not an option."""
    if quality.passed:
        return ai_response

    improved = ai_response
    if any("No reference" in issue for issue in quality.issues):
        phrase = key_phrase(last_user_response)
        improved = f'You mentioned "{phrase}". {improved}'

    sentences = split_sentences(improved)
    if len(sentences) > 2:
        improved = ". ".join(s.strip() for s in sentences[:2]) + "?"

    for phrase in FILLER_PHRASES + BANNED_PHRASES:
        improved = re.sub(re.escape(phrase), "", improved, flags=re.IGNORECASE)

    return " ".join(improved.split())
