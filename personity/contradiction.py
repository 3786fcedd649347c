"""Spot answers that contradict something the respondent said earlier."""

import random

from personity.models import Contradiction
from personity.text_utils import long_words

# Each entry is a pair of mutually opposed phrase groups.
CONTRADICTION_PATTERNS: list[tuple[list[str], list[str]]] = [
    # positive vs negative
    (["yes", "definitely", "absolutely", "always", "love", "great"], ["no", "never", "hate", "terrible", "awful"]),
    # frequency
    (["always", "constantly", "every day", "all the time"], ["rarely", "never", "sometimes", "occasionally"]),
    # experience
    (["expert", "professional", "years of experience", "very familiar"], ["new to", "just started", "beginner", "not familiar"]),
    # usage
    (["i use", "i have", "i do"], ["i don't use", "i don't have", "i don't do", "never used"]),
]

NEGATION_MARKERS = ["don't", "doesn't", "not", "never"]
AFFIRMATION_MARKERS = ["do", "does", "always", "yes"]
SELF_CORRECTION_MARKERS = ["actually", "i meant", "correction", "sorry", "i mean"]

MIN_STATEMENT_LENGTH = 30


def _has_any(text: str, phrases: list[str]) -> bool:
    return any(p in text for p in phrases)


def _detect_direct_negation(prev: str, current: str) -> bool:
    """'I do X' followed by 'I don't do X': negation now, affirmation before, shared content words."""
    has_negation = _has_any(current, NEGATION_MARKERS)
    has_affirmation = _has_any(prev, AFFIRMATION_MARKERS)
    current_words = long_words(current, 3)
    overlap = [w for w in long_words(prev, 3) if w in current_words]
    return has_negation and has_affirmation and len(overlap) >= 2


def _extract(text: str) -> str:
    return " ".join(long_words(text, 4)[:5])


def generate_clarifying_question(statement1: str, statement2: str, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    phrase1, phrase2 = _extract(statement1), _extract(statement2)
    templates = [
        f'Earlier you mentioned "{phrase1}", but now you\'re saying "{phrase2}". Can you clarify?',
        f'I want to make sure I understand: you said "{phrase1}" before, but "{phrase2}" now. Which is more accurate?',
        f'Help me understand: "{phrase1}" vs "{phrase2}". How do these fit together?',
    ]
    return rng.choice(templates)


def detect_contradiction(
    current_response: str,
    previous_responses: list[str],
    rng: random.Random | None = None,
) -> Contradiction:
    """Compare against each earlier answer in order; the first conflict found is returned."""
    current_lower = current_response.lower()

    for prev_response in previous_responses:
        prev_lower = prev_response.lower()

        conflict = any(
            (_has_any(prev_lower, first) and _has_any(current_lower, second))
            or (_has_any(prev_lower, second) and _has_any(current_lower, first))
            for first, second in CONTRADICTION_PATTERNS
        )
        if conflict or _detect_direct_negation(prev_lower, current_lower):
            return Contradiction(
                detected=True,
                statement1=prev_response,
                statement2=current_response,
                clarifying_question=generate_clarifying_question(prev_response, current_response, rng),
            )

    return Contradiction(detected=False)


def should_ask_clarification(contradiction: Contradiction, current_response: str) -> bool:
    """Skip self-corrections and statements too short to be worth questioning."""
    if not contradiction.detected:
        return False

    if _has_any(current_response.lower(), SELF_CORRECTION_MARKERS):
        return False

    if len(current_response) < MIN_STATEMENT_LENGTH or len(contradiction.statement1) < MIN_STATEMENT_LENGTH:
        return False

    return True
