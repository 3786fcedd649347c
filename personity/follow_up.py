"""Pick a follow-up probe from cues in the respondent's answer.

Cues are checked in a fixed order (emotion, pain, workaround, vagueness,
rich detail) and the first hit wins.
"""

from personity.models import FollowUpSuggestion, Priority
from personity.text_utils import key_phrase, split_sentences

EMOTION_WORDS = [
    "frustrated", "annoyed", "angry", "upset", "disappointed",
    "excited", "happy", "thrilled", "love", "hate",
    "worried", "concerned", "anxious", "stressed",
    "satisfied", "pleased", "delighted",
]

WORKAROUND_PHRASES = [
    "i use", "i do", "i try", "i work around",
    "my process", "my approach", "my method",
    "i handle", "i manage", "i deal with",
]

UNCLEAR_INDICATORS = [
    "kind of", "sort of", "maybe", "i guess",
    "not sure", "i think", "probably",
    "it depends", "sometimes", "occasionally",
]

PAIN_INDICATORS = [
    "problem", "issue", "challenge", "difficult",
    "hard", "struggle", "pain", "frustrating",
    "annoying", "waste", "slow", "broken",
]

MAX_FOLLOW_UPS = 3
MAX_TOPIC_DEPTH = 3


def _first_match(text: str, candidates: list[str]) -> str | None:
    return next((c for c in candidates if c in text), None)


def suggest_follow_up(
    user_response: str,
    topic_depth: int,
    previous_follow_ups: int,
    max_follow_ups: int = MAX_FOLLOW_UPS,
) -> FollowUpSuggestion:
    response_lower = user_response.lower()

    if previous_follow_ups >= max_follow_ups:
        return FollowUpSuggestion(False, "", "Max follow-ups reached for this topic", Priority.LOW)

    emotion = _first_match(response_lower, EMOTION_WORDS)
    if emotion:
        return FollowUpSuggestion(
            should_follow_up=True,
            suggested_probe=f"You mentioned feeling {emotion}. What makes you feel that way?",
            reason=f'Emotion detected: "{emotion}"',
            priority=Priority.HIGH,
        )

    pain = _first_match(response_lower, PAIN_INDICATORS)
    if pain and topic_depth < MAX_TOPIC_DEPTH:
        return FollowUpSuggestion(
            should_follow_up=True,
            suggested_probe=f"You mentioned a {pain}. How often does that happen?",
            reason=f'Pain point detected: "{pain}"',
            priority=Priority.HIGH,
        )

    workaround = _first_match(response_lower, WORKAROUND_PHRASES)
    if workaround and topic_depth < MAX_TOPIC_DEPTH:
        sentence = next(
            (s for s in split_sentences(user_response) if workaround in s.lower()),
            user_response,
        )
        return FollowUpSuggestion(
            should_follow_up=True,
            suggested_probe=f'You said "{workaround}". How well does that work for you?',
            reason=f'Workaround detected: "{sentence.strip()[:50]}..."',
            priority=Priority.MEDIUM,
        )

    unclear = _first_match(response_lower, UNCLEAR_INDICATORS)
    if unclear and len(user_response) > 30:
        return FollowUpSuggestion(
            should_follow_up=True,
            suggested_probe=f'When you say "{unclear}", what do you mean by that?',
            reason=f'Unclear indicator: "{unclear}"',
            priority=Priority.MEDIUM,
        )

    if len(user_response) > 100 and topic_depth < MAX_TOPIC_DEPTH:
        return FollowUpSuggestion(
            should_follow_up=True,
            suggested_probe=f'Tell me more about "{key_phrase(user_response)}".',
            reason="Rich response with details",
            priority=Priority.LOW,
        )

    return FollowUpSuggestion(False, "", "No strong follow-up signal detected", Priority.LOW)


def generate_follow_up_instruction(follow_up: FollowUpSuggestion) -> str:
    """Prompt fragment telling the model how to use the suggestion."""
    if not follow_up.should_follow_up:
        return "No strong follow-up signal. Move to next topic or advance depth."

    return (
        f"FOLLOW-UP DETECTED ({follow_up.priority.value.upper()} PRIORITY):\n"
        f"Reason: {follow_up.reason}\n\n"
        f'Suggested probe: "{follow_up.suggested_probe}"\n\n'
        "Use this as guidance, but adapt to fit the conversation naturally.\n"
        "Keep it brief (1 sentence) and reference their specific words."
    )


def update_follow_up_count(follow_up_counts: dict[str, int], current_topic: str | None) -> dict[str, int]:
    """Return a copy of the per-topic counters with current_topic bumped."""
    counts = dict(follow_up_counts)
    if current_topic:
        counts[current_topic] = counts.get(current_topic, 0) + 1
    return counts
