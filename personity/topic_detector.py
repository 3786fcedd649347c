"""Catch answers that drift away from the survey, or that turn the interview around on the AI."""

import random

from personity.models import TopicCheckResult
from personity.text_utils import extract_main_topic

OFF_TOPIC_INDICATORS = [
    # questions to the AI
    "what do you think",
    "what's your opinion",
    "do you like",
    "what about you",
    "can you help",
    "can you tell me",
    # unrelated subjects
    "favorite color",
    "favorite food",
    "weather",
    "sports",
    "politics",
    "religion",
    "celebrity",
    "movie",
    "tv show",
    "video game",
    # meta questions
    "how long will this take",
    "how many questions",
    "when will this end",
    "who are you",
    "who made you",
]

AI_QUESTION_INDICATORS = [
    "what do you",
    "what's your",
    "do you think",
    "can you",
    "could you",
    "would you",
    "should i",
    "what about you",
]

MIN_CHECK_LENGTH = 10
MIN_DRIFT_LENGTH = 30
SIGNIFICANT_WORD_LENGTH = 4


def _significant_words(text: str) -> list[str]:
    return [w for w in text.lower().split() if len(w) > SIGNIFICANT_WORD_LENGTH]


def is_off_topic(
    user_message: str,
    survey_objective: str,
    topics: list[str],
    last_ai_question: str | None = None,
    rng: random.Random | None = None,
) -> TopicCheckResult:
    """Flag a message that hits an off-topic phrase or shares no keyword with the survey.

    Messages under 10 characters are never flagged; short answers are the
    quality detector's concern.
    """
    if len(user_message) < MIN_CHECK_LENGTH:
        return TopicCheckResult(is_off_topic=False)

    message_lower = user_message.lower()

    off_topic_match = next((i for i in OFF_TOPIC_INDICATORS if i in message_lower), None)
    if off_topic_match:
        return TopicCheckResult(
            is_off_topic=True,
            reason=f'Contains off-topic phrase: "{off_topic_match}"',
            redirect_message=generate_redirect_message(survey_objective, last_ai_question, rng),
        )

    relevant_words = set(_significant_words(survey_objective))
    for topic in topics:
        relevant_words.update(_significant_words(topic))

    relevant_word_count = sum(
        1 for word in message_lower.split()
        if any(word in relevant or relevant in word for relevant in relevant_words)
    )

    if relevant_word_count == 0 and len(user_message) > MIN_DRIFT_LENGTH:
        return TopicCheckResult(
            is_off_topic=True,
            reason="No relevant keywords found in response",
            redirect_message=generate_redirect_message(survey_objective, last_ai_question, rng),
        )

    return TopicCheckResult(is_off_topic=False)


def generate_redirect_message(
    survey_objective: str,
    last_ai_question: str | None = None,
    rng: random.Random | None = None,
) -> str:
    rng = rng or random.Random()
    main_topic = extract_main_topic(survey_objective)
    templates = [
        f"I'm here to learn about {main_topic}. {last_ai_question or 'Could you share your thoughts on that?'}",
        f"Let's focus on {main_topic}. {last_ai_question or 'What is your experience with that?'}",
        f"Going back to {main_topic}: {last_ai_question or 'how do you currently handle that?'}",
    ]
    return rng.choice(templates)


def is_asking_ai_question(user_message: str) -> bool:
    message_lower = user_message.lower()
    return any(indicator in message_lower for indicator in AI_QUESTION_INDICATORS)


def generate_ai_question_response(last_ai_question: str | None = None, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    templates = [
        f"I'm here to learn from you, not the other way around. {last_ai_question or 'Tell me about your experience.'}",
        f"I'd rather hear your perspective. {last_ai_question or 'What is your take on this?'}",
        f"Let's keep the focus on you. {last_ai_question or 'Share your thoughts with me.'}",
    ]
    return rng.choice(templates)
