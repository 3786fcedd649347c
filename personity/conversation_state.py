"""Derive interview state from the transcript and track the three-step ending protocol.

Ending protocol:
    1. the interviewer asks whether anything was missed (REFLECTION_ASKED)
    2. it shows a bulleted summary and asks for confirmation (SUMMARY_SHOWN)
    3. the respondent confirms and the model ends the conversation (CONFIRMED)
"""

import logging
import re

from config.config_loader import KeyInsightsConfig
from personity.models import ConversationState, EndingPhase, Exchange, Role, SessionState, SurveySettings

logger = logging.getLogger(__name__)

LOW_QUALITY_REGEXES = [
    re.compile(r"^(idk|dunno|nah|maybe|ok|fine|yes|no|yep|nope)$", re.IGNORECASE),
    re.compile(r"fuck|shit|damn|ass|bitch", re.IGNORECASE),
    re.compile(r"alien|pluto|teleport|magic|wizard", re.IGNORECASE),
]

_PHASE_ORDER = list(EndingPhase)

REFLECTION_PAIRS = [
    ("anything", "didn't ask"),
    ("anything", "should have"),
    ("anything", "should know"),
    ("anything", "missed"),
    ("is there", "didn't ask"),
]
BULLET_MARKERS = ["•", "-", "1.", "2."]
SUMMARY_PHRASES = [
    "let me make sure",
    "did i capture",
    "here's what",
    "to sum up",
    "summary",
]
CONFIRMATION_WORDS = ["yes", "correct", "right", "accurate"]


def _matches_low_quality(text: str) -> bool:
    return any(pattern.search(text) for pattern in LOW_QUALITY_REGEXES)


def _is_low_quality_reply(text: str) -> bool:
    if len(text) < 20 or _matches_low_quality(text):
        return True
    return len([w for w in text.split() if len(w) > 2]) < 3


def _topic_depth(topic: str, conversation_text: str, ai_messages: list[str]) -> int:
    """0 when never mentioned, else 1 / 2 / 3 by how many AI questions touched it."""
    keywords = topic.lower().split()
    if not any(len(kw) > 3 and kw in conversation_text for kw in keywords):
        return 0

    question_count = sum(1 for q in ai_messages if any(kw in q for kw in keywords))
    if question_count >= 4:
        return 3
    if question_count >= 2:
        return 2
    return 1


def extract_key_insights(user_messages: list[str], cfg: KeyInsightsConfig | None = None) -> list[str]:
    cfg = cfg or KeyInsightsConfig()
    insights = [
        text for text in user_messages
        if cfg.min_length <= len(text) <= cfg.max_length
        and not _matches_low_quality(text)
        and len(text.split()) >= cfg.min_words
    ]
    return insights[-cfg.max_insights:]


def extract_conversation_state(
    exchanges: list[Exchange],
    topics: list[str],
    key_insights_cfg: KeyInsightsConfig | None = None,
) -> ConversationState:
    user_messages = [ex.content for ex in exchanges if ex.role == Role.USER]
    ai_messages = [ex.content.lower() for ex in exchanges if ex.role == Role.ASSISTANT]
    conversation_text = " ".join(ex.content.lower() for ex in exchanges)

    state = ConversationState(
        exchange_count=len(exchanges) // 2,
        last_user_response=user_messages[-1] if user_messages else None,
    )

    for topic in topics:
        depth = _topic_depth(topic, conversation_text, ai_messages)
        if depth:
            state.topic_depth[topic] = depth
            if depth >= 2:
                state.covered_topics.append(topic)

    state.key_insights = extract_key_insights(user_messages, key_insights_cfg)

    recent = user_messages[-2:]
    state.is_flagged = len(recent) == 2 and all(_is_low_quality_reply(text) for text in recent)
    return state


def is_reflection_question(ai_message: str) -> bool:
    lower = ai_message.lower()
    return any(a in lower and b in lower for a, b in REFLECTION_PAIRS)


def is_summary(ai_message: str) -> bool:
    """Bullets plus summary language ("let me make sure", "you mentioned", ...)."""
    lower = ai_message.lower()
    has_bullets = any(marker in ai_message for marker in BULLET_MARKERS)
    has_summary_language = any(p in lower for p in SUMMARY_PHRASES) or (
        "you" in lower and ("mentioned" in lower or "said" in lower)
    )
    return has_bullets and has_summary_language


def is_confirmation(user_message: str) -> bool:
    lower = user_message.lower()
    return any(word in lower for word in CONFIRMATION_WORDS)


def advance_ending_phase(
    current: EndingPhase,
    ai_message: str,
    should_end: bool,
    reason: str | None,
) -> EndingPhase:
    """Next phase given the interviewer's latest message. Never moves backward."""
    if current == EndingPhase.NONE and is_reflection_question(ai_message):
        logger.debug("Ending phase: reflection question asked")
        return EndingPhase.REFLECTION_ASKED
    if current == EndingPhase.REFLECTION_ASKED and is_summary(ai_message):
        logger.debug("Ending phase: summary shown")
        return EndingPhase.SUMMARY_SHOWN
    if current == EndingPhase.SUMMARY_SHOWN and should_end and reason == "completed":
        logger.debug("Ending phase: respondent confirmed")
        return EndingPhase.CONFIRMED
    return current


def later_phase(a: EndingPhase, b: EndingPhase) -> EndingPhase:
    return a if _PHASE_ORDER.index(a) >= _PHASE_ORDER.index(b) else b


def calculate_progress(state: SessionState, settings: SurveySettings, topic_count: int) -> float:
    """Percent complete, by question count or by covered topics, capped at 100."""
    if settings.stop_condition == "questions" and settings.max_questions:
        return min(state.exchange_count / settings.max_questions * 100, 100.0)
    if topic_count == 0:
        return 0.0
    return min(len(state.topics_covered) / topic_count * 100, 100.0)
