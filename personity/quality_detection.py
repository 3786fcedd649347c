"""Respondent-side quality: spot dismissive answers, nudge once, flag repeat offenders."""

import logging

from config.config_loader import PromptsConfig, QualityThresholds
from personity.models import ChatMessage, Exchange, LowQualityState, QualityCheckResult, Role, SessionState
from personity.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

LOW_QUALITY_PATTERNS = {
    "idk", "dunno", "nothing", "no", "yes", "ok", "maybe",
    "sure", "nope", "nah", "yep", "yeah",
}

RE_ENGAGEMENT_FALLBACK = (
    "I'd love to hear more about that. Could you share a bit more detail or give me an example?"
)


def track_low_quality_response(
    state: SessionState,
    thresholds: QualityThresholds | None = None,
) -> LowQualityState:
    """Count one more low-quality answer. An absent counter starts at 0."""
    thresholds = thresholds or QualityThresholds()
    low_quality_count = (state.low_quality_count or 0) + 1
    should_flag = low_quality_count >= thresholds.low_quality_count_limit

    if should_flag:
        logger.warning("Session flagged for low quality (count=%d)", low_quality_count)

    return LowQualityState(
        exchange_count=state.exchange_count,
        topics_covered=list(state.topics_covered),
        low_quality_count=low_quality_count,
        has_re_engaged=state.has_re_engaged,
        should_flag=should_flag,
    )


def _format_context(exchanges: list[Exchange]) -> str:
    return "\n".join(f"{ex.role.value}: {ex.content}" for ex in exchanges[-4:])


async def check_response_quality(
    user_message: str,
    exchanges: list[Exchange],
    provider: AIProvider | None,
    prompts: PromptsConfig,
    thresholds: QualityThresholds | None = None,
) -> QualityCheckResult:
    """Classify a respondent message.

    One- and two-word dismissals are caught without a model call. Other short
    answers go to the LLM; any failure there is treated as acceptable.
    """
    thresholds = thresholds or QualityThresholds()
    trimmed = user_message.strip().lower()
    word_count = len(trimmed.split())

    if word_count <= 2 and trimmed in LOW_QUALITY_PATTERNS:
        return QualityCheckResult(
            is_low_quality=True,
            should_re_engage=True,
            reason="Very short, non-informative response",
        )

    if word_count > thresholds.short_response_word_count or provider is None:
        return QualityCheckResult(is_low_quality=False, should_re_engage=False)

    messages = [
        ChatMessage(Role.SYSTEM, prompts.low_quality_classifier),
        ChatMessage(
            Role.USER,
            f"Recent conversation:\n{_format_context(exchanges)}\n\n"
            f'User\'s latest response: "{user_message}"\n\n'
            "Is this response LOW_QUALITY or ACCEPTABLE?",
        ),
    ]
    try:
        response = await provider.generate(messages, temperature=0.3, max_tokens=10)
    except ProviderError as exc:
        logger.warning("Quality classification failed, assuming acceptable: %s", exc)
        return QualityCheckResult(is_low_quality=False, should_re_engage=False)

    is_low_quality = response.content.strip().upper() == "LOW_QUALITY"
    return QualityCheckResult(
        is_low_quality=is_low_quality,
        should_re_engage=is_low_quality,
        reason="Generic or non-informative response" if is_low_quality else None,
    )


async def generate_re_engagement_message(
    last_ai_question: str,
    provider: AIProvider | None,
    prompts: PromptsConfig,
) -> str:
    if provider is None:
        return RE_ENGAGEMENT_FALLBACK
    messages = [
        ChatMessage(Role.SYSTEM, prompts.re_engagement),
        ChatMessage(
            Role.USER,
            f'The AI asked: "{last_ai_question}"\n\n'
            "The respondent gave a very brief or generic answer.\n\n"
            "Generate a re-engagement message to encourage them to share more details.",
        ),
    ]
    try:
        response = await provider.generate(messages, temperature=0.7, max_tokens=100)
    except ProviderError as exc:
        logger.warning("Re-engagement generation failed, using fallback: %s", exc)
        return RE_ENGAGEMENT_FALLBACK
    return response.content.strip()
