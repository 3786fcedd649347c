"""Post-conversation analysis: summary, themes, quotes and a quality score."""

import logging
from datetime import datetime, timezone

from config.config_loader import GenerationConfig, PromptsConfig
from personity.models import ChatMessage, Exchange, ResponseAnalysis, Role, TopQuote
from personity.providers.base import AIProvider, ProviderError
from personity.text_utils import extract_json_object

logger = logging.getLogger(__name__)

SENTIMENTS = ("POSITIVE", "NEUTRAL", "NEGATIVE")
MAX_THEMES = 5
MAX_QUOTES = 3


def fallback_analysis(now: datetime | None = None) -> ResponseAnalysis:
    return ResponseAnalysis(
        summary="Analysis failed - conversation completed but insights could not be extracted.",
        key_themes=[],
        sentiment="NEUTRAL",
        top_quotes=[],
        pain_points=[],
        opportunities=[],
        quality_score=5,
        timestamp=now or datetime.now(timezone.utc),
    )


def _str_list(value) -> list[str]:
    return [str(v) for v in value] if isinstance(value, list) else []


def normalize_analysis(raw: dict, now: datetime | None = None) -> ResponseAnalysis:
    """Coerce model JSON into a ResponseAnalysis, defaulting anything malformed."""
    quotes = raw.get("topQuotes")
    top_quotes = [
        TopQuote(quote=str(q.get("quote", "")), context=str(q.get("context", "")))
        for q in (quotes[:MAX_QUOTES] if isinstance(quotes, list) else [])
        if isinstance(q, dict)
    ]

    score = raw.get("qualityScore")
    if isinstance(score, (int, float)) and not isinstance(score, bool):
        quality_score = int(max(1, min(10, score)))
    else:
        quality_score = 5

    sentiment = raw.get("sentiment")
    return ResponseAnalysis(
        summary=str(raw.get("summary") or "No summary available"),
        key_themes=_str_list(raw.get("keyThemes"))[:MAX_THEMES],
        sentiment=sentiment if sentiment in SENTIMENTS else "NEUTRAL",
        top_quotes=top_quotes,
        pain_points=_str_list(raw.get("painPoints")),
        opportunities=_str_list(raw.get("opportunities")),
        quality_score=quality_score,
        timestamp=now or datetime.now(timezone.utc),
    )


def format_conversation(exchanges: list[Exchange]) -> str:
    return "\n\n".join(
        f"{'Respondent' if ex.role == Role.USER else 'AI'}: {ex.content}"
        for ex in exchanges
        if ex.role != Role.SYSTEM
    )


async def analyze_conversation(
    provider: AIProvider,
    exchanges: list[Exchange],
    objective: str,
    prompts: PromptsConfig,
    generation: GenerationConfig | None = None,
    now: datetime | None = None,
) -> ResponseAnalysis:
    """Analyze a finished transcript. Returns the fallback analysis on any failure."""
    generation = generation or GenerationConfig()
    messages = [
        ChatMessage(
            Role.SYSTEM,
            "You are a research analyst extracting insights from conversations. Always respond with valid JSON only.",
        ),
        ChatMessage(
            Role.USER,
            prompts.analysis.format(objective=objective, conversation=format_conversation(exchanges)),
        ),
    ]

    logger.info("Analyzing conversation (%d messages) via %s", len(exchanges), provider.name())
    try:
        response = await provider.generate(
            messages,
            temperature=generation.analysis_temperature,
            max_tokens=generation.max_tokens_analysis,
        )
        raw = extract_json_object(response.content)
    except (ProviderError, ValueError) as exc:
        logger.error("Error analyzing conversation: %s", exc)
        return fallback_analysis(now)

    return normalize_analysis(raw, now)
