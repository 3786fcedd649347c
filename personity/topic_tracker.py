"""Which survey topics have been covered so far."""

import logging

from config.config_loader import PromptsConfig
from personity.models import ChatMessage, Exchange, Role
from personity.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

RECENT_EXCHANGES = 6


def get_remaining_topics(covered_topics: list[str], all_topics: list[str]) -> list[str]:
    """Topics not yet covered, in survey order. Names compare case-insensitively."""
    covered = {t.strip().lower() for t in covered_topics}
    return [topic for topic in all_topics if topic.strip().lower() not in covered]


def are_all_topics_covered(covered_topics: list[str], all_topics: list[str]) -> bool:
    return not get_remaining_topics(covered_topics, all_topics)


def merge_covered_topics(all_topics: list[str], *covered: list[str]) -> list[str]:
    """Union of covered topic lists, in survey order."""
    remaining = get_remaining_topics([t for group in covered for t in group], all_topics)
    return [topic for topic in all_topics if topic not in remaining]


def _parse_topic_numbers(text: str, all_topics: list[str]) -> list[str]:
    """Map a reply like '1,3' to topic names; out-of-range or non-numeric parts are ignored."""
    result = text.strip().lower()
    if result == "none":
        return []

    found: list[str] = []
    for part in result.split(","):
        part = part.strip()
        if not part.isdigit():
            continue
        index = int(part) - 1
        if 0 <= index < len(all_topics) and all_topics[index] not in found:
            found.append(all_topics[index])
    return found


async def identify_discussed_topics(
    provider: AIProvider,
    exchanges: list[Exchange],
    all_topics: list[str],
    prompts: PromptsConfig,
) -> list[str]:
    """Ask the model which topics the recent conversation covered. Empty list on failure."""
    numbered = "\n".join(f"{i}. {topic}" for i, topic in enumerate(all_topics, start=1))
    recent = "\n\n".join(f"{ex.role.value}: {ex.content}" for ex in exchanges[-RECENT_EXCHANGES:])
    messages = [
        ChatMessage(Role.SYSTEM, prompts.topic_identification),
        ChatMessage(
            Role.USER,
            f"Topics to cover:\n{numbered}\n\n"
            f"Recent conversation:\n{recent}\n\n"
            'Which topic numbers have been meaningfully discussed? Respond with only numbers separated by commas, or "none".',
        ),
    ]
    try:
        response = await provider.generate(messages, temperature=0.3, max_tokens=50)
    except ProviderError as exc:
        logger.error("Error identifying topics: %s", exc)
        return []

    return _parse_topic_numbers(response.content, all_topics)
