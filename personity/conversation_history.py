"""Keep the transcript sent to the model under the context budget.

Token counts are estimated at four characters per token. Once the estimate
passes the configured limit, the middle of the transcript is replaced by a
single system message holding an LLM summary.
"""

import logging
import math
from datetime import datetime, timezone

from config.config_loader import ConversationThresholds, PromptsConfig
from personity.models import ChatMessage, Exchange, Role
from personity.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

KEEP_FIRST_MESSAGES = 4   # first two exchanges
KEEP_LAST_MESSAGES = 12   # last six exchanges
SUMMARY_HEADER = "[CONVERSATION SUMMARY]"


def count_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def total_tokens(messages: list[ChatMessage]) -> int:
    return sum(count_tokens(m.content) for m in messages)


def needs_summarization(
    exchanges: list[Exchange],
    system_prompt: str,
    thresholds: ConversationThresholds | None = None,
) -> bool:
    thresholds = thresholds or ConversationThresholds()
    tokens = count_tokens(system_prompt) + sum(count_tokens(ex.content) for ex in exchanges)
    return tokens > thresholds.summarization_token_limit


def needs_compression(exchanges: list[Exchange], thresholds: ConversationThresholds | None = None) -> bool:
    """More stored messages than the compression threshold."""
    thresholds = thresholds or ConversationThresholds()
    return len(exchanges) > thresholds.compression_threshold


async def summarize_history(
    provider: AIProvider,
    exchanges: list[Exchange],
    prompts: PromptsConfig,
    now: datetime | None = None,
) -> list[Exchange]:
    """Replace the middle of the transcript with a summary message.

    Transcripts too short to have a middle are returned unchanged. If the
    summary call fails the original transcript is returned and the error logged.
    """
    middle = exchanges[KEEP_FIRST_MESSAGES:-KEEP_LAST_MESSAGES]
    if not middle:
        return list(exchanges)

    messages = [ChatMessage(Role.SYSTEM, prompts.summarization)]
    messages.extend(ChatMessage(ex.role, ex.content) for ex in middle)

    try:
        response = await provider.generate(messages, temperature=0.3)
    except ProviderError as exc:
        logger.error("History summarization failed, sending full transcript: %s", exc)
        return list(exchanges)

    logger.info("Summarized %d middle messages", len(middle))
    summary = Exchange(
        role=Role.SYSTEM,
        content=f"{SUMMARY_HEADER}\n{response.content.strip()}",
        timestamp=now or datetime.now(timezone.utc),
    )
    return [*exchanges[:KEEP_FIRST_MESSAGES], summary, *exchanges[-KEEP_LAST_MESSAGES:]]


async def load_conversation_history(
    provider: AIProvider | None,
    exchanges: list[Exchange],
    system_prompt: str,
    prompts: PromptsConfig,
    thresholds: ConversationThresholds | None = None,
) -> list[Exchange]:
    """Transcript to send to the model, summarized only when it is over budget."""
    if provider is None or not needs_summarization(exchanges, system_prompt, thresholds):
        return list(exchanges)
    return await summarize_history(provider, exchanges, prompts)


async def compress_history(
    provider: AIProvider,
    exchanges: list[Exchange],
    prompts: PromptsConfig,
    thresholds: ConversationThresholds | None = None,
    now: datetime | None = None,
) -> list[Exchange]:
    """Summary of everything but the most recent messages, followed by those messages.

    On failure only the recent messages are kept.
    """
    thresholds = thresholds or ConversationThresholds()
    keep = thresholds.compression_keep_recent
    recent, earlier = exchanges[-keep:], exchanges[:-keep]
    if not earlier:
        return list(exchanges)

    transcript = "\n\n".join(f"{ex.role.value.upper()}: {ex.content}" for ex in earlier)
    messages = [
        ChatMessage(Role.SYSTEM, prompts.summarization),
        ChatMessage(Role.USER, transcript),
    ]
    try:
        response = await provider.generate(messages, temperature=0.3, max_tokens=500)
    except ProviderError as exc:
        logger.error("Compression failed, keeping %d recent messages only: %s", len(recent), exc)
        return list(recent)

    logger.debug("Compressed %d messages to %d", len(exchanges), len(recent) + 1)
    summary = Exchange(
        role=Role.SYSTEM,
        content=f"{SUMMARY_HEADER} (earlier exchanges)\n{response.content.strip()}",
        timestamp=now or datetime.now(timezone.utc),
    )
    return [summary, *recent]
