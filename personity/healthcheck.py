"""Provider health check: ping the API before running LLM-backed commands."""

import asyncio
import logging

from personity.models import ChatMessage, Role
from personity.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_MESSAGES = [ChatMessage(Role.USER, "Reply with the word OK only.")]
_TIMEOUT_SEC = 15.0


async def check_provider(provider: AIProvider) -> tuple[bool, str]:
    """Returns (ok, error_message); error_message is "" when ok."""
    try:
        await asyncio.wait_for(provider.generate(_PING_MESSAGES, max_tokens=5), timeout=_TIMEOUT_SEC)
        return True, ""
    except Exception as exc:
        logger.debug("Health check failed for %s: %s", provider.name(), exc)
        return False, str(exc)
