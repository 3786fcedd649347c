"""Ask the model for a JSON reply carrying explicit end-of-conversation signals."""

import logging

from config.config_loader import PromptsConfig
from personity.models import ChatMessage, PersonaInsights, StructuredResponse
from personity.providers.base import AIProvider
from personity.text_utils import extract_json_object, strip_code_fences

logger = logging.getLogger(__name__)

CLARIFY_FALLBACK = "Could you clarify that?"

_PERSONA_KEYS = {
    "painLevel": "pain_level",
    "experience": "experience",
    "sentiment": "sentiment",
    "readiness": "readiness",
    "clarity": "clarity",
}


def parse_persona(raw) -> PersonaInsights | None:
    if not isinstance(raw, dict):
        return None
    return PersonaInsights(**{attr: raw.get(key) for key, attr in _PERSONA_KEYS.items()})


def parse_structured_response(text: str) -> StructuredResponse:
    """Parse a model reply into a StructuredResponse. Never raises.

    Anything that is not a JSON object is passed through as a plain,
    non-ending message.
    """
    cleaned = strip_code_fences(text)
    try:
        parsed = extract_json_object(cleaned)
    except ValueError as exc:
        logger.warning("Unstructured model reply, using raw text: %s", exc)
        return StructuredResponse(message=cleaned or CLARIFY_FALLBACK)

    # Opening turn: several short messages sent in sequence
    if isinstance(parsed.get("messages"), list) and parsed["messages"]:
        messages = [
            str(m.get("message", "")) if isinstance(m, dict) else str(m)
            for m in parsed["messages"]
        ]
        return StructuredResponse(message=messages[0] or cleaned, messages=messages)

    return StructuredResponse(
        message=str(parsed.get("message") or cleaned),
        should_end=parsed.get("shouldEnd") is True,
        reason=parsed.get("reason"),
        summary=parsed.get("summary"),
        persona=parse_persona(parsed.get("persona")),
    )


def with_contract(messages: list[ChatMessage], contract: str) -> list[ChatMessage]:
    """Copy of messages with the JSON contract appended to the last one."""
    if not messages:
        return []
    last = messages[-1]
    return [*messages[:-1], ChatMessage(last.role, f"{last.content}\n\n{contract}")]


async def generate_structured_response(
    provider: AIProvider,
    messages: list[ChatMessage],
    prompts: PromptsConfig,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> StructuredResponse:
    """Raises ProviderError when the model call fails; parsing never does."""
    response = await provider.generate(
        with_contract(messages, prompts.structured_contract),
        temperature=temperature,
        max_tokens=max_tokens,
    )
    return parse_structured_response(response.content)
