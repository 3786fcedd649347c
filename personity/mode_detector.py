"""Classify a survey objective into a research mode."""

import logging

from config.config_loader import PromptsConfig
from personity.models import ChatMessage, ModeDetectionResult, Role, SurveyMode
from personity.providers.base import AIProvider, ProviderError
from personity.text_utils import extract_json_object

logger = logging.getLogger(__name__)

PRODUCT_KEYWORDS = ["product", "feature", "pain point", "validate", "test", "build", "app", "tool"]
FEEDBACK_KEYWORDS = ["satisfaction", "feedback", "churn", "cancel", "experience", "event", "service", "employee"]

MAX_CONTEXT_QUESTIONS = 4


def detect_mode_by_keywords(objective: str) -> ModeDetectionResult:
    """Keyword fallback; product keywords win over feedback keywords."""
    lower = objective.lower()

    if any(k in lower for k in PRODUCT_KEYWORDS):
        return ModeDetectionResult(
            mode=SurveyMode.PRODUCT_DISCOVERY,
            confidence="MEDIUM",
            reasoning="Detected product-related keywords",
            suggested_context_questions=[
                "What product or idea are you validating?",
                "Who is your target user or customer?",
                "What specific problem does your product solve?",
            ],
        )

    if any(k in lower for k in FEEDBACK_KEYWORDS):
        return ModeDetectionResult(
            mode=SurveyMode.FEEDBACK_SATISFACTION,
            confidence="MEDIUM",
            reasoning="Detected feedback/satisfaction keywords",
            suggested_context_questions=[
                "What specific experience or service are you evaluating?",
                "Are there any known issues or concerns you want to explore?",
                "What is your current satisfaction baseline or benchmark?",
            ],
        )

    return ModeDetectionResult(
        mode=SurveyMode.EXPLORATORY_GENERAL,
        confidence="LOW",
        reasoning="General research objective detected",
        suggested_context_questions=[
            "What are the main themes or topics you want to explore?",
            "Who is your target audience for this research?",
            "What specific insights are you hoping to uncover?",
        ],
    )


async def detect_survey_mode(
    provider: AIProvider | None,
    objective: str,
    prompts: PromptsConfig,
) -> ModeDetectionResult:
    """LLM classification, falling back to keywords on any provider or parse failure."""
    if provider is None:
        return detect_mode_by_keywords(objective)

    messages = [
        ChatMessage(Role.SYSTEM, "You are a research methodology expert. Always respond with valid JSON only."),
        ChatMessage(Role.USER, prompts.mode_detection.format(objective=objective)),
    ]
    try:
        response = await provider.generate(messages, temperature=0.3, max_tokens=300)
        parsed = extract_json_object(response.content)
        mode = SurveyMode(parsed.get("mode"))
    except (ProviderError, ValueError) as exc:
        logger.warning("Mode detection failed, using keyword fallback: %s", exc)
        return detect_mode_by_keywords(objective)

    questions = parsed.get("suggestedContextQuestions")
    return ModeDetectionResult(
        mode=mode,
        confidence=parsed.get("confidence") or "MEDIUM",
        reasoning=parsed.get("reasoning") or "Mode detected based on objective analysis",
        suggested_context_questions=questions[:MAX_CONTEXT_QUESTIONS] if isinstance(questions, list) else [],
    )
