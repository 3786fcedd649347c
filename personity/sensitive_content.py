"""Sensitive topics get a gentle redirect; acute crisis language ends the session with helplines.

The two paths are independent: crisis detection uses its own, stricter phrase
list and never falls back to the general sensitive-content categories.
"""

import random

from config.config_loader import DEFAULT_HELPLINES, Helpline
from personity.models import CrisisResult, SensitiveCategory, SensitiveContentResult
from personity.text_utils import extract_main_topic

SENSITIVE_TOPICS: dict[SensitiveCategory, list[str]] = {
    SensitiveCategory.MENTAL_HEALTH: [
        "depressed", "depression", "suicidal", "suicide", "self-harm", "self harm",
        "anxiety", "panic attack", "mental health", "therapy", "therapist",
        "medication", "antidepressant", "bipolar", "schizophrenia",
    ],
    SensitiveCategory.TRAUMA: [
        "abuse", "abused", "assault", "assaulted", "trauma", "traumatic",
        "ptsd", "rape", "raped", "molest", "violence", "violent",
    ],
    SensitiveCategory.MEDICAL: [
        "cancer", "tumor", "disease", "illness", "sick", "hospital",
        "surgery", "operation", "diagnosis", "diagnosed", "terminal",
        "dying", "death", "died", "passed away",
    ],
    SensitiveCategory.SUBSTANCE: [
        "addiction", "addicted", "alcoholic", "drug abuse", "overdose",
        "rehab", "rehabilitation", "withdrawal", "sober", "sobriety",
    ],
}

ACKNOWLEDGMENTS: dict[SensitiveCategory, list[str]] = {
    SensitiveCategory.MENTAL_HEALTH: [
        "I understand this is a difficult topic. For our research purposes, could you tell me about",
        "Thank you for sharing that. To keep our focus on the research, let's talk about",
        "I appreciate your openness. For this conversation, I'd like to understand more about",
    ],
    SensitiveCategory.TRAUMA: [
        "I hear you, and I appreciate you sharing. For our research, could we focus on",
        "Thank you for trusting me with that. Let's shift our focus to",
        "I understand. For the purpose of this research, I'd like to learn about",
    ],
    SensitiveCategory.MEDICAL: [
        "I appreciate you sharing that. For our research purposes, could you tell me about",
        "Thank you for mentioning that. To stay focused on the research topic, let's discuss",
        "I understand. For this conversation, I'd like to focus on",
    ],
    SensitiveCategory.SUBSTANCE: [
        "Thank you for sharing. For our research purposes, let's focus on",
        "I appreciate your openness. For this conversation, could we talk about",
        "I hear you. To keep our focus on the research, let's discuss",
    ],
}

CRISIS_KEYWORDS = [
    "want to die",
    "going to kill myself",
    "end my life",
    "suicide plan",
    "not worth living",
    "better off dead",
]


def detect_sensitive_content(
    user_message: str,
    survey_objective: str,
    rng: random.Random | None = None,
) -> SensitiveContentResult:
    """Return the first matching category, checked in declaration order."""
    message_lower = user_message.lower()
    for category, keywords in SENSITIVE_TOPICS.items():
        matched = next((k for k in keywords if k in message_lower), None)
        if matched:
            return SensitiveContentResult(
                is_sensitive=True,
                category=category,
                topic=matched,
                gentle_response=generate_gentle_response(category, survey_objective, rng),
            )
    return SensitiveContentResult(is_sensitive=False)


def generate_gentle_response(
    category: SensitiveCategory,
    survey_objective: str,
    rng: random.Random | None = None,
) -> str:
    rng = rng or random.Random()
    template = rng.choice(ACKNOWLEDGMENTS[category])
    return f"{template} {extract_main_topic(survey_objective)}?"


def format_crisis_message(helplines: list[Helpline]) -> str:
    lines = "\n".join(f"• {h.region}: {h.contact} ({h.name})" for h in helplines)
    return (
        "I'm concerned about what you've shared. If you're in crisis, please reach out "
        "to a crisis helpline:\n\n"
        f"{lines}\n\n"
        "This research conversation isn't equipped to provide the support you need. "
        "Please take care of yourself."
    )


def detect_crisis_indicators(user_message: str, helplines: list[Helpline] | None = None) -> CrisisResult:
    message_lower = user_message.lower()
    if any(keyword in message_lower for keyword in CRISIS_KEYWORDS):
        return CrisisResult(is_crisis=True, message=format_crisis_message(helplines or DEFAULT_HELPLINES))
    return CrisisResult(is_crisis=False)
