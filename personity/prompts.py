"""Build the per-turn system prompt from the survey and the derived conversation state."""

from config.config_loader import PromptsConfig
from personity.models import ConversationState, EndingPhase, PersonaInsights, SurveyConfig
from personity.topic_tracker import get_remaining_topics

TONE_STYLES = {
    "professional": "professional but warm",
    "friendly": "conversational and approachable",
    "casual": "relaxed and natural",
}

TARGET_QUESTIONS = {
    "quick": "5-7",
    "standard": "8-12",
    "deep": "13-20",
}

DEPTH_LABELS = {
    0: "Not started",
    1: "L1 (Awareness)",
    2: "L2 (Experience)",
    3: "L3 (Impact) - complete",
}

ENDING_STATUS = {
    EndingPhase.NONE: "Not started. Continue the interview, or start the ending protocol when ready.",
    EndingPhase.REFLECTION_ASKED: "Step 1 done: reflection question asked. Show the summary after they respond.",
    EndingPhase.SUMMARY_SHOWN: "Step 2 done: summary shown. End the conversation after they confirm.",
    EndingPhase.CONFIRMED: "Step 3 done: respondent confirmed. End the conversation now.",
}

LAST_RESPONSE_PREVIEW = 200


def next_focus(state: ConversationState, topics: list[str]) -> str:
    if state.ending_phase == EndingPhase.REFLECTION_ASKED:
        return "Respondent answered the reflection question. Show the summary now (step 2)."
    if state.ending_phase == EndingPhase.SUMMARY_SHOWN:
        return "Respondent saw the summary. End the conversation now (step 3)."
    if state.ending_phase == EndingPhase.CONFIRMED:
        return 'Conversation should have ended. Set "shouldEnd": true.'

    for topic in topics:
        depth = state.topic_depth.get(topic, 0)
        if 0 < depth < 3:
            return f'Advance "{topic}" to {DEPTH_LABELS[depth + 1]}'

    for topic in topics:
        if not state.topic_depth.get(topic):
            return f'Start exploring "{topic}" ({DEPTH_LABELS[1]})'

    return "All topics explored. Start the ending protocol (step 1: ask the reflection question)."


def _persona_lines(persona: PersonaInsights | None) -> str:
    if persona is None:
        return "Still gathering..."
    lines = [f"- {key}: {value}" for key, value in vars(persona).items() if value]
    return "\n".join(lines) or "Still gathering..."


def format_state_block(
    state: ConversationState,
    topics: list[str],
    persona: PersonaInsights | None = None,
) -> str:
    depth_lines = "\n".join(
        f"- {DEPTH_LABELS[state.topic_depth.get(topic, 0)]}: {topic}" for topic in topics
    )
    covered = "\n".join(f"- {t}" for t in state.covered_topics) or "None yet"
    insights = "\n".join(f'{i}. "{text}"' for i, text in enumerate(state.key_insights, start=1)) or "None yet"

    parts = [
        f"Exchange {state.exchange_count}",
        f"Topic depth:\n{depth_lines or '- (no topics)'}",
        f"Covered topics (L2+): {len(state.covered_topics)}/{len(topics)}\n{covered}",
        f"Remaining topics: {', '.join(get_remaining_topics(state.covered_topics, topics)) or 'none'}",
        f"Persona so far:\n{_persona_lines(persona)}",
        f"Key insights:\n{insights}",
    ]
    if state.last_user_response:
        preview = state.last_user_response[:LAST_RESPONSE_PREVIEW]
        if len(state.last_user_response) > LAST_RESPONSE_PREVIEW:
            preview += "..."
        parts.append(f'Last respondent answer:\n"{preview}"')
    parts.append(
        "Quality status: "
        + ("FLAGGED - consider ending if the next answer is also low quality" if state.is_flagged else "good")
    )
    parts.append(f"Ending phase: {ENDING_STATUS[state.ending_phase]}")
    parts.append(f"Next focus: {next_focus(state, topics)}")
    return "\n\n".join(parts)


def build_system_prompt(
    survey: SurveyConfig,
    state: ConversationState,
    prompts: PromptsConfig,
    persona: PersonaInsights | None = None,
) -> str:
    topics = "\n".join(f"- {t}" for t in survey.topics) or "- (open-ended)"
    return prompts.system.format(
        objective=survey.objective,
        mode=survey.mode.value,
        tone=TONE_STYLES.get(survey.settings.tone, TONE_STYLES["friendly"]),
        length=TARGET_QUESTIONS.get(survey.settings.length, TARGET_QUESTIONS["standard"]),
        topics=topics,
        context=survey.context.strip() or "(none provided)",
        state_block=format_state_block(state, survey.topics, persona),
    )
