"""Tests for personity/prompts.py."""

from personity.models import ConversationState, EndingPhase, PersonaInsights, SurveySettings
from personity.prompts import build_system_prompt, format_state_block, next_focus

TOPICS = ["lead tracking", "CRM usage", "sales process"]


def test_next_focus_advances_started_topic_first():
    state = ConversationState(exchange_count=2, topic_depth={"CRM usage": 1})
    assert next_focus(state, TOPICS) == 'Advance "CRM usage" to L2 (Experience)'


def test_next_focus_starts_unexplored_topic():
    state = ConversationState(exchange_count=2, topic_depth={"lead tracking": 3})
    assert next_focus(state, TOPICS) == 'Start exploring "CRM usage" (L1 (Awareness))'


def test_next_focus_after_all_topics():
    state = ConversationState(exchange_count=9, topic_depth={t: 3 for t in TOPICS})
    assert next_focus(state, TOPICS).startswith("All topics explored.")


def test_next_focus_follows_ending_phase():
    state = ConversationState(exchange_count=9, ending_phase=EndingPhase.SUMMARY_SHOWN)
    assert next_focus(state, TOPICS) == "Respondent saw the summary. End the conversation now (step 3)."


def test_state_block_contents():
    state = ConversationState(
        exchange_count=4,
        covered_topics=["lead tracking"],
        topic_depth={"lead tracking": 2},
        key_insights=["We lose notes whenever two reps edit the same row."],
        last_user_response="x" * 250,
        is_flagged=True,
    )
    block = format_state_block(state, TOPICS, PersonaInsights(pain_level="high"))

    assert block.startswith("Exchange 4")
    assert "- L2 (Experience): lead tracking" in block
    assert "- Not started: CRM usage" in block
    assert "Covered topics (L2+): 1/3" in block
    assert "Remaining topics: CRM usage, sales process" in block
    assert "- pain_level: high" in block
    assert '1. "We lose notes whenever two reps edit the same row."' in block
    assert '"' + "x" * 200 + '..."' in block
    assert "Quality status: FLAGGED" in block


def test_state_block_defaults():
    block = format_state_block(ConversationState(exchange_count=0), TOPICS)
    assert "Persona so far:\nStill gathering..." in block
    assert "Key insights:\nNone yet" in block
    assert "Last respondent answer" not in block
    assert "Quality status: good" in block


def test_build_system_prompt(sample_survey, sample_prompts_config):
    prompt = build_system_prompt(sample_survey, ConversationState(exchange_count=1), sample_prompts_config)

    assert "Objective: Understand customer pain points with lead management" in prompt
    assert "Mode: PRODUCT_DISCOVERY" in prompt
    assert "Tone: conversational and approachable" in prompt
    assert "Length: 8-12" in prompt
    assert "- CRM usage" in prompt
    assert "Context: B2B sales teams of 5-50 people." in prompt
    assert "Exchange 1" in prompt


def test_build_system_prompt_defaults(sample_survey, sample_prompts_config):
    sample_survey.context = "   "
    sample_survey.topics = []
    sample_survey.settings = SurveySettings(length="deep", tone="unknown")

    prompt = build_system_prompt(sample_survey, ConversationState(exchange_count=0), sample_prompts_config)

    assert "Context: (none provided)" in prompt
    assert "Topics:\n- (open-ended)" in prompt
    assert "Length: 13-20" in prompt
    assert "Tone: conversational and approachable" in prompt
