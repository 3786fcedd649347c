"""Tests for personity/pipeline.py -- the per-turn orchestration, with a mocked provider."""

import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from personity.models import (
    EndingPhase,
    PersonaInsights,
    Session,
    SessionStatus,
    SurveySettings,
    TurnOutcome,
)
from personity.pipeline import FLAGGED_MESSAGE, InvalidMessageError, SessionNotActiveError, TurnPipeline
from personity.providers.base import ProviderError
from tests.conftest import T0, make_exchanges, model_response

NOW = T0 + timedelta(minutes=2)

USER_MSG = "Reps overwrite each other's notes in the spreadsheet and we lose track of leads every week."
GOOD_REPLY = "You mentioned losing track of leads; how often does that happen?"
BAD_REPLY = "Thanks for sharing! What CRM do you use?"


def _reply(message: str, **extra) -> str:
    return json.dumps({"message": message, "shouldEnd": False, **extra})


@pytest.fixture
def pipeline(mock_provider, sample_app_config, rng):
    return TurnPipeline(mock_provider, sample_app_config, rng)


# --- happy path ---


async def test_reply_turn_updates_session(pipeline, mock_provider, sample_session):
    mock_provider.reply_with(_reply(GOOD_REPLY))

    result = await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert result.outcome == TurnOutcome.REPLY
    assert result.ai_response == GOOD_REPLY
    assert result.should_end is False
    assert result.quality.score == 10
    assert result.progress == pytest.approx(100 / 3)

    assert len(sample_session.exchanges) == 4
    assert sample_session.exchanges[-2].content == USER_MSG
    assert sample_session.exchanges[-1].content == GOOD_REPLY
    assert sample_session.exchanges[-1].timestamp == NOW
    state = sample_session.state
    assert state.exchange_count == 1
    assert state.topics_covered == ["lead tracking"]
    assert state.topic_depth["lead tracking"] == 2
    assert sample_session.status == SessionStatus.ACTIVE

    assert mock_provider.generate.call_count == 1
    sent = mock_provider.generate.call_args.args[0]
    assert sent[0].content.startswith("Objective: Understand customer pain points with lead management")
    assert sent[1].content == "How do you currently keep track of your sales leads?"
    assert sent[-1].content.startswith(USER_MSG)
    assert sent[-1].content.endswith('Return JSON: {"message": "...", "shouldEnd": false}')


async def test_persona_is_merged(pipeline, mock_provider, sample_session):
    sample_session.state.persona = PersonaInsights(experience="expert")
    mock_provider.reply_with(_reply(GOOD_REPLY, persona={"painLevel": "high"}))

    await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert sample_session.state.persona.pain_level == "high"
    assert sample_session.state.persona.experience == "expert"


# --- validation ---


async def test_inactive_session_rejected(pipeline, mock_provider, sample_session):
    sample_session.status = SessionStatus.COMPLETED
    with pytest.raises(SessionNotActiveError, match="COMPLETED"):
        await pipeline.process_turn(sample_session, USER_MSG)
    mock_provider.generate.assert_not_called()


async def test_empty_message_rejected(pipeline, sample_session):
    with pytest.raises(InvalidMessageError):
        await pipeline.process_turn(sample_session, "   ")


async def test_long_message_rejected(pipeline, sample_session):
    with pytest.raises(InvalidMessageError, match="2000"):
        await pipeline.process_turn(sample_session, "x" * 2001)
    assert len(sample_session.exchanges) == 2


# --- short-circuits ---


async def test_spam_flags_without_recording(pipeline, mock_provider, sample_survey):
    session = Session(
        token="spam",
        survey=sample_survey,
        exchanges=make_exchanges([("Q1?", "fine"), ("Q2?", "fine")], gap_sec=60),
    )

    result = await pipeline.process_turn(session, "fine", now=NOW)

    assert result.outcome == TurnOutcome.FLAGGED
    assert result.ai_response == FLAGGED_MESSAGE
    assert session.state.is_flagged is True
    assert session.state.flagged_at == NOW
    assert len(session.exchanges) == 4
    mock_provider.generate.assert_not_called()


async def test_crisis_completes_session(pipeline, mock_provider, sample_session):
    result = await pipeline.process_turn(sample_session, "Honestly I want to die", now=NOW)

    assert result.outcome == TurnOutcome.CRISIS
    assert result.should_end is True
    assert result.reason == "crisis_detected"
    assert "988" in result.ai_response
    assert sample_session.status == SessionStatus.COMPLETED
    assert sample_session.completed_at == NOW
    assert len(sample_session.exchanges) == 2
    mock_provider.generate.assert_not_called()


async def test_sensitive_content_redirects(pipeline, mock_provider, sample_session):
    result = await pipeline.process_turn(sample_session, "My manager had surgery so our pipeline stalled", now=NOW)

    assert result.outcome == TurnOutcome.SENSITIVE
    assert result.ai_response.endswith("customer pain points with lead management?")
    assert len(sample_session.exchanges) == 4
    mock_provider.generate.assert_not_called()


async def test_question_to_ai_redirects(pipeline, mock_provider, sample_session):
    result = await pipeline.process_turn(sample_session, "Could you explain what a CRM should do?", now=NOW)

    assert result.outcome == TurnOutcome.REDIRECT
    assert result.ai_response.endswith("How do you currently keep track of your sales leads?")
    assert sample_session.exchanges[-1].content == result.ai_response
    mock_provider.generate.assert_not_called()


async def test_off_topic_redirects(pipeline, mock_provider, sample_session):
    result = await pipeline.process_turn(sample_session, "Yesterday my neighbour cooked dinner outside", now=NOW)

    assert result.outcome == TurnOutcome.OFF_TOPIC
    assert len(sample_session.exchanges) == 4
    mock_provider.generate.assert_not_called()


# --- respondent quality ---


async def test_first_low_quality_answer_re_engages(pipeline, mock_provider, sample_session):
    mock_provider.reply_with("Could you give me an example of a lead you lost?")

    result = await pipeline.process_turn(sample_session, "idk", now=NOW)

    assert result.outcome == TurnOutcome.RE_ENGAGEMENT
    assert result.ai_response == "Could you give me an example of a lead you lost?"
    assert sample_session.state.low_quality_count == 1
    assert sample_session.state.has_re_engaged is True
    assert len(sample_session.exchanges) == 4


async def test_re_engagement_happens_once(pipeline, mock_provider, sample_session):
    sample_session.state.low_quality_count = 1
    sample_session.state.has_re_engaged = True
    mock_provider.reply_with(_reply("What would make tracking leads easier?"))

    result = await pipeline.process_turn(sample_session, "nope", now=NOW)

    assert result.outcome == TurnOutcome.REPLY
    assert sample_session.state.low_quality_count == 2
    assert sample_session.state.is_flagged is False


async def test_low_quality_limit_flags_session(pipeline, mock_provider, sample_session):
    sample_session.state.low_quality_count = 2
    sample_session.state.has_re_engaged = True
    mock_provider.reply_with(_reply("What would make tracking leads easier?"))

    result = await pipeline.process_turn(sample_session, "idk", now=NOW)

    assert result.outcome == TurnOutcome.REPLY
    assert sample_session.state.is_flagged is True
    assert sample_session.state.flag_reason == "Too many low-quality responses (3+)"


# --- reply quality ---


async def test_low_scoring_reply_is_regenerated(pipeline, mock_provider, sample_session):
    mock_provider.reply_with(_reply(BAD_REPLY), _reply(GOOD_REPLY))

    result = await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert result.ai_response == GOOD_REPLY
    assert result.quality.score == 10
    retry = mock_provider.generate.call_args_list[1].args[0]
    assert retry[-2].content == BAD_REPLY
    assert retry[-1].content.startswith("QUALITY CHECK FAILED (Score: 2/10)")


async def test_worse_regeneration_keeps_original(pipeline, mock_provider, sample_session):
    mock_provider.reply_with(_reply(BAD_REPLY), _reply("Great! Thanks for sharing that."))

    result = await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert result.ai_response == BAD_REPLY
    assert result.quality.score == 2


async def test_failed_regeneration_keeps_original(pipeline, mock_provider, sample_session):
    mock_provider.generate = AsyncMock(side_effect=[model_response(_reply(BAD_REPLY)), ProviderError("mock", "boom")])

    result = await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert result.ai_response == BAD_REPLY


# --- provider failures ---


async def test_timeout_retried_with_longer_timeout(pipeline, mock_provider, sample_session, sample_model_config):
    mock_provider._config = sample_model_config
    seen_timeouts = []

    async def flaky_generate(messages, temperature=None, max_tokens=None):
        seen_timeouts.append(mock_provider._config.timeout_sec)
        if len(seen_timeouts) == 1:
            raise ProviderError("mock", "Request timed out after 30s")
        return model_response(_reply(GOOD_REPLY))

    mock_provider.generate = flaky_generate

    result = await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert result.ai_response == GOOD_REPLY
    assert seen_timeouts == [30, 45]
    assert sample_model_config.timeout_sec == 30


async def test_provider_error_leaves_session_untouched(pipeline, mock_provider, sample_session):
    mock_provider.generate = AsyncMock(side_effect=ProviderError("mock", "401 Unauthorized"))

    with pytest.raises(ProviderError):
        await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert len(sample_session.exchanges) == 2
    assert sample_session.state.exchange_count == 0
    assert mock_provider.generate.call_count == 1


# --- ending protocol ---

REFLECTION_ANSWER = "Nothing else really, losing sales leads is the main thing for our team."
NOT_A_SUMMARY = "You mentioned losing sales leads; why does that happen so often?"
FORCED = "Let me make sure I got this right:\n\n• Leads live in a spreadsheet\n\nDid I capture that accurately?"


async def test_skipped_summary_is_forced(pipeline, mock_provider, sample_session):
    sample_session.state.ending_phase = EndingPhase.REFLECTION_ASKED
    mock_provider.reply_with(_reply(NOT_A_SUMMARY), _reply(FORCED))

    result = await pipeline.process_turn(sample_session, REFLECTION_ANSWER, now=NOW)

    assert result.ai_response == FORCED
    assert result.should_end is False
    assert sample_session.state.ending_phase == EndingPhase.SUMMARY_SHOWN

    forced_call = mock_provider.generate.call_args_list[1]
    assert forced_call.kwargs == {"temperature": 0.5, "max_tokens": 400}
    instruction = forced_call.args[0][-1].content
    assert instruction.startswith("Show the summary now:\n• We keep every lead in a shared spreadsheet")


async def test_forced_summary_built_manually_on_failure(pipeline, mock_provider, sample_session):
    sample_session.state.ending_phase = EndingPhase.REFLECTION_ASKED
    mock_provider.generate = AsyncMock(
        side_effect=[model_response(_reply(NOT_A_SUMMARY)), ProviderError("mock", "boom")]
    )

    result = await pipeline.process_turn(sample_session, REFLECTION_ANSWER, now=NOW)

    assert result.ai_response.startswith("Let me make sure I got this right:\n\n• We keep every lead")
    assert f"• {REFLECTION_ANSWER}" in result.ai_response
    assert result.ai_response.endswith("Did I capture that accurately?")
    assert sample_session.state.ending_phase == EndingPhase.SUMMARY_SHOWN


async def test_confirmation_ends_conversation(pipeline, mock_provider, sample_session):
    sample_session.state.ending_phase = EndingPhase.SUMMARY_SHOWN
    mock_provider.reply_with(_reply("You mentioned sales problems; why do they hurt most?"))

    result = await pipeline.process_turn(
        sample_session, "Yes, that's accurate, it covers our sales problems well.", now=NOW
    )

    assert result.should_end is True
    assert result.reason == "completed"
    assert result.summary == result.ai_response
    assert sample_session.state.ending_phase == EndingPhase.CONFIRMED
    assert sample_session.status == SessionStatus.COMPLETED
    assert sample_session.completed_at == NOW


async def test_premature_completion_is_blocked(pipeline, mock_provider, sample_session):
    mock_provider.reply_with(_reply(GOOD_REPLY, shouldEnd=True, reason="completed", summary="Done"))

    result = await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert result.should_end is False
    assert result.summary is None
    assert sample_session.status == SessionStatus.ACTIVE


async def test_disqualification_ends_without_protocol(pipeline, mock_provider, sample_session):
    mock_provider.reply_with(_reply(GOOD_REPLY, shouldEnd=True, reason="disqualified"))

    result = await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert result.should_end is True
    assert result.reason == "disqualified"
    assert sample_session.status == SessionStatus.COMPLETED


async def test_max_questions_ends_with_insight_summary(pipeline, mock_provider, sample_session):
    sample_session.survey.settings = SurveySettings(stop_condition="questions", max_questions=1)
    mock_provider.reply_with(_reply(GOOD_REPLY))

    result = await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert result.should_end is True
    assert result.reason == "max_questions"
    assert result.progress == 100.0
    assert result.summary.startswith("Thank you for your time! Here's what we discussed:\n\n• We keep every lead")
    assert f"• {USER_MSG}" in result.summary
    assert result.summary.endswith("Maximum questions reached.")
    assert sample_session.status == SessionStatus.COMPLETED


# --- contradiction hint ---

ALWAYS = "I always update the CRM right after every single sales call."
RARELY = "Honestly I rarely open the CRM these days, sales calls pile up."


def _contradiction_session(survey) -> Session:
    return Session(token="c1", survey=survey, exchanges=make_exchanges([("How do you update the CRM?", ALWAYS)]))


async def test_contradiction_hint_when_enabled(mock_provider, sample_app_config, sample_survey, rng):
    sample_app_config.conversation.contradiction_check = True
    mock_provider.reply_with(_reply("You mentioned rarely opening the CRM; why is that?"))
    pipeline = TurnPipeline(mock_provider, sample_app_config, rng)

    await pipeline.process_turn(_contradiction_session(sample_survey), RARELY, now=NOW)

    system_prompt = mock_provider.generate.call_args.args[0][0].content
    assert "POSSIBLE CONTRADICTION" in system_prompt


async def test_no_contradiction_hint_by_default(pipeline, mock_provider, sample_survey):
    mock_provider.reply_with(_reply("You mentioned rarely opening the CRM; why is that?"))

    await pipeline.process_turn(_contradiction_session(sample_survey), RARELY, now=NOW)

    system_prompt = mock_provider.generate.call_args.args[0][0].content
    assert "POSSIBLE CONTRADICTION" not in system_prompt


# --- topic coverage ---


async def test_all_topics_covered_prompts_ending(pipeline, mock_provider, sample_session):
    sample_session.state.topics_covered = ["Lead Tracking", "crm usage", "sales process"]
    mock_provider.reply_with(_reply(GOOD_REPLY))

    await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    system_prompt = mock_provider.generate.call_args.args[0][0].content
    assert "ALL TOPICS COVERED" in system_prompt
    assert "Remaining topics: none" in system_prompt
    assert sample_session.state.topics_covered == ["lead tracking", "CRM usage", "sales process"]


async def test_remaining_topics_listed_until_covered(pipeline, mock_provider, sample_session):
    mock_provider.reply_with(_reply(GOOD_REPLY))

    await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    system_prompt = mock_provider.generate.call_args.args[0][0].content
    assert "ALL TOPICS COVERED" not in system_prompt
    assert "Remaining topics: lead tracking, CRM usage, sales process" in system_prompt


async def test_no_ending_hint_with_question_limit(pipeline, mock_provider, sample_session):
    sample_session.survey.settings = SurveySettings(stop_condition="questions", max_questions=10)
    sample_session.state.topics_covered = ["lead tracking", "CRM usage", "sales process"]
    mock_provider.reply_with(_reply(GOOD_REPLY))

    await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert "ALL TOPICS COVERED" not in mock_provider.generate.call_args.args[0][0].content


async def test_covered_topics_are_kept_across_turns(pipeline, mock_provider, sample_session):
    sample_session.state.topics_covered = ["sales process"]
    mock_provider.reply_with(_reply(GOOD_REPLY))

    await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert sample_session.state.topics_covered == ["lead tracking", "sales process"]


async def test_llm_topic_tracking_adds_discussed_topics(pipeline, mock_provider, sample_app_config, sample_session):
    sample_app_config.conversation.llm_topic_tracking = True
    mock_provider.reply_with(_reply(GOOD_REPLY), "2")

    result = await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert mock_provider.generate.call_count == 2
    assert sample_session.state.topics_covered == ["lead tracking", "CRM usage"]
    assert result.progress == pytest.approx(200 / 3)


async def test_llm_topic_tracking_off_by_default(pipeline, mock_provider, sample_session):
    mock_provider.reply_with(_reply(GOOD_REPLY))

    await pipeline.process_turn(sample_session, USER_MSG, now=NOW)

    assert mock_provider.generate.call_count == 1
