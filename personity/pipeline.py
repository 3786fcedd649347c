"""Per-turn orchestration: run the detectors in order, call the model, update the session.

Order of checks for each respondent message:
    validation -> spam -> crisis -> sensitive content -> question to the AI ->
    off-topic -> respondent quality -> generation -> reply validation ->
    ending protocol -> completion

The first check that produces a reply ends the turn.
"""

import logging
import random
from datetime import datetime, timezone

from config.config_loader import AppConfig
from personity.contradiction import detect_contradiction, should_ask_clarification
from personity.conversation_history import compress_history, load_conversation_history, needs_compression
from personity.conversation_state import (
    advance_ending_phase,
    calculate_progress,
    extract_conversation_state,
    is_confirmation,
    is_summary,
    later_phase,
)
from personity.follow_up import generate_follow_up_instruction, suggest_follow_up, update_follow_up_count
from personity.models import (
    ChatMessage,
    EndingPhase,
    Exchange,
    PersonaInsights,
    QualityScore,
    Role,
    Session,
    SessionStatus,
    StructuredResponse,
    TurnOutcome,
    TurnResult,
)
from personity.prompts import build_system_prompt
from personity.providers.base import AIProvider, ProviderError
from personity.quality_detection import (
    check_response_quality,
    generate_re_engagement_message,
    track_low_quality_response,
)
from personity.quality_validator import validate_response_quality
from personity.sensitive_content import detect_crisis_indicators, detect_sensitive_content
from personity.spam_detection import check_for_spam, flag_session
from personity.structured_response import generate_structured_response
from personity.topic_detector import generate_ai_question_response, is_asking_ai_question, is_off_topic
from personity.topic_tracker import are_all_topics_covered, identify_discussed_topics, merge_covered_topics

logger = logging.getLogger(__name__)

FLAGGED_MESSAGE = "Your session has been flagged for suspicious activity."
DEFAULT_INSIGHT = "User shared their perspective on the topic"
SUMMARY_INSIGHT_LENGTH = 100
ALL_TOPICS_COVERED_HINT = "ALL TOPICS COVERED. Start the ending protocol now (step 1: ask the reflection question)."


class SessionNotActiveError(Exception):
    """Raised when a turn is submitted for a session that is not ACTIVE."""

    def __init__(self, token: str, status: SessionStatus) -> None:
        self.token = token
        self.status = status
        super().__init__(f"Session {token} is not active (status: {status.value})")


class InvalidMessageError(ValueError):
    """Raised for an empty or over-long respondent message."""


def _summary_bullets(insights: list[str], limit: int | None = None) -> str:
    return "\n".join(f"• {text[:limit] if limit else text}" for text in insights)


def _merge_persona(current: PersonaInsights, update: PersonaInsights | None) -> None:
    if update is None:
        return
    for key, value in vars(update).items():
        if value:
            setattr(current, key, value)


class TurnPipeline:
    """Processes one respondent message against a session, mutating it in place."""

    def __init__(self, provider: AIProvider, config: AppConfig, rng: random.Random | None = None) -> None:
        self._provider = provider
        self._config = config
        self._rng = rng or random.Random()

    # --- helpers ---

    async def _generate(
        self,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> StructuredResponse:
        """Structured generation, retrying once on timeout with 1.5x the timeout.

        Raises:
            ProviderError: If the call fails, or times out twice.
        """
        generation = self._config.generation
        temperature = generation.temperature if temperature is None else temperature
        max_tokens = max_tokens or generation.max_tokens_conversation
        try:
            return await generate_structured_response(
                self._provider, messages, self._config.prompts, temperature, max_tokens
            )
        except ProviderError as exc:
            if "timed out" not in str(exc).lower():
                raise

            cfg = getattr(self._provider, "_config", None)
            original_timeout: int | None = None
            if cfg is not None and hasattr(cfg, "timeout_sec"):
                original_timeout = cfg.timeout_sec
                cfg.timeout_sec = int(original_timeout * 1.5)
                logger.warning("Provider %s timed out, retrying with %ds (1.5x)", self._provider.name(), cfg.timeout_sec)
            else:
                logger.warning("Provider %s timed out, retrying", self._provider.name())
            try:
                return await generate_structured_response(
                    self._provider, messages, self._config.prompts, temperature, max_tokens
                )
            finally:
                if cfg is not None and original_timeout is not None:
                    cfg.timeout_sec = original_timeout

    async def _forced_summary(self, messages: list[ChatMessage], insights: list[str]) -> str:
        """Summary message for when the model skipped step 2 of the ending protocol."""
        insights = insights or [DEFAULT_INSIGHT]
        instruction = self._config.prompts.forced_summary.format(
            insights=_summary_bullets(insights, SUMMARY_INSIGHT_LENGTH)
        )
        try:
            forced = await self._generate([*messages, ChatMessage(Role.SYSTEM, instruction)], temperature=0.5, max_tokens=400)
        except ProviderError as exc:
            logger.error("Failed to generate forced summary, building it manually: %s", exc)
            return f"Let me make sure I got this right:\n\n{_summary_bullets(insights)}\n\nDid I capture that accurately?"
        logger.debug("Generated forced summary")
        return forced.message

    def _validate(self, session: Session, message: str) -> None:
        if session.status != SessionStatus.ACTIVE:
            raise SessionNotActiveError(session.token, session.status)
        if not message.strip():
            raise InvalidMessageError("Message must not be empty")
        limit = self._config.conversation.max_message_length
        if len(message) > limit:
            raise InvalidMessageError(f"Message exceeds {limit} characters ({len(message)})")

    def _progress(self, session: Session) -> float:
        return calculate_progress(session.state, session.survey.settings, len(session.survey.topics))

    def _short_reply(self, session: Session, message: str, reply: str, outcome: TurnOutcome, now: datetime) -> TurnResult:
        """Record a canned reply without calling the model."""
        session.exchanges.append(Exchange(Role.USER, message, now))
        session.exchanges.append(Exchange(Role.ASSISTANT, reply, now))
        return TurnResult(ai_response=reply, outcome=outcome, progress=self._progress(session))

    # --- main entry point ---

    async def process_turn(self, session: Session, message: str, now: datetime | None = None) -> TurnResult:
        """Process one respondent message.

        Raises:
            SessionNotActiveError: Session status is not ACTIVE.
            InvalidMessageError: Message empty or too long.
            ProviderError: The main generation call failed.
        """
        now = now or datetime.now(timezone.utc)
        self._validate(session, message)

        cfg = self._config
        survey, state, exchanges = session.survey, session.state, session.exchanges
        last_ai_message = next((ex.content for ex in reversed(exchanges) if ex.role == Role.ASSISTANT), None)

        spam = check_for_spam(exchanges, message, cfg.fraud)
        if spam.is_spam:
            flag_session(state, spam.reason or "Spam detected", now)
            logger.info("Turn stopped: spam (%s)", spam.reason)
            return TurnResult(ai_response=FLAGGED_MESSAGE, outcome=TurnOutcome.FLAGGED, reason=spam.reason)

        crisis = detect_crisis_indicators(message, cfg.helplines)
        if crisis.is_crisis:
            session.status = SessionStatus.COMPLETED
            session.completed_at = now
            logger.info("Turn stopped: crisis language detected, session completed")
            return TurnResult(
                ai_response=crisis.message or "",
                outcome=TurnOutcome.CRISIS,
                should_end=True,
                reason="crisis_detected",
            )

        sensitive = detect_sensitive_content(message, survey.objective, self._rng)
        if sensitive.is_sensitive:
            logger.info("Turn redirected: sensitive content (%s)", sensitive.category.value)
            return self._short_reply(session, message, sensitive.gentle_response or "", TurnOutcome.SENSITIVE, now)

        if is_asking_ai_question(message):
            logger.info("Turn redirected: respondent asked the AI a question")
            reply = generate_ai_question_response(last_ai_message, self._rng)
            return self._short_reply(session, message, reply, TurnOutcome.REDIRECT, now)

        topic_check = is_off_topic(message, survey.objective, survey.topics, last_ai_message, self._rng)
        if topic_check.is_off_topic:
            logger.info("Turn redirected: %s", topic_check.reason)
            return self._short_reply(session, message, topic_check.redirect_message or "", TurnOutcome.OFF_TOPIC, now)

        user_quality = await check_response_quality(message, exchanges, self._provider, cfg.prompts, cfg.quality)
        if user_quality.is_low_quality and user_quality.should_re_engage:
            tracked = track_low_quality_response(state, cfg.quality)
            state.low_quality_count = tracked.low_quality_count
            if tracked.should_flag:
                flag_session(state, f"Too many low-quality responses ({cfg.quality.low_quality_count_limit}+)", now)

            if not tracked.has_re_engaged and tracked.low_quality_count < cfg.quality.low_quality_count_limit:
                reply = await generate_re_engagement_message(last_ai_message or "", self._provider, cfg.prompts)
                state.has_re_engaged = True
                logger.info("Turn re-engaged: %s", user_quality.reason)
                return self._short_reply(session, message, reply, TurnOutcome.RE_ENGAGEMENT, now)

        # --- model turn ---

        conv_state = extract_conversation_state(exchanges, survey.topics, cfg.key_insights)
        conv_state.ending_phase = state.ending_phase
        conv_state.covered_topics = merge_covered_topics(survey.topics, conv_state.covered_topics, state.topics_covered)

        current_topic = conv_state.covered_topics[-1] if conv_state.covered_topics else None
        follow_up = suggest_follow_up(
            message,
            topic_depth=conv_state.topic_depth.get(current_topic, 0) if current_topic else 0,
            previous_follow_ups=state.follow_up_counts.get(current_topic, 0) if current_topic else 0,
            max_follow_ups=cfg.conversation.max_follow_ups_per_topic,
        )
        logger.debug("Follow-up suggestion: %s (%s)", follow_up.reason, follow_up.priority.value)

        system_prompt = build_system_prompt(survey, conv_state, cfg.prompts, state.persona)
        if (
            survey.settings.stop_condition == "topics_covered"
            and survey.topics
            and state.ending_phase == EndingPhase.NONE
            and are_all_topics_covered(conv_state.covered_topics, survey.topics)
        ):
            logger.debug("All topics covered, prompting for the ending protocol")
            system_prompt += f"\n\n{ALL_TOPICS_COVERED_HINT}"
        if follow_up.should_follow_up:
            system_prompt += f"\n\n{generate_follow_up_instruction(follow_up)}"
            state.follow_up_counts = update_follow_up_count(state.follow_up_counts, current_topic)

        if cfg.conversation.contradiction_check:
            previous_answers = [ex.content for ex in exchanges if ex.role == Role.USER]
            contradiction = detect_contradiction(message, previous_answers, self._rng)
            if should_ask_clarification(contradiction, message):
                logger.debug("Possible contradiction with: %s", contradiction.statement1)
                system_prompt += (
                    "\n\nPOSSIBLE CONTRADICTION with an earlier answer. If it matters, ask: "
                    f'"{contradiction.clarifying_question}"'
                )

        if needs_compression(exchanges, cfg.conversation):
            history = await compress_history(self._provider, exchanges, cfg.prompts, cfg.conversation, now)
        else:
            history = await load_conversation_history(
                self._provider, exchanges, system_prompt, cfg.prompts, cfg.conversation
            )

        messages = [
            ChatMessage(Role.SYSTEM, system_prompt),
            *(ChatMessage(ex.role, ex.content) for ex in history),
            ChatMessage(Role.USER, message),
        ]

        structured = await self._generate(messages)

        previous_questions = [ex.content for ex in exchanges if ex.role == Role.ASSISTANT]
        quality = validate_response_quality(
            structured.message, message, previous_questions, survey.mode, cfg.quality
        )
        logger.debug("Reply quality %d/10 (passed=%s): %s", quality.score, quality.passed, quality.issues)

        if not quality.passed:
            structured, quality = await self._regenerate(structured, quality, messages, message, previous_questions, session)

        user_exchange = Exchange(Role.USER, message, now)
        insights = extract_conversation_state(
            [*exchanges, user_exchange], survey.topics, cfg.key_insights
        ).key_insights

        # --- ending protocol ---

        current_phase = state.ending_phase
        new_phase = advance_ending_phase(current_phase, structured.message, structured.should_end, structured.reason)

        if current_phase == EndingPhase.REFLECTION_ASKED and not is_summary(structured.message):
            logger.warning("Ending phase validation failed: summary step was skipped")
            structured.message = await self._forced_summary(messages, insights)
            structured.should_end = False
            new_phase = EndingPhase.SUMMARY_SHOWN
        elif current_phase == EndingPhase.REFLECTION_ASKED and structured.should_end:
            logger.warning("Ending phase validation failed: tried to end at step 2")
            structured.should_end = False

        if current_phase == EndingPhase.SUMMARY_SHOWN and not structured.should_end and is_confirmation(message):
            logger.warning("Ending phase validation failed: respondent confirmed but model did not end")
            structured.should_end = True
            structured.reason = "completed"
            structured.summary = structured.message
            new_phase = EndingPhase.CONFIRMED

        state.ending_phase = later_phase(current_phase, new_phase)

        # --- transcript and state ---

        exchanges.append(user_exchange)
        exchanges.append(Exchange(Role.ASSISTANT, structured.message, now))

        updated = extract_conversation_state(exchanges, survey.topics, cfg.key_insights)
        state.exchange_count += 1
        state.topics_covered = merge_covered_topics(survey.topics, state.topics_covered, updated.covered_topics)
        if cfg.conversation.llm_topic_tracking and not are_all_topics_covered(state.topics_covered, survey.topics):
            discussed = await identify_discussed_topics(self._provider, exchanges, survey.topics, cfg.prompts)
            state.topics_covered = merge_covered_topics(survey.topics, state.topics_covered, discussed)
        state.topic_depth = updated.topic_depth
        state.key_insights = updated.key_insights
        _merge_persona(state.persona, structured.persona)
        if updated.is_flagged:
            flag_session(state, "Consecutive low-quality responses", now)

        # --- completion ---

        should_end = structured.should_end
        reason = structured.reason
        summary = (structured.summary or structured.message) if should_end else None

        if should_end and reason == "completed" and state.ending_phase not in (
            EndingPhase.SUMMARY_SHOWN,
            EndingPhase.CONFIRMED,
        ):
            logger.warning("Model tried to end without the ending protocol, continuing")
            should_end, summary = False, None

        settings = survey.settings
        if settings.stop_condition == "questions" and settings.max_questions and state.exchange_count >= settings.max_questions:
            if not should_end:
                reason = "max_questions"
            should_end = True
            if not structured.summary:
                summary = (
                    f"Thank you for your time! Here's what we discussed:\n\n{_summary_bullets(state.key_insights)}"
                    "\n\nMaximum questions reached."
                    if state.key_insights
                    else "Maximum questions reached. Thank you for sharing your thoughts with us!"
                )

        if should_end:
            session.status = SessionStatus.COMPLETED
            session.completed_at = now
            logger.info("Session %s completed (%s)", session.token, reason)

        return TurnResult(
            ai_response=structured.message,
            outcome=TurnOutcome.REPLY,
            should_end=should_end,
            progress=self._progress(session),
            reason=reason,
            summary=summary,
            quality=quality,
            follow_up=follow_up,
        )

    async def _regenerate(
        self,
        structured: StructuredResponse,
        quality: QualityScore,
        messages: list[ChatMessage],
        message: str,
        previous_questions: list[str],
        session: Session,
    ) -> tuple[StructuredResponse, QualityScore]:
        """One retry with the validator's feedback; the better-scoring reply wins."""
        logger.debug("Low quality score %d, regenerating", quality.score)
        feedback = self._config.prompts.regeneration.format(
            score=quality.score,
            issues="\n".join(f"- {i}" for i in quality.issues),
            suggestions="\n".join(f"- {s}" for s in quality.suggestions),
        )
        retry_messages = [
            *messages,
            ChatMessage(Role.ASSISTANT, structured.message),
            ChatMessage(Role.SYSTEM, feedback),
        ]
        try:
            regenerated = await self._generate(retry_messages)
        except ProviderError as exc:
            logger.warning("Regeneration failed, keeping original reply: %s", exc)
            return structured, quality

        regenerated_quality = validate_response_quality(
            regenerated.message, message, previous_questions, session.survey.mode, self._config.quality
        )
        logger.debug("Regenerated quality score %d", regenerated_quality.score)
        if regenerated_quality.score > quality.score:
            return regenerated, regenerated_quality
        return structured, quality
