"""Spam and bot heuristics over the transcript: repeated answers and answer cadence."""

import logging
from datetime import datetime, timezone

from config.config_loader import FraudThresholds
from personity.models import Exchange, Role, SessionState, SpamCheckResult

logger = logging.getLogger(__name__)


def detect_identical_responses(
    exchanges: list[Exchange],
    new_message: str,
    thresholds: FraudThresholds | None = None,
) -> bool:
    """True when new_message repeats earlier user messages often enough to be spam.

    Comparison ignores case and surrounding whitespace. With the default limit
    of 2, the third identical answer is flagged.
    """
    thresholds = thresholds or FraudThresholds()
    normalized_new = new_message.strip().lower()
    identical_count = sum(
        1 for ex in exchanges
        if ex.role == Role.USER and ex.content.strip().lower() == normalized_new
    )
    return identical_count >= thresholds.identical_response_limit


def calculate_average_exchange_time(
    exchanges: list[Exchange],
    thresholds: FraudThresholds | None = None,
) -> float:
    """Mean gap in seconds between consecutive user messages; 0 when there is too little data."""
    thresholds = thresholds or FraudThresholds()
    user_times = [ex.timestamp for ex in exchanges if ex.role == Role.USER]
    if len(user_times) < thresholds.min_user_messages_for_timing:
        return 0.0

    gaps = [(curr - prev).total_seconds() for prev, curr in zip(user_times, user_times[1:])]
    return sum(gaps) / len(gaps)


def is_suspicious_speed(average_exchange_time: float, thresholds: FraudThresholds | None = None) -> bool:
    """Zero means not enough data and is never flagged."""
    thresholds = thresholds or FraudThresholds()
    return 0 < average_exchange_time < thresholds.min_avg_response_time_seconds


def check_for_spam(
    exchanges: list[Exchange],
    new_message: str,
    thresholds: FraudThresholds | None = None,
) -> SpamCheckResult:
    thresholds = thresholds or FraudThresholds()

    if detect_identical_responses(exchanges, new_message, thresholds):
        return SpamCheckResult(
            is_spam=True,
            reason=f"Identical responses detected ({thresholds.identical_response_limit + 1}+ times)",
        )

    avg_time = calculate_average_exchange_time(exchanges, thresholds)
    if is_suspicious_speed(avg_time, thresholds):
        return SpamCheckResult(is_spam=True, reason=f"Suspiciously fast responses (avg {avg_time:.1f}s)")

    return SpamCheckResult(is_spam=False)


def flag_session(state: SessionState, reason: str, now: datetime | None = None) -> None:
    """Mark the session flagged in place. The first reason recorded is kept."""
    if not state.is_flagged:
        state.flag_reason = reason
        state.flagged_at = now or datetime.now(timezone.utc)
    state.is_flagged = True
    logger.warning("Session flagged: %s", reason)
