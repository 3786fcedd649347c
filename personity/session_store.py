"""Session files: markdown with YAML frontmatter.

The frontmatter holds the token, status, survey, state, transcript and
analysis. The body holds the survey's free-text context, so it can be edited
by hand like any markdown note.
"""

import logging
import uuid
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

import frontmatter

from personity.models import (
    EndingPhase,
    Exchange,
    PersonaInsights,
    ResponseAnalysis,
    Role,
    Session,
    SessionState,
    SessionStatus,
    SurveyConfig,
    SurveyMode,
    SurveySettings,
    TopQuote,
)

logger = logging.getLogger(__name__)


def _parse_dt(value) -> datetime | None:
    """YAML may hand back either a datetime or an ISO string."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _format_dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# --- to dict ---


def _survey_to_dict(survey: SurveyConfig) -> dict:
    return {
        "objective": survey.objective,
        "topics": list(survey.topics),
        "mode": survey.mode.value,
        "settings": asdict(survey.settings),
    }


def _state_to_dict(state: SessionState) -> dict:
    return {
        "exchange_count": state.exchange_count,
        "topics_covered": list(state.topics_covered),
        "low_quality_count": state.low_quality_count,
        "has_re_engaged": state.has_re_engaged,
        "is_flagged": state.is_flagged,
        "flag_reason": state.flag_reason,
        "flagged_at": _format_dt(state.flagged_at),
        "ending_phase": state.ending_phase.value,
        "persona": asdict(state.persona),
        "key_insights": list(state.key_insights),
        "topic_depth": dict(state.topic_depth),
        "follow_up_counts": dict(state.follow_up_counts),
    }


def _analysis_to_dict(analysis: ResponseAnalysis) -> dict:
    data = asdict(analysis)
    data["timestamp"] = _format_dt(analysis.timestamp)
    return data


def session_to_dict(session: Session) -> dict:
    """Frontmatter metadata for a session. The survey context is not included."""
    return {
        "token": session.token,
        "status": session.status.value,
        "completed_at": _format_dt(session.completed_at),
        "survey": _survey_to_dict(session.survey),
        "state": _state_to_dict(session.state),
        "exchanges": [
            {"role": ex.role.value, "content": ex.content, "timestamp": _format_dt(ex.timestamp)}
            for ex in session.exchanges
        ],
        "analysis": _analysis_to_dict(session.analysis) if session.analysis else None,
    }


# --- from dict ---


def _state_from_dict(raw: dict) -> SessionState:
    """Absent fields take their defaults, so older files still load."""
    return SessionState(
        exchange_count=int(raw.get("exchange_count", 0)),
        topics_covered=list(raw.get("topics_covered") or []),
        low_quality_count=raw.get("low_quality_count"),
        has_re_engaged=bool(raw.get("has_re_engaged", False)),
        is_flagged=bool(raw.get("is_flagged", False)),
        flag_reason=raw.get("flag_reason"),
        flagged_at=_parse_dt(raw.get("flagged_at")),
        ending_phase=EndingPhase(raw.get("ending_phase") or EndingPhase.NONE.value),
        persona=PersonaInsights(**(raw.get("persona") or {})),
        key_insights=list(raw.get("key_insights") or []),
        topic_depth=dict(raw.get("topic_depth") or {}),
        follow_up_counts=dict(raw.get("follow_up_counts") or {}),
    )


def _analysis_from_dict(raw: dict) -> ResponseAnalysis:
    return ResponseAnalysis(
        summary=raw.get("summary", ""),
        key_themes=list(raw.get("key_themes") or []),
        sentiment=raw.get("sentiment", "NEUTRAL"),
        top_quotes=[TopQuote(**q) for q in raw.get("top_quotes") or []],
        pain_points=list(raw.get("pain_points") or []),
        opportunities=list(raw.get("opportunities") or []),
        quality_score=int(raw.get("quality_score", 5)),
        timestamp=_parse_dt(raw.get("timestamp")),
    )


def session_from_dict(metadata: dict, context: str = "") -> Session:
    """Build a Session from frontmatter metadata.

    Raises:
        KeyError: If token or survey objective is missing.
        ValueError: If an enum value or timestamp is malformed.
    """
    survey_raw = metadata["survey"]
    survey = SurveyConfig(
        objective=survey_raw["objective"],
        topics=list(survey_raw.get("topics") or []),
        mode=SurveyMode(survey_raw.get("mode") or SurveyMode.EXPLORATORY_GENERAL.value),
        settings=SurveySettings(**(survey_raw.get("settings") or {})),
        context=context,
    )
    analysis_raw = metadata.get("analysis")
    return Session(
        token=str(metadata["token"]),
        survey=survey,
        status=SessionStatus(metadata.get("status") or SessionStatus.ACTIVE.value),
        state=_state_from_dict(metadata.get("state") or {}),
        exchanges=[
            Exchange(role=Role(ex["role"]), content=ex["content"], timestamp=_parse_dt(ex["timestamp"]))
            for ex in metadata.get("exchanges") or []
        ],
        analysis=_analysis_from_dict(analysis_raw) if analysis_raw else None,
        completed_at=_parse_dt(metadata.get("completed_at")),
    )


# --- files ---


def new_session(survey: SurveyConfig, token: str | None = None) -> Session:
    return Session(token=token or uuid.uuid4().hex[:12], survey=survey)


def session_path(sessions_dir: Path, token: str) -> Path:
    return sessions_dir / f"{token}.md"


def load_session(file_path: Path) -> Session:
    post = frontmatter.load(str(file_path))
    return session_from_dict(dict(post.metadata), post.content.strip())


def save_session(session: Session, file_path: Path) -> Path:
    file_path.parent.mkdir(parents=True, exist_ok=True)
    post = frontmatter.Post(session.survey.context, **session_to_dict(session))
    file_path.write_text(frontmatter.dumps(post, sort_keys=False), encoding="utf-8")
    logger.debug("Session saved to: %s", file_path)
    return file_path


def list_sessions(sessions_dir: Path) -> list[Path]:
    """All session files in sessions_dir, oldest first by mtime."""
    if not sessions_dir.exists():
        return []
    return sorted(sessions_dir.glob("*.md"), key=lambda p: p.stat().st_mtime)
