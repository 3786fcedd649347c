"""Dataclasses and enums for the Personity conversation engine. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SurveyMode(str, Enum):
    PRODUCT_DISCOVERY = "PRODUCT_DISCOVERY"
    FEEDBACK_SATISFACTION = "FEEDBACK_SATISFACTION"
    EXPLORATORY_GENERAL = "EXPLORATORY_GENERAL"


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


class EndingPhase(str, Enum):
    """Three-step closing protocol. Ordered; only ever advances."""

    NONE = "none"
    REFLECTION_ASKED = "reflection_asked"
    SUMMARY_SHOWN = "summary_shown"
    CONFIRMED = "confirmed"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SensitiveCategory(str, Enum):
    MENTAL_HEALTH = "mentalHealth"
    TRAUMA = "trauma"
    MEDICAL = "medical"
    SUBSTANCE = "substance"


class TurnOutcome(str, Enum):
    REPLY = "reply"
    FLAGGED = "flagged"
    CRISIS = "crisis"
    SENSITIVE = "sensitive"
    REDIRECT = "redirect"
    OFF_TOPIC = "off_topic"
    RE_ENGAGEMENT = "re_engagement"


@dataclass(frozen=True)
class Exchange:
    role: Role
    content: str
    timestamp: datetime


@dataclass
class ChatMessage:
    """One message sent to an LLM provider."""

    role: Role
    content: str


@dataclass
class PersonaInsights:
    pain_level: str | None = None   # low | medium | high
    experience: str | None = None   # novice | intermediate | expert
    sentiment: str | None = None    # positive | neutral | negative
    readiness: str | None = None    # cold | warm | hot
    clarity: str | None = None      # low | medium | high


@dataclass
class SessionState:
    exchange_count: int = 0
    topics_covered: list[str] = field(default_factory=list)
    low_quality_count: int | None = None
    has_re_engaged: bool = False
    is_flagged: bool = False
    flag_reason: str | None = None
    flagged_at: datetime | None = None
    ending_phase: EndingPhase = EndingPhase.NONE
    persona: PersonaInsights = field(default_factory=PersonaInsights)
    key_insights: list[str] = field(default_factory=list)
    topic_depth: dict[str, int] = field(default_factory=dict)
    follow_up_counts: dict[str, int] = field(default_factory=dict)


@dataclass
class SurveySettings:
    length: str = "standard"             # quick | standard | deep
    tone: str = "friendly"               # professional | friendly | casual
    stop_condition: str = "topics_covered"  # questions | topics_covered
    max_questions: int | None = None


@dataclass
class SurveyConfig:
    objective: str
    topics: list[str] = field(default_factory=list)
    mode: SurveyMode = SurveyMode.EXPLORATORY_GENERAL
    settings: SurveySettings = field(default_factory=SurveySettings)
    context: str = ""


@dataclass
class TopQuote:
    quote: str
    context: str


@dataclass
class ResponseAnalysis:
    summary: str
    key_themes: list[str]
    sentiment: str  # POSITIVE | NEUTRAL | NEGATIVE
    top_quotes: list[TopQuote]
    pain_points: list[str]
    opportunities: list[str]
    quality_score: int
    timestamp: datetime | None = None


@dataclass
class Session:
    token: str
    survey: SurveyConfig
    status: SessionStatus = SessionStatus.ACTIVE
    state: SessionState = field(default_factory=SessionState)
    exchanges: list[Exchange] = field(default_factory=list)
    analysis: ResponseAnalysis | None = None
    completed_at: datetime | None = None


# --- Detector results (ephemeral) ---


@dataclass
class QualityScore:
    score: int
    passed: bool
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


@dataclass
class LowQualityState:
    exchange_count: int
    topics_covered: list[str]
    low_quality_count: int
    has_re_engaged: bool
    should_flag: bool


@dataclass
class QualityCheckResult:
    is_low_quality: bool
    should_re_engage: bool
    reason: str | None = None


@dataclass
class FollowUpSuggestion:
    should_follow_up: bool
    suggested_probe: str
    reason: str
    priority: Priority


@dataclass
class SpamCheckResult:
    is_spam: bool
    should_ban: bool = False
    reason: str | None = None


@dataclass
class SensitiveContentResult:
    is_sensitive: bool
    category: SensitiveCategory | None = None
    topic: str | None = None
    gentle_response: str | None = None


@dataclass
class CrisisResult:
    is_crisis: bool
    message: str | None = None


@dataclass
class TopicCheckResult:
    is_off_topic: bool
    reason: str | None = None
    redirect_message: str | None = None


@dataclass
class Contradiction:
    detected: bool
    statement1: str = ""
    statement2: str = ""
    clarifying_question: str = ""


@dataclass
class ConversationState:
    """State derived from the transcript, used to build the dynamic prompt."""

    exchange_count: int
    covered_topics: list[str] = field(default_factory=list)
    topic_depth: dict[str, int] = field(default_factory=dict)
    key_insights: list[str] = field(default_factory=list)
    last_user_response: str | None = None
    is_flagged: bool = False
    ending_phase: EndingPhase = EndingPhase.NONE


@dataclass
class StructuredResponse:
    message: str
    should_end: bool = False
    reason: str | None = None  # completed | disqualified | low_quality | max_questions
    summary: str | None = None
    persona: PersonaInsights | None = None
    messages: list[str] = field(default_factory=list)


@dataclass
class ModeDetectionResult:
    mode: SurveyMode
    confidence: str  # HIGH | MEDIUM | LOW
    reasoning: str
    suggested_context_questions: list[str] = field(default_factory=list)


@dataclass
class ModelResponse:
    provider: str
    model: str
    content: str
    latency_sec: float
    token_count: int | None


@dataclass
class TurnResult:
    ai_response: str
    outcome: TurnOutcome
    should_end: bool = False
    progress: float = 0.0
    reason: str | None = None
    summary: str | None = None
    quality: QualityScore | None = None
    follow_up: FollowUpSuggestion | None = None
