"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    endpoint_env: str | None = None  # Azure resource endpoint
    api_version: str | None = None


@dataclass
class QualityThresholds:
    low_quality_count_limit: int = 3
    min_quality_score: int = 7
    min_response_length: int = 20
    short_response_word_count: int = 5
    max_sentences: int = 2
    similarity_ratio: float = 0.7


@dataclass
class FraudThresholds:
    identical_response_limit: int = 2
    min_avg_response_time_seconds: float = 5.0
    min_user_messages_for_timing: int = 3


@dataclass
class ConversationThresholds:
    compression_threshold: int = 20
    compression_keep_recent: int = 6
    summarization_token_limit: int = 80_000
    max_follow_ups_per_topic: int = 3
    max_message_length: int = 2000
    contradiction_check: bool = False
    llm_topic_tracking: bool = False


@dataclass
class GenerationConfig:
    temperature: float = 0.7
    analysis_temperature: float = 0.3
    max_tokens_conversation: int = 300
    max_tokens_analysis: int = 800


@dataclass
class KeyInsightsConfig:
    min_length: int = 50
    max_length: int = 200
    min_words: int = 8
    max_insights: int = 3


@dataclass
class Helpline:
    region: str
    name: str
    contact: str


DEFAULT_HELPLINES: list[Helpline] = [
    Helpline("United States", "Suicide & Crisis Lifeline", "988 or text HOME to 741741"),
    Helpline("United Kingdom", "Samaritans", "116 123"),
    Helpline("India", "iCall", "9152987821"),
    Helpline("Australia", "Lifeline", "13 11 14"),
    Helpline("Canada", "Crisis Services Canada", "1-833-456-4566"),
    Helpline("International", "Find a Helpline", "https://findahelpline.com"),
]


@dataclass
class PromptsConfig:
    system: str = ""
    low_quality_classifier: str = ""
    re_engagement: str = ""
    structured_contract: str = ""
    regeneration: str = ""
    forced_summary: str = ""
    analysis: str = ""
    summarization: str = ""
    topic_identification: str = ""
    mode_detection: str = ""


@dataclass
class AppConfig:
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    default_provider: str = "azure"
    sessions_dir: Path = Path("./sessions")
    quality: QualityThresholds = field(default_factory=QualityThresholds)
    fraud: FraudThresholds = field(default_factory=FraudThresholds)
    conversation: ConversationThresholds = field(default_factory=ConversationThresholds)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    key_insights: KeyInsightsConfig = field(default_factory=KeyInsightsConfig)
    helplines: list[Helpline] = field(default_factory=lambda: list(DEFAULT_HELPLINES))
    available_providers: set[str] = field(default_factory=set)


def _section(raw: dict, key: str, cls: type):
    """Build a threshold dataclass, keeping field defaults for absent keys."""
    values = raw.get(key) or {}
    known = {k: v for k, v in values.items() if k in cls.__dataclass_fields__}
    unknown = set(values) - set(known)
    if unknown:
        logger.warning("Ignoring unknown keys in '%s': %s", key, ", ".join(sorted(unknown)))
    return cls(**known)


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs warnings for missing API keys but does not raise. Callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    defaults_raw = raw.get("defaults", {})

    prompts = _section(raw, "prompts", PromptsConfig)

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in (raw.get("models") or {}).items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            endpoint_env=model_raw.get("endpoint_env"),
            api_version=model_raw.get("api_version"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                model_raw["api_key_env"],
            )

    helplines_raw = raw.get("helplines")
    helplines = (
        [Helpline(region=h["region"], name=h["name"], contact=str(h["contact"])) for h in helplines_raw]
        if helplines_raw
        else list(DEFAULT_HELPLINES)
    )

    return AppConfig(
        models=models,
        prompts=prompts,
        default_provider=str(defaults_raw.get("provider", "azure")),
        sessions_dir=Path(defaults_raw.get("sessions_dir", "./sessions")),
        quality=_section(raw, "quality", QualityThresholds),
        fraud=_section(raw, "fraud", FraudThresholds),
        conversation=_section(raw, "conversation", ConversationThresholds),
        generation=_section(raw, "generation", GenerationConfig),
        key_insights=_section(raw, "key_insights", KeyInsightsConfig),
        helplines=helplines,
        available_providers=available_providers,
    )
