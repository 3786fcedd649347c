"""Shared pytest fixtures."""

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import AppConfig, ModelConfig, PromptsConfig
from personity.models import (
    ChatMessage,
    Exchange,
    ModelResponse,
    Role,
    Session,
    SurveyConfig,
    SurveyMode,
)
from personity.providers.base import AIProvider

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def model_response(content: str, provider: str = "mock") -> ModelResponse:
    return ModelResponse(provider=provider, model="mock-model", content=content, latency_sec=0.1, token_count=10)


def make_exchanges(pairs: list[tuple[str, str]], start: datetime = T0, gap_sec: float = 30.0) -> list[Exchange]:
    """Build a transcript from (assistant, user) pairs, spaced gap_sec apart."""
    exchanges: list[Exchange] = []
    ts = start
    for ai_text, user_text in pairs:
        exchanges.append(Exchange(Role.ASSISTANT, ai_text, ts))
        ts += timedelta(seconds=gap_sec)
        exchanges.append(Exchange(Role.USER, user_text, ts))
    return exchanges


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=model_response(response_content, provider_name)
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(  # type: ignore[override]
        self,
        messages: list[ChatMessage],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ModelResponse:
        """Default implementation; replaced by AsyncMock in __init__."""
        return model_response(self._response_content, self._name)

    def reply_with(self, *contents: str) -> None:
        """Queue one model reply per call, in order."""
        self.generate = AsyncMock(side_effect=[model_response(c, self._name) for c in contents])  # type: ignore[assignment]


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="azure",
        sdk="azure_openai",
        model="gpt-4o",
        api_key_env="TEST_AZURE_KEY",
        timeout_sec=30,
        max_tokens=800,
        endpoint_env="TEST_AZURE_ENDPOINT",
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        system=(
            "Objective: {objective}\nMode: {mode}\nTone: {tone}\nLength: {length}\n"
            "Topics:\n{topics}\nContext: {context}\nState:\n{state_block}"
        ),
        low_quality_classifier="Classify LOW_QUALITY or ACCEPTABLE.",
        re_engagement="Write a re-engagement message.",
        structured_contract='Return JSON: {"message": "...", "shouldEnd": false}',
        regeneration="QUALITY CHECK FAILED (Score: {score}/10)\n{issues}\n{suggestions}",
        forced_summary="Show the summary now:\n{insights}",
        analysis="Objective: {objective}\nConversation:\n{conversation}\nReturn JSON {{...}}",
        summarization="Summarize these exchanges.",
        topic_identification="Which topic numbers were covered?",
        mode_detection='Objective: "{objective}". Return JSON {{"mode": "..."}}',
    )


@pytest.fixture
def sample_app_config(sample_model_config: ModelConfig, sample_prompts_config: PromptsConfig, tmp_path: Path) -> AppConfig:
    return AppConfig(
        models={"azure": sample_model_config},
        prompts=sample_prompts_config,
        sessions_dir=tmp_path / "sessions",
        available_providers={"azure"},
    )


@pytest.fixture
def sample_survey() -> SurveyConfig:
    return SurveyConfig(
        objective="Understand customer pain points with lead management",
        topics=["lead tracking", "CRM usage", "sales process"],
        mode=SurveyMode.PRODUCT_DISCOVERY,
        context="B2B sales teams of 5-50 people.",
    )


@pytest.fixture
def sample_session(sample_survey: SurveyConfig) -> Session:
    exchanges = make_exchanges([
        ("How do you currently keep track of your sales leads?",
         "We keep every lead in a shared spreadsheet that the whole sales team edits."),
    ])
    return Session(token="abc123", survey=sample_survey, exchanges=exchanges)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)
