"""Tests for personity/topic_detector.py."""

from personity.topic_detector import (
    generate_ai_question_response,
    generate_redirect_message,
    is_asking_ai_question,
    is_off_topic,
)

OBJECTIVE = "Understand customer pain points with lead management"
TOPICS = ["lead tracking", "CRM usage", "sales process"]
LAST_QUESTION = "How do you decide which leads to call first?"


def test_short_message_never_off_topic(rng):
    assert is_off_topic("weather", OBJECTIVE, TOPICS, rng=rng).is_off_topic is False


def test_off_topic_phrase(rng):
    result = is_off_topic("What do you think about it all?", OBJECTIVE, TOPICS, LAST_QUESTION, rng)
    assert result.is_off_topic is True
    assert result.reason == 'Contains off-topic phrase: "what do you think"'
    assert LAST_QUESTION in result.redirect_message


def test_drift_without_shared_keywords(rng):
    result = is_off_topic("Yesterday my neighbour cooked dinner outside", OBJECTIVE, TOPICS, rng=rng)
    assert result.is_off_topic is True
    assert result.reason == "No relevant keywords found in response"


def test_answer_sharing_a_keyword_is_on_topic(rng):
    result = is_off_topic("Our sales team tracks every lead by hand", OBJECTIVE, TOPICS, rng=rng)
    assert result.is_off_topic is False


def test_short_unrelated_answer_not_flagged_as_drift(rng):
    assert is_off_topic("Mostly by gut feel", OBJECTIVE, TOPICS, rng=rng).is_off_topic is False


def test_redirect_mentions_main_topic(rng):
    message = generate_redirect_message(OBJECTIVE, None, rng)
    assert "customer pain points with lead management" in message


def test_asking_ai_question():
    assert is_asking_ai_question("Could you explain what you mean?") is True
    assert is_asking_ai_question("We could use better reports") is False


def test_ai_question_response_repeats_last_question(rng):
    assert generate_ai_question_response(LAST_QUESTION, rng).endswith(LAST_QUESTION)
