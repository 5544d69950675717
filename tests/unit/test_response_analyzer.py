import pytest
from pydantic import ValidationError as SchemaError

from agents.response_analyzer import (
    HeuristicResponseAnalyzer,
    LlmResponseAnalyzer,
    analyze_response,
    detect_buzzwords,
    detect_topics,
    signals_from_metadata,
)
from agents.types import ResponseAnalysis
from config.registry import RESPONSE_ANALYSIS_KEY, bind_model
from topic_tree.models import Turn

LONG_ANSWER = (
    "At my last company I worked on the payments platform and owned the settlement service end to end. "
    "We moved from nightly batches to streaming with Kafka, which cut reconciliation time from hours "
    "to minutes, and I led the migration plan, the rollout and the on-call runbooks for it. It is still running in production today."
)


def test_short_uncertain_answer_is_exhausted():
    analysis = analyze_response("I don't know, maybe")
    assert analysis.engagement_level == "low"
    assert {"short_answer", "dont_know", "vague"} <= set(analysis.exhaustion_signals)
    assert analysis.confidence_level == "struggling"
    assert analysis.response_length == "brief"
    assert analysis.is_exhausted


def test_long_specific_answer_is_engaged():
    analysis = analyze_response(LONG_ANSWER)
    assert analysis.engagement_level == "high"
    assert analysis.exhaustion_signals == []
    assert analysis.response_length == "detailed"
    assert analysis.confidence_level == "confident"
    assert "the payments platform" in analysis.new_topics
    assert not analysis.is_exhausted


def test_detect_topics_dedupes_case_insensitively():
    topics = detect_topics("I worked on Kafka. Later I worked with kafka, then focused on Flink.")
    assert topics == ["Kafka", "Flink"]


def test_detect_buzzwords_finds_tech_names_once():
    words = detect_buzzwords("We used GraphQL, AWS and Node.js; later AWS Lambda and graphql again")
    assert words[:3] == ["GraphQL", "AWS", "Node.js"]
    assert len([word for word in words if word.lower() == "aws"]) == 1


def test_metadata_signals_override_analysis():
    turn = Turn(
        prompt="q",
        response="We adopted TypeScript across the monorepo",
        metadata={"engagement_level": "high", "new_topics": ["React", "Testing", "React"]},
    )
    analysis = signals_from_metadata(turn)
    assert analysis.engagement_level == "high"
    assert analysis.new_topics == ["React", "Testing"]
    assert analysis.buzzwords == ["TypeScript"]


def test_metadata_accepts_nested_and_camel_case_keys():
    turn = Turn(prompt="q", response="a", metadata={"analysis": {"engagementLevel": "low", "exhaustionSignals": ["dont_know"]}})
    analysis = signals_from_metadata(turn)
    assert analysis.engagement_level == "low"
    assert analysis.exhaustion_signals == ["dont_know"]


def test_metadata_without_signals_defers_to_analyzer():
    assert signals_from_metadata(Turn(prompt="q", response="a", metadata={"source": "ats"})) is None


def test_invalid_metadata_signals_raise():
    with pytest.raises(SchemaError):
        signals_from_metadata(Turn(prompt="q", response="a", metadata={"engagement_level": "ecstatic"}))


def test_heuristic_analyzer_wraps_analyze_response():
    turn = Turn(prompt="q", response=LONG_ANSWER)
    assert HeuristicResponseAnalyzer().analyze(turn, "payments") == analyze_response(LONG_ANSWER)


def test_llm_analyzer_adds_short_answer_signal():
    seen = {}

    def fake(*, inputs, **_):
        seen.update(inputs)
        return {"engagement_level": "medium", "new_topics": ["Redis"]}

    bind_model(RESPONSE_ANALYSIS_KEY, fake)
    analysis = LlmResponseAnalyzer().analyze(Turn(prompt="q", response="Mostly Redis"), "caching")
    assert analysis.new_topics == ["Redis"]
    assert "short_answer" in analysis.exhaustion_signals
    assert seen["current_topic"] == "caching"
    assert seen["word_count"] == 2


def test_llm_analyzer_falls_back_on_schema_drift():
    bind_model(RESPONSE_ANALYSIS_KEY, lambda **_: {"engagement_level": 42})
    analysis = LlmResponseAnalyzer().analyze(Turn(prompt="q", response=LONG_ANSWER))
    assert isinstance(analysis, ResponseAnalysis)
    assert analysis == analyze_response(LONG_ANSWER)
