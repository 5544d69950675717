import pytest

from agents.topic_analyzer import DEFAULT_TOPIC, KeywordTopicAnalyzer, LlmTopicAnalyzer, TopicAnalyzer
from config.registry import TOPIC_EXTRACTION_KEY, bind_model
from topic_tree.errors import AnalysisError
from topic_tree.models import TopicNode, Turn


@pytest.fixture
def analyzer():
    return KeywordTopicAnalyzer()


def test_keyword_analyzer_satisfies_protocol(analyzer):
    assert isinstance(analyzer, TopicAnalyzer)


def test_extract_topics_ranks_repeated_terms_first(analyzer):
    turn = Turn(
        prompt="Walk me through your frontend work",
        response="I have spent five years building frontend dashboards for a logistics company.",
    )
    topics = analyzer.extract_topics(turn)
    assert topics[0] == "frontend"
    assert len(topics) == 3


def test_extract_topics_defaults_when_nothing_significant(analyzer):
    assert analyzer.extract_topics(Turn(prompt="so?", response="it is")) == [DEFAULT_TOPIC]


def test_extract_topics_is_deterministic(analyzer):
    turn = Turn(prompt="Describe the pipeline", response="We streamed events through Kafka into Spark jobs.")
    assert analyzer.extract_topics(turn) == analyzer.extract_topics(turn)


def test_first_topic_becomes_root(analyzer):
    relationship = analyzer.determine_relationship("machine learning", [])
    assert relationship.kind == "new_root"
    assert relationship.confidence == 1.0


def test_similar_label_becomes_child(analyzer):
    parent = TopicNode(label="machine learning")
    relationship = analyzer.determine_relationship("machine learning models", [parent])
    assert relationship.kind == "child_of"
    assert relationship.parent_node_id == parent.id
    assert relationship.confidence >= 0.6


def test_continuation_keyword_attaches_to_most_recent(analyzer):
    older = TopicNode(label="databases", order=0)
    newer = TopicNode(label="caching", order=1)
    relationship = analyzer.determine_relationship("tell me more about eviction", [older, newer])
    assert relationship.kind == "continuation"
    assert relationship.parent_node_id == newer.id


def test_unrelated_label_starts_new_root(analyzer):
    relationship = analyzer.determine_relationship("gardening", [TopicNode(label="kubernetes operators")])
    assert relationship.kind == "new_root"
    assert relationship.parent_node_id is None


def test_similarity_bounds(analyzer):
    assert analyzer.similarity("", "") == 1.0
    assert analyzer.similarity("kafka", "") == 0.0
    assert 0.0 <= analyzer.similarity("web development", "frontend website") <= 1.0


def test_llm_analyzer_uses_registry():
    bind_model(TOPIC_EXTRACTION_KEY, lambda **_: {"topics": [" GraphQL ", "Caching"]})
    topics = LlmTopicAnalyzer().extract_topics(Turn(prompt="q", response="a"))
    assert topics == ["GraphQL", "Caching"]


def test_llm_analyzer_accepts_bare_list():
    bind_model(TOPIC_EXTRACTION_KEY, lambda **_: ["Terraform"])
    assert LlmTopicAnalyzer().extract_topics(Turn(prompt="q", response="a")) == ["Terraform"]


def test_llm_analyzer_rejects_bad_payload():
    bind_model(TOPIC_EXTRACTION_KEY, lambda **_: {"topics": []})
    with pytest.raises(AnalysisError):
        LlmTopicAnalyzer().extract_topics(Turn(prompt="q", response="a"))


def test_llm_analyzer_requires_binding():
    with pytest.raises(KeyError):
        LlmTopicAnalyzer().extract_topics(Turn(prompt="q", response="a"))
