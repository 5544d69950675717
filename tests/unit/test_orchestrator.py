import random
import time

import pytest

from agents.scoring import QualityScoringStrategy, ScoringEngine, average
from agents.topic_analyzer import KeywordTopicAnalyzer
from agents.types import TopicRelationship
from graph import policy
from graph.build import GradingOrchestrator
from topic_tree.errors import TreeIntegrityError, ValidationError
from topic_tree.manager import TreeManager
from topic_tree.validation import validate_path

OPENING_PROMPT = "Walk me through your frontend work"
OPENING_RESPONSE = "I have spent five years building frontend dashboards for a logistics company."

PIPELINE_SPANS = [
    "validate",
    "analyze_topic",
    "resolve_relationship",
    "locate_parent",
    "score_turn",
    "create_node",
    "update_path",
    "integrity_check",
    "commit",
]


class BrokenTopicAnalyzer:
    def extract_topics(self, turn):
        raise RuntimeError("topic model offline")

    def determine_relationship(self, label, existing_nodes):
        raise RuntimeError("topic model offline")


class BrokenResponseAnalyzer:
    def analyze(self, turn, current_topic=None):
        raise RuntimeError("signal model offline")


class BrokenStrategy:
    name = "broken"

    def calculate_score(self, turn, context):
        raise RuntimeError("grader offline")


class CountingResponseAnalyzer:
    def __init__(self):
        self.calls = 0

    def analyze(self, turn, current_topic=None):
        self.calls += 1
        raise RuntimeError("should not be consulted")


class FixedRelationshipAnalyzer(KeywordTopicAnalyzer):
    def __init__(self, relationship):
        super().__init__()
        self.relationship = relationship

    def determine_relationship(self, label, existing_nodes):
        return self.relationship


class RecordingTopicAnalyzer(KeywordTopicAnalyzer):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def determine_relationship(self, label, existing_nodes):
        self.calls += 1
        return super().determine_relationship(label, existing_nodes)


class SlowTopicAnalyzer(KeywordTopicAnalyzer):
    def extract_topics(self, turn):
        time.sleep(0.5)
        return ["too late"]


class ListlessTopicAnalyzer(KeywordTopicAnalyzer):
    def extract_topics(self, turn):
        return "kafka"


@pytest.fixture
def orchestrator():
    return GradingOrchestrator()


def _open(orchestrator, manager, turn_factory):
    return orchestrator.process_turn(
        manager,
        turn_factory(OPENING_RESPONSE, prompt=OPENING_PROMPT, engagement_level="high", new_topics=["React", "Testing"]),
    )


def test_rich_answer_fans_out_then_exhaustion_backtracks(orchestrator, manager, turn_factory):
    first = _open(orchestrator, manager, turn_factory)

    assert first.is_new_branch
    assert first.topic == "frontend"
    assert first.depth == 1
    assert first.action == "fan_out"
    assert first.score == pytest.approx(1.76)
    assert len(manager) == 3
    react, testing = manager.get_children(first.node_id)
    assert (react.label, testing.label) == ("React", "Testing")
    assert react.depth == testing.depth == 2
    assert first.created_node_ids == [first.node_id, react.id, testing.id]
    assert manager.get_current_topic() is react
    assert first.current_path == [first.node_id, react.id]
    assert manager.tree.max_depth_reached == 1
    assert manager.tree.nodes[first.node_id].status == "rich"

    second = orchestrator.process_turn(
        manager,
        turn_factory("I don't really know React that well", engagement_level="low", exhaustion_signals=["dont_know"]),
    )
    assert not second.is_new_branch
    assert second.node_id == react.id
    assert second.action == "backtrack"
    assert second.score < first.score
    assert react.status == "exhausted"
    assert manager.get_current_topic() is testing
    assert manager.tree.exhausted_topics == ["React"]
    assert [item.node_id for item in second.suggestions][:1] == [testing.id]
    assert manager.tree.turn_count == 2
    assert [grade.node_id for grade in manager.tree.grades] == [first.node_id, react.id]


def test_result_carries_span_events(orchestrator, manager, turn_factory):
    result = _open(orchestrator, manager, turn_factory)
    assert [event["span"] for event in result.events] == PIPELINE_SPANS
    assert all(event["ms"] >= 0 for event in result.events)


def test_append_keeps_cursor_and_averages_holder_score(orchestrator, manager, turn_factory):
    first = orchestrator.process_turn(manager, turn_factory(OPENING_RESPONSE, prompt=OPENING_PROMPT, engagement_level="medium"))
    second = orchestrator.process_turn(manager, turn_factory("We also added feature flags", engagement_level="medium"))

    assert first.action == second.action == "append"
    assert second.node_id == first.node_id
    assert len(manager) == 1
    holder = manager.tree.nodes[first.node_id]
    assert holder.score == average(grade.score for grade in manager.tree.grades)
    assert holder.metadata.visit_count == 2
    assert len(holder.metadata.turns) == 2


def test_new_subject_in_question_opens_root_and_old_subject_is_revisited(manager, turn_factory):
    analyzer = RecordingTopicAnalyzer()
    orchestrator = GradingOrchestrator(analyzer)
    first = _open(orchestrator, manager, turn_factory)

    second = orchestrator.process_turn(
        manager,
        turn_factory(
            "We ran three Kubernetes clusters with autoscaling node pools and strict quotas.",
            prompt="Now tell me about Kubernetes cluster operations",
            engagement_level="medium",
        ),
    )
    assert analyzer.calls == 2
    assert second.is_new_branch
    assert second.topic == "kubernetes"
    assert second.depth == 1
    assert manager.tree.root_ids == [first.node_id, second.node_id]
    assert second.current_path == [second.node_id]

    third = orchestrator.process_turn(
        manager,
        turn_factory(
            "The frontend suite ran Playwright against every frontend release.",
            prompt="Back to frontend: how did you test those dashboards?",
            engagement_level="medium",
        ),
    )
    assert analyzer.calls == 3
    assert not third.is_new_branch
    assert third.node_id == first.node_id
    assert third.current_path == [first.node_id]
    assert len(manager) == 4


def test_sibling_relationship_branches_under_shared_parent(manager, turn_factory):
    analyzer = FixedRelationshipAnalyzer(TopicRelationship(kind="new_root", confidence=1.0))
    orchestrator = GradingOrchestrator(analyzer)
    first = _open(orchestrator, manager, turn_factory)
    analyzer.relationship = TopicRelationship(kind="sibling_of", parent_node_id=first.node_id, confidence=0.7)

    result = orchestrator.process_turn(
        manager,
        turn_factory(
            "We kept state management in Redux and reviewed state management bugs weekly.",
            prompt="What about state management?",
            engagement_level="medium",
        ),
    )
    assert result.is_new_branch
    assert result.topic == "state"
    assert result.depth == 2
    assert [child.label for child in manager.get_children(first.node_id)] == ["React", "Testing", "state"]
    assert result.current_path == [first.node_id, result.node_id]


def test_weak_new_root_keeps_current_node(manager, turn_factory):
    analyzer = FixedRelationshipAnalyzer(TopicRelationship(kind="new_root", confidence=1.0))
    orchestrator = GradingOrchestrator(analyzer)
    _open(orchestrator, manager, turn_factory)
    react = manager.get_current_topic()
    analyzer.relationship = TopicRelationship(kind="new_root", confidence=0.3)

    result = orchestrator.process_turn(
        manager,
        turn_factory(
            "We kept state management in Redux and reviewed state management bugs weekly.",
            prompt="What about state management?",
            engagement_level="medium",
        ),
    )
    assert not result.is_new_branch
    assert result.node_id == react.id
    assert len(manager) == 3


def test_answer_without_new_subject_stays_put(manager, turn_factory):
    analyzer = RecordingTopicAnalyzer()
    orchestrator = GradingOrchestrator(analyzer)
    _open(orchestrator, manager, turn_factory)
    react = manager.get_current_topic()

    result = orchestrator.process_turn(
        manager, turn_factory("Mostly hooks and a little Kubernetes tooling", engagement_level="medium")
    )
    assert analyzer.calls == 2
    assert result.node_id == react.id
    assert not result.is_new_branch


SUBJECTS = ["kubernetes", "kafka", "postgres", "graphql"]
SUBTOPICS = ["Caching", "Sharding", "Monitoring", "Failover", "Backups"]


def test_random_interview_keeps_cursor_and_depths_consistent(orchestrator, manager, turn_factory):
    rng = random.Random(2024)
    branched = 0
    for _ in range(50):
        subject = rng.choice(SUBJECTS)
        signals = {"engagement_level": rng.choice(["high", "medium", "low"])}
        if rng.random() < 0.2:
            signals["exhaustion_signals"] = ["dont_know"]
        if rng.random() < 0.6:
            signals["new_topics"] = rng.sample(SUBTOPICS, rng.randint(1, 3))
        result = orchestrator.process_turn(
            manager,
            turn_factory(
                f"Our {subject} setup was tuned carefully and {subject} incidents were reviewed weekly.",
                prompt=f"Tell me about your {subject} work",
                **signals,
            ),
        )
        branched += result.is_new_branch

        tree = manager.tree
        validate_path(tree, tree.current_path)
        assert tree.current_path == result.current_path
        for node in tree.nodes.values():
            assert node.depth == node.calculate_depth_from_root(tree.nodes)
        manager.validate()

    assert branched > 1
    assert len(manager.tree.root_ids) > 1
    assert manager.tree.turn_count == 50


def test_buzzwords_are_tallied_per_turn(orchestrator, manager, turn_factory):
    orchestrator.process_turn(manager, turn_factory("We used GraphQL and GraphQL subscriptions with AWS"))
    orchestrator.process_turn(manager, turn_factory("Later we moved GraphQL behind a gateway"))
    stats = manager.tree.buzzwords
    assert stats["graphql"].count == 2
    assert stats["graphql"].sources == [0, 1]
    assert stats["aws"].count == 1


def test_every_capability_failing_still_grades(manager, turn_factory):
    orchestrator = GradingOrchestrator(BrokenTopicAnalyzer(), ScoringEngine(BrokenStrategy()), BrokenResponseAnalyzer())
    result = orchestrator.process_turn(
        manager,
        turn_factory(
            "We migrated the billing consumers to Kafka over two quarters.",
            prompt="Describe your Kafka migration project",
        ),
    )

    assert result.degraded
    assert result.score is not None
    assert result.topic == "describe your kafka"
    assert result.scoring_strategy == "length_depth"
    assert {reason.split(":")[0] for reason in result.degraded_reasons} == {
        "topic_analysis",
        "relationship",
        "response_analysis",
        "scoring",
    }
    assert manager.tree.grades[0].degraded


def test_non_list_topics_fall_back_to_prompt_words(manager, turn_factory):
    orchestrator = GradingOrchestrator(ListlessTopicAnalyzer())
    result = orchestrator.process_turn(manager, turn_factory(prompt="Caching strategy questions first"))
    assert result.topic == "caching strategy questions"
    assert result.degraded


def test_slow_analyzer_hits_time_budget(manager, turn_factory):
    orchestrator = GradingOrchestrator(SlowTopicAnalyzer(), timeout_s=0.05)
    started = time.perf_counter()
    result = orchestrator.process_turn(manager, turn_factory(prompt="Explain your deployment pipeline"))
    assert time.perf_counter() - started < 0.45
    assert result.degraded
    assert result.topic == "explain your deployment"


def test_metadata_signals_skip_response_analyzer(manager, turn_factory):
    analyzer = CountingResponseAnalyzer()
    orchestrator = GradingOrchestrator(response_analyzer=analyzer)
    result = orchestrator.process_turn(manager, turn_factory(engagement_level="medium"))
    assert analyzer.calls == 0
    assert not result.degraded


@pytest.mark.parametrize(
    "response",
    ["", "   ", "<script>alert(1)</script> React", "x" * 50_001],
)
def test_invalid_turns_are_rejected_without_mutation(orchestrator, manager, turn_factory, response):
    with pytest.raises(ValidationError):
        orchestrator.process_turn(manager, turn_factory(response))
    assert len(manager) == 0
    assert manager.tree.turn_count == 0


def test_invalid_signal_metadata_is_rejected(orchestrator, manager, turn_factory):
    with pytest.raises(ValidationError) as exc:
        orchestrator.process_turn(manager, turn_factory(engagement_level="ecstatic"))
    assert exc.value.field == "metadata"
    assert len(manager) == 0


def test_invalid_session_id_is_rejected(orchestrator, turn_factory):
    with pytest.raises(ValidationError):
        orchestrator.process_turn(TreeManager("not a valid id!"), turn_factory())


def test_missing_parent_is_demoted_to_root(manager, turn_factory):
    existing = manager.add_node("backend")
    relationship = TopicRelationship(kind="child_of", parent_node_id="node_missing", confidence=0.9)
    orchestrator = GradingOrchestrator(FixedRelationshipAnalyzer(relationship))
    result = orchestrator.process_turn(manager, turn_factory(prompt="Tell me about observability"))

    assert result.is_new_branch
    assert result.depth == 1
    assert manager.tree.root_ids == [existing.id, result.node_id]


def test_relationship_attaches_under_existing_node(manager, turn_factory):
    existing = manager.add_node("backend")
    relationship = TopicRelationship(kind="child_of", parent_node_id=existing.id, confidence=0.9)
    orchestrator = GradingOrchestrator(FixedRelationshipAnalyzer(relationship))
    result = orchestrator.process_turn(manager, turn_factory(engagement_level="medium"))

    assert result.is_new_branch
    assert result.depth == 2
    assert manager.tree.nodes[result.node_id].parent_id == existing.id
    assert result.current_path == [existing.id, result.node_id]


def test_confident_relationship_without_parent_uses_latest_node(manager, turn_factory):
    existing = manager.add_node("backend")
    relationship = TopicRelationship(kind="continuation", confidence=0.9)
    orchestrator = GradingOrchestrator(FixedRelationshipAnalyzer(relationship))
    result = orchestrator.process_turn(manager, turn_factory())
    assert manager.tree.nodes[result.node_id].parent_id == existing.id


def test_depth_ceiling_demotes_and_skips_fan_out(turn_factory):
    capped = TreeManager("capped", max_depth=1)
    existing = capped.add_node("backend")
    relationship = TopicRelationship(kind="child_of", parent_node_id=existing.id, confidence=0.9)
    orchestrator = GradingOrchestrator(FixedRelationshipAnalyzer(relationship))
    result = orchestrator.process_turn(
        capped, turn_factory(OPENING_RESPONSE, engagement_level="high", new_topics=["React", "Testing"])
    )

    assert result.depth == 1
    assert result.action == "append"
    assert len(capped) == 2
    capped.validate()


def test_full_tree_rejects_new_branch(turn_factory):
    full = TreeManager("full", max_nodes=1)
    full.add_node("backend")
    with pytest.raises(TreeIntegrityError):
        GradingOrchestrator().process_turn(full, turn_factory())
    assert len(full) == 1


def test_failed_cursor_update_rolls_back(orchestrator, manager, turn_factory, monkeypatch):
    _open(orchestrator, manager, turn_factory)
    before = manager.tree.model_dump()

    def broken_backtrack(tree_manager, node_id):
        raise TreeIntegrityError("simulated corruption", node_id=node_id)

    monkeypatch.setattr(policy, "backtrack", broken_backtrack)
    with pytest.raises(TreeIntegrityError, match="simulated corruption"):
        orchestrator.process_turn(manager, turn_factory("no idea", engagement_level="low"))
    assert manager.tree.model_dump() == before


def test_integrity_violation_rolls_back(orchestrator, manager, turn_factory, monkeypatch):
    _open(orchestrator, manager, turn_factory)
    before = manager.tree.model_dump()

    def corrupt():
        raise TreeIntegrityError("walk failed")

    monkeypatch.setattr(manager, "validate", corrupt)
    with pytest.raises(TreeIntegrityError):
        orchestrator.process_turn(manager, turn_factory("We also ran contract tests in CI", engagement_level="medium"))
    monkeypatch.undo()
    assert manager.tree.model_dump() == before
    manager.validate()


def test_capabilities_can_be_swapped_between_turns(orchestrator, manager, turn_factory):
    orchestrator.set_scoring_strategy(QualityScoringStrategy())
    assert orchestrator.process_turn(manager, turn_factory()).scoring_strategy == "quality"

    with pytest.raises(ValidationError):
        orchestrator.set_topic_analyzer(object())
    with pytest.raises(ValidationError):
        orchestrator.set_response_analyzer(object())
    with pytest.raises(ValidationError):
        orchestrator.set_scoring_strategy(object())
