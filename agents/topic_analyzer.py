"""Topic extraction and relationship classification capabilities."""
from __future__ import annotations

import re
from collections import Counter
from typing import List, Optional, Protocol, Sequence, Set, runtime_checkable

from pydantic import ValidationError

from agents.types import TopicExtraction, TopicRelationship
from config.registry import TOPIC_EXTRACTION_KEY, get_model
from topic_tree.errors import AnalysisError
from topic_tree.models import TopicNode, Turn

DEFAULT_TOPIC = "general discussion"

CHILD_SIMILARITY_THRESHOLD = 0.6
SIBLING_SIMILARITY_THRESHOLD = 0.4
RELATED_SIMILARITY_THRESHOLD = 0.25

CONTINUATION_KEYWORDS = (
    "also",
    "additionally",
    "furthermore",
    "moreover",
    "besides",
    "what about",
    "how about",
    "tell me more",
    "can you explain",
    "what else",
    "anything else",
    "more details",
    "elaborate",
    "follow up",
    "building on",
    "expanding on",
    "related to",
)

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by is are was were be been being
    have has had do does did will would could should may might can this that these
    those you your yours about what when where which who how why our their there
    """.split()
)

STOP_PHRASES = frozenset(
    {
        "what", "understand", "what don", "don", "know", "think", "like", "want",
        "need", "get", "make", "take", "come", "see", "don understand",
        "what don understand", "tell", "tell me", "also",
    }
)

RELATED_TERM_GROUPS = (
    ("machine", "learning", "ml"),
    ("neural", "network", "deep"),
    ("artificial", "intelligence", "ai"),
    ("supervised", "unsupervised", "reinforcement"),
    ("algorithm", "model", "training"),
    ("web", "frontend", "backend", "development", "website"),
    ("programming", "coding", "software", "program"),
    ("computer", "science", "technology"),
    ("mobile", "app", "application"),
    ("data", "database", "storage"),
    ("algorithm", "algorithms", "procedure"),
    ("language", "languages", "code"),
    ("test", "testing", "qa", "quality"),
)


@runtime_checkable
class TopicAnalyzer(Protocol):
    def extract_topics(self, turn: Turn) -> List[str]: ...

    def determine_relationship(self, label: str, existing_nodes: Sequence[TopicNode]) -> TopicRelationship: ...


def _clean(text: str) -> List[str]:
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    return [word for word in words if len(word) > 2 and word not in STOP_WORDS]


def _significant(label: str) -> Set[str]:
    return {word for word in label.lower().split() if len(word) > 2}


def mentions(label: str, text: str) -> bool:
    """Whether any content word of ``label`` occurs in ``text``."""

    words = {word for word in _clean(label) if word not in STOP_PHRASES}
    return bool(words & set(_clean(text)))


class KeywordTopicAnalyzer:
    """Deterministic n-gram analyzer with similarity-based relationships."""

    name = "keyword"

    def __init__(self, max_topics: int = 3) -> None:
        self.max_topics = max_topics

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------
    def extract_topics(self, turn: Turn) -> List[str]:
        words = _clean(f"{turn.prompt} {turn.response}")
        phrases: List[str] = [word for word in words if len(word) > 3]
        phrases += [" ".join(pair) for pair in zip(words, words[1:]) if len(" ".join(pair)) > 6]
        phrases += [" ".join(tri) for tri in zip(words, words[1:], words[2:]) if len(" ".join(tri)) > 10]

        counts = Counter(phrase for phrase in phrases if len(phrase) > 3 and phrase not in STOP_PHRASES)
        # most_common keeps first-seen order among equal counts
        ranked = [phrase for phrase, _ in counts.most_common(self.max_topics)]
        return ranked or [DEFAULT_TOPIC]

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------
    def determine_relationship(self, label: str, existing_nodes: Sequence[TopicNode]) -> TopicRelationship:
        if not existing_nodes:
            return TopicRelationship(kind="new_root", confidence=1.0)

        continuation = self._continuation(label, existing_nodes)
        if continuation is not None:
            return continuation

        scored = sorted(
            ((self.similarity(label, node.label), node) for node in existing_nodes),
            key=lambda pair: (-pair[0], pair[1].order),
        )
        similarity, best = scored[0]
        similarity = round(similarity, 4)

        if similarity >= CHILD_SIMILARITY_THRESHOLD:
            return TopicRelationship(kind="child_of", parent_node_id=best.id, confidence=similarity)
        if similarity >= SIBLING_SIMILARITY_THRESHOLD:
            if best.parent_id is not None:
                return TopicRelationship(kind="sibling_of", parent_node_id=best.parent_id, confidence=similarity)
            return TopicRelationship(kind="child_of", parent_node_id=best.id, confidence=similarity)
        if similarity >= RELATED_SIMILARITY_THRESHOLD:
            contextual = self._contextual_parent(label, existing_nodes)
            if contextual is not None:
                return TopicRelationship(kind="child_of", parent_node_id=contextual.id, confidence=similarity)
            return TopicRelationship(kind="new_root", confidence=0.8, related_node_id=best.id)
        return TopicRelationship(kind="new_root", confidence=round(1.0 - similarity, 4))

    def _continuation(self, label: str, existing_nodes: Sequence[TopicNode]) -> Optional[TopicRelationship]:
        lowered = label.lower()
        if not any(keyword in lowered for keyword in CONTINUATION_KEYWORDS):
            return None
        latest = max(existing_nodes, key=lambda node: (node.updated_at, node.order))
        return TopicRelationship(kind="continuation", parent_node_id=latest.id, confidence=0.8)

    def _contextual_parent(self, label: str, existing_nodes: Sequence[TopicNode]) -> Optional[TopicNode]:
        words = _significant(label)
        candidates = [node for node in existing_nodes if words & _significant(node.label)]
        if not candidates:
            return None
        return max(candidates, key=lambda node: (node.depth, node.order))

    def similarity(self, first: str, second: str) -> float:
        """Jaccard overlap boosted by related-term groups and partial matches."""

        words1 = _significant(first)
        words2 = _significant(second)
        if not words1 and not words2:
            return 1.0
        if not words1 or not words2:
            return 0.0
        score = len(words1 & words2) / len(words1 | words2)
        score = min(1.0, score + self._related_terms(first, second))
        return min(1.0, score + self._partial_matches(first, second))

    @staticmethod
    def _related_terms(first: str, second: str) -> float:
        words1 = first.lower().split()
        words2 = second.lower().split()
        for group in RELATED_TERM_GROUPS:
            in_first = any(term in word for term in group for word in words1)
            in_second = any(term in word for term in group for word in words2)
            if in_first and in_second:
                return 0.3
        return 0.0

    @staticmethod
    def _partial_matches(first: str, second: str) -> float:
        matches = 0.0
        comparisons = 0
        for word1 in first.lower().split():
            if len(word1) < 4:
                continue
            for word2 in second.lower().split():
                if len(word2) < 4:
                    continue
                comparisons += 1
                if word1 in word2 or word2 in word1:
                    matches += 1
                elif len(word1) > 4 and len(word2) > 4 and word1[:4] == word2[:4]:
                    matches += 0.5
        return (matches / comparisons) * 0.2 if comparisons else 0.0


class LlmTopicAnalyzer(KeywordTopicAnalyzer):
    """Topic extraction via the registry-bound LLM; relationships stay keyword based."""

    name = "llm"

    def extract_topics(self, turn: Turn) -> List[str]:
        llm = get_model(TOPIC_EXTRACTION_KEY)
        raw = llm(
            inputs={"question": turn.prompt, "answer": turn.response},
            temperature=0.0,
            max_tokens=200,
        )
        if isinstance(raw, list):
            raw = {"topics": raw}
        try:
            parsed = TopicExtraction.model_validate(raw)
        except ValidationError as exc:
            raise AnalysisError(f"topic extraction returned an invalid payload: {exc.error_count()} errors") from exc
        topics = [topic.strip() for topic in parsed.topics if topic and topic.strip()]
        if not topics:
            raise AnalysisError("topic extraction returned no usable topics")
        return topics


__all__ = [
    "DEFAULT_TOPIC",
    "KeywordTopicAnalyzer",
    "LlmTopicAnalyzer",
    "TopicAnalyzer",
    "mentions",
]
