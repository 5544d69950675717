"""Interview summary derived from a conversation tree."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from agents.scoring import average
from config.settings import settings
from topic_tree.manager import TreeStats, tree_stats
from topic_tree.models import ConversationTree, TopicNode

STATUS_MARKERS: Dict[str, str] = {
    "unexplored": "[ ]",
    "exploring": "[~]",
    "rich": "[+]",
    "exhausted": "[x]",
}


class TopicCoverage(BaseModel):
    explored: int = 0
    rich: int = 0
    exhausted: int = 0


class BuzzwordCount(BaseModel):
    term: str
    count: int


class InterviewSummary(BaseModel):
    session_id: str
    total_nodes: int
    max_depth_reached: int
    average_score: Optional[float] = None
    turn_count: int = 0
    topic_coverage: TopicCoverage
    top_buzzwords: List[BuzzwordCount] = Field(default_factory=list)
    exhausted_topics: List[str] = Field(default_factory=list)
    stats: TreeStats
    rendered_tree_text: str


def render_tree(tree: ConversationTree) -> str:
    """Indented outline of the tree with status markers and the cursor."""

    if not tree.root_ids:
        return "(empty tree)"
    current = tree.current_path[-1] if tree.current_path else None
    lines: List[str] = []
    stack = [(root_id, 0) for root_id in reversed(tree.root_ids)]
    while stack:
        node_id, indent = stack.pop()
        node: TopicNode = tree.nodes[node_id]
        line = f"{'  ' * indent}{STATUS_MARKERS[node.status]} {node.label} (depth: {node.depth})"
        if node.score is not None:
            line += f" score={node.score:.2f}"
        if node_id == current:
            line += " <- CURRENT"
        lines.append(line)
        stack.extend((child_id, indent + 1) for child_id in reversed(node.children))
    return "\n".join(lines)


def top_buzzwords(tree: ConversationTree, limit: Optional[int] = None) -> List[BuzzwordCount]:
    limit = settings.TOP_BUZZWORDS if limit is None else limit
    ranked = sorted(tree.buzzwords.values(), key=lambda stat: (-stat.count, stat.term.lower()))
    return [BuzzwordCount(term=stat.term, count=stat.count) for stat in ranked[:limit]]


def build_summary(tree: ConversationTree) -> InterviewSummary:
    """Pure function of ``tree``; calling it twice gives identical summaries."""

    nodes = list(tree.nodes.values())
    coverage = TopicCoverage(
        explored=sum(1 for node in nodes if node.status != "unexplored"),
        rich=sum(1 for node in nodes if node.status == "rich"),
        exhausted=sum(1 for node in nodes if node.status == "exhausted"),
    )
    return InterviewSummary(
        session_id=tree.session_id,
        total_nodes=len(nodes),
        max_depth_reached=tree.max_depth_reached,
        average_score=average(grade.score for grade in tree.grades),
        turn_count=tree.turn_count,
        topic_coverage=coverage,
        top_buzzwords=top_buzzwords(tree),
        exhausted_topics=list(tree.exhausted_topics),
        stats=tree_stats(tree),
        rendered_tree_text=render_tree(tree),
    )


__all__ = ["BuzzwordCount", "InterviewSummary", "TopicCoverage", "build_summary", "render_tree", "top_buzzwords"]
