"""Domain models for conversation topic trees.

Nodes live in a flat arena (``Dict[str, TopicNode]``) and reference each other
by id. Structural operations on a node therefore take the arena as an
argument instead of following live object pointers.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import TreeIntegrityError

NodeStatus = Literal["unexplored", "exploring", "rich", "exhausted"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_node_id() -> str:
    return f"node_{uuid.uuid4().hex[:16]}"


class Turn(BaseModel):
    """One question/answer exchange. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    response: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class NodeMetadata(BaseModel):
    turns: List[Turn] = Field(default_factory=list)
    visit_count: int = 0
    last_visited: Optional[datetime] = None
    exhausted: bool = False
    rich: bool = False


class TopicNode(BaseModel):
    id: str = Field(default_factory=new_node_id)
    label: str
    parent_id: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    depth: int = 1
    score: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    order: int = 0  # creation sequence within the tree, breaks timestamp ties
    metadata: NodeMetadata = Field(default_factory=NodeMetadata)

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------
    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def visited(self) -> bool:
        return self.metadata.visit_count > 0

    @property
    def status(self) -> NodeStatus:
        if self.metadata.exhausted:
            return "exhausted"
        if self.metadata.rich:
            return "rich"
        if self.visited:
            return "exploring"
        return "unexplored"

    def touch(self) -> None:
        self.updated_at = utcnow()

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------
    def set_parent(self, parent: Optional["TopicNode"], nodes: Dict[str, "TopicNode"]) -> None:
        """Re-link this node under ``parent`` (``None`` makes it a root).

        Raises TreeIntegrityError for self-parenting or a descendant parent.
        Depth is cascaded to the whole subtree.
        """

        if parent is not None:
            if parent.id == self.id:
                raise TreeIntegrityError("Node cannot be its own parent", node_id=self.id)
            if self.find_descendant(parent.id, nodes) is not None:
                raise TreeIntegrityError(
                    f"Cannot attach {self.id} under its descendant {parent.id}", node_id=self.id
                )

        if self.parent_id is not None:
            previous = nodes.get(self.parent_id)
            if previous is not None and self.id in previous.children:
                previous.children.remove(self.id)
                previous.touch()

        self.parent_id = parent.id if parent is not None else None
        if parent is not None and self.id not in parent.children:
            parent.children.append(self.id)
            parent.touch()
        self.depth = parent.depth + 1 if parent is not None else 1
        self.cascade_depth(nodes)
        self.touch()

    def add_child(self, child: "TopicNode", nodes: Dict[str, "TopicNode"]) -> None:
        child.set_parent(self, nodes)

    def remove_child(self, child_id: str, nodes: Dict[str, "TopicNode"]) -> None:
        if child_id not in self.children:
            return
        self.children.remove(child_id)
        self.touch()
        child = nodes.get(child_id)
        if child is not None and child.parent_id == self.id:
            child.parent_id = None
            child.depth = 1
            child.cascade_depth(nodes)
            child.touch()

    def cascade_depth(self, nodes: Dict[str, "TopicNode"]) -> None:
        stack = [self]
        while stack:
            current = stack.pop()
            for child_id in current.children:
                child = nodes.get(child_id)
                if child is None:
                    continue
                child.depth = current.depth + 1
                stack.append(child)

    def get_all_descendants(self, nodes: Dict[str, "TopicNode"]) -> List["TopicNode"]:
        found: List[TopicNode] = []
        seen = {self.id}
        queue = list(self.children)
        while queue:
            node_id = queue.pop(0)
            if node_id in seen:
                continue
            seen.add(node_id)
            node = nodes.get(node_id)
            if node is None:
                continue
            found.append(node)
            queue.extend(node.children)
        return found

    def find_descendant(self, node_id: str, nodes: Dict[str, "TopicNode"]) -> Optional["TopicNode"]:
        for node in self.get_all_descendants(nodes):
            if node.id == node_id:
                return node
        return None

    def get_path_from_root(self, nodes: Dict[str, "TopicNode"]) -> List[str]:
        path = [self.id]
        seen = {self.id}
        current = self
        while current.parent_id is not None:
            if current.parent_id in seen:
                raise TreeIntegrityError("Cycle detected while walking to root", node_id=current.parent_id)
            parent = nodes.get(current.parent_id)
            if parent is None:
                raise TreeIntegrityError(f"Missing parent {current.parent_id}", node_id=current.id)
            path.append(parent.id)
            seen.add(parent.id)
            current = parent
        path.reverse()
        return path

    def calculate_depth_from_root(self, nodes: Dict[str, "TopicNode"]) -> int:
        return len(self.get_path_from_root(nodes))

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    def add_turn(self, turn: Turn) -> None:
        self.metadata.turns.append(turn)
        self.touch()

    def mark_visited(self, when: Optional[datetime] = None) -> None:
        self.metadata.visit_count += 1
        self.metadata.last_visited = when or utcnow()
        self.touch()

    def mark_exhausted(self) -> None:
        self.metadata.exhausted = True
        self.touch()

    def mark_rich(self) -> None:
        self.metadata.rich = True
        self.touch()

    def update_score(self, score: float) -> None:
        self.score = score
        self.touch()

    def clear_score(self) -> None:
        self.score = None
        self.touch()

    def to_plain(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_plain(cls, data: Dict[str, Any]) -> "TopicNode":
        return cls.model_validate(data)


class BuzzwordStat(BaseModel):
    term: str
    count: int = 0
    sources: List[int] = Field(default_factory=list)  # turn indexes that mentioned the term


class GradeRecord(BaseModel):
    turn_index: int
    node_id: str
    score: float
    action: str
    strategy: str
    degraded: bool = False


class ConversationTree(BaseModel):
    session_id: str
    created_at: datetime = Field(default_factory=utcnow)
    nodes: Dict[str, TopicNode] = Field(default_factory=dict)
    root_ids: List[str] = Field(default_factory=list)
    current_path: List[str] = Field(default_factory=list)

    exhausted_topics: List[str] = Field(default_factory=list)
    max_depth_reached: int = 0
    grades: List[GradeRecord] = Field(default_factory=list)
    buzzwords: Dict[str, BuzzwordStat] = Field(default_factory=dict)
    turn_count: int = 0
    next_order: int = 0

    def get(self, node_id: str) -> Optional[TopicNode]:
        return self.nodes.get(node_id)


class SessionInfo(BaseModel):
    session_id: str
    created_at: datetime = Field(default_factory=utcnow)
    last_accessed: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "BuzzwordStat",
    "ConversationTree",
    "GradeRecord",
    "NodeMetadata",
    "NodeStatus",
    "SessionInfo",
    "TopicNode",
    "Turn",
    "new_node_id",
    "utcnow",
]
