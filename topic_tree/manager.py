"""Tree manager owning one conversation tree and its cursor."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel

from config.settings import settings

from .errors import TreeIntegrityError, ValidationError
from .models import ConversationTree, TopicNode, Turn, new_node_id, utcnow
from .validation import (
    validate_node_id,
    validate_path,
    validate_score,
    validate_topic_label,
    validate_tree_depth,
    validate_tree_integrity,
    validate_tree_size,
)

logger = logging.getLogger(__name__)

_UNSET = object()


class TreeStats(BaseModel):
    total_nodes: int
    root_nodes: int
    leaf_nodes: int
    max_depth: int


def tree_stats(tree: ConversationTree) -> TreeStats:
    nodes = tree.nodes.values()
    return TreeStats(
        total_nodes=len(tree.nodes),
        root_nodes=len(tree.root_ids),
        leaf_nodes=sum(1 for node in nodes if node.is_leaf),
        max_depth=max((node.depth for node in nodes), default=0),
    )


class TreeManager:
    """Single owner of a ``ConversationTree``.

    Every structural mutation re-validates the whole tree before returning.
    The manager is not thread safe; callers serialize access per session.
    """

    def __init__(
        self,
        session_id: str,
        *,
        tree: Optional[ConversationTree] = None,
        max_depth: Optional[int] = None,
        max_nodes: Optional[int] = None,
    ) -> None:
        self.max_depth = max_depth if max_depth is not None else settings.MAX_TREE_DEPTH
        self.max_nodes = max_nodes if max_nodes is not None else settings.MAX_TREE_NODES
        self._tree = tree if tree is not None else ConversationTree(session_id=session_id)
        if tree is not None:
            self.validate()

    @property
    def session_id(self) -> str:
        return self._tree.session_id

    @property
    def tree(self) -> ConversationTree:
        """Live tree. Mutate only through the manager."""
        return self._tree

    def __len__(self) -> int:
        return len(self._tree.nodes)

    def validate(self) -> None:
        validate_tree_integrity(self._tree, self.max_depth)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get_node(self, node_id: str) -> Optional[TopicNode]:
        return self._tree.nodes.get(node_id)

    def require_node(self, node_id: str) -> TopicNode:
        node = self._tree.nodes.get(node_id)
        if node is None:
            raise ValidationError(f"Unknown node: {node_id}", field="node_id", value=node_id)
        return node

    def nodes(self) -> List[TopicNode]:
        return sorted(self._tree.nodes.values(), key=lambda node: node.order)

    def get_children(self, node_id: str) -> List[TopicNode]:
        node = self.require_node(node_id)
        return [self._tree.nodes[child_id] for child_id in node.children]

    def get_siblings(self, node_id: str) -> List[TopicNode]:
        node = self.require_node(node_id)
        if node.parent_id is None:
            peers = self._tree.root_ids
        else:
            peers = self._tree.nodes[node.parent_id].children
        return [self._tree.nodes[peer] for peer in peers if peer != node_id]

    def get_ancestors(self, node_id: str) -> List[TopicNode]:
        path = self.require_node(node_id).get_path_from_root(self._tree.nodes)
        return [self._tree.nodes[ancestor] for ancestor in path[:-1]]

    def get_depth_from_root(self, node_id: str) -> int:
        return self.require_node(node_id).calculate_depth_from_root(self._tree.nodes)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def add_node(
        self,
        label: str,
        parent_id: Optional[str] = None,
        *,
        node_id: Optional[str] = None,
        score: Optional[float] = None,
        turn: Optional[Turn] = None,
    ) -> TopicNode:
        validate_topic_label(label)
        node_id = node_id or new_node_id()
        validate_node_id(node_id)
        if score is not None:
            validate_score(score)
        if node_id in self._tree.nodes:
            raise ValidationError(f"Node already exists: {node_id}", field="node_id", value=node_id)
        validate_tree_size(self._tree, 1, self.max_nodes)

        parent = None
        if parent_id is not None:
            parent = self._tree.nodes.get(parent_id)
            if parent is None:
                raise TreeIntegrityError(f"Parent does not exist: {parent_id}", node_id=parent_id)
            validate_tree_depth(parent.depth + 1, self.max_depth)

        node = TopicNode(id=node_id, label=label.strip(), score=score, order=self._tree.next_order)
        if turn is not None:
            node.metadata.turns.append(turn)
        self._tree.next_order += 1
        self._tree.nodes[node_id] = node
        if parent is None:
            self._tree.root_ids.append(node_id)
        else:
            parent.add_child(node, self._tree.nodes)

        try:
            self.validate()
        except TreeIntegrityError:
            self.remove_node(node_id, validate=False)
            raise
        logger.debug("node added session=%s node=%s depth=%d", self.session_id, node_id, node.depth)
        return node

    def update_node(
        self,
        node_id: str,
        *,
        label: Optional[str] = None,
        score: object = _UNSET,
        parent_id: object = _UNSET,
    ) -> TopicNode:
        """Update label, score and/or parent. ``parent_id=None`` promotes to root."""

        node = self.require_node(node_id)
        if label is not None:
            validate_topic_label(label)
        if score is not _UNSET and score is not None:
            validate_score(score)

        if parent_id is not _UNSET and parent_id != node.parent_id:
            self._reparent(node, parent_id)  # type: ignore[arg-type]
        if label is not None:
            node.label = label.strip()
            node.touch()
        if score is None:
            node.clear_score()
        elif score is not _UNSET:
            node.update_score(float(score))  # type: ignore[arg-type]
        self.validate()
        return node

    def _reparent(self, node: TopicNode, parent_id: Optional[str]) -> None:
        nodes = self._tree.nodes
        parent = None
        if parent_id is not None:
            parent = nodes.get(parent_id)
            if parent is None:
                raise TreeIntegrityError(f"Parent does not exist: {parent_id}", node_id=parent_id)
            if parent_id == node.id or node.find_descendant(parent_id, nodes) is not None:
                raise TreeIntegrityError(f"Re-parenting {node.id} under {parent_id} creates a cycle", node_id=node.id)
            subtree_height = max((d.depth for d in node.get_all_descendants(nodes)), default=node.depth) - node.depth
            validate_tree_depth(parent.depth + 1 + subtree_height, self.max_depth)

        was_root = node.parent_id is None
        node.set_parent(parent, nodes)
        if was_root and parent is not None:
            self._tree.root_ids.remove(node.id)
        elif not was_root and parent is None:
            self._tree.root_ids.append(node.id)
        self._drop_stale_path()

    def remove_node(self, node_id: str, *, validate: bool = True) -> TopicNode:
        """Remove a node, re-homing its children to the grandparent.

        Children of a removed root become roots. The cursor is truncated at
        the removed node.
        """

        nodes = self._tree.nodes
        node = self.require_node(node_id)
        parent = nodes.get(node.parent_id) if node.parent_id is not None else None

        for child_id in list(node.children):
            child = nodes[child_id]
            node.children.remove(child_id)
            child.parent_id = None
            if parent is not None:
                parent.add_child(child, nodes)
            else:
                child.depth = 1
                child.cascade_depth(nodes)
                self._tree.root_ids.append(child_id)

        if parent is not None:
            parent.remove_child(node_id, nodes)
        if node_id in self._tree.root_ids:
            self._tree.root_ids.remove(node_id)
        del nodes[node_id]

        if node_id in self._tree.current_path:
            self._tree.current_path = self._tree.current_path[: self._tree.current_path.index(node_id)]
        if validate:
            self.validate()
        logger.debug("node removed session=%s node=%s", self.session_id, node_id)
        return node

    def attach_turn(self, node_id: str, turn: Turn) -> TopicNode:
        node = self.require_node(node_id)
        node.add_turn(turn)
        node.mark_visited(turn.timestamp)
        return node

    def mark_visited(self, node_id: str) -> TopicNode:
        node = self.require_node(node_id)
        node.mark_visited()
        return node

    def mark_exhausted(self, node_id: str) -> TopicNode:
        node = self.require_node(node_id)
        node.mark_exhausted()
        return node

    def mark_rich(self, node_id: str) -> TopicNode:
        node = self.require_node(node_id)
        node.mark_rich()
        return node

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------
    def get_current_path(self) -> List[str]:
        return list(self._tree.current_path)

    def set_current_path(self, path: Iterable[str]) -> None:
        candidate = list(path)
        validate_path(self._tree, candidate)
        self._tree.current_path = candidate

    def move_cursor_to(self, node_id: Optional[str]) -> List[str]:
        if node_id is None:
            self._tree.current_path = []
        else:
            self._tree.current_path = self.require_node(node_id).get_path_from_root(self._tree.nodes)
        return self.get_current_path()

    def get_current_topic(self) -> Optional[TopicNode]:
        if not self._tree.current_path:
            return None
        return self._tree.nodes.get(self._tree.current_path[-1])

    def _drop_stale_path(self) -> None:
        current = self.get_current_topic()
        if current is None:
            self._tree.current_path = []
            return
        self._tree.current_path = current.get_path_from_root(self._tree.nodes)

    # ------------------------------------------------------------------
    # Navigation & stats
    # ------------------------------------------------------------------
    def get_deepest_unvisited_branch(self) -> Optional[TopicNode]:
        """Deepest never-visited, non-exhausted node; earliest created wins ties."""

        candidates = [
            node
            for node in self._tree.nodes.values()
            if not node.visited and not node.metadata.exhausted
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda node: (-node.depth, node.created_at, node.order))

    def most_recent_node(self) -> Optional[TopicNode]:
        if not self._tree.nodes:
            return None
        return max(self._tree.nodes.values(), key=lambda node: (node.updated_at, node.order))

    def get_stats(self) -> TreeStats:
        return tree_stats(self._tree)

    # ------------------------------------------------------------------
    # Whole-tree operations
    # ------------------------------------------------------------------
    def snapshot(self) -> ConversationTree:
        return self._tree.model_copy(deep=True)

    def restore(self, tree: ConversationTree) -> None:
        """Replace the tree with ``tree`` after checking its integrity."""

        if tree.session_id != self.session_id:
            raise ValidationError("Tree belongs to another session", field="session_id", value=tree.session_id)
        validate_tree_integrity(tree, self.max_depth)
        self._tree = tree

    def clear(self) -> None:
        self._tree = ConversationTree(session_id=self.session_id, created_at=utcnow())


__all__ = ["TreeManager", "TreeStats", "tree_stats"]
