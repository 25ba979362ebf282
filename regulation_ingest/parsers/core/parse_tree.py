"""
Parse Tree - arena-backed regulation hierarchy.

Nodes live in one flat list (the arena) and refer to their parent and
children by index. Per-level index lists keep document order, and a natural
key index (``(parent, level, key) -> node``) lets the builder re-open an
existing node instead of creating a duplicate.

The logical hierarchy and traversal order are the same as a nested tree;
``to_dict`` produces the nested form used by the importer and reports.

Example:
    >>> tree = ParseTree()
    >>> edition = tree.add(NodeLevel.EDITION, None, number=1, title="총칙")
    >>> chapter = tree.add(NodeLevel.CHAPTER, edition.index, number=1, title="목적")
    >>> tree.parent_of(chapter.index) is edition
    True
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from regulation_ingest.core.constants import CONTENT_SEPARATOR


class NodeLevel(IntEnum):
    """Hierarchy level; the value is the depth (edition = 1)."""
    EDITION = 1
    CHAPTER = 2
    REGULATION = 3
    ARTICLE = 4
    CLAUSE = 5

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass
class TreeNode:
    """
    A node in the parse tree.

    Attributes:
        index: Position in the arena
        level: Hierarchy level
        parent: Arena index of the parent (None for editions)
        children: Arena indices of children in document order
        sort_order: 1-based position among siblings, in document order
        number: Edition/chapter/article/clause number; regulation ordinal
        title: Heading title
        code: Regulation code
        clause_type: Clause type (clauses only)
        content_parts: Accumulated content lines
        line_number: Source line that opened the node (0 for placeholders)
        placeholder: Synthesized parent for an orphaned node
    """
    index: int
    level: NodeLevel
    parent: Optional[int]
    sort_order: int
    number: int = 0
    title: Optional[str] = None
    code: Optional[str] = None
    clause_type: Optional[str] = None
    content_parts: List[str] = field(default_factory=list)
    line_number: int = 0
    placeholder: bool = False
    children: List[int] = field(default_factory=list)

    @property
    def content(self) -> str:
        return CONTENT_SEPARATOR.join(self.content_parts)

    def append_content(self, text: str) -> None:
        if text:
            self.content_parts.append(text)

    @property
    def natural_key(self) -> Any:
        """Key that identifies the node among its parent's children."""
        if self.level == NodeLevel.REGULATION:
            return self.code
        return self.number


class ParseTree:
    """
    Arena of TreeNodes with per-level indexes.
    """

    def __init__(self) -> None:
        self.nodes: List[TreeNode] = []
        self.roots: List[int] = []
        self._by_level: Dict[NodeLevel, List[int]] = {level: [] for level in NodeLevel}
        self._key_index: Dict[Tuple[Optional[int], NodeLevel, Any], int] = {}
        self._codes: Dict[str, int] = {}

    # ------------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------------

    def add(
        self,
        level: NodeLevel,
        parent: Optional[int],
        number: int = 0,
        title: Optional[str] = None,
        code: Optional[str] = None,
        clause_type: Optional[str] = None,
        content: str = "",
        line_number: int = 0,
        placeholder: bool = False,
    ) -> TreeNode:
        """
        Append a node under ``parent``.

        Raises:
            ValueError: ``parent`` is not exactly one level above ``level``
        """
        if level == NodeLevel.EDITION:
            if parent is not None:
                raise ValueError("Editions have no parent")
            siblings = self.roots
        else:
            if parent is None or self.nodes[parent].level != level - 1:
                raise ValueError(f"{level.label} requires a {NodeLevel(level - 1).label} parent")
            siblings = self.nodes[parent].children

        node = TreeNode(
            index=len(self.nodes),
            level=level,
            parent=parent,
            sort_order=len(siblings) + 1,
            number=number,
            title=title,
            code=code,
            clause_type=clause_type,
            line_number=line_number,
            placeholder=placeholder,
        )
        node.append_content(content)

        self.nodes.append(node)
        siblings.append(node.index)
        self._by_level[level].append(node.index)
        self._key_index[(parent, level, node.natural_key)] = node.index
        if code is not None:
            self._codes.setdefault(code, node.index)
        return node

    def move(self, index: int, parent: int) -> TreeNode:
        """
        Re-parent a node, with its subtree, as the last child of ``parent``.

        Raises:
            ValueError: ``parent`` is not exactly one level above the node
        """
        node = self.nodes[index]
        if self.nodes[parent].level != node.level - 1:
            raise ValueError(f"{node.level.label} requires a {NodeLevel(node.level - 1).label} parent")

        self._unlink(node)
        siblings = self.nodes[parent].children
        node.parent = parent
        node.sort_order = len(siblings) + 1
        siblings.append(index)
        self._key_index[(parent, node.level, node.natural_key)] = index
        return node

    def remove(self, index: int) -> None:
        """
        Drop a childless node. Its arena slot stays, so other indices are stable.

        Raises:
            ValueError: The node still has children
        """
        node = self.nodes[index]
        if node.children:
            raise ValueError(f"{node.level.label} {node.natural_key} still has children")

        self._unlink(node)
        self._by_level[node.level].remove(index)
        if node.code is not None and self._codes.get(node.code) == index:
            del self._codes[node.code]

    def _siblings(self, parent: Optional[int]) -> List[int]:
        return self.roots if parent is None else self.nodes[parent].children

    def _unlink(self, node: TreeNode) -> None:
        siblings = self._siblings(node.parent)
        siblings.remove(node.index)
        for position, sibling in enumerate(siblings, start=1):
            self.nodes[sibling].sort_order = position
        self._key_index.pop((node.parent, node.level, node.natural_key), None)

    # ------------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------------

    def get(self, index: int) -> TreeNode:
        return self.nodes[index]

    def parent_of(self, index: int) -> Optional[TreeNode]:
        parent = self.nodes[index].parent
        return self.nodes[parent] if parent is not None else None

    def find_child(self, parent: Optional[int], level: NodeLevel, key: Any) -> Optional[TreeNode]:
        """Find a child of ``parent`` at ``level`` by natural key."""
        index = self._key_index.get((parent, level, key))
        return self.nodes[index] if index is not None else None

    def find_regulation(self, code: str) -> Optional[TreeNode]:
        index = self._codes.get(code)
        return self.nodes[index] if index is not None else None

    def children_of(self, index: int) -> List[TreeNode]:
        return [self.nodes[child] for child in self.nodes[index].children]

    def ancestors(self, index: int) -> List[TreeNode]:
        """Ancestors from the edition down to the direct parent."""
        chain: List[TreeNode] = []
        node = self.parent_of(index)
        while node is not None:
            chain.append(node)
            node = self.parent_of(node.index)
        return list(reversed(chain))

    def iter_level(self, level: NodeLevel) -> Iterator[TreeNode]:
        for index in self._by_level[level]:
            yield self.nodes[index]

    def count(self, level: NodeLevel) -> int:
        return len(self._by_level[level])

    @property
    def editions(self) -> List[TreeNode]:
        return [self.nodes[index] for index in self.roots]

    def __len__(self) -> int:
        return sum(len(indices) for indices in self._by_level.values())

    # ------------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------------

    def node_to_dict(self, index: int) -> Dict[str, Any]:
        """Nested dictionary for a node and its subtree."""
        node = self.nodes[index]
        children = [self.node_to_dict(child) for child in node.children]

        if node.level == NodeLevel.EDITION:
            return {
                "number": node.number,
                "title": node.title,
                "sort_order": node.sort_order,
                "chapters": children,
            }
        if node.level == NodeLevel.CHAPTER:
            return {
                "number": node.number,
                "title": node.title,
                "sort_order": node.sort_order,
                "regulations": children,
            }
        if node.level == NodeLevel.REGULATION:
            return {
                "code": node.code,
                "title": node.title,
                "content": node.content,
                "sort_order": node.sort_order,
                "articles": children,
            }
        if node.level == NodeLevel.ARTICLE:
            return {
                "number": node.number,
                "title": node.title,
                "content": node.content,
                "sort_order": node.sort_order,
                "clauses": children,
            }
        return {
            "number": node.number,
            "content": node.content,
            "type": node.clause_type,
            "sort_order": node.sort_order,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {"editions": [self.node_to_dict(index) for index in self.roots]}


__all__ = [
    'NodeLevel',
    'TreeNode',
    'ParseTree',
]
