"""Tri-state selection over scanned file trees."""
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence

from .models import CheckState, FileTreeNode, NodeKind

NodeRef = int | str | FileTreeNode

@dataclass(frozen=True)
class _ArenaNode:
    path: str
    name: str
    kind: NodeKind
    parent: int | None
    children: tuple[int, ...]
    depth: int
    size: int | None

class SelectionTree:
    """Flattened view of one or more scanned trees.

    Nodes are stored in pre-order and referenced by index. Every node's set
    of descendant file paths is computed once here; build a new SelectionTree
    when the scanner produces a new tree.
    """

    def __init__(self, roots: Sequence[FileTreeNode]):
        self.roots: tuple[FileTreeNode, ...] = tuple(roots)
        self._nodes: list[_ArenaNode] = []
        self._files: list[frozenset[str]] = []
        self._index: dict[str, int] = {}
        self.root_indices: tuple[int, ...] = tuple(self._add(root, None, 0) for root in self.roots)
        self._all_files = frozenset().union(*(self._files[i] for i in self.root_indices))

    def _add(self, node: FileTreeNode, parent: int | None, depth: int) -> int:
        idx = len(self._nodes)
        self._nodes.append(None)  # Reserve pre-order slot
        self._files.append(frozenset())
        self._index.setdefault(node.path, idx)

        if node.kind is NodeKind.FILE:
            child_ids: tuple[int, ...] = ()
            files = frozenset((node.path,))
        else:
            child_ids = tuple(self._add(child, idx, depth + 1) for child in node.children)
            files = frozenset().union(*(self._files[c] for c in child_ids))

        self._nodes[idx] = _ArenaNode(node.path, node.name, node.kind, parent, child_ids, depth, node.size)
        self._files[idx] = files
        return idx

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, path: str) -> bool:
        return path in self._index

    def index_of(self, ref: NodeRef) -> int:
        if isinstance(ref, int):
            if not 0 <= ref < len(self._nodes):
                raise IndexError(f"No node at index {ref}")
            return ref
        path = ref.path if isinstance(ref, FileTreeNode) else ref
        try:
            return self._index[path]
        except KeyError:
            raise KeyError(f"Path not in tree: {path}") from None

    def node(self, ref: NodeRef) -> _ArenaNode:
        return self._nodes[self.index_of(ref)]

    def descendant_files(self, ref: NodeRef) -> frozenset[str]:
        return self._files[self.index_of(ref)]

    def file_paths(self) -> frozenset[str]:
        return self._all_files

    def status(self, ref: NodeRef, selection: Iterable[str]) -> CheckState:
        selection = selection if isinstance(selection, (set, frozenset)) else frozenset(selection)
        idx = self.index_of(ref)
        node = self._nodes[idx]
        if node.kind is NodeKind.FILE:
            return CheckState.CHECKED if node.path in selection else CheckState.UNCHECKED

        files = self._files[idx]
        if not files or files.isdisjoint(selection):
            return CheckState.UNCHECKED
        if files <= selection:
            return CheckState.CHECKED
        return CheckState.INDETERMINATE

    def toggle(self, ref: NodeRef, selection: Iterable[str], checked: bool) -> frozenset[str]:
        """Return the selection with the node's files added or removed."""
        files = self._files[self.index_of(ref)]
        if checked:
            return frozenset(selection) | files
        return frozenset(selection) - files

    def prune(self, selection: Iterable[str]) -> frozenset[str]:
        """Drop selected paths that are not files of this tree."""
        return frozenset(selection) & self._all_files

    def without_root(self, ref: NodeRef) -> "SelectionTree":
        """A new tree without the root folder `ref`; this tree is unchanged."""
        idx = self.index_of(ref)
        if idx not in self.root_indices:
            raise ValueError(f"Not a root folder: {self._nodes[idx].path}")
        return SelectionTree([r for i, r in zip(self.root_indices, self.roots) if i != idx])

    def walk(self, selection: Iterable[str] = ()) -> Iterator[tuple[_ArenaNode, CheckState]]:
        """Yield (node, state) in display order."""
        selection = frozenset(selection)
        for idx, node in enumerate(self._nodes):
            yield node, self.status(idx, selection)

def selection_status(node: FileTreeNode, selection: Iterable[str]) -> CheckState:
    return SelectionTree([node]).status(0, selection)

def toggle_selection(node: FileTreeNode, selection: Iterable[str], checked: bool) -> frozenset[str]:
    return SelectionTree([node]).toggle(0, selection, checked)
