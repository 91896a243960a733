"""
In-memory storage backend.

Handles are plain node objects held in a tree owned by the storage. The
whole tree can be serialized, so a MemoryStorage restored from persisted
configuration holds the same entries as the one that was saved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from ..entries import (
    StorageDirectory,
    StorageEntry,
    StorageFile,
    validate_entry_name,
)
from ..exceptions import (
    EntryExistsError,
    EntryNotFoundError,
    StorageConfigurationError,
    StorageError,
    StoragePermissionError,
)
from ..storage import ProviderDescriptor, ProviderKind, Storage

logger = logging.getLogger(__name__)

PermissionApprover = Callable[[], Awaitable[bool]]


@dataclass(eq=False)
class MemoryFileNode:
    name: str
    content: str = ""


@dataclass(eq=False)
class MemoryDirectoryNode:
    name: str
    children: Dict[str, Union["MemoryDirectoryNode", MemoryFileNode]] = field(
        default_factory=dict
    )


MemoryNode = Union[MemoryDirectoryNode, MemoryFileNode]
MemoryEntry = StorageEntry[MemoryDirectoryNode, MemoryFileNode]


def build_tree(name: str, tree: Mapping[str, Any]) -> MemoryDirectoryNode:
    """
    Build directory nodes from a nested mapping.

    String values become files with that content, mappings become
    directories.

    Raises:
        StorageConfigurationError: For any other value type
    """
    node = MemoryDirectoryNode(name)
    for child_name, value in tree.items():
        if isinstance(value, str):
            node.children[child_name] = MemoryFileNode(child_name, value)
        elif isinstance(value, Mapping):
            node.children[child_name] = build_tree(child_name, value)
        else:
            raise StorageConfigurationError(
                f"Unsupported value for memory entry '{child_name}': {type(value).__name__}",
                config_field="tree",
                config_value=child_name,
            )
    return node


def dump_tree(node: MemoryDirectoryNode) -> Dict[str, Any]:
    """Inverse of build_tree."""
    result: Dict[str, Any] = {}
    for child_name, child in node.children.items():
        if isinstance(child, MemoryFileNode):
            result[child_name] = child.content
        else:
            result[child_name] = dump_tree(child)
    return result


class MemoryStorage(Storage[MemoryDirectoryNode, MemoryFileNode]):
    """
    Storage backed by a tree of nodes in process memory.

    Example:
        >>> storage = MemoryStorage(tree={"design.v": "module top; endmodule"})
        >>> file = await storage.get_entry(["design.v"])
        >>> await file.read()
        'module top; endmodule'
    """

    descriptor = ProviderDescriptor(ProviderKind.MEMORY, "Memory")

    def __init__(
        self,
        storage_id: Optional[str] = None,
        label: str = "/",
        tree: Optional[Mapping[str, Any]] = None,
        granted: bool = True,
        approver: Optional[PermissionApprover] = None,
    ) -> None:
        """
        Initialize the memory storage.

        Args:
            storage_id: Persisted id to reuse, or None for a fresh one
            label: Name reported by the root directory
            tree: Initial content as a nested mapping (see ``build_tree``)
            granted: Whether access is granted from the start
            approver: Awaited by ``request_permission`` to decide a grant
        """
        super().__init__(storage_id)
        self.label = label
        self.approver = approver
        self._granted = granted
        self._root_node = build_tree(label, tree or {})
        self._root: Optional[MemoryDirectory] = None

    def serialize(self) -> Dict[str, Any]:
        return {"label": self.label, "tree": dump_tree(self._root_node)}

    def deserialize(self, data: Dict[str, Any]) -> None:
        label = data.get("label", "/")
        tree = data.get("tree", {})
        if not isinstance(label, str):
            raise StorageConfigurationError(
                "Memory storage label must be a string.",
                config_field="label",
                config_value=label,
                storage_id=self.id,
            )
        if not isinstance(tree, Mapping):
            raise StorageConfigurationError(
                "Memory storage tree must be a mapping.",
                config_field="tree",
                storage_id=self.id,
            )
        self.label = label
        self._root_node = build_tree(label, tree)
        self._root = None

    async def get_root(self) -> "MemoryDirectory":
        self.check_access()
        if self._root is None:
            self._root = MemoryDirectory(self, None, self._root_node)
        return self._root

    async def has_permission(self) -> bool:
        return self._granted

    async def request_permission(self) -> bool:
        if self._granted:
            return True
        if self.approver is None:
            logger.info(
                "Permission request declined: no approver configured",
                extra={"storage_id": self.id},
            )
            return False

        self._granted = bool(await self.approver())
        logger.info(
            f"Permission {'granted' if self._granted else 'declined'}",
            extra={"storage_id": self.id},
        )
        return self._granted

    def revoke(self) -> None:
        """Withdraw a previously granted permission."""
        self._granted = False

    async def add(self) -> None:
        self._root_node = MemoryDirectoryNode(self.label)
        self._root = None
        self._granted = True
        logger.info("Memory storage added", extra={"storage_id": self.id})

    def check_access(self) -> None:
        if not self._granted:
            raise StoragePermissionError(
                "Permission to access the memory storage has not been granted.",
                storage_id=self.id,
            )

    def is_attached(self, entry: MemoryEntry) -> bool:
        """Whether the entry's node is still reachable from the root node."""
        parent = entry.parent
        if parent is None:
            return entry.handle is self._root_node
        return (
            parent.handle.children.get(entry.name) is entry.handle
            and self.is_attached(parent)
        )


def _wrap(
    storage: MemoryStorage, parent: "MemoryDirectory", node: MemoryNode
) -> MemoryEntry:
    if isinstance(node, MemoryDirectoryNode):
        return MemoryDirectory(storage, parent, node)
    return MemoryFile(storage, parent, node)


class _MemoryEntryMixin:
    """Operations shared by memory directories and files."""

    @property
    def name(self) -> str:
        return self.handle.name

    def _memory_storage(self) -> MemoryStorage:
        return self.storage

    def _ensure_attached(self) -> None:
        storage = self._memory_storage()
        storage.check_access()
        if not storage.is_attached(self):
            raise EntryNotFoundError(
                f"Entry \"{'/'.join(self.path)}\" no longer exists.",
                path=self.path,
                storage_id=storage.id,
            )

    async def delete(self) -> None:
        self._ensure_attached()
        if self.parent is None:
            raise StorageError(
                "The root directory of a storage cannot be deleted.",
                path=[],
                storage_id=self.storage.id,
            )
        del self.parent.handle.children[self.name]
        logger.debug(
            f"Deleted {self.kind.value.lower()} '{'/'.join(self.path)}'",
            extra={"storage_id": self.storage.id},
        )


class MemoryDirectory(_MemoryEntryMixin, StorageDirectory[MemoryDirectoryNode, MemoryFileNode]):
    """Directory over a MemoryDirectoryNode."""

    async def get_entries(self, force: bool = False) -> List[MemoryEntry]:
        # Listings are always read straight from the node, so force has nothing to bypass
        self._ensure_attached()
        storage = self._memory_storage()
        return [
            _wrap(storage, self, self.handle.children[name])
            for name in sorted(self.handle.children)
        ]

    async def get_entry(self, name: str, force: bool = False) -> Optional[MemoryEntry]:
        self._ensure_attached()
        node = self.handle.children.get(name)
        if node is None:
            return None
        return _wrap(self._memory_storage(), self, node)

    async def create_directory(self, name: str) -> "MemoryDirectory":
        node = MemoryDirectoryNode(name)
        self._add_child(node)
        return MemoryDirectory(self._memory_storage(), self, node)

    async def create_file(self, name: str) -> "MemoryFile":
        node = MemoryFileNode(name)
        self._add_child(node)
        return MemoryFile(self._memory_storage(), self, node)

    def _add_child(self, node: MemoryNode) -> None:
        storage = self._memory_storage()
        self._ensure_attached()
        validate_entry_name(node.name, self, storage.id)
        if node.name in self.handle.children:
            raise EntryExistsError(
                f"Entry \"{node.name}\" already exists in \"{'/'.join(self.path)}\".",
                path=[*self.path, node.name],
                storage_id=storage.id,
            )
        self.handle.children[node.name] = node
        logger.debug(
            f"Created '{'/'.join([*self.path, node.name])}'",
            extra={"storage_id": storage.id},
        )


class MemoryFile(_MemoryEntryMixin, StorageFile[MemoryDirectoryNode, MemoryFileNode]):
    """File over a MemoryFileNode."""

    async def read(self) -> str:
        self._ensure_attached()
        return self.handle.content

    async def write(self, content: str) -> None:
        self._ensure_attached()
        self.handle.content = content
        logger.debug(
            f"Wrote {len(content)} characters to '{'/'.join(self.path)}'",
            extra={"storage_id": self.storage.id},
        )
