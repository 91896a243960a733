"""
Backend root of a storage tree.

A Storage owns one tree of entries under a single identity and permission
scope. Concrete backends describe themselves with a ProviderDescriptor and
implement the abstract operations; path lookup is shared.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Generic, Optional, Sequence, cast

from .entries import (
    DirectoryHandle,
    EntryKind,
    FileHandle,
    StorageDirectory,
    StorageFile,
)
from .exceptions import (
    EntryNotFoundError,
    NotADirectoryStorageError,
    NotAFileStorageError,
)

logger = logging.getLogger(__name__)


class ProviderKind(Enum):
    """Discriminator of the backend family a storage belongs to."""

    MEMORY = "MEMORY"
    LOCAL = "LOCAL"


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static facts a backend registers about itself."""

    kind: ProviderKind
    display_name: str

    @property
    def add_text(self) -> str:
        return f"Add {self.display_name} storage"


class Storage(ABC, Generic[DirectoryHandle, FileHandle]):
    """
    Abstract storage backend.

    Lifecycle:
        1. Create with a fresh id, or with a persisted id when restoring
        2. ``deserialize()`` the persisted connection parameters, if restoring,
           or run ``add()`` for a brand-new storage
        3. ``has_permission()`` / ``request_permission()``
        4. ``get_root()`` or ``get_entry(path)``

    Subclasses must set ``descriptor``.
    """

    descriptor: ClassVar[ProviderDescriptor]

    def __init__(self, storage_id: Optional[str] = None) -> None:
        self._id = storage_id or str(uuid.uuid4())

    @property
    def id(self) -> str:
        return self._id

    @property
    def kind(self) -> ProviderKind:
        return type(self).descriptor.kind

    @property
    def display_name(self) -> str:
        return type(self).descriptor.display_name

    @property
    def add_text(self) -> str:
        return type(self).descriptor.add_text

    @abstractmethod
    def serialize(self) -> Dict[str, Any]:
        """
        Return the backend connection parameters.

        The keys must stay stable across versions of the backend so a
        persisted mapping can be fed back into ``deserialize``.
        """
        pass

    @abstractmethod
    def deserialize(self, data: Dict[str, Any]) -> None:
        """
        Restore connection parameters produced by ``serialize``.

        Raises:
            StorageConfigurationError: If required keys are missing or invalid
        """
        pass

    @abstractmethod
    async def get_root(self) -> StorageDirectory[DirectoryHandle, FileHandle]:
        """Resolve the top-level directory, reusing it on later calls."""
        pass

    @abstractmethod
    async def has_permission(self) -> bool:
        """Check current access rights without side effects. Never raises."""
        pass

    @abstractmethod
    async def request_permission(self) -> bool:
        """
        Ask for access, possibly waiting for a human decision.

        Returns True immediately, without prompting, when access is already
        granted. A declined request returns False.
        """
        pass

    @abstractmethod
    async def add(self) -> None:
        """Run the interactive first-time setup of a new storage."""
        pass

    async def get_entry(self, path: Sequence[str]) -> StorageFile[DirectoryHandle, FileHandle]:
        """
        Resolve a path of names, starting at the root, to a file.

        Args:
            path: Non-empty sequence of entry names

        Returns:
            The file the last segment names

        Raises:
            ValueError: If the path is empty
            EntryNotFoundError: If a segment does not exist
            NotADirectoryStorageError: If a segment before the last is a file
            NotAFileStorageError: If the last segment is a directory
        """
        if not path:
            raise ValueError("Path must contain at least one segment")

        parent = await self._walk(path[:-1], path)
        entry = await self._lookup(parent, path[-1], path)
        if entry.kind is not EntryKind.FILE:
            raise NotAFileStorageError(
                f"Entry \"{path[-1]}\" in path \"{'/'.join(path)}\" is not a file.",
                path=path,
                storage_id=self.id,
            )
        return cast(StorageFile[DirectoryHandle, FileHandle], entry)

    async def get_directory(
        self, path: Sequence[str]
    ) -> StorageDirectory[DirectoryHandle, FileHandle]:
        """
        Resolve a path of names to a directory; the empty path is the root.

        Raises:
            EntryNotFoundError: If a segment does not exist
            NotADirectoryStorageError: If any segment is a file
        """
        return await self._walk(path, path)

    async def _walk(
        self, segments: Sequence[str], full_path: Sequence[str]
    ) -> StorageDirectory[DirectoryHandle, FileHandle]:
        current = await self.get_root()
        for name in segments:
            entry = await self._lookup(current, name, full_path)
            if entry.kind is not EntryKind.DIRECTORY:
                raise NotADirectoryStorageError(
                    f"Entry \"{name}\" in path \"{'/'.join(full_path)}\" is not a directory.",
                    path=full_path,
                    storage_id=self.id,
                )
            current = cast(StorageDirectory[DirectoryHandle, FileHandle], entry)
        return current

    async def _lookup(
        self,
        directory: StorageDirectory[DirectoryHandle, FileHandle],
        name: str,
        full_path: Sequence[str],
    ):
        entry = await directory.get_entry(name)
        if entry is None:
            logger.debug(
                f"Path lookup stopped at missing entry '{name}'",
                extra={"storage_id": self.id},
            )
            raise EntryNotFoundError(
                f"Entry \"{name}\" in path \"{'/'.join(full_path)}\" does not exist.",
                path=full_path,
                storage_id=self.id,
            )
        return entry

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.kind.value} id={self._id}>"
