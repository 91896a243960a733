"""
Tree entries shared by every storage backend.

An entry is anything addressable in a storage tree. Directories and files
are abstract here; backends subclass them and plug in their own handle
types (a ``pathlib.Path``, an in-memory node, a cloud object id, ...).
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Generic,
    List,
    Optional,
    TypeVar,
    Union,
    cast,
)

from .exceptions import InvalidEntryNameError, StructuredContentError

if TYPE_CHECKING:  # pragma: no cover
    from .storage import Storage

logger = logging.getLogger(__name__)

DirectoryHandle = TypeVar("DirectoryHandle")
FileHandle = TypeVar("FileHandle")

TreeSink = Callable[[str], None]

TREE_INDENT = "|  "


class EntryKind(Enum):
    """Whether an entry is a container or a leaf."""

    DIRECTORY = "DIRECTORY"
    FILE = "FILE"


class StorageEntry(ABC, Generic[DirectoryHandle, FileHandle]):
    """
    Common base for directories and files.

    The entry keeps non-owning references to its storage and its parent;
    they are only used to derive paths and to reach backend state, never
    to manage lifetimes. The handle is opaque to everything but the backend
    and is never replaced after construction.
    """

    def __init__(
        self,
        storage: "Storage[DirectoryHandle, FileHandle]",
        parent: Optional["StorageDirectory[DirectoryHandle, FileHandle]"],
        handle: Union[DirectoryHandle, FileHandle],
        kind: EntryKind,
    ) -> None:
        self._storage = storage
        self._parent = parent
        self._handle = handle
        self._kind = kind

    @property
    def storage(self) -> "Storage[DirectoryHandle, FileHandle]":
        return self._storage

    @property
    def parent(self) -> Optional["StorageDirectory[DirectoryHandle, FileHandle]"]:
        return self._parent

    @property
    def handle(self) -> Union[DirectoryHandle, FileHandle]:
        return self._handle

    @property
    def kind(self) -> EntryKind:
        return self._kind

    @property
    def is_root(self) -> bool:
        return self._parent is None

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend-defined display name of the entry."""
        pass

    @property
    def extension(self) -> str:
        """
        Everything after the first dot of the name.

        A name without a dot reports the full name, so ``"README"`` has the
        extension ``"README"`` and ``"core.tar.gz"`` has ``"tar.gz"``.
        """
        return extension_of(self.name)

    @property
    def path(self) -> List[str]:
        """Names from the root (exclusive) down to this entry."""
        if self._parent is None:
            return []
        return [*self._parent.path, self.name]

    @abstractmethod
    async def delete(self) -> None:
        """
        Remove the entry from its backend.

        The entry must not be used after a successful delete.

        Raises:
            StorageError: If the backend cannot remove the entry
        """
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self._kind.value} /{'/'.join(self.path)}>"


def extension_of(name: str) -> str:
    # str.find returns -1 for a dot-less name, so the slice starts at 0
    return name[name.find(".") + 1:]


_RESERVED_NAMES = frozenset({"", ".", ".."})
_FORBIDDEN_NAME_CHARS = ("/", "\\", "\0")


def validate_entry_name(
    name: str, parent: "StorageDirectory", storage_id: Optional[str] = None
) -> None:
    """
    Reject names that cannot denote a single child of ``parent``.

    Raises:
        InvalidEntryNameError: For empty names, ``.``/``..``, or names
            containing a path separator or NUL
    """
    if name in _RESERVED_NAMES or any(char in name for char in _FORBIDDEN_NAME_CHARS):
        raise InvalidEntryNameError(
            f"Invalid entry name {name!r} in directory \"{'/'.join(parent.path)}\".",
            name=name,
            path=[*parent.path, name],
            storage_id=storage_id,
        )


# TODO: copy and move between directories, including across storages.

class StorageDirectory(StorageEntry[DirectoryHandle, FileHandle]):
    """A container entry whose children are fetched from the backend on demand."""

    def __init__(
        self,
        storage: "Storage[DirectoryHandle, FileHandle]",
        parent: Optional["StorageDirectory[DirectoryHandle, FileHandle]"],
        handle: DirectoryHandle,
    ) -> None:
        super().__init__(storage, parent, handle, EntryKind.DIRECTORY)

    @property
    def handle(self) -> DirectoryHandle:
        return cast(DirectoryHandle, self._handle)

    @abstractmethod
    async def get_entries(
        self, force: bool = False
    ) -> List[StorageEntry[DirectoryHandle, FileHandle]]:
        """
        List the immediate children of this directory.

        Args:
            force: Bypass any listing the backend fetched earlier

        Returns:
            Child entries in backend-defined order
        """
        pass

    @abstractmethod
    async def get_entry(
        self, name: str, force: bool = False
    ) -> Optional[StorageEntry[DirectoryHandle, FileHandle]]:
        """
        Look up a single child by exact name.

        Args:
            name: Child name
            force: Bypass any listing the backend fetched earlier

        Returns:
            The child entry, or None when no child has that name
        """
        pass

    @abstractmethod
    async def create_directory(
        self, name: str
    ) -> "StorageDirectory[DirectoryHandle, FileHandle]":
        """
        Create an empty child directory.

        Raises:
            EntryExistsError: If a child with this name already exists
            StoragePermissionError: If the backend denies write access
            InvalidEntryNameError: If the name cannot denote a single child
        """
        pass

    @abstractmethod
    async def create_file(self, name: str) -> "StorageFile[DirectoryHandle, FileHandle]":
        """
        Create an empty child file.

        Raises:
            EntryExistsError: If a child with this name already exists
            StoragePermissionError: If the backend denies write access
            InvalidEntryNameError: If the name cannot denote a single child
        """
        pass

    async def print_tree(self, sink: Optional[TreeSink] = None, indent: str = "") -> None:
        """
        Write the subtree rooted here, depth first, one line per entry.

        Lines look like ``"|  |  design.v (F)"``. Only cached listings are
        used, nothing is refreshed or modified.

        Args:
            sink: Receives each line; defaults to the module logger
            indent: Prefix for this directory's own line
        """
        write = sink if sink is not None else logger.info
        write(_tree_line(self, indent))
        indent += TREE_INDENT

        for entry in await self.get_entries():
            if entry.kind is EntryKind.DIRECTORY:
                await cast(StorageDirectory, entry).print_tree(write, indent)
            elif entry.kind is EntryKind.FILE:
                write(_tree_line(entry, indent))
            else:  # pragma: no cover
                raise ValueError(f"Unknown entry kind: {entry.kind!r}")


def _tree_line(entry: StorageEntry, indent: str) -> str:
    return f"{indent}{entry.name} ({entry.kind.value[0]})"


class StorageFile(StorageEntry[DirectoryHandle, FileHandle]):
    """
    A leaf entry holding text content in its backend.

    Nothing is cached: every read goes to the backend.
    """

    def __init__(
        self,
        storage: "Storage[DirectoryHandle, FileHandle]",
        parent: "StorageDirectory[DirectoryHandle, FileHandle]",
        handle: FileHandle,
    ) -> None:
        super().__init__(storage, parent, handle, EntryKind.FILE)

    @property
    def parent(self) -> "StorageDirectory[DirectoryHandle, FileHandle]":
        return cast("StorageDirectory[DirectoryHandle, FileHandle]", self._parent)

    @property
    def handle(self) -> FileHandle:
        return cast(FileHandle, self._handle)

    @abstractmethod
    async def read(self) -> str:
        """Fetch the current text content from the backend."""
        pass

    @abstractmethod
    async def write(self, content: str) -> None:
        """Replace the whole content in the backend."""
        pass

    async def read_json(self) -> Any:
        """
        Read the file and parse it as JSON.

        Returns:
            The decoded JSON value

        Raises:
            StructuredContentError: If the content is not valid JSON
            StorageError: If the content cannot be read
        """
        text = await self.read()
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StructuredContentError(
                f"File \"{'/'.join(self.path)}\" does not contain valid JSON: {exc.msg}",
                path=self.path,
                line=exc.lineno,
                column=exc.colno,
                storage_id=self.storage.id,
            ) from exc

    async def write_json(self, value: Any) -> None:
        """
        Serialize a value as JSON and write it.

        Nothing is written when the value cannot be represented, which keeps
        ``read_json()`` after ``write_json(value)`` equal to ``value``.

        Raises:
            StructuredContentError: If the value is not JSON-serializable, or
                would read back differently (non-string keys, tuples)
        """
        try:
            text = json.dumps(value, allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise StructuredContentError(
                f"Value for file \"{'/'.join(self.path)}\" cannot be serialized as JSON: {exc}",
                path=self.path,
                storage_id=self.storage.id,
            ) from exc
        if json.loads(text) != value:
            raise StructuredContentError(
                f"Value for file \"{'/'.join(self.path)}\" would not read back unchanged "
                f"from JSON; use string keys and lists.",
                path=self.path,
                storage_id=self.storage.id,
            )
        await self.write(text)
