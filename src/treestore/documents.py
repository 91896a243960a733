"""
Opened files as consumers (editors, build tools) see them.

An OpenedFile is a snapshot: the resolved file plus the content it had when
it was loaded. Saving compares the backend content with that snapshot so a
change made by another program is detected instead of silently overwritten.
Nothing is merged; the caller decides whether to force the save.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Generic, List, Optional, Sequence, TypeVar, Union

from .entries import StorageEntry, StorageFile, extension_of
from .exceptions import ContentConflictError
from .storage import Storage

logger = logging.getLogger(__name__)

HandlerT = TypeVar("HandlerT")


@dataclass(frozen=True)
class OpenedFile:
    """A file resolved through a storage, with the content loaded from it."""

    storage: Storage
    path: List[str]
    file: Optional[StorageFile] = None
    content: Optional[str] = None
    is_accessible: bool = True

    @property
    def is_loaded(self) -> bool:
        return self.file is not None and self.content is not None

    @property
    def extension(self) -> str:
        if self.file is not None:
            return self.file.extension
        return extension_of(self.path[-1]) if self.path else ""


async def open_file(
    storage: Storage, path: Sequence[str], request_permission: bool = False
) -> OpenedFile:
    """
    Resolve and read a file for a consumer.

    A storage without permission yields an inaccessible OpenedFile rather
    than an error, so the UI can ask the user to grant access.

    Args:
        storage: Storage holding the file
        path: Path of names from the storage root
        request_permission: Ask for permission when it is missing

    Raises:
        StorageError: If the path cannot be resolved or read
    """
    granted = await storage.has_permission()
    if not granted and request_permission:
        granted = await storage.request_permission()
    if not granted:
        logger.info(
            f"Cannot open '{'/'.join(path)}': permission not granted",
            extra={"storage_id": storage.id},
        )
        return OpenedFile(storage=storage, path=list(path), is_accessible=False)

    file = await storage.get_entry(path)
    content = await file.read()
    return OpenedFile(storage=storage, path=list(path), file=file, content=content)


async def save_file(opened: OpenedFile, content: str, force: bool = False) -> OpenedFile:
    """
    Write new content for an opened file.

    Args:
        opened: Loaded snapshot returned by ``open_file``
        content: New full content
        force: Overwrite even if the backend content changed since loading

    Returns:
        A new snapshot holding the saved content

    Raises:
        ValueError: If the snapshot was never loaded
        ContentConflictError: If the backend content differs from the snapshot
            and ``force`` is not set
    """
    if not opened.is_loaded:
        raise ValueError("Cannot save a file that was not loaded")

    file = opened.file
    if not force:
        current = await file.read()
        if current != opened.content:
            raise ContentConflictError(
                f"File \"{'/'.join(opened.path)}\" was modified outside this session.",
                path=opened.path,
                storage_id=opened.storage.id,
            )

    await file.write(content)
    return replace(opened, content=content)


@dataclass
class ExtensionDispatch(Generic[HandlerT]):
    """
    Selects a content handler from a file extension.

    Extensions follow the entry rule: everything after the first dot, or the
    whole name when there is none.

    Example:
        >>> editors = ExtensionDispatch(default="text")
        >>> editors.register("dot", "graphviz")
        >>> editors.resolve("dot")
        'graphviz'
        >>> editors.resolve("v")
        'text'
    """

    default: HandlerT
    handlers: Dict[str, HandlerT] = field(default_factory=dict)

    def register(self, extension: str, handler: HandlerT) -> None:
        self.handlers[extension] = handler

    def resolve(self, target: Union[str, StorageEntry, OpenedFile]) -> HandlerT:
        extension = target if isinstance(target, str) else target.extension
        return self.handlers.get(extension, self.default)
