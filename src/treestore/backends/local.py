"""
Local directory storage backend.

Every handle is a host ``pathlib.Path`` inside the chosen root directory.
Paths that would escape the root (through ``..`` or symlinks) are refused
unless symlink escape is explicitly allowed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from abc import abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..entries import (
    StorageDirectory,
    StorageEntry,
    StorageFile,
    validate_entry_name,
)
from ..exceptions import (
    EntryExistsError,
    EntryNotFoundError,
    NotAFileStorageError,
    StorageConfigurationError,
    StorageError,
    StoragePermissionError,
)
from ..storage import ProviderDescriptor, ProviderKind, Storage

logger = logging.getLogger(__name__)

PermissionApprover = Callable[[], Awaitable[bool]]
LocationChooser = Callable[[], Awaitable[Union[str, Path]]]

LocalEntry = StorageEntry[Path, Path]


def translate_os_error(
    exc: OSError, path: Sequence[str], storage_id: Optional[str] = None
) -> StorageError:
    """Map a host filesystem error onto the storage error hierarchy."""
    joined = "/".join(path)
    if isinstance(exc, FileNotFoundError):
        return EntryNotFoundError(
            f"Entry \"{joined}\" does not exist.", path=path, storage_id=storage_id
        )
    if isinstance(exc, FileExistsError):
        return EntryExistsError(
            f"Entry \"{joined}\" already exists.", path=path, storage_id=storage_id
        )
    if isinstance(exc, PermissionError):
        return StoragePermissionError(
            f"Access to \"{joined}\" was denied by the host: {exc.strerror}",
            path=path,
            storage_id=storage_id,
        )
    if isinstance(exc, IsADirectoryError):
        return NotAFileStorageError(
            f"Entry \"{joined}\" is not a file.", path=path, storage_id=storage_id
        )
    return StorageError(
        f"Host filesystem error on \"{joined}\": {exc}", path=path, storage_id=storage_id
    )


class LocalStorage(Storage[Path, Path]):
    """
    Storage rooted at a directory of the host filesystem.

    A new storage is set up through ``add()``, which awaits the injected
    ``chooser`` for the directory to use. A restored storage gets its root
    from ``deserialize()`` and must be granted permission again.

    Example:
        >>> storage = LocalStorage(root=Path("/tmp/project"))
        >>> await storage.request_permission()
        True
        >>> root = await storage.get_root()
        >>> await root.create_file("design.v")
    """

    descriptor = ProviderDescriptor(ProviderKind.LOCAL, "Local")

    def __init__(
        self,
        storage_id: Optional[str] = None,
        root: Optional[Union[str, Path]] = None,
        chooser: Optional[LocationChooser] = None,
        approver: Optional[PermissionApprover] = None,
        allow_symlink_escape: bool = False,
    ) -> None:
        """
        Initialize the local storage.

        Args:
            storage_id: Persisted id to reuse, or None for a fresh one
            root: Host directory to expose; may be set later by ``add()``
            chooser: Awaited by ``add()`` to pick the root directory
            approver: Awaited by ``request_permission()`` to decide a grant;
                without one, access is granted whenever the root is usable
            allow_symlink_escape: If True, allow symlinks that point outside the root
        """
        super().__init__(storage_id)
        self.chooser = chooser
        self.approver = approver
        self.allow_symlink_escape = allow_symlink_escape
        self._root_path: Optional[Path] = self._normalize_root(root) if root is not None else None
        self._granted = False
        self._root: Optional[LocalDirectory] = None

    @property
    def root_path(self) -> Optional[Path]:
        return self._root_path

    def serialize(self) -> Dict[str, Any]:
        return {"root": str(self._root_path) if self._root_path is not None else None}

    def deserialize(self, data: Dict[str, Any]) -> None:
        root = data.get("root")
        if not isinstance(root, str) or not root:
            raise StorageConfigurationError(
                "Local storage configuration requires a 'root' directory.",
                config_field="root",
                config_value=root,
                storage_id=self.id,
            )
        self._root_path = self._normalize_root(root)
        self._root = None
        self._granted = False

    async def get_root(self) -> "LocalDirectory":
        self.check_access()
        if self._root is None:
            self._root = LocalDirectory(self, None, self._root_path)
        return self._root

    async def has_permission(self) -> bool:
        if not self._granted or self._root_path is None:
            return False
        return await asyncio.to_thread(self._root_usable, self._root_path)

    async def request_permission(self) -> bool:
        if await self.has_permission():
            return True
        if self._root_path is None:
            logger.info(
                "Permission request declined: no root directory configured",
                extra={"storage_id": self.id},
            )
            return False
        if not await asyncio.to_thread(self._root_usable, self._root_path):
            logger.info(
                f"Permission request declined: '{self._root_path}' is not an accessible directory",
                extra={"storage_id": self.id},
            )
            return False

        self._granted = True if self.approver is None else bool(await self.approver())
        logger.info(
            f"Permission for '{self._root_path}' {'granted' if self._granted else 'declined'}",
            extra={"storage_id": self.id},
        )
        return self._granted

    async def add(self) -> None:
        """
        Pick the root directory through the chooser.

        Choosing a location counts as granting access to it.

        Raises:
            StorageConfigurationError: Without a chooser, or when the chosen
                location is not an existing directory
        """
        if self.chooser is None:
            raise StorageConfigurationError(
                "Local storage cannot be added without a location chooser.",
                config_field="chooser",
                storage_id=self.id,
            )
        chosen = self._normalize_root(await self.chooser())
        if not await asyncio.to_thread(chosen.is_dir):
            raise StorageConfigurationError(
                f"Chosen location '{chosen}' is not an existing directory.",
                config_field="root",
                config_value=chosen,
                storage_id=self.id,
            )
        self._root_path = chosen
        self._root = None
        self._granted = True
        logger.info(f"Local storage added at '{chosen}'", extra={"storage_id": self.id})

    def check_access(self) -> None:
        if self._root_path is None:
            raise StorageConfigurationError(
                "Local storage has no root directory; run add() first.",
                config_field="root",
                storage_id=self.id,
            )
        if not self._granted:
            raise StoragePermissionError(
                f"Permission to access '{self._root_path}' has not been granted.",
                storage_id=self.id,
            )

    def resolve_child(self, parent: "LocalDirectory", name: str) -> Path:
        """
        Host path of a child of ``parent``, kept inside the root.

        Raises:
            InvalidEntryNameError: If the name cannot denote a single child
            StoragePermissionError: If the path escapes the root
        """
        validate_entry_name(name, parent, self.id)
        candidate = parent.handle / name
        if not self.allow_symlink_escape and not self.is_inside_root(candidate):
            raise StoragePermissionError(
                f"Entry \"{'/'.join([*parent.path, name])}\" resolves outside the storage root.",
                path=[*parent.path, name],
                storage_id=self.id,
            )
        return candidate

    def is_inside_root(self, candidate: Path) -> bool:
        try:
            resolved = candidate.resolve(strict=False)
            if candidate.is_symlink():
                candidate.stat()
        except (OSError, RuntimeError):
            # Looping or dangling symlinks have no target inside the root
            return False
        try:
            resolved.relative_to(self._root_path)
        except ValueError:
            return False
        return True

    @staticmethod
    def _normalize_root(root: Union[str, Path]) -> Path:
        return Path(root).expanduser().resolve()

    @staticmethod
    def _root_usable(root: Path) -> bool:
        return root.is_dir() and os.access(root, os.R_OK | os.W_OK | os.X_OK)


class _LocalEntryMixin:
    """Operations shared by local directories and files."""

    @property
    def name(self) -> str:
        if self.parent is None:
            return self.handle.name or str(self.handle)
        return self.handle.name

    def _local_storage(self) -> LocalStorage:
        return self.storage

    async def delete(self) -> None:
        storage = self._local_storage()
        storage.check_access()
        if self.parent is None:
            raise StorageError(
                "The root directory of a storage cannot be deleted.",
                path=[],
                storage_id=storage.id,
            )
        try:
            await asyncio.to_thread(self._remove)
        except OSError as exc:
            raise translate_os_error(exc, self.path, storage.id) from exc
        self.parent.forget(self.name)
        logger.debug(
            f"Deleted {self.kind.value.lower()} '{'/'.join(self.path)}'",
            extra={"storage_id": storage.id},
        )

    @abstractmethod
    def _remove(self) -> None:
        """Remove the host path of this entry."""


class LocalDirectory(_LocalEntryMixin, StorageDirectory[Path, Path]):
    """
    Directory over a host path.

    The listing is cached on the directory object after the first fetch;
    ``force=True`` rescans the host directory.
    """

    def __init__(
        self,
        storage: LocalStorage,
        parent: Optional["LocalDirectory"],
        handle: Path,
    ) -> None:
        super().__init__(storage, parent, handle)
        self._listing: Optional[Dict[str, LocalEntry]] = None

    async def get_entries(self, force: bool = False) -> List[LocalEntry]:
        listing = await self._load(force)
        return [listing[name] for name in sorted(listing)]

    async def get_entry(self, name: str, force: bool = False) -> Optional[LocalEntry]:
        listing = await self._load(force)
        return listing.get(name)

    async def create_directory(self, name: str) -> "LocalDirectory":
        path = self._prepare_child(name)
        try:
            await asyncio.to_thread(path.mkdir)
        except OSError as exc:
            raise translate_os_error(exc, [*self.path, name], self.storage.id) from exc
        directory = LocalDirectory(self._local_storage(), self, path)
        self._remember(directory)
        return directory

    async def create_file(self, name: str) -> "LocalFile":
        path = self._prepare_child(name)
        try:
            await asyncio.to_thread(_create_empty_file, path)
        except OSError as exc:
            raise translate_os_error(exc, [*self.path, name], self.storage.id) from exc
        file = LocalFile(self._local_storage(), self, path)
        self._remember(file)
        return file

    def forget(self, name: str) -> None:
        """Drop a child from the cached listing after it was deleted."""
        if self._listing is not None:
            self._listing.pop(name, None)

    def _prepare_child(self, name: str) -> Path:
        storage = self._local_storage()
        storage.check_access()
        path = storage.resolve_child(self, name)
        if self._listing is not None and name in self._listing:
            raise EntryExistsError(
                f"Entry \"{name}\" already exists in \"{'/'.join(self.path)}\".",
                path=[*self.path, name],
                storage_id=storage.id,
            )
        return path

    def _remember(self, entry: LocalEntry) -> None:
        if self._listing is not None:
            self._listing[entry.name] = entry
        logger.debug(
            f"Created {entry.kind.value.lower()} '{'/'.join(entry.path)}'",
            extra={"storage_id": self.storage.id},
        )

    async def _load(self, force: bool) -> Dict[str, LocalEntry]:
        storage = self._local_storage()
        storage.check_access()
        if self._listing is None or force:
            try:
                scanned = await asyncio.to_thread(self._scan)
            except OSError as exc:
                raise translate_os_error(exc, self.path, storage.id) from exc
            self._listing = {
                path.name: (
                    LocalDirectory(storage, self, path)
                    if is_dir
                    else LocalFile(storage, self, path)
                )
                for path, is_dir in scanned
            }
        return self._listing

    def _scan(self) -> List[Tuple[Path, bool]]:
        storage = self._local_storage()
        children = []
        for child in self.handle.iterdir():
            if not storage.allow_symlink_escape and not storage.is_inside_root(child):
                logger.debug(
                    f"Skipping '{child}': resolves outside the storage root",
                    extra={"storage_id": storage.id},
                )
                continue
            children.append((child, child.is_dir()))
        return children

    def _remove(self) -> None:
        shutil.rmtree(self.handle)


def _create_empty_file(path: Path) -> None:
    with open(path, "x", encoding="utf-8"):
        pass


class LocalFile(_LocalEntryMixin, StorageFile[Path, Path]):
    """File over a host path, read and written as UTF-8 text."""

    async def read(self) -> str:
        storage = self._local_storage()
        storage.check_access()
        try:
            return await asyncio.to_thread(self.handle.read_text, encoding="utf-8")
        except OSError as exc:
            raise translate_os_error(exc, self.path, storage.id) from exc
        except UnicodeDecodeError as exc:
            raise StorageError(
                f"File \"{'/'.join(self.path)}\" is not UTF-8 text: {exc.reason} at byte {exc.start}",
                path=self.path,
                storage_id=storage.id,
                user_message="The file is not a text file and cannot be opened.",
                suggestion="Open text files only, or convert the file to UTF-8.",
            ) from exc

    async def write(self, content: str) -> None:
        storage = self._local_storage()
        storage.check_access()
        try:
            await asyncio.to_thread(self.handle.write_text, content, encoding="utf-8")
        except OSError as exc:
            raise translate_os_error(exc, self.path, storage.id) from exc
        logger.debug(
            f"Wrote {len(content)} characters to '{'/'.join(self.path)}'",
            extra={"storage_id": storage.id},
        )

    def _remove(self) -> None:
        self.handle.unlink()
