"""
treestore - a pluggable virtual filesystem over heterogeneous storage backends.

Every backend exposes the same tree of directories and files behind an
explicit permission step, so editors and build tools never special-case a
backend.

Example:
    >>> from treestore import MemoryStorage
    >>> storage = MemoryStorage(tree={"design.v": "module top; endmodule"})
    >>> file = await storage.get_entry(["design.v"])
    >>> await file.write("module top(input clk); endmodule")
"""

from .backends import (
    LocalStorage,
    MemoryStorage,
    register_builtin_providers,
)
from .config import (
    StorageConfigFile,
    StorageRecord,
    TreeStoreSettings,
    restore_storage,
    restore_storages,
    serialize_storages,
)
from .documents import ExtensionDispatch, OpenedFile, open_file, save_file
from .entries import EntryKind, StorageDirectory, StorageEntry, StorageFile
from .exceptions import (
    ContentConflictError,
    EntryExistsError,
    EntryNotFoundError,
    InvalidEntryNameError,
    NotADirectoryStorageError,
    NotAFileStorageError,
    StorageConfigurationError,
    StorageError,
    StorageErrorCategory,
    StoragePermissionError,
    StructuredContentError,
    TreeStoreError,
)
from .registry import ProviderRegistry
from .storage import ProviderDescriptor, ProviderKind, Storage
from .utils import StorageLogFilter, init_storage_logging

register_builtin_providers()

__all__ = [
    # Tree model
    "EntryKind",
    "StorageEntry",
    "StorageDirectory",
    "StorageFile",
    "Storage",
    "ProviderKind",
    "ProviderDescriptor",
    "ProviderRegistry",
    # Backends
    "MemoryStorage",
    "LocalStorage",
    "register_builtin_providers",
    # Configuration
    "StorageRecord",
    "StorageConfigFile",
    "TreeStoreSettings",
    "serialize_storages",
    "restore_storage",
    "restore_storages",
    # Consumers
    "OpenedFile",
    "open_file",
    "save_file",
    "ExtensionDispatch",
    # Errors
    "TreeStoreError",
    "StorageError",
    "StorageErrorCategory",
    "EntryNotFoundError",
    "NotADirectoryStorageError",
    "NotAFileStorageError",
    "EntryExistsError",
    "StoragePermissionError",
    "InvalidEntryNameError",
    "ContentConflictError",
    "StructuredContentError",
    "StorageConfigurationError",
    # Logging
    "StorageLogFilter",
    "init_storage_logging",
]

__version__ = "0.1.0"
