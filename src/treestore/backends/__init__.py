"""Storage backends shipped with treestore."""

from ..registry import ProviderRegistry
from .local import LocalDirectory, LocalFile, LocalStorage
from .memory import (
    MemoryDirectory,
    MemoryDirectoryNode,
    MemoryFile,
    MemoryFileNode,
    MemoryStorage,
)

BUILTIN_PROVIDERS = (MemoryStorage, LocalStorage)


def register_builtin_providers() -> None:
    """Register every shipped backend with the ProviderRegistry."""
    for storage_cls in BUILTIN_PROVIDERS:
        ProviderRegistry.register(storage_cls)


__all__ = [
    "BUILTIN_PROVIDERS",
    "register_builtin_providers",
    "LocalStorage",
    "LocalDirectory",
    "LocalFile",
    "MemoryStorage",
    "MemoryDirectory",
    "MemoryFile",
    "MemoryDirectoryNode",
    "MemoryFileNode",
]
