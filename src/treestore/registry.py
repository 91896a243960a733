import logging
import threading
from typing import Any, Dict, List, Optional, Type

from .exceptions import StorageConfigurationError
from .storage import ProviderDescriptor, ProviderKind, Storage

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Maps provider kinds to the backend classes that implement them.

    Backends are registered explicitly, either by calling ``register`` or by
    using it as a class decorator. Restoring persisted configuration and
    building the "add storage" menu both go through this registry.
    """

    _providers: Dict[ProviderKind, Type[Storage]] = {}
    _lock = threading.Lock()

    @classmethod
    def register(cls, storage_cls: Type[Storage]) -> Type[Storage]:
        """
        Register a backend class under its descriptor's provider kind.

        Args:
            storage_cls: Concrete Storage subclass with a ``descriptor``

        Returns:
            The class itself, so this works as a decorator.

        Raises:
            StorageConfigurationError: If the class has no descriptor, or the
                kind is already taken by a different class.
        """
        descriptor = getattr(storage_cls, "descriptor", None)
        if not isinstance(descriptor, ProviderDescriptor):
            raise StorageConfigurationError(
                f"Storage class '{storage_cls.__name__}' does not declare a ProviderDescriptor.",
                config_field="descriptor",
            )

        with cls._lock:
            existing = cls._providers.get(descriptor.kind)
            if existing is not None and existing is not storage_cls:
                raise StorageConfigurationError(
                    f"Provider kind '{descriptor.kind.value}' is already registered "
                    f"to '{existing.__name__}'.",
                    config_field="kind",
                    config_value=descriptor.kind.value,
                )
            cls._providers[descriptor.kind] = storage_cls

        logger.debug(
            f"Storage provider registered: {descriptor.kind.value} "
            f"(Class: {storage_cls.__name__})"
        )
        return storage_cls

    @classmethod
    def unregister(cls, kind: ProviderKind) -> None:
        with cls._lock:
            if cls._providers.pop(kind, None) is None:
                logger.warning(f"Cannot unregister provider '{kind.value}': not registered")

    @classmethod
    def get(cls, kind: ProviderKind) -> Optional[Type[Storage]]:
        return cls._providers.get(kind)

    @classmethod
    def descriptors(cls) -> List[ProviderDescriptor]:
        """Descriptors of every registered backend, in registration order."""
        with cls._lock:
            return [storage_cls.descriptor for storage_cls in cls._providers.values()]

    @classmethod
    def create(
        cls, kind: ProviderKind, storage_id: Optional[str] = None, **kwargs: Any
    ) -> Storage:
        """
        Instantiate the backend registered for ``kind``.

        Args:
            kind: Provider kind to build
            storage_id: Persisted id to reuse, or None for a fresh one
            **kwargs: Extra constructor arguments for the backend

        Raises:
            StorageConfigurationError: If no backend is registered for ``kind``
        """
        storage_cls = cls.get(kind)
        if storage_cls is None:
            raise StorageConfigurationError(
                f"No storage provider registered for kind '{kind.value}'.",
                config_field="type",
                config_value=kind.value,
            )
        return storage_cls(storage_id=storage_id, **kwargs)

    @classmethod
    def clear(cls) -> None:
        with cls._lock:
            cls._providers.clear()
