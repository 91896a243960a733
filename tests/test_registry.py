"""
Tests for the treestore.registry module.

This module tests:
- ProviderRegistry: register, unregister, get, create operations
- Duplicate and invalid registrations
- Descriptor listing for "add storage" choices
"""

import pytest

from treestore.backends import register_builtin_providers
from treestore.backends.local import LocalStorage
from treestore.backends.memory import MemoryStorage
from treestore.exceptions import StorageConfigurationError
from treestore.registry import ProviderRegistry
from treestore.storage import ProviderDescriptor, ProviderKind


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def clear_registry():
    """Start every test from an empty registry and restore the builtins after."""
    ProviderRegistry.clear()
    yield
    ProviderRegistry.clear()
    register_builtin_providers()


class OtherMemoryStorage(MemoryStorage):
    """A second class claiming the MEMORY kind."""


# =============================================================================
# Registration Tests
# =============================================================================

class TestProviderRegistration:
    """Tests for registering backends."""

    def test_register_and_get(self):
        """Test a registered class is found by its kind."""
        ProviderRegistry.register(MemoryStorage)

        assert ProviderRegistry.get(ProviderKind.MEMORY) is MemoryStorage
        assert ProviderRegistry.get(ProviderKind.LOCAL) is None

    def test_register_returns_class(self):
        """Test register can be used as a decorator."""
        assert ProviderRegistry.register(LocalStorage) is LocalStorage

    def test_register_same_class_twice(self):
        """Test re-registering the same class is allowed."""
        ProviderRegistry.register(MemoryStorage)
        ProviderRegistry.register(MemoryStorage)

        assert ProviderRegistry.get(ProviderKind.MEMORY) is MemoryStorage

    def test_register_conflicting_class(self):
        """Test a second class for a taken kind is rejected."""
        ProviderRegistry.register(MemoryStorage)

        with pytest.raises(StorageConfigurationError, match="already registered"):
            ProviderRegistry.register(OtherMemoryStorage)

        assert ProviderRegistry.get(ProviderKind.MEMORY) is MemoryStorage

    def test_register_without_descriptor(self):
        """Test classes without a descriptor are rejected."""
        class Nameless:
            pass

        with pytest.raises(StorageConfigurationError):
            ProviderRegistry.register(Nameless)

    def test_unregister(self):
        """Test unregistering frees the kind."""
        ProviderRegistry.register(MemoryStorage)

        ProviderRegistry.unregister(ProviderKind.MEMORY)

        assert ProviderRegistry.get(ProviderKind.MEMORY) is None
        ProviderRegistry.register(OtherMemoryStorage)

    def test_unregister_missing_is_harmless(self, caplog):
        """Test unregistering an unknown kind only warns."""
        ProviderRegistry.unregister(ProviderKind.LOCAL)

        assert "not registered" in caplog.text

    def test_descriptors_in_registration_order(self):
        """Test descriptors list every backend once."""
        register_builtin_providers()

        descriptors = ProviderRegistry.descriptors()

        assert descriptors == [
            ProviderDescriptor(ProviderKind.MEMORY, "Memory"),
            ProviderDescriptor(ProviderKind.LOCAL, "Local"),
        ]
        assert [d.add_text for d in descriptors] == [
            "Add Memory storage",
            "Add Local storage",
        ]


# =============================================================================
# Creation Tests
# =============================================================================

class TestProviderCreation:
    """Tests for building storages through the registry."""

    def test_create_with_id_and_kwargs(self):
        """Test constructor arguments are passed through."""
        ProviderRegistry.register(MemoryStorage)

        storage = ProviderRegistry.create(
            ProviderKind.MEMORY, storage_id="abc", label="scratch"
        )

        assert isinstance(storage, MemoryStorage)
        assert storage.id == "abc"
        assert storage.label == "scratch"

    def test_create_fresh_id(self):
        """Test a missing id yields a fresh one."""
        ProviderRegistry.register(MemoryStorage)

        storage = ProviderRegistry.create(ProviderKind.MEMORY)

        assert storage.id

    def test_create_unknown_kind(self):
        """Test unregistered kinds are configuration errors."""
        with pytest.raises(StorageConfigurationError, match="No storage provider"):
            ProviderRegistry.create(ProviderKind.LOCAL)
