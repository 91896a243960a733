"""
Tests for the treestore.storage module.

This module tests:
- Storage identity and provider descriptors
- Path resolution through get_entry / get_directory
- Failure categories of path resolution
"""

import uuid

import pytest

from treestore.backends.memory import MemoryStorage
from treestore.entries import EntryKind
from treestore.exceptions import (
    EntryNotFoundError,
    NotADirectoryStorageError,
    NotAFileStorageError,
    StorageError,
)
from treestore.storage import ProviderDescriptor, ProviderKind


@pytest.fixture
def storage():
    """Create a memory storage with files and nested directories."""
    return MemoryStorage(
        tree={
            "design.v": "module top; endmodule",
            "a": "i am a file",
            "src": {"alu.v": "module alu; endmodule", "b": {}},
        }
    )


# =============================================================================
# Identity Tests
# =============================================================================

class TestStorageIdentity:
    """Tests for ids and provider descriptors."""

    def test_fresh_id_is_uuid(self):
        """Test a new storage gets a random UUID."""
        storage = MemoryStorage()

        assert uuid.UUID(storage.id)

    def test_ids_are_unique(self):
        """Test two storages never share an id."""
        assert MemoryStorage().id != MemoryStorage().id

    def test_id_is_stable(self):
        """Test the id does not change between reads."""
        storage = MemoryStorage()

        assert storage.id == storage.id

    def test_restored_id(self):
        """Test a persisted id is kept."""
        storage = MemoryStorage(storage_id="persisted-id")

        assert storage.id == "persisted-id"

    def test_descriptor_facts(self):
        """Test kind, display name and add text come from the descriptor."""
        storage = MemoryStorage()

        assert storage.kind is ProviderKind.MEMORY
        assert storage.display_name == "Memory"
        assert storage.add_text == "Add Memory storage"

    def test_descriptor_add_text(self):
        """Test the add prompt is derived from the display name."""
        descriptor = ProviderDescriptor(ProviderKind.LOCAL, "Local")

        assert descriptor.add_text == "Add Local storage"

    def test_repr(self):
        """Test repr shows kind and id."""
        storage = MemoryStorage(storage_id="xyz")

        assert repr(storage) == "<MemoryStorage MEMORY id=xyz>"


# =============================================================================
# Path Resolution Tests
# =============================================================================

class TestGetEntry:
    """Tests for resolving paths to files."""

    @pytest.mark.asyncio
    async def test_resolve_top_level_file(self, storage):
        """Test the design file scenario: resolve, read, write, read."""
        file = await storage.get_entry(["design.v"])

        assert file.kind is EntryKind.FILE
        assert await file.read() == "module top; endmodule"

        await file.write("module top; endmodule")
        assert await file.read() == "module top; endmodule"

        await file.write("module top(input clk); endmodule")
        assert await file.read() == "module top(input clk); endmodule"

    @pytest.mark.asyncio
    async def test_resolve_nested_file(self, storage):
        """Test descending through directories."""
        file = await storage.get_entry(("src", "alu.v"))

        assert file.path == ["src", "alu.v"]
        assert await file.read() == "module alu; endmodule"

    @pytest.mark.asyncio
    async def test_empty_path_is_programming_error(self, storage):
        """Test the empty path raises ValueError, not StorageError."""
        with pytest.raises(ValueError) as exc_info:
            await storage.get_entry([])

        assert not isinstance(exc_info.value, StorageError)

    @pytest.mark.asyncio
    async def test_missing_segment(self, storage):
        """Test a missing first segment."""
        with pytest.raises(EntryNotFoundError, match='Entry "missing" in path "missing/b" does not exist.'):
            await storage.get_entry(["missing", "b"])

    @pytest.mark.asyncio
    async def test_missing_final_segment(self, storage):
        """Test a missing last segment."""
        with pytest.raises(EntryNotFoundError) as exc_info:
            await storage.get_entry(["src", "nope.v"])

        assert exc_info.value.path == ["src", "nope.v"]
        assert exc_info.value.storage_id == storage.id

    @pytest.mark.asyncio
    async def test_intermediate_file(self, storage):
        """Test descending through a file fails with not-a-directory."""
        with pytest.raises(NotADirectoryStorageError, match='Entry "a" in path "a/b" is not a directory.'):
            await storage.get_entry(["a", "b"])

    @pytest.mark.asyncio
    async def test_final_directory(self, storage):
        """Test a final directory fails with not-a-file."""
        with pytest.raises(NotAFileStorageError, match='Entry "b" in path "src/b" is not a file.'):
            await storage.get_entry(["src", "b"])

    @pytest.mark.asyncio
    async def test_failure_categories_are_distinct(self, storage):
        """Test absent, wrong type and not-a-file differ in category."""
        categories = set()
        for path in (["missing"], ["a", "b"], ["src"]):
            with pytest.raises(StorageError) as exc_info:
                await storage.get_entry(path)
            categories.add(exc_info.value.category)

        assert len(categories) == 3


class TestGetDirectory:
    """Tests for resolving paths to directories."""

    @pytest.mark.asyncio
    async def test_empty_path_is_root(self, storage):
        """Test the empty path resolves to the root."""
        assert await storage.get_directory([]) is await storage.get_root()

    @pytest.mark.asyncio
    async def test_nested_directory(self, storage):
        """Test resolving a nested directory."""
        directory = await storage.get_directory(["src", "b"])

        assert directory.kind is EntryKind.DIRECTORY
        assert directory.path == ["src", "b"]

    @pytest.mark.asyncio
    async def test_file_is_not_a_directory(self, storage):
        """Test a final file fails with not-a-directory."""
        with pytest.raises(NotADirectoryStorageError):
            await storage.get_directory(["design.v"])

    @pytest.mark.asyncio
    async def test_root_is_reused(self, storage):
        """Test get_root returns the same root on later calls."""
        assert await storage.get_root() is await storage.get_root()
