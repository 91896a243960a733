"""
Tests for the treestore.utils logging helpers.
"""

import logging

import pytest

from treestore.config import TreeStoreSettings
from treestore.utils import StorageLogFilter, init_storage_logging


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way the test found it."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


def make_record(name="treestore.backends.memory", **extra):
    record = logging.LogRecord(name, logging.INFO, __file__, 1, "msg", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStorageLogFilter:
    """Tests for the log record filter."""

    def test_missing_storage_id(self):
        """Test records without a storage id get a placeholder."""
        record = make_record()

        assert StorageLogFilter().filter(record) is True
        assert record.storage_id == "-"

    def test_storage_id_kept(self):
        """Test a storage id passed through extra is kept."""
        record = make_record(storage_id="abc")

        StorageLogFilter().filter(record)

        assert record.storage_id == "abc"

    def test_root_logger_renamed(self):
        """Test root records get a readable name."""
        record = make_record(name="root")

        StorageLogFilter().filter(record)

        assert record.name == "DefaultLogger"


class TestInitStorageLogging:
    """Tests for the console logging setup."""

    def test_installs_single_handler(self, restore_root_logger):
        """Test repeated setup does not duplicate handlers."""
        init_storage_logging(logging.DEBUG)
        init_storage_logging(logging.DEBUG)

        handlers = restore_root_logger.handlers
        assert len(handlers) == 1
        assert any(isinstance(f, StorageLogFilter) for f in handlers[0].filters)
        assert restore_root_logger.level == logging.DEBUG

    def test_formats_storage_id(self, restore_root_logger):
        """Test the formatter shows the storage id and logger name."""
        init_storage_logging(logging.INFO)
        handler = restore_root_logger.handlers[0]
        record = make_record(storage_id="abc")

        handler.filter(record)

        assert "[treestore.backends.memory] [abc] msg" in handler.format(record)

    def test_settings_level_applied(self, restore_root_logger):
        """Test settings configure logging at their level."""
        TreeStoreSettings(log_level="warning").init_logging()

        assert restore_root_logger.level == logging.WARNING
        assert len(restore_root_logger.handlers) == 1

    def test_keep_existing_handlers(self, restore_root_logger):
        """Test existing handlers survive when clearing is disabled."""
        extra = logging.NullHandler()
        restore_root_logger.addHandler(extra)

        init_storage_logging(logging.WARNING, clear_existing_handlers=False)

        assert extra in restore_root_logger.handlers
