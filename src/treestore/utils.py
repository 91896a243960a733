import logging

logger = logging.getLogger(__name__)


# --- Custom Logging Filter ---
# Backends pass extra={"storage_id": ...}; records from anywhere else (asyncio,
# third-party libraries) lack it, and the formatter below would fail on them.
class StorageLogFilter(logging.Filter):
    """
    A logging filter that ensures 'storage_id' and a normalized 'name'
    are present on log records for consistent formatting.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        storage_id = getattr(record, "storage_id", None)
        record.storage_id = "-" if storage_id is None else str(storage_id)

        current_logger_name = getattr(record, "name", None)
        if not current_logger_name or current_logger_name == "root":
            record.name = "DefaultLogger"
        else:
            record.name = str(current_logger_name)

        return True


# --- Logging Setup Utility ---
def init_storage_logging(
    level: int = logging.INFO, clear_existing_handlers: bool = True
) -> None:
    """
    Sets up a standardized console logging configuration for storage operations.

    Args:
        level: The desired logging level for the root logger (e.g., logging.INFO, logging.DEBUG).
               Level names such as "DEBUG" are accepted too.
        clear_existing_handlers: If True, removes any handlers already attached to the
                                 root logger, which prevents duplicate output when
                                 the setup runs more than once.
    """
    root_logger = logging.getLogger()

    if clear_existing_handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler()
    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - [%(name)s] [%(storage_id)s] %(message)s"
    )
    stream_handler.setFormatter(formatter)
    stream_handler.addFilter(StorageLogFilter())

    root_logger.addHandler(stream_handler)
    root_logger.setLevel(level)

    logger.info(
        f"Storage logging setup complete. Root logger level set to "
        f"{logging.getLevelName(root_logger.level)}."
    )
