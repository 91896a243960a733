"""
Persisted storage configuration.

The configuration is a JSON array of records, one per storage:

    [
        {"type": "LOCAL", "id": "6f1c...", "data": {"root": "/home/me/fpga"}},
        {"type": "MEMORY", "id": "0b2e...", "data": {"label": "/", "tree": {}}}
    ]

``data`` is whatever the backend's ``serialize()`` returned. Restoring a
record builds the registered backend for ``type`` with the persisted ``id``
and hands ``data`` to its ``deserialize()``.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import StorageConfigurationError
from .registry import ProviderRegistry
from .storage import ProviderKind, Storage
from .utils import init_storage_logging

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "TREESTORE_CONFIG"
LOG_LEVEL_ENV = "TREESTORE_LOG_LEVEL"
DEFAULT_CONFIG_PATH = Path("~/.treestore/storages.json")

RawRecord = Union["StorageRecord", Mapping[str, Any]]


def default_config_path() -> Path:
    return Path(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH).expanduser()


class StorageRecord(BaseModel):
    """Pydantic schema of one persisted storage."""

    type: ProviderKind = Field(..., description="Provider kind of the backend")
    id: str = Field(..., min_length=1, description="Storage id, stable across restarts")
    data: Dict[str, Any] = Field(
        default_factory=dict, description="Backend connection parameters from serialize()"
    )

    @classmethod
    def from_storage(cls, storage: Storage) -> "StorageRecord":
        return cls(type=storage.kind, id=storage.id, data=storage.serialize())


class TreeStoreSettings(BaseModel):
    """
    Process-wide settings.

    ``from_env()`` honours ``TREESTORE_CONFIG`` (configuration file path)
    and ``TREESTORE_LOG_LEVEL``.
    """

    config_path: Path = Field(
        default_factory=default_config_path,
        description="JSON file holding the persisted storage records",
    )
    json_indent: Optional[int] = Field(
        2, ge=0, description="Indentation of the configuration file, None for compact"
    )
    log_level: str = Field("INFO", description="Level name passed to init_storage_logging")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level '{v}'")
        return level

    @classmethod
    def from_env(cls) -> "TreeStoreSettings":
        values: Dict[str, Any] = {}
        if os.environ.get(LOG_LEVEL_ENV):
            values["log_level"] = os.environ[LOG_LEVEL_ENV]
        return cls(**values)

    def init_logging(self, clear_existing_handlers: bool = True) -> None:
        """Set up console logging at ``log_level``."""
        init_storage_logging(self.log_level, clear_existing_handlers=clear_existing_handlers)


def serialize_storages(storages: Iterable[Storage]) -> List[Dict[str, Any]]:
    """Turn live storages into JSON-ready persisted records."""
    return [StorageRecord.from_storage(storage).model_dump(mode="json") for storage in storages]


def restore_storage(
    raw: RawRecord,
    registry: Type[ProviderRegistry] = ProviderRegistry,
    factory_kwargs: Optional[Mapping[ProviderKind, Mapping[str, Any]]] = None,
) -> Storage:
    """
    Rebuild one storage from a persisted record.

    Args:
        raw: A StorageRecord or a mapping in the persisted layout
        registry: Registry used to look up the backend class
        factory_kwargs: Extra constructor arguments per provider kind, for
            things that cannot be persisted such as approver callbacks

    Raises:
        StorageConfigurationError: If the record is malformed, names an
            unregistered provider, or its data is rejected by the backend
    """
    if isinstance(raw, StorageRecord):
        record = raw
    else:
        try:
            record = StorageRecord.model_validate(raw)
        except ValidationError as exc:
            raise StorageConfigurationError(
                f"Invalid storage record: {exc.error_count()} validation error(s)",
                context={"errors": [error["msg"] for error in exc.errors()]},
            ) from exc

    kwargs = dict((factory_kwargs or {}).get(record.type, {}))
    try:
        storage = registry.create(record.type, storage_id=record.id, **kwargs)
    except TypeError as exc:
        raise StorageConfigurationError(
            f"Cannot build {record.type.value} storage '{record.id}': {exc}",
            config_field="factory_kwargs",
            config_value=sorted(kwargs),
        ) from exc
    storage.deserialize(record.data)
    return storage


def restore_storages(
    records: Iterable[RawRecord],
    registry: Type[ProviderRegistry] = ProviderRegistry,
    skip_invalid: bool = False,
    factory_kwargs: Optional[Mapping[ProviderKind, Mapping[str, Any]]] = None,
) -> List[Storage]:
    """
    Rebuild every storage of a persisted configuration.

    Args:
        records: Records in the persisted layout
        registry: Registry used to look up backend classes
        skip_invalid: Log and skip bad records instead of raising
        factory_kwargs: Extra constructor arguments per provider kind

    Returns:
        Restored storages, in record order

    Raises:
        StorageConfigurationError: On the first bad or duplicate record,
            unless ``skip_invalid`` is set
    """
    storages: List[Storage] = []
    seen_ids = set()
    for index, raw in enumerate(records):
        try:
            storage = restore_storage(raw, registry=registry, factory_kwargs=factory_kwargs)
            if storage.id in seen_ids:
                raise StorageConfigurationError(
                    f"Duplicate storage id '{storage.id}' in configuration.",
                    config_field="id",
                    config_value=storage.id,
                )
        except StorageConfigurationError as exc:
            if not skip_invalid:
                raise
            logger.warning(f"Skipping storage record #{index}: {exc.developer_message}")
            continue
        seen_ids.add(storage.id)
        storages.append(storage)

    logger.debug(f"Restored {len(storages)} storage(s) from configuration")
    return storages


class StorageConfigFile:
    """JSON file on the host that persists storage records."""

    def __init__(self, path: Union[str, Path], indent: Optional[int] = 2) -> None:
        self.path = Path(path).expanduser()
        self.indent = indent

    @classmethod
    def from_settings(cls, settings: TreeStoreSettings) -> "StorageConfigFile":
        return cls(settings.config_path, indent=settings.json_indent)

    async def load(self) -> List[Dict[str, Any]]:
        """
        Read the raw records; a missing file means no storages.

        Raises:
            StorageConfigurationError: If the file is not a JSON array
        """
        if not await asyncio.to_thread(self.path.exists):
            return []
        try:
            text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise StorageConfigurationError(
                f"Configuration file '{self.path}' is not UTF-8 text: {exc.reason}",
                context={"position": exc.start},
            ) from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageConfigurationError(
                f"Configuration file '{self.path}' is not valid JSON: {exc.msg}",
                context={"line": exc.lineno, "column": exc.colno},
            ) from exc
        if not isinstance(data, list):
            raise StorageConfigurationError(
                f"Configuration file '{self.path}' must contain a JSON array of records.",
                config_value=type(data).__name__,
            )
        return data

    async def save(self, storages: Iterable[Storage]) -> None:
        records = serialize_storages(storages)
        text = json.dumps(records, indent=self.indent)
        await asyncio.to_thread(self.path.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(self.path.write_text, text, encoding="utf-8")
        logger.debug(f"Saved {len(records)} storage record(s) to {self.path}")

    async def restore(
        self,
        registry: Type[ProviderRegistry] = ProviderRegistry,
        skip_invalid: bool = False,
        factory_kwargs: Optional[Mapping[ProviderKind, Mapping[str, Any]]] = None,
    ) -> List[Storage]:
        """Load the file and restore every storage it lists."""
        return restore_storages(
            await self.load(),
            registry=registry,
            skip_invalid=skip_invalid,
            factory_kwargs=factory_kwargs,
        )
