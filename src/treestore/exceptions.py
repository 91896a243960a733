"""
Storage Tree Exception Hierarchy

This module defines the exception hierarchy for the storage tree, giving each
failure category its own type so callers can react to it programmatically.

The hierarchy separates three concerns:
1. Operational storage failures (missing entries, wrong entry types, name
   collisions, denied access) - ``StorageError`` and its subclasses
2. Malformed structured content - ``StructuredContentError``
3. Invalid persisted configuration or provider registration -
   ``StorageConfigurationError``

Every error carries rich context (storage id, path, timestamp) and a
user-facing message so the UI layer can surface it without crashing.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class StorageErrorCategory(Enum):
    """What kind of operational failure a StorageError represents."""

    NOT_FOUND = "not_found"
    NOT_A_DIRECTORY = "not_a_directory"
    NOT_A_FILE = "not_a_file"
    ALREADY_EXISTS = "already_exists"
    PERMISSION_DENIED = "permission_denied"
    INVALID_NAME = "invalid_name"
    CONFLICT = "conflict"
    BACKEND = "backend"


class TreeStoreError(Exception):
    """
    Base exception class for all storage tree errors.

    Attributes:
        error_code: Unique error code for programmatic handling
        storage_id: Id of the storage where the error occurred (if applicable)
        timestamp: When the error occurred
        context: Additional context information
        user_message: User-friendly error message
        developer_message: Detailed technical error message
        suggestion: Suggested fix or next steps (if applicable)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "TREESTORE_ERROR",
        storage_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        """
        Initialize the error with rich context.

        Args:
            message: Technical error message for developers
            error_code: Unique error code for programmatic handling
            storage_id: Id of the storage where the error occurred
            context: Additional context information
            user_message: User-friendly error message
            suggestion: Suggested fix or next steps
        """
        super().__init__(message)
        self.error_code = error_code
        self.storage_id = storage_id
        self.timestamp = time.time()
        self.context = context or {}
        self.user_message = user_message or message
        self.developer_message = message
        self.suggestion = suggestion

    @property
    def message(self) -> str:
        return self.developer_message

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.developer_message,
            "user_message": self.user_message,
            "storage_id": self.storage_id,
            "timestamp": self.timestamp,
            "context": self.context,
            "suggestion": self.suggestion,
        }

    def __str__(self) -> str:
        """String representation with context."""
        parts = [f"[{self.error_code}]"]
        if self.storage_id:
            parts.append(f"Storage:{self.storage_id[:8]}...")
        parts.append(self.developer_message)
        return " ".join(parts)


# =============================================================================
# STORAGE OPERATION ERRORS
# =============================================================================

class StorageError(TreeStoreError):
    """
    Base class for operational storage failures.

    These are always recoverable by the caller: the UI layer reports them to
    the user and the process carries on.
    """

    category: StorageErrorCategory = StorageErrorCategory.BACKEND

    def __init__(
        self,
        message: str,
        path: Optional[Sequence[str]] = None,
        category: Optional[StorageErrorCategory] = None,
        **kwargs
    ):
        self.path: Optional[List[str]] = list(path) if path is not None else None
        if category is not None:
            self.category = category

        context = kwargs.pop("context", None) or {}
        if self.path is not None:
            context["path"] = "/".join(self.path)
        context["category"] = self.category.value

        error_code = kwargs.pop("error_code", "STORAGE_ERROR")
        kwargs.setdefault("user_message", "The storage operation failed.")
        kwargs.setdefault(
            "suggestion", "Check that the storage is reachable and try again."
        )
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class EntryNotFoundError(StorageError):
    """
    Raised when an entry does not exist.

    Examples:
    - A segment of a resolved path is absent
    - Reading a file that was removed behind our back
    """

    category = StorageErrorCategory.NOT_FOUND

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", "The requested entry does not exist.")
        kwargs.setdefault(
            "suggestion", "Refresh the directory listing or check the path."
        )
        super().__init__(message, error_code="ENTRY_NOT_FOUND_ERROR", **kwargs)


class NotADirectoryStorageError(StorageError):
    """Raised when a path segment that must be descended into is a file."""

    category = StorageErrorCategory.NOT_A_DIRECTORY

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", "The path goes through a file.")
        super().__init__(message, error_code="NOT_A_DIRECTORY_ERROR", **kwargs)


class NotAFileStorageError(StorageError):
    """Raised when a path expected to name a file names a directory."""

    category = StorageErrorCategory.NOT_A_FILE

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", "The path names a directory, not a file.")
        super().__init__(message, error_code="NOT_A_FILE_ERROR", **kwargs)


class EntryExistsError(StorageError):
    """Raised when creating a child whose name is already taken."""

    category = StorageErrorCategory.ALREADY_EXISTS

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", "An entry with this name already exists.")
        kwargs.setdefault("suggestion", "Choose a different name.")
        super().__init__(message, error_code="ENTRY_EXISTS_ERROR", **kwargs)


class StoragePermissionError(StorageError):
    """
    Raised when the backend denies access.

    Examples:
    - Writing to a storage whose permission was never granted or was revoked
    - Resolving a handle that escapes the storage root
    """

    category = StorageErrorCategory.PERMISSION_DENIED

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", "Access to the storage was denied.")
        kwargs.setdefault(
            "suggestion", "Grant permission to this storage provider and retry."
        )
        super().__init__(message, error_code="STORAGE_PERMISSION_ERROR", **kwargs)


class InvalidEntryNameError(StorageError):
    """Raised for names that cannot denote a single child entry."""

    category = StorageErrorCategory.INVALID_NAME

    def __init__(self, message: str, name: Optional[str] = None, **kwargs):
        self.name = name
        context = kwargs.pop("context", None) or {}
        if name is not None:
            context["name"] = name
        kwargs.setdefault("user_message", "The entry name is not valid.")
        kwargs.setdefault(
            "suggestion", "Use a non-empty name without path separators."
        )
        super().__init__(
            message, error_code="INVALID_ENTRY_NAME_ERROR", context=context, **kwargs
        )


class ContentConflictError(StorageError):
    """Raised when file content changed in the backend since it was loaded."""

    category = StorageErrorCategory.CONFLICT

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault(
            "user_message", "The file was changed by another program."
        )
        kwargs.setdefault(
            "suggestion", "Reload the file, or save again to overwrite the changes."
        )
        super().__init__(message, error_code="CONTENT_CONFLICT_ERROR", **kwargs)


# =============================================================================
# STRUCTURED CONTENT ERRORS
# =============================================================================

class StructuredContentError(TreeStoreError):
    """
    Raised when structured (JSON) content cannot be parsed or serialized.

    Kept apart from StorageError so callers can offer a repair or recreate
    flow instead of generic storage troubleshooting.
    """

    def __init__(
        self,
        message: str,
        path: Optional[Sequence[str]] = None,
        line: Optional[int] = None,
        column: Optional[int] = None,
        **kwargs
    ):
        self.path: Optional[List[str]] = list(path) if path is not None else None
        self.line = line
        self.column = column

        context = kwargs.pop("context", None) or {}
        if self.path is not None:
            context["path"] = "/".join(self.path)
        if line is not None:
            context["line"] = line
        if column is not None:
            context["column"] = column

        kwargs.setdefault("user_message", "The file content is not valid JSON.")
        kwargs.setdefault("suggestion", "Repair the file or recreate it.")
        super().__init__(
            message,
            error_code="STRUCTURED_CONTENT_ERROR",
            context=context,
            **kwargs
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class StorageConfigurationError(TreeStoreError):
    """
    Raised when storage configuration is invalid or incomplete.

    Examples:
    - A persisted record names an unknown provider kind
    - Backend connection parameters are missing a required key
    - Two backend classes registered under the same provider kind
    """

    def __init__(
        self,
        message: str,
        config_field: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs
    ):
        self.config_field = config_field
        self.config_value = config_value

        context = kwargs.pop("context", None) or {}
        if config_field:
            context["config_field"] = config_field
        if config_value is not None:
            context["config_value"] = str(config_value)

        kwargs.setdefault("user_message", "The storage configuration is invalid.")
        kwargs.setdefault(
            "suggestion", "Check the storage configuration for missing or invalid fields."
        )
        super().__init__(
            message,
            error_code="STORAGE_CONFIGURATION_ERROR",
            context=context,
            **kwargs
        )
