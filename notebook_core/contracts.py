"""
Shared enums, constants and change payloads for notebook documents.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Optional


class CellType(str, Enum):
    """Type of notebook cell."""
    CODE = "code"
    MARKDOWN = "markdown"


class NotebookChangeType(str, Enum):
    """Kinds of change reported through NotebookModel.content_changed."""
    CELLS_ADDED = "cells_added"
    CELL_DELETED = "cell_deleted"
    CELL_SOURCE_UPDATED = "cell_source_updated"
    CELL_OUTPUT_UPDATED = "cell_output_updated"
    DIRTY_STATE_CHANGED = "dirty_state_changed"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# Kernel-reported language names mapped to editor language tags
LANGUAGE_MAPPING = MappingProxyType({
    "pyspark": "python",
    "pyspark3": "python",
    "python": "python",
    "scala": "scala",
})

MARKDOWN_LANGUAGE = "markdown"
MIME_TYPE_PREFIX = "x-"

NBFORMAT_MAJOR = 4
NBFORMAT_MINOR = 2

PYTHON3_KERNEL_NAME = "python3"
PYTHON3_DISPLAY_NAME = "Python 3"


@dataclass
class Notification:
    """A user-facing message published through NotebookModel.on_error."""
    message: str
    severity: Severity = Severity.ERROR


@dataclass
class NotebookContentChange:
    """Describes a change to a notebook's content or dirty state."""
    change_type: NotebookChangeType
    cells: list[Any] = field(default_factory=list)
    cell_index: Optional[int] = None
    is_dirty: Optional[bool] = None
