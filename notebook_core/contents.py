"""
Persisted notebook format (.ipynb JSON) and the local file content manager.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from notebook_core.contracts import CellType, NBFORMAT_MAJOR, NBFORMAT_MINOR
from notebook_core.kernel import KernelSpec, LanguageInfo


class CellContents(BaseModel):
    """
    One persisted cell.

    nbformat allows source as a list of lines; it is joined into a single
    string on read.
    """
    model_config = ConfigDict(extra="allow")

    cell_type: CellType = CellType.CODE
    source: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    # Entries are validated when loaded into a cell
    outputs: Optional[list[Any]] = None
    execution_count: Optional[int] = None

    @field_validator("source", mode="before")
    @classmethod
    def multiline_source(cls, v):
        if isinstance(v, list):
            return "".join(v)
        return v


class NotebookMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    kernelspec: Optional[KernelSpec] = None
    language_info: Optional[LanguageInfo] = None


class NotebookContents(BaseModel):
    """A whole persisted notebook. Format versions are passed through as read."""
    cells: list[CellContents] = Field(default_factory=list)
    metadata: NotebookMetadata = Field(default_factory=NotebookMetadata)
    nbformat: int = NBFORMAT_MAJOR
    nbformat_minor: int = NBFORMAT_MINOR

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        data = self.model_dump(mode="json", exclude_none=True)
        for cell, cell_data in zip(self.cells, data["cells"]):
            if cell.cell_type == CellType.CODE:
                cell_data.setdefault("outputs", [])
                cell_data.setdefault("execution_count", None)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "NotebookContents":
        return cls.model_validate(data)


class ContentManager(ABC):
    """Reads and writes notebook contents for a location."""

    @abstractmethod
    def get_notebook_contents(self, path: Optional[Union[str, Path]]) -> Optional[NotebookContents]:
        ...

    @abstractmethod
    def save(self, path: Union[str, Path], contents: NotebookContents) -> None:
        ...


class LocalContentManager(ContentManager):
    """Notebook contents stored as JSON files on the local disk."""

    def get_notebook_contents(self, path: Optional[Union[str, Path]]) -> Optional[NotebookContents]:
        """
        Load notebook contents from a file.

        Only the first JSON document in the file is read; anything after
        it is ignored.

        Args:
            path: Path to load from, or None

        Returns:
            Parsed contents, or None when no path is given

        Raises:
            OSError: if the file cannot be read
            ValueError: if the file does not hold a valid notebook
        """
        if path is None:
            return None
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
        data, _ = json.JSONDecoder().raw_decode(text.lstrip())
        return NotebookContents.from_dict(data)

    def save(self, path: Union[str, Path], contents: NotebookContents) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(contents.to_dict(), f, indent=1, ensure_ascii=False)
            f.write("\n")
