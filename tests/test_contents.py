"""
Tests for the persisted notebook format and LocalContentManager.
"""

import json

import pytest

from notebook_core.contents import CellContents, LocalContentManager, NotebookContents
from notebook_core.contracts import CellType


class TestLocalContentManager:
    """Test cases for LocalContentManager."""

    def setup_method(self):
        self.manager = LocalContentManager()

    def test_no_path_returns_none(self):
        assert self.manager.get_notebook_contents(None) is None

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            self.manager.get_notebook_contents(tmp_path / "missing.ipynb")

    def test_reads_notebook(self, notebook_file):
        contents = self.manager.get_notebook_contents(notebook_file)

        assert len(contents.cells) == 1
        assert contents.cells[0].source == "x = 1"
        assert contents.metadata.kernelspec.name == "python3"
        assert contents.metadata.language_info.name == "python"
        assert contents.nbformat == 4
        assert contents.nbformat_minor == 2

    def test_trailing_garbage_ignored(self, tmp_path):
        path = tmp_path / "trailing.ipynb"
        document = {"cells": [{"cell_type": "markdown", "source": "hi", "metadata": {}}], "metadata": {}}
        path.write_text(json.dumps(document) + "\n}}garbage")

        contents = self.manager.get_notebook_contents(path)

        assert contents.cells[0].cell_type == CellType.MARKDOWN

    def test_invalid_json_raises_value_error(self, tmp_path):
        path = tmp_path / "bad.ipynb"
        path.write_text("not json")

        with pytest.raises(ValueError):
            self.manager.get_notebook_contents(path)

    def test_unknown_cell_type_raises_value_error(self, tmp_path):
        path = tmp_path / "raw.ipynb"
        path.write_text(json.dumps({"cells": [{"cell_type": "raw", "source": ""}], "metadata": {}}))

        with pytest.raises(ValueError):
            self.manager.get_notebook_contents(path)

    def test_save_creates_parents_and_ends_with_newline(self, tmp_path):
        path = tmp_path / "a" / "b" / "nb.ipynb"
        self.manager.save(path, NotebookContents(cells=[CellContents(source="1")]))

        text = path.read_text()
        assert text.endswith("\n")
        data = json.loads(text)
        assert data["cells"][0]["outputs"] == []
        assert data["cells"][0]["execution_count"] is None

    def test_save_keeps_unicode(self, tmp_path):
        path = tmp_path / "nb.ipynb"
        self.manager.save(path, NotebookContents(cells=[CellContents(cell_type=CellType.MARKDOWN, source="안녕")]))

        assert "안녕" in path.read_text(encoding="utf-8")


class TestNotebookContents:

    def test_source_list_joined(self):
        cell = CellContents.model_validate({"cell_type": "code", "source": ["a\n", "b"]})
        assert cell.source == "a\nb"

    def test_unknown_fields_preserved(self):
        contents = NotebookContents.from_dict({
            "cells": [{"cell_type": "code", "source": "", "id": "abc"}],
            "metadata": {"kernelspec": {"name": "python3", "env": {"A": "1"}}, "title": "t"},
        })
        data = contents.to_dict()

        assert data["cells"][0]["id"] == "abc"
        assert data["metadata"]["title"] == "t"
        assert data["metadata"]["kernelspec"]["env"] == {"A": "1"}

    def test_defaults_when_versions_missing(self):
        contents = NotebookContents.from_dict({"cells": [], "metadata": {}})
        assert (contents.nbformat, contents.nbformat_minor) == (4, 2)
