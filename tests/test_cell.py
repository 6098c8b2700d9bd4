"""
Tests for CellModel.
"""

import gc

import pytest

from notebook_core.cell import CellModel
from notebook_core.config import Settings
from notebook_core.contents import CellContents
from notebook_core.contracts import LANGUAGE_MAPPING, CellType, NotebookChangeType
from notebook_core.kernel import LanguageInfo
from notebook_core.notebook import NotebookModel, NotebookOptions

from conftest import FakeFuture, Recorder


class _LanguageNotebook:
    """Minimal stand-in exposing what a cell reads from its notebook."""

    def __init__(self, language_info=None, settings=None):
        self.language_info = language_info
        self.hadoop_connection = None
        self.settings = settings or Settings()
        self.changes = []

    def on_cell_change(self, cell, change):
        self.changes.append((cell, change))


class TestCellCreation:
    """Test cases for creating cells."""

    def test_default_cell_is_empty_code(self):
        cell = CellModel()

        assert cell.cell_type == CellType.CODE
        assert cell.source == ""
        assert cell.outputs == []
        assert cell.is_edit_mode is True
        assert cell.trusted_mode is False

    def test_ids_are_unique(self):
        assert CellModel().id != CellModel().id

    def test_equals_by_id(self):
        cell = CellModel()
        assert cell.equals(cell)
        assert not cell.equals(CellModel())
        assert not cell.equals(None)

    def test_markdown_cell(self):
        cell = CellModel(CellContents(cell_type=CellType.MARKDOWN, source="# Title"))

        assert cell.language == "markdown"
        assert cell.is_edit_mode is False

    def test_markdown_outputs_dropped_on_load(self):
        cell = CellModel(CellContents(
            cell_type=CellType.MARKDOWN,
            source="text",
            outputs=[{"output_type": "stream", "name": "stdout", "text": "x"}],
        ))
        assert cell.outputs == []

    def test_source_lines_joined(self):
        cell = CellModel(CellContents.model_validate({"cell_type": "code", "source": ["a = 1\n", "b = 2"]}))
        assert cell.source == "a = 1\nb = 2"

    def test_trusted_flag_from_constructor(self):
        assert CellModel(is_trusted=True).trusted_mode is True


class TestCellLanguage:
    """Test default language resolution."""

    def test_saved_language_wins(self):
        notebook = _LanguageNotebook(LanguageInfo(name="scala"))
        cell = CellModel(CellContents(metadata={"language": "sql"}), notebook=notebook)
        assert cell.language == "sql"

    @pytest.mark.parametrize("kernel_language,expected", [
        ("pyspark", "python"),
        ("pyspark3", "python"),
        ("python", "python"),
        ("scala", "scala"),
        ("r", "r"),
    ])
    def test_notebook_language_mapped(self, kernel_language, expected):
        notebook = _LanguageNotebook(LanguageInfo(name=kernel_language))
        assert CellModel(notebook=notebook).language == expected

    def test_mimetype_used_when_no_name(self):
        notebook = _LanguageNotebook(LanguageInfo(mimetype="x-scala"))
        assert CellModel(notebook=notebook).language == "scala"

    def test_falls_back_to_configured_default(self, monkeypatch):
        monkeypatch.setenv("NOTEBOOK_CORE_DEFAULT_LANGUAGE", "sql")
        notebook = _LanguageNotebook(settings=Settings())
        assert CellModel(notebook=notebook).language == "sql"

    def test_falls_back_to_python_without_notebook(self):
        assert CellModel().language == "python"

    def test_language_mapping_is_immutable(self):
        with pytest.raises(TypeError):
            LANGUAGE_MAPPING["ruby"] = "ruby"


class TestCellNotifications:
    """Test change notifications sent to the notebook."""

    def setup_method(self):
        self.notebook = _LanguageNotebook()
        self.cell = CellModel(notebook=self.notebook)

    def test_source_change_notifies_notebook(self):
        self.cell.source = "x = 1"
        assert self.notebook.changes == [(self.cell, NotebookChangeType.CELL_SOURCE_UPDATED)]

    def test_same_source_does_not_notify(self):
        self.cell.source = ""
        assert self.notebook.changes == []

    def test_output_change_notifies_notebook(self):
        outputs = Recorder(self.cell.outputs_changed, "outputs")
        self.cell.clear_outputs()

        assert self.notebook.changes == [(self.cell, NotebookChangeType.CELL_OUTPUT_UPDATED)]
        assert outputs.values == [[]]

    def test_trust_change_refires_outputs(self):
        outputs = Recorder(self.cell.outputs_changed, "outputs")
        self.cell.trusted_mode = True
        self.cell.trusted_mode = True

        assert len(outputs) == 1
        assert self.notebook.changes == []

    def test_edit_mode_change_fires_signal_only(self):
        modes = Recorder(self.cell.cell_mode_changed, "is_edit_mode")
        self.cell.is_edit_mode = False

        assert modes.values == [False]
        assert self.notebook.changes == []


class TestCellBackReference:

    def test_cell_does_not_keep_notebook_alive(self):
        model = NotebookModel(NotebookOptions())
        model.load()
        cell = model.cells[0]
        assert cell.notebook is model

        del model
        gc.collect()

        assert cell.notebook is None
        cell.source = "still works"
        assert cell.source == "still works"


class TestCellSerialization:

    def test_code_cell_to_contents(self):
        cell = CellModel(CellContents(source="print(1)", metadata={"language": "python"}))
        future = FakeFuture()
        cell.set_future(future)
        future.iopub("stream", {"name": "stdout", "text": "1\n"})
        future.reply({"status": "ok", "execution_count": 4})

        contents = cell.to_contents()

        assert contents.cell_type == CellType.CODE
        assert contents.metadata == {"language": "python"}
        assert contents.outputs == [{"output_type": "stream", "name": "stdout", "text": "1\n"}]
        assert contents.execution_count == 4

    def test_markdown_cell_to_contents_has_no_outputs(self):
        cell = CellModel(CellContents(cell_type=CellType.MARKDOWN, source="# hi"))
        d = cell.to_dict()

        assert d == {"cell_type": "markdown", "source": "# hi", "metadata": {}}
