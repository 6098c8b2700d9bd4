"""
CellModel: one notebook cell with its outputs and execution session.
"""

import itertools
import logging
import weakref
from typing import TYPE_CHECKING, Optional

from blinker import Signal

from notebook_core.config import Settings, settings as default_settings
from notebook_core.connection import NotebookConnection
from notebook_core.contents import CellContents
from notebook_core.contracts import (
    CellType,
    LANGUAGE_MAPPING,
    MARKDOWN_LANGUAGE,
    MIME_TYPE_PREFIX,
    NotebookChangeType,
)
from notebook_core.execution import ExecutionSession
from notebook_core.kernel import KernelFuture, LanguageInfo
from notebook_core.outputs import CellOutput, CellOutputSink

if TYPE_CHECKING:
    from notebook_core.notebook import NotebookModel

logger = logging.getLogger(__name__)

_cell_ids = itertools.count()


class CellModel:
    """
    A single notebook cell.

    The cell keeps a weak reference to its notebook: it reads the
    notebook's language info and remote connection through it and reports
    source and output changes to ``notebook.on_cell_change``. The notebook
    owns the cell.

    Signals:
        outputs_changed: sent with ``outputs`` whenever outputs change or
            the trust flag flips
        cell_mode_changed: sent with ``is_edit_mode``
    """

    def __init__(
        self,
        contents: Optional[CellContents] = None,
        notebook: Optional["NotebookModel"] = None,
        is_trusted: bool = False,
    ):
        self.id = str(next(_cell_ids))
        self._notebook_ref = weakref.ref(notebook) if notebook is not None else None
        self._sink = CellOutputSink()
        self._sink.changed.connect(self._on_outputs_changed)
        self.outputs_changed = Signal()
        self.cell_mode_changed = Signal()

        self._cell_type = CellType.CODE
        self._source = ""
        self._language: Optional[str] = None
        self.execution_count: Optional[int] = None
        self.active = False
        self._session: Optional[ExecutionSession] = None

        if contents is not None:
            self._load_contents(contents)
        self._is_edit_mode = self._cell_type != CellType.MARKDOWN
        self._ensure_default_language()
        self._trusted = bool(is_trusted)

    def equals(self, other: Optional["CellModel"]) -> bool:
        return other is not None and other.id == self.id

    def __repr__(self) -> str:
        return f"CellModel(id={self.id!r}, cell_type={self._cell_type.value!r})"

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def notebook(self) -> Optional["NotebookModel"]:
        return self._notebook_ref() if self._notebook_ref is not None else None

    @property
    def settings(self) -> Settings:
        notebook = self.notebook
        return notebook.settings if notebook is not None else default_settings

    @property
    def cell_type(self) -> CellType:
        return self._cell_type

    @property
    def source(self) -> str:
        return self._source

    @source.setter
    def source(self, new_source: str):
        if self._source != new_source:
            self._source = new_source
            self._send_change_to_notebook(NotebookChangeType.CELL_SOURCE_UPDATED)

    @property
    def language(self) -> Optional[str]:
        return self._language

    @language.setter
    def language(self, new_language: str):
        self._language = new_language

    @property
    def is_edit_mode(self) -> bool:
        return self._is_edit_mode

    @is_edit_mode.setter
    def is_edit_mode(self, is_edit_mode: bool):
        # View state only; the notebook is not marked dirty
        self._is_edit_mode = is_edit_mode
        self.cell_mode_changed.send(self, is_edit_mode=is_edit_mode)

    @property
    def trusted_mode(self) -> bool:
        return self._trusted

    @trusted_mode.setter
    def trusted_mode(self, is_trusted: bool):
        if self._trusted != is_trusted:
            self._trusted = is_trusted
            self.outputs_changed.send(self, outputs=self.outputs)

    @property
    def outputs(self) -> list[CellOutput]:
        return self._sink.outputs

    @property
    def execution_session(self) -> Optional[ExecutionSession]:
        return self._session

    @property
    def future(self) -> Optional[KernelFuture]:
        return self._session.future if self._session is not None else None

    @property
    def language_info(self) -> Optional[LanguageInfo]:
        notebook = self.notebook
        return notebook.language_info if notebook is not None else None

    @property
    def hadoop_connection(self) -> Optional[NotebookConnection]:
        notebook = self.notebook
        return notebook.hadoop_connection if notebook is not None else None

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    def set_future(self, future: KernelFuture) -> Optional[ExecutionSession]:
        """
        Start a new execution session for this cell.

        Any previous session is disposed first and the outputs are cleared
        before the new session receives messages.

        Returns:
            The active session, or None for markdown cells
        """
        if self._cell_type == CellType.MARKDOWN:
            logger.warning("Ignoring execution request for markdown cell %s", self.id)
            return None
        if self._session is not None and self._session.future is future:
            return self._session
        if self._session is not None:
            self._session.dispose()
        self._session = ExecutionSession(self, future)
        self._session.start()
        return self._session

    def clear_outputs(self) -> None:
        self._sink.clear()

    def append_output(self, output: CellOutput) -> None:
        if self._cell_type == CellType.MARKDOWN:
            return
        self._sink.append(output)

    def dispose(self) -> None:
        """Dispose the running execution session, if any."""
        if self._session is not None:
            self._session.dispose()

    def _on_outputs_changed(self, sender, outputs=None, **kwargs):
        self.outputs_changed.send(self, outputs=outputs)
        self._send_change_to_notebook(NotebookChangeType.CELL_OUTPUT_UPDATED)

    def _send_change_to_notebook(self, change: NotebookChangeType) -> None:
        notebook = self.notebook
        if notebook is not None:
            notebook.on_cell_change(self, change)

    # ------------------------------------------------------------------ #
    # Serialization
    # ------------------------------------------------------------------ #

    def to_contents(self) -> CellContents:
        """Convert to the persisted cell format."""
        if self._cell_type == CellType.CODE:
            return CellContents(
                cell_type=self._cell_type,
                source=self._source,
                metadata={"language": self._language},
                outputs=self._sink.to_list(),
                execution_count=self.execution_count,
            )
        return CellContents(cell_type=self._cell_type, source=self._source, metadata={})

    def to_dict(self) -> dict:
        return self.to_contents().model_dump(mode="json", exclude_none=True)

    def _load_contents(self, contents: CellContents) -> None:
        self._cell_type = contents.cell_type
        self._source = contents.source
        if contents.cell_type == CellType.MARKDOWN:
            self._language = MARKDOWN_LANGUAGE
            return
        language = contents.metadata.get("language")
        if language:
            self._language = language
        self.execution_count = contents.execution_count
        if contents.outputs:
            # Saved outputs are kept as-is; no link rewriting on load
            self._sink.extend_from_persisted(contents.outputs)

    # ------------------------------------------------------------------ #
    # Language
    # ------------------------------------------------------------------ #

    def _ensure_default_language(self) -> None:
        """
        Make sure the cell has a language.

        Markdown cells always use 'markdown'. Code cells fall back to the
        notebook's language info and finally to the configured default.
        """
        if self._language:
            return
        if self._cell_type == CellType.MARKDOWN:
            self._language = MARKDOWN_LANGUAGE
            return

        self._try_set_language_from_lang_info()

        if not self._language:
            self._language = self.settings.default_language

    def _try_set_language_from_lang_info(self) -> None:
        language_info = self.language_info
        if language_info is not None:
            if language_info.name:
                self._language = LANGUAGE_MAPPING.get(language_info.name, language_info.name)
            elif language_info.mimetype:
                self._language = language_info.mimetype

        if self._language and MIME_TYPE_PREFIX in self._language:
            self._language = self._language.replace(MIME_TYPE_PREFIX, "")
