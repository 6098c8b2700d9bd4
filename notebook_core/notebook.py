"""
NotebookModel: the notebook document.

Owns the ordered cells, loads and saves them through a content manager,
and coordinates trust, default language, kernel and remote context
switching on behalf of the cells.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Union

from blinker import Signal

from notebook_core.cell import CellModel
from notebook_core.config import Settings, settings as default_settings
from notebook_core.connection import (
    ConnectionProfile,
    ConnectionProvider,
    DefaultConnection,
    NotebookConnection,
)
from notebook_core.contents import (
    CellContents,
    ContentManager,
    LocalContentManager,
    NotebookContents,
    NotebookMetadata,
)
from notebook_core.contracts import (
    CellType,
    NBFORMAT_MAJOR,
    NBFORMAT_MINOR,
    NotebookChangeType,
    NotebookContentChange,
    Notification,
    PYTHON3_DISPLAY_NAME,
    PYTHON3_KERNEL_NAME,
    Severity,
)
from notebook_core.errors import NotebookLoadError
from notebook_core.kernel import (
    ClientSession,
    Kernel,
    KernelChangedArgs,
    KernelSpec,
    KernelSpecs,
    LanguageInfo,
    default_language_info,
)
from notebook_core.utils import get_error_message

logger = logging.getLogger(__name__)


@dataclass
class NotebookOptions:
    """
    Collaborators for a NotebookModel.

    path is None for an untitled notebook, which is never read from disk.
    """
    path: Optional[Path] = None
    session_factory: Optional[Callable[[], ClientSession]] = None
    content_manager: ContentManager = field(default_factory=LocalContentManager)
    connection_provider: Optional[ConnectionProvider] = None
    settings: Settings = field(default_factory=lambda: default_settings)


class NotebookModel:
    """
    A notebook document.

    Signals:
        content_changed: sent with ``change`` (NotebookContentChange)
        on_error: sent with ``notification`` (Notification)
        kernels_changed: sent with ``kernel`` (KernelSpec)
        contexts_changed: sent when the active contexts were reloaded
        client_session_ready: sent with ``session`` once the session started
    """

    def __init__(self, options: NotebookOptions, connection_profile: Optional[ConnectionProfile] = None):
        self._options = options
        self.connection_profile = connection_profile

        self.content_changed = Signal()
        self.on_error = Signal()
        self.kernels_changed = Signal()
        self.contexts_changed = Signal()
        self.client_session_ready = Signal()

        self._cells: Optional[list[CellModel]] = None
        self._in_error_state = False
        self._client_session: Optional[ClientSession] = None
        self._active_contexts: Optional[DefaultConnection] = None
        self._trusted_mode = False
        self._language_info: Optional[LanguageInfo] = None
        self._saved_kernel_info: Optional[KernelSpec] = None
        self._metadata = NotebookMetadata()
        self._nbformat = NBFORMAT_MAJOR
        self._nbformat_minor = NBFORMAT_MINOR
        self._hadoop_connection: Optional[NotebookConnection] = None
        self._default_kernel: Optional[KernelSpec] = None
        self._background_tasks: set[asyncio.Task] = set()
        self.active_cell: Optional[CellModel] = None

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def path(self) -> Optional[Path]:
        return self._options.path

    @property
    def settings(self) -> Settings:
        return self._options.settings

    @property
    def cells(self) -> list[CellModel]:
        return self._cells if self._cells is not None else []

    @property
    def in_error_state(self) -> bool:
        return self._in_error_state

    @property
    def client_session(self) -> Optional[ClientSession]:
        return self._client_session

    @property
    def is_session_ready(self) -> bool:
        return self._client_session is not None

    @property
    def specs(self) -> Optional[KernelSpecs]:
        return self._client_session.specs if self._client_session is not None else None

    @property
    def default_kernel(self) -> Optional[KernelSpec]:
        return self._default_kernel

    @property
    def saved_kernel_info(self) -> Optional[KernelSpec]:
        return self._saved_kernel_info

    @property
    def contexts(self) -> Optional[DefaultConnection]:
        return self._active_contexts

    @property
    def language_info(self) -> Optional[LanguageInfo]:
        return self._language_info

    @property
    def hadoop_connection(self) -> Optional[NotebookConnection]:
        return self._hadoop_connection

    @property
    def trusted_mode(self) -> bool:
        return self._trusted_mode

    @trusted_mode.setter
    def trusted_mode(self, is_trusted: bool):
        self._trusted_mode = is_trusted
        for cell in self.cells:
            cell.trusted_mode = is_trusted

    # ------------------------------------------------------------------ #
    # Load / save
    # ------------------------------------------------------------------ #

    def load(self, trusted: bool = False) -> None:
        """
        Load cells from the notebook's path.

        Untitled notebooks skip reading. A notebook with no saved cells
        gets a single empty code cell.

        Raises:
            NotebookLoadError: if the contents cannot be read or parsed; the
                notebook stays in the error state afterwards
        """
        try:
            self._trusted_mode = trusted
            contents = None
            if self._options.path is not None:
                contents = self._options.content_manager.get_notebook_contents(self._options.path)
            self._cells = None
            if contents is not None:
                self._metadata = contents.metadata
                self._language_info = contents.metadata.language_info or default_language_info()
                self._saved_kernel_info = contents.metadata.kernelspec
                self._nbformat = contents.nbformat
                self._nbformat_minor = contents.nbformat_minor
                if contents.cells:
                    self._cells = [CellModel(c, notebook=self, is_trusted=trusted) for c in contents.cells]
            if not self._cells:
                self._cells = [self._create_cell(CellType.CODE)]
        except (OSError, ValueError) as err:
            self._in_error_state = True
            logger.error("Failed to load notebook %s: %s", self._options.path, err)
            raise NotebookLoadError(f"Could not load notebook: {get_error_message(err)}") from err

    def to_contents(self) -> NotebookContents:
        """Serialize the cells and notebook metadata."""
        metadata = self._metadata.model_copy(update={
            "kernelspec": self._saved_kernel_info,
            "language_info": self._language_info,
        })
        return NotebookContents(
            cells=[cell.to_contents() for cell in self.cells],
            metadata=metadata,
            nbformat=self._nbformat,
            nbformat_minor=self._nbformat_minor,
        )

    def to_dict(self) -> dict:
        return self.to_contents().to_dict()

    def save(self, path: Optional[Union[str, Path]] = None) -> bool:
        """
        Save the notebook.

        Args:
            path: Optional new location; becomes the notebook's path

        Returns:
            True if saved. Failures are reported through on_error.
        """
        if self._cells is None:
            return False
        if path is not None:
            self._options.path = Path(path)
        if self._options.path is None:
            self._notify_error("Failed to save notebook: no path was given for an untitled notebook")
            return False
        try:
            self._options.content_manager.save(self._options.path, self.to_contents())
        except OSError as err:
            logger.warning("Failed to save notebook %s: %s", self._options.path, err)
            self._notify_error(f"Failed to save notebook: {get_error_message(err)}")
            return False
        self.content_changed.send(self, change=NotebookContentChange(
            change_type=NotebookChangeType.DIRTY_STATE_CHANGED,
            is_dirty=False,
        ))
        return True

    # ------------------------------------------------------------------ #
    # Cells
    # ------------------------------------------------------------------ #

    def find_cell_index(self, cell: CellModel) -> int:
        for i, candidate in enumerate(self.cells):
            if candidate.equals(cell):
                return i
        return -1

    def add_cell(self, cell_type: CellType, index: Optional[int] = None) -> Optional[CellModel]:
        """
        Insert a new cell at index, or append it when index is missing or out of range.

        Returns:
            The new cell, or None when the notebook is in the error state
        """
        if self._in_error_state or self._cells is None:
            return None
        cell = self._create_cell(cell_type)

        if index is not None and 0 <= index < len(self._cells):
            self._cells.insert(index, cell)
        else:
            self._cells.append(cell)
            index = None

        self.content_changed.send(self, change=NotebookContentChange(
            change_type=NotebookChangeType.CELLS_ADDED,
            cells=[cell],
            cell_index=index,
        ))
        return cell

    def delete_cell(self, cell: CellModel) -> None:
        if self._in_error_state or self._cells is None:
            return
        index = self.find_cell_index(cell)
        if index > -1:
            removed = self._cells.pop(index)
            removed.dispose()
            if self.active_cell is removed:
                self.active_cell = None
            self.content_changed.send(self, change=NotebookContentChange(
                change_type=NotebookChangeType.CELL_DELETED,
                cells=[cell],
                cell_index=index,
            ))
        else:
            self._notify_error("Failed to delete cell.")

    def on_cell_change(self, cell: CellModel, change: NotebookChangeType) -> None:
        """Relay a cell change; source and output edits mark the notebook dirty."""
        change_info = NotebookContentChange(change_type=change, cells=[cell])
        if change in (NotebookChangeType.CELL_OUTPUT_UPDATED, NotebookChangeType.CELL_SOURCE_UPDATED):
            change_info.change_type = NotebookChangeType.DIRTY_STATE_CHANGED
            change_info.is_dirty = True
        self.content_changed.send(self, change=change_info)

    def _create_cell(self, cell_type: CellType) -> CellModel:
        contents = CellContents(cell_type=cell_type, source="", metadata={})
        return CellModel(contents, notebook=self, is_trusted=True)

    # ------------------------------------------------------------------ #
    # Kernel session
    # ------------------------------------------------------------------ #

    async def start_session(self) -> None:
        """
        Create the kernel session, wait for it, then load kernel info and contexts.

        Session failures put the notebook into the error state and are
        reported through on_error.
        """
        if self._options.session_factory is None:
            self._set_error_state("no kernel session factory is configured")
            return
        self._client_session = self._options.session_factory()
        try:
            if self.connection_profile is not None:
                self._hadoop_connection = NotebookConnection(
                    self.connection_profile, gateway_port=self.settings.gateway_port
                )
            self._client_session.initialize(self._hadoop_connection)
            await self._client_session.ready()
        except Exception as err:
            logger.exception("Kernel session failed to start")
            self._set_error_state(get_error_message(err))
            return

        if self._client_session.is_in_error_state:
            self._set_error_state(self._client_session.error_message)
            return

        self.client_session_ready.send(self, session=self._client_session)
        await self._load_kernel_info()
        await self._load_active_contexts(None)

    async def change_kernel(self, display_name: str) -> None:
        spec = self._get_spec_from_display_name(display_name)
        await self._do_change_kernel(spec)

    async def _do_change_kernel(self, spec: Optional[KernelSpec]) -> None:
        if self._client_session is None:
            self._notify_error("Failed to change kernel: no kernel session is active")
            return
        try:
            kernel = await self._client_session.change_kernel(spec)
        except Exception as err:
            # The kernel picker is not rolled back here
            logger.warning("Kernel change to %s failed: %s", spec, err)
            self._notify_error(f"Failed to change kernel: {get_error_message(err)}")
            return

        try:
            await kernel.ready()
            if kernel.info is not None:
                self._update_language_info(kernel.info.language_info)
        except Exception as err:
            logger.debug("Kernel did not report language info: %s", err)
        await self._update_kernel_info(kernel)

    def sanitize_display_name(self, display_name: Optional[str]) -> Optional[str]:
        """
        Remove a trailing address from a kernel display name.

        Remote kernels are listed as '<kernel> (<ip address>)', e.g.
        'PySpark (25.23.32.4)'; the suffix is stripped so they compare
        equal to the plain kernel name.
        """
        name = display_name
        if name:
            index = name.find("(")
            if index > -1:
                name = name[:index].strip()
        return name

    def _get_spec_from_display_name(self, display_name: str) -> Optional[KernelSpec]:
        specs = self.specs
        display_name = self.sanitize_display_name(display_name)
        if specs is None or not display_name:
            return None
        for kernel in specs.kernels:
            if kernel.display_name and kernel.display_name.lower() == display_name.lower():
                if not kernel.name:
                    return kernel.model_copy(update={"name": specs.default_kernel})
                return kernel
        # The session falls back to its default kernel
        return None

    def _update_language_info(self, info: Optional[LanguageInfo]) -> None:
        if info is not None:
            self._language_info = info

    async def _update_kernel_info(self, kernel: Kernel) -> None:
        if kernel is None:
            return
        try:
            spec = await kernel.get_spec()
        except Exception as err:
            # Keep the saved values
            logger.debug("Could not read kernel spec: %s", err)
            return
        self._saved_kernel_info = KernelSpec(
            name=kernel.name,
            display_name=spec.display_name,
            language=spec.language,
        )

    async def _load_kernel_info(self) -> None:
        self._client_session.kernel_changed.connect(self._on_kernel_changed)
        self._client_session.status_changed.connect(self._on_status_changed)
        try:
            self._default_kernel = self._get_default_kernel()
        except Exception as err:
            self._notify_error(f"Loading kernel info failed: {get_error_message(err)}")
            return
        await self._do_change_kernel(self._default_kernel)

    def _get_default_kernel(self) -> KernelSpec:
        """Saved kernel when the session offers it, else the session's default."""
        specs = self.specs
        saved = self._saved_kernel_info
        if specs is None:
            return saved or KernelSpec(name=PYTHON3_KERNEL_NAME, display_name=PYTHON3_DISPLAY_NAME)
        if saved is not None:
            for kernel in specs.kernels:
                if saved.name and kernel.name and kernel.name.lower() == saved.name.lower():
                    return kernel
                if saved.display_name and kernel.display_name == saved.display_name:
                    return kernel
        for kernel in specs.kernels:
            if kernel.name == specs.default_kernel:
                return kernel
        return KernelSpec(name=specs.default_kernel, display_name=specs.default_kernel)

    def _on_kernel_changed(self, sender, args: Optional[KernelChangedArgs] = None, **kwargs):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Kernel changed outside an event loop; contexts not reloaded")
            return
        task = loop.create_task(self._load_active_contexts(args))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _on_status_changed(self, sender, default_kernel_loaded: bool = False, **kwargs):
        if default_kernel_loaded:
            self.kernels_changed.send(self, kernel=self._default_kernel)
        else:
            self.kernels_changed.send(self, kernel=KernelSpec(
                name=PYTHON3_KERNEL_NAME, display_name=PYTHON3_DISPLAY_NAME,
            ))

    # ------------------------------------------------------------------ #
    # Remote contexts
    # ------------------------------------------------------------------ #

    async def _load_active_contexts(self, kernel_changed_args: Optional[KernelChangedArgs]) -> None:
        provider = self._options.connection_provider
        if provider is None:
            return
        try:
            self._active_contexts = await provider.get_contexts_for_kernel(
                kernel_changed_args, self.connection_profile
            )
        except Exception as err:
            logger.warning("Loading contexts failed: %s", err)
            self._notify_error(f"Loading contexts failed: {get_error_message(err)}")
            return
        self.contexts_changed.send(self)
        default = self._active_contexts.default_connection if self._active_contexts else None
        if default is not None and default.options:
            self.change_context(default.host)

    def change_context(self, host: str, connection: Optional[ConnectionProfile] = None) -> None:
        """
        Switch the remote connection used for execution.

        The connection is looked up by host when not given. Failures are
        reported through on_error and leave the current context in place.
        """
        try:
            contexts = self._active_contexts
            if connection is None and contexts is not None:
                connection = next(
                    (c for c in contexts.other_connections if c.options.get("host") == host), None
                )
                if connection is None and contexts.default_connection is not None \
                        and contexts.default_connection.options.get("host") == host:
                    connection = contexts.default_connection
            if connection is None:
                raise ValueError(f"No connection found for host '{host}'")
            hadoop_connection = NotebookConnection(connection, gateway_port=self.settings.gateway_port)
            if self._client_session is not None:
                self._client_session.update_connection(hadoop_connection)
            self._hadoop_connection = hadoop_connection
            self._refresh_connections(connection)
        except Exception as err:
            logger.warning("Changing context to %s failed: %s", host, err)
            self._notify_error(f"Changing context failed: {get_error_message(err)}")

    def _refresh_connections(self, new_connection: ConnectionProfile) -> None:
        contexts = self._active_contexts
        if contexts is None or contexts.default_connection is None:
            return
        default = contexts.default_connection
        if new_connection.is_valid_knox() and new_connection.id != "-1" and new_connection.id != default.id:
            # Previous default goes to the head of the other connections
            if default.is_valid_knox():
                others = [c for c in contexts.other_connections if c.id != default.id]
                others.insert(0, default)
                contexts.other_connections = others
            contexts.default_connection = new_connection

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def run_cell(self, cell: CellModel) -> None:
        """
        Execute a code cell on the current kernel and wait for it to finish.

        Markdown cells are ignored. Failures are reported through on_error.
        """
        if self._in_error_state or cell.cell_type != CellType.CODE:
            return
        kernel = self._client_session.kernel if self._client_session is not None else None
        if kernel is None:
            self._notify_error("Failed to execute cell: no kernel is available")
            return
        try:
            future = kernel.request_execute(cell.source)
        except Exception as err:
            logger.warning("Execution request for cell %s failed: %s", cell.id, err)
            self._notify_error(f"Failed to execute cell: {get_error_message(err)}")
            return
        self.active_cell = cell
        session = cell.set_future(future)
        if session is not None:
            await session.wait()

    async def close(self) -> None:
        """Dispose running executions and shut the kernel session down."""
        for cell in self.cells:
            cell.dispose()
        try:
            if self._client_session is not None:
                await self._client_session.shutdown()
                self._client_session = None
        except Exception as err:
            logger.warning("Kernel shutdown failed: %s", err)
            self._notify_error(f"An error occurred when closing the notebook: {get_error_message(err)}")

    # ------------------------------------------------------------------ #
    # Errors
    # ------------------------------------------------------------------ #

    def _set_error_state(self, message: str) -> None:
        self._in_error_state = True
        self._notify_error(f"Could not start session: {message}")

    def _notify_error(self, message: str) -> None:
        self.on_error.send(self, notification=Notification(message=message, severity=Severity.ERROR))
