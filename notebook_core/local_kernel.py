"""
In-process kernel backed by IPython.

LocalKernel runs code in an IPython InteractiveShell and publishes the
results as Jupyter IOPub and shell messages, so notebooks can be executed
without a Jupyter server.
"""

import asyncio
import logging
import platform
import uuid
from typing import Any, Optional

from IPython.core.displayhook import DisplayHook
from IPython.core.interactiveshell import InteractiveShell
from IPython.utils.capture import capture_output

from notebook_core.connection import NotebookConnection
from notebook_core.contracts import PYTHON3_DISPLAY_NAME, PYTHON3_KERNEL_NAME
from notebook_core.errors import KernelError
from notebook_core.kernel import (
    ClientSession,
    Kernel,
    KernelChangedArgs,
    KernelFuture,
    KernelInfo,
    KernelSpec,
    KernelSpecs,
    LanguageInfo,
    MessageHandler,
    make_message,
)

logger = logging.getLogger(__name__)

LOCAL_KERNEL_SPEC = KernelSpec(
    name=PYTHON3_KERNEL_NAME,
    display_name=PYTHON3_DISPLAY_NAME,
    language="python",
)


def _build_mime_bundle(obj) -> dict:
    """
    Build a MIME bundle dictionary from an object.

    Checks for IPython rich display methods and builds a dict
    mapping MIME types to their representations. For display objects
    that have a primary content attribute (e.g. HTML.data), use that
    as the text/plain fallback instead of repr().
    """
    rich_content = None

    rich_entries = []
    for mime_type, method_name in [
        ("text/html", "_repr_html_"),
        ("text/markdown", "_repr_markdown_"),
        ("application/json", "_repr_json_"),
        ("text/latex", "_repr_latex_"),
        ("image/svg+xml", "_repr_svg_"),
        ("image/png", "_repr_png_"),
    ]:
        method = getattr(obj, method_name, None)
        if callable(method):
            value = method()
            if value is not None:
                rich_entries.append((mime_type, value))
                if rich_content is None:
                    rich_content = value

    plain = rich_content if rich_content is not None else repr(obj)
    data = {"text/plain": plain}
    for mime_type, value in rich_entries:
        data[mime_type] = value

    return data


class _SilentDisplayHook(DisplayHook):
    """Records the cell result without printing an Out[] prompt to stdout."""

    def write_output_prompt(self):
        pass

    def write_format_data(self, format_dict, md_dict=None):
        pass


def _install_silent_displayhook(ip: InteractiveShell) -> None:
    # Results are published as execute_result only
    if isinstance(ip.displayhook, _SilentDisplayHook):
        return
    hook = _SilentDisplayHook(shell=ip, cache_size=ip.cache_size)
    ip.displayhook = hook
    ip.display_trap.hook = hook


class LocalFuture(KernelFuture):
    """Delivers the messages of one local execution to its handlers."""

    def __init__(self, request_header: dict[str, Any]):
        self.request_header = request_header
        self._reply_handler: Optional[MessageHandler] = None
        self._iopub_handler: Optional[MessageHandler] = None
        self._disposed = False
        self.done: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def set_reply_handler(self, handler: MessageHandler) -> None:
        self._reply_handler = handler

    def set_iopub_handler(self, handler: MessageHandler) -> None:
        self._iopub_handler = handler

    def dispose(self) -> None:
        self._disposed = True
        self._reply_handler = None
        self._iopub_handler = None

    def publish(self, msg_type: str, content: dict[str, Any]) -> None:
        if self._disposed or self._iopub_handler is None:
            return
        self._iopub_handler(make_message(msg_type, content, channel="iopub", parent=self.request_header))

    def reply(self, content: dict[str, Any]) -> None:
        msg = make_message("execute_reply", content, channel="shell", parent=self.request_header)
        if not self._disposed and self._reply_handler is not None:
            self._reply_handler(msg)
        if not self.done.done():
            self.done.set_result(msg)


class LocalKernel(Kernel):
    """
    Persistent IPython kernel that maintains execution state.

    Each request runs on the next turn of the event loop, after the caller
    has attached its handlers to the returned future. Code runs
    synchronously on the event loop thread, so a long-running cell blocks
    the loop until it finishes.
    """

    def __init__(self, spec: KernelSpec = LOCAL_KERNEL_SPEC):
        self.ip = InteractiveShell.instance()
        self.name = spec.name or PYTHON3_KERNEL_NAME
        self._spec = spec
        self.session_id = uuid.uuid4().hex
        self.execution_count = 0
        self.ip.user_ns["__notebook__"] = True
        _install_silent_displayhook(self.ip)

    @property
    def info(self) -> KernelInfo:
        return KernelInfo(language_info=LanguageInfo(
            name="python",
            version=platform.python_version(),
            mimetype="text/x-python",
        ))

    async def get_spec(self) -> KernelSpec:
        return self._spec

    def request_execute(self, code: str) -> LocalFuture:
        header = make_message("execute_request", {"code": code}, channel="shell", session=self.session_id)["header"]
        future = LocalFuture(header)
        asyncio.get_running_loop().call_soon(self._execute, future, code)
        return future

    def _execute(self, future: LocalFuture, code: str) -> None:
        if future.is_disposed:
            return
        self.execution_count += 1
        count = self.execution_count
        future.publish("status", {"execution_state": "busy"})
        future.publish("execute_input", {"code": code, "execution_count": count})

        status = "ok"
        try:
            with capture_output() as captured:
                result = self.ip.run_cell(code, silent=False)

            if captured.stdout:
                future.publish("stream", {"name": "stdout", "text": captured.stdout})
            if captured.stderr:
                future.publish("stream", {"name": "stderr", "text": captured.stderr})

            for display_output in captured.outputs:
                data = getattr(display_output, "data", None) or _build_mime_bundle(display_output)
                metadata = getattr(display_output, "metadata", None) or {}
                future.publish("display_data", {"data": data, "metadata": metadata})

            if result.success:
                if result.result is not None:
                    future.publish("execute_result", {
                        "data": _build_mime_bundle(result.result),
                        "metadata": {},
                        "execution_count": count,
                    })
            else:
                status = "error"
                error = result.error_in_exec or result.error_before_exec
                if error is not None:
                    future.publish("error", {
                        "ename": type(error).__name__,
                        "evalue": str(error),
                        "traceback": [],
                    })
        except Exception as e:
            logger.exception("Local execution failed")
            status = "error"
            future.publish("error", {"ename": type(e).__name__, "evalue": str(e), "traceback": []})

        future.publish("status", {"execution_state": "idle"})
        future.reply({"status": status, "execution_count": count})


class LocalClientSession(ClientSession):
    """Session that hosts a single LocalKernel."""

    def __init__(self, specs: Optional[KernelSpecs] = None):
        super().__init__()
        self._specs = specs or KernelSpecs(default_kernel=PYTHON3_KERNEL_NAME, kernels=[LOCAL_KERNEL_SPEC])
        self._kernel: Optional[LocalKernel] = None
        self.connection: Optional[NotebookConnection] = None

    @property
    def kernel(self) -> Optional[LocalKernel]:
        return self._kernel

    @property
    def specs(self) -> KernelSpecs:
        return self._specs

    def initialize(self, connection: Optional[NotebookConnection] = None) -> None:
        self.connection = connection

    async def ready(self) -> None:
        if self._kernel is None:
            self._kernel = LocalKernel()
        self.status_changed.send(self, default_kernel_loaded=True)

    async def change_kernel(self, spec: Optional[KernelSpec]) -> LocalKernel:
        name = spec.name if spec is not None else self._specs.default_kernel
        known = next((k for k in self._specs.kernels if k.name == name), None)
        if known is None:
            raise KernelError(f"Kernel '{name}' is not available")
        old_kernel = self._kernel
        if old_kernel is not None and old_kernel.name == known.name:
            return old_kernel
        self._kernel = LocalKernel(known)
        logger.info("Switched local kernel to %s", known.name)
        self.kernel_changed.send(self, args=KernelChangedArgs(old_value=old_kernel, new_value=self._kernel))
        return self._kernel

    def update_connection(self, connection: NotebookConnection) -> None:
        self.connection = connection

    async def shutdown(self) -> None:
        self._kernel = None
