"""
ExecutionSession: binds one pending kernel request to a cell and turns the
kernel's reply and IOPub messages into output changes.
"""

import asyncio
import logging
import re
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from notebook_core.kernel import KernelFuture, KernelMessage
from notebook_core.outputs import CellOutput, OutputType

if TYPE_CHECKING:
    from notebook_core.cell import CellModel

logger = logging.getLogger(__name__)

# Links the cluster's master node emits for YARN application pages
_CLUSTER_PROXY_URL = re.compile(r"(https?://mssql-master.*/proxy)(.*)")

_OUTPUT_MESSAGE_TYPES = {
    "execute_result": OutputType.EXECUTE_RESULT,
    "display_data": OutputType.DISPLAY_DATA,
    "stream": OutputType.STREAM,
    "error": OutputType.ERROR,
}


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class ExecutionSession:
    """
    One in-flight execution for a cell.

    A session goes IDLE -> RUNNING on start() and back to IDLE on a
    terminal reply, on dispose(), or when the cell gets a new session.
    Messages arriving after dispose() are dropped, so a superseded
    session never adds outputs to the cell.
    """

    def __init__(self, cell: "CellModel", future: KernelFuture):
        self.cell = cell
        self.future = future
        self.state = SessionState.IDLE
        self._disposed = False
        self._finished = asyncio.Event()

    @property
    def is_reply_pending(self) -> bool:
        return self.state == SessionState.RUNNING

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def start(self) -> None:
        """Clear the cell's outputs, mark it trusted and start listening."""
        if self._disposed:
            return
        self.cell.clear_outputs()
        # A cell that runs is trusted
        self.cell.trusted_mode = True
        self.state = SessionState.RUNNING
        self.future.set_reply_handler(self.handle_reply)
        self.future.set_iopub_handler(self.handle_iopub)

    def handle_iopub(self, raw_msg: dict[str, Any]) -> None:
        if self._disposed:
            return
        try:
            msg = KernelMessage.model_validate(raw_msg)
        except ValidationError:
            logger.debug("Dropping malformed IOPub message for cell %s", self.cell.id)
            return

        msg_type = msg.header.msg_type
        if msg_type in _OUTPUT_MESSAGE_TYPES:
            output_type = _OUTPUT_MESSAGE_TYPES[msg_type]
        elif msg_type == "clear_output":
            # The 'wait' flag is not honoured; outputs are cleared right away
            self.cell.clear_outputs()
            return
        elif msg_type == "update_display_data":
            # Appended as new output rather than replacing the displayed one
            output_type = OutputType.DISPLAY_DATA
        else:
            return

        try:
            output = CellOutput.from_content(output_type, msg.content)
        except ValidationError:
            logger.debug("Dropping malformed %s message for cell %s", msg_type, self.cell.id)
            return
        self.cell.append_output(self.rewrite_output_urls(output))

    def handle_reply(self, raw_msg: dict[str, Any]) -> None:
        if self._disposed:
            return
        try:
            msg = KernelMessage.model_validate(raw_msg)
        except ValidationError:
            logger.debug("Dropping malformed reply message for cell %s", self.cell.id)
            return

        # Reply payloads are not turned into outputs
        if msg.header.msg_type.endswith("_reply"):
            execution_count = msg.content.get("execution_count")
            if isinstance(execution_count, int):
                self.cell.execution_count = execution_count
            self._finish()

    def rewrite_output_urls(self, output: CellOutput) -> CellOutput:
        """Route cluster-internal proxy links in HTML output through the gateway."""
        if not output.data or not output.data.get("text/html"):
            return output
        connection = self.cell.hadoop_connection
        if connection is None:
            return output
        html = output.data["text/html"]
        if isinstance(html, list):
            html = "".join(html)
        if not isinstance(html, str):
            return output
        gateway_url = connection.yarn_proxy_url
        output.data["text/html"] = _CLUSTER_PROXY_URL.sub(lambda m: gateway_url + m.group(2), html)
        return output

    async def wait(self) -> None:
        """Wait until the session has finished or been disposed."""
        await self._finished.wait()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.future.dispose()
        self._finish()

    def _finish(self) -> None:
        self.state = SessionState.IDLE
        self._finished.set()
