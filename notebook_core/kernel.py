"""
Kernel session contracts: kernel specs, Jupyter messages, and the abstract
session, kernel and future interfaces a host supplies.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from blinker import Signal
from pydantic import BaseModel, ConfigDict, Field

from notebook_core.connection import NotebookConnection


class KernelSpec(BaseModel):
    """Kernel descriptor, as listed by a session manager or saved in a notebook."""
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    display_name: Optional[str] = None
    language: Optional[str] = None


class KernelSpecs(BaseModel):
    """All kernels a session can switch to."""
    default_kernel: str
    kernels: list[KernelSpec] = Field(default_factory=list)


class LanguageInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    version: Optional[str] = None
    mimetype: Optional[str] = None


def default_language_info() -> LanguageInfo:
    """Language info used when a notebook file does not carry any."""
    return LanguageInfo(name="python", version="", mimetype="x-python")


class KernelInfo(BaseModel):
    """Subset of a kernel_info_reply the notebook cares about."""
    model_config = ConfigDict(extra="allow")

    language_info: Optional[LanguageInfo] = None


@dataclass
class KernelChangedArgs:
    old_value: Optional["Kernel"] = None
    new_value: Optional["Kernel"] = None


class MessageHeader(BaseModel):
    model_config = ConfigDict(extra="allow")

    msg_id: str = ""
    msg_type: str
    session: str = ""
    username: str = ""
    date: str = ""
    version: str = "5.3"


class KernelMessage(BaseModel):
    """A Jupyter protocol message as delivered on the shell or IOPub channel."""
    model_config = ConfigDict(extra="allow")

    header: MessageHeader
    parent_header: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    content: dict[str, Any] = Field(default_factory=dict)
    channel: Optional[str] = None


def make_message(
    msg_type: str,
    content: Optional[dict[str, Any]] = None,
    channel: str = "iopub",
    parent: Optional[dict[str, Any]] = None,
    session: str = "",
) -> dict[str, Any]:
    """
    Build a raw Jupyter message dict.

    Args:
        msg_type: Message type, e.g. 'stream' or 'execute_reply'
        content: Message content
        channel: 'iopub' or 'shell'
        parent: Header of the request this message answers
        session: Session id placed in the header

    Returns:
        Message dict in wire layout
    """
    return {
        "header": {
            "msg_id": uuid.uuid4().hex,
            "msg_type": msg_type,
            "session": session,
            "username": "",
            "date": datetime.now(timezone.utc).isoformat(),
            "version": "5.3",
        },
        "parent_header": parent or {},
        "metadata": {},
        "content": content or {},
        "channel": channel,
    }


MessageHandler = Callable[[dict[str, Any]], None]


class KernelFuture(ABC):
    """
    Pending execution request.

    The kernel delivers raw message dicts to the registered handlers;
    replies arrive on the shell channel, side effects on IOPub.
    """

    @abstractmethod
    def set_reply_handler(self, handler: MessageHandler) -> None:
        ...

    @abstractmethod
    def set_iopub_handler(self, handler: MessageHandler) -> None:
        ...

    @abstractmethod
    def dispose(self) -> None:
        """Stop delivering messages to the handlers."""


class Kernel(ABC):
    """A running kernel."""

    name: str = ""

    @property
    def info(self) -> Optional[KernelInfo]:
        return None

    async def ready(self) -> None:
        """Resolve once the kernel has reported its info."""

    @abstractmethod
    async def get_spec(self) -> KernelSpec:
        ...

    @abstractmethod
    def request_execute(self, code: str) -> KernelFuture:
        ...


class ClientSession(ABC):
    """
    Manages one kernel session for a notebook.

    Signals:
        kernel_changed: sent with ``args`` (KernelChangedArgs) after a switch
        status_changed: sent with ``default_kernel_loaded`` (bool)
    """

    def __init__(self):
        self.kernel_changed = Signal()
        self.status_changed = Signal()

    @property
    @abstractmethod
    def kernel(self) -> Optional[Kernel]:
        ...

    @property
    @abstractmethod
    def specs(self) -> Optional[KernelSpecs]:
        ...

    @property
    def is_in_error_state(self) -> bool:
        return False

    @property
    def error_message(self) -> str:
        return ""

    @abstractmethod
    def initialize(self, connection: Optional[NotebookConnection] = None) -> None:
        ...

    @abstractmethod
    async def ready(self) -> None:
        ...

    @abstractmethod
    async def change_kernel(self, spec: Optional[KernelSpec]) -> Kernel:
        ...

    @abstractmethod
    def update_connection(self, connection: NotebookConnection) -> None:
        ...

    @abstractmethod
    async def shutdown(self) -> None:
        ...
