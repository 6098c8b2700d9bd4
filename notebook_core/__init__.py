"""
notebook-core: notebook document model driven by an asynchronous kernel session.

This package provides:
- CellModel and CellOutputSink, which turn Jupyter IOPub messages into cell outputs
- ExecutionSession, which binds one kernel execution request to a cell
- NotebookModel, which owns the cells, loads and saves them, and handles
  trust, kernel and remote context switching
"""

from notebook_core.cell import CellModel
from notebook_core.contracts import CellType, NotebookChangeType, NotebookContentChange, Notification, Severity
from notebook_core.errors import NotebookCoreError, NotebookLoadError, KernelError
from notebook_core.execution import ExecutionSession, SessionState
from notebook_core.notebook import NotebookModel, NotebookOptions
from notebook_core.outputs import CellOutput, CellOutputSink, OutputType

__version__ = "0.1.0"
__all__ = [
    "CellModel",
    "CellOutput",
    "CellOutputSink",
    "CellType",
    "ExecutionSession",
    "KernelError",
    "NotebookChangeType",
    "NotebookContentChange",
    "NotebookCoreError",
    "NotebookLoadError",
    "NotebookModel",
    "NotebookOptions",
    "Notification",
    "OutputType",
    "SessionState",
    "Severity",
]
