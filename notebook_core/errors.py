"""
Exceptions raised by notebook-core.
"""


class NotebookCoreError(Exception):
    """Base class for notebook-core errors."""


class NotebookLoadError(NotebookCoreError):
    """Persisted notebook content could not be read or parsed."""


class KernelError(NotebookCoreError):
    """A kernel session operation failed."""
