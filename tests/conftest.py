"""Pytest fixtures and fake kernel collaborators shared across test modules."""

import json
from typing import Any, Optional

import pytest

from notebook_core.connection import ConnectionProvider, DefaultConnection
from notebook_core.kernel import (
    ClientSession,
    Kernel,
    KernelChangedArgs,
    KernelFuture,
    KernelInfo,
    KernelSpec,
    KernelSpecs,
    LanguageInfo,
    make_message,
)


class FakeFuture(KernelFuture):
    """Future whose messages are pushed by the test."""

    def __init__(self):
        self.reply_handler = None
        self.iopub_handler = None
        self.disposed = False

    def set_reply_handler(self, handler):
        self.reply_handler = handler

    def set_iopub_handler(self, handler):
        self.iopub_handler = handler

    def dispose(self):
        self.disposed = True

    def iopub(self, msg_type: str, content: Optional[dict] = None):
        """Deliver an IOPub message even after dispose, like a late kernel."""
        self.iopub_handler(make_message(msg_type, content or {}))

    def reply(self, content: Optional[dict] = None, msg_type: str = "execute_reply"):
        self.reply_handler(make_message(msg_type, content or {"status": "ok"}, channel="shell"))


class FakeKernel(Kernel):
    def __init__(self, spec: KernelSpec, language: str = "python", fail_spec: bool = False):
        self.name = spec.name
        self._spec = spec
        self._language = language
        self._fail_spec = fail_spec
        self.futures: list[FakeFuture] = []
        self.executed: list[str] = []
        # Replies sent automatically for each request: list of (msg_type, content)
        self.script: list[tuple[str, dict]] = []

    @property
    def info(self):
        return KernelInfo(language_info=LanguageInfo(name=self._language, version="1.0"))

    async def get_spec(self):
        if self._fail_spec:
            raise RuntimeError("spec unavailable")
        return self._spec

    def request_execute(self, code: str):
        self.executed.append(code)
        future = ScriptedFuture(self.script)
        self.futures.append(future)
        return future


class ScriptedFuture(FakeFuture):
    """Plays a fixed message script as soon as both handlers are attached."""

    def __init__(self, script: list[tuple[str, dict]]):
        super().__init__()
        self.script = list(script)

    def set_iopub_handler(self, handler):
        super().set_iopub_handler(handler)
        for msg_type, content in self.script:
            self.iopub(msg_type, content)
        self.reply({"status": "ok", "execution_count": 7})


class FakeClientSession(ClientSession):
    """In-memory ClientSession recording the calls made by the notebook."""

    def __init__(self, specs: Optional[KernelSpecs] = None, fail_change: bool = False,
                 error_message: str = "", fail_shutdown: bool = False):
        super().__init__()
        self._specs = specs or KernelSpecs(default_kernel="python3", kernels=[
            KernelSpec(name="python3", display_name="Python 3", language="python"),
            KernelSpec(name="pysparkkernel", display_name="PySpark", language="python"),
            KernelSpec(name="sparkkernel", display_name="Spark", language="scala"),
        ])
        self._kernel: Optional[FakeKernel] = None
        self.fail_change = fail_change
        self.fail_shutdown = fail_shutdown
        self._error_message = error_message
        self.changed_specs: list[Optional[KernelSpec]] = []
        self.connections: list[Any] = []
        self.initialized_with = "not-initialized"
        self.shutdown_called = False

    @property
    def kernel(self):
        return self._kernel

    @property
    def specs(self):
        return self._specs

    @property
    def is_in_error_state(self):
        return bool(self._error_message)

    @property
    def error_message(self):
        return self._error_message

    def initialize(self, connection=None):
        self.initialized_with = connection

    async def ready(self):
        self.status_changed.send(self, default_kernel_loaded=True)

    async def change_kernel(self, spec):
        self.changed_specs.append(spec)
        if self.fail_change:
            raise RuntimeError("kernel unavailable")
        if spec is None:
            spec = self._specs.kernels[0]
        language = "scala" if spec.language == "scala" else "python"
        old = self._kernel
        self._kernel = FakeKernel(spec, language=language)
        self.kernel_changed.send(self, args=KernelChangedArgs(old_value=old, new_value=self._kernel))
        return self._kernel

    def update_connection(self, connection):
        self.connections.append(connection)

    async def shutdown(self):
        self.shutdown_called = True
        if self.fail_shutdown:
            raise RuntimeError("shutdown failed")


class FakeConnectionProvider(ConnectionProvider):
    def __init__(self, contexts: DefaultConnection):
        self.contexts = contexts
        self.calls = []

    async def get_contexts_for_kernel(self, kernel_changed_args, connection_profile=None):
        self.calls.append(kernel_changed_args)
        return self.contexts


class Recorder:
    """Collects the keyword payloads of a blinker signal."""

    def __init__(self, signal, key: str):
        self.key = key
        self.values = []
        signal.connect(self, weak=False)

    def __call__(self, sender, **kwargs):
        self.values.append(kwargs.get(self.key))

    def __len__(self):
        return len(self.values)


@pytest.fixture
def notebook_file(tmp_path):
    """Write a one-cell notebook to disk and return its path."""
    contents = {
        "cells": [{
            "cell_type": "code",
            "source": "x = 1",
            "metadata": {"language": "python"},
            "outputs": [],
            "execution_count": None,
        }],
        "metadata": {
            "kernelspec": {"name": "python3", "display_name": "Python 3", "language": "python"},
            "language_info": {"name": "python", "version": "3.11", "mimetype": "x-python"},
        },
        "nbformat": 4,
        "nbformat_minor": 2,
    }
    path = tmp_path / "notebook.ipynb"
    path.write_text(json.dumps(contents))
    return path
