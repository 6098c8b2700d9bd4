"""
Cell outputs and the sink that accumulates them for one cell.
"""

import logging
from enum import Enum
from typing import Any, Iterable, Optional, Union

from blinker import Signal
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)


class OutputType(str, Enum):
    EXECUTE_RESULT = "execute_result"
    DISPLAY_DATA = "display_data"
    STREAM = "stream"
    ERROR = "error"


DISPLAY_OUTPUT_TYPES = frozenset({OutputType.EXECUTE_RESULT, OutputType.DISPLAY_DATA})


class CellOutput(BaseModel):
    """
    A single output produced by executing a code cell.

    Fields follow the nbformat output layout. Unknown fields coming from
    the kernel are kept so they survive a save.
    """
    model_config = ConfigDict(extra="allow")

    output_type: OutputType
    # stream
    name: Optional[str] = None
    text: Optional[Union[str, list[str]]] = None
    # execute_result / display_data
    data: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    execution_count: Optional[int] = None
    # error
    ename: Optional[str] = None
    evalue: Optional[str] = None
    traceback: Optional[list[str]] = None
    # display group, taken from the message's transient envelope
    display_id: Optional[str] = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def check_required_fields(self) -> "CellOutput":
        if self.output_type == OutputType.STREAM:
            if self.text is None:
                raise ValueError("stream output requires 'text'")
            if self.name is None:
                self.name = "stdout"
        elif self.output_type in DISPLAY_OUTPUT_TYPES:
            if self.data is None:
                raise ValueError(f"{self.output_type.value} output requires 'data'")
            if self.metadata is None:
                self.metadata = {}
        elif self.output_type == OutputType.ERROR:
            if self.ename is None or self.evalue is None:
                raise ValueError("error output requires 'ename' and 'evalue'")
            if self.traceback is None:
                self.traceback = []
        return self

    @classmethod
    def from_content(cls, output_type: Union[OutputType, str], content: dict[str, Any]) -> "CellOutput":
        """
        Build an output from a kernel message's content.

        The transient envelope is stripped; its display_id is kept on the
        output but never serialized.

        Raises:
            ValidationError: if the content lacks the fields the kind requires
        """
        content = dict(content)
        transient = content.pop("transient", None) or {}
        content["output_type"] = output_type
        content["display_id"] = transient.get("display_id") if isinstance(transient, dict) else None
        return cls.model_validate(content)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = self.model_dump(mode="json", exclude_none=True)
        if self.output_type == OutputType.EXECUTE_RESULT:
            data.setdefault("execution_count", None)
        return data


def normalize_stream(output: CellOutput) -> CellOutput:
    """Join stream text delivered as fragments into one newline-separated string."""
    if output.output_type == OutputType.STREAM and isinstance(output.text, list):
        output.text = "\n".join(output.text)
    return output


class CellOutputSink:
    """
    Ordered outputs of one cell.

    Every mutation sends ``changed`` exactly once, with the current
    outputs as the ``outputs`` keyword.
    """

    normalize_stream = staticmethod(normalize_stream)

    def __init__(self):
        self._outputs: list[CellOutput] = []
        self.changed = Signal()

    @property
    def outputs(self) -> list[CellOutput]:
        return list(self._outputs)

    def __len__(self) -> int:
        return len(self._outputs)

    def __iter__(self):
        return iter(list(self._outputs))

    def append(self, output: CellOutput) -> None:
        self._outputs.append(normalize_stream(output))
        self._fire_changed()

    def clear(self) -> None:
        self._outputs = []
        self._fire_changed()

    def extend_from_persisted(self, raw_outputs: Iterable[Any]) -> None:
        """Load saved outputs without firing change events. Malformed entries are skipped."""
        for raw in raw_outputs:
            if not isinstance(raw, dict):
                logger.debug("Skipping saved output that is not an object: %r", raw)
                continue
            try:
                output = CellOutput.model_validate(raw)
            except ValidationError as e:
                logger.debug("Skipping malformed saved output: %s", e)
                continue
            self._outputs.append(normalize_stream(output))

    def to_list(self) -> list[dict[str, Any]]:
        return [output.to_dict() for output in self._outputs]

    def _fire_changed(self) -> None:
        self.changed.send(self, outputs=self.outputs)
