"""
Utility functions for notebook-core.
"""

import json
from typing import Any

from rich.syntax import Syntax
from rich.text import Text

from notebook_core.outputs import CellOutput, OutputType


def get_error_message(error: Any) -> str:
    """Message text for an exception or any other error value."""
    if isinstance(error, BaseException):
        message = str(error)
        return message if message else type(error).__name__
    return str(error)


def _preferred_text(data: dict[str, Any]) -> str:
    # Prefer rich types over plain text
    if "text/html" in data:
        return data["text/html"]
    if "text/markdown" in data:
        return data["text/markdown"]
    if "application/json" in data:
        val = data["application/json"]
        return json.dumps(val, indent=2) if not isinstance(val, str) else val
    return data.get("text/plain", "")


def format_rich_output(output: CellOutput):
    """
    Format an output as a Rich renderable.

    Args:
        output: Cell output

    Returns:
        Rich renderable object for console display
    """
    if output.output_type == OutputType.STREAM:
        text = output.text or ""
        if output.name == "stderr":
            return Text(text.rstrip("\n"), style="yellow")
        return Text(text.rstrip("\n"))

    elif output.output_type == OutputType.EXECUTE_RESULT:
        data = output.data or {}
        if "text/html" in data or "text/markdown" in data:
            return Text(_preferred_text(data), style="cyan")
        if "application/json" in data:
            return Syntax(_preferred_text(data), "json", theme="monokai", line_numbers=False)
        return Syntax(data.get("text/plain", ""), "python", theme="monokai", line_numbers=False)

    elif output.output_type == OutputType.ERROR:
        error_text = Text()
        error_text.append(f"{output.ename}", style="bold red")
        error_text.append(f": {output.evalue}", style="red")
        for tb_line in output.traceback or []:
            if isinstance(tb_line, str):
                error_text.append(f"\n{tb_line}", style="dim red")
        return error_text

    elif output.output_type == OutputType.DISPLAY_DATA:
        data = output.data or {}
        return Text(_preferred_text(data) or str(data), style="cyan")

    return Text(str(output), style="dim")


def get_cell_type_icon(cell_type) -> str:
    """Get a short label for the cell type."""
    if hasattr(cell_type, "value"):
        cell_type = cell_type.value
    return "py" if cell_type == "code" else "md"


def get_cell_status(cell) -> tuple[str, str]:
    """
    Get status indicator and style for a cell.

    Returns:
        Tuple of (indicator_string, rich_style)
    """
    outputs = cell.outputs
    if outputs:
        if any(o.output_type == OutputType.ERROR for o in outputs):
            return ("err", "red")
        return ("ok", "green")
    elif cell.execution_count is not None:
        return ("ok", "green")
    return ("--", "dim")

