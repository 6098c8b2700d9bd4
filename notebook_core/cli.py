"""
CLI interface for notebook-core.
"""

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax

from notebook_core.cell import CellModel
from notebook_core.config import settings
from notebook_core.contracts import CellType
from notebook_core.errors import NotebookLoadError
from notebook_core.local_kernel import LocalClientSession
from notebook_core.notebook import NotebookModel, NotebookOptions
from notebook_core.outputs import OutputType
from notebook_core.utils import format_rich_output, get_cell_status, get_cell_type_icon


console = Console()


def _load_model(path: str, trusted: bool = False, **options) -> NotebookModel:
    model = NotebookModel(NotebookOptions(path=Path(path), **options))
    model.on_error.connect(_print_notification, weak=False)
    try:
        model.load(trusted=trusted)
    except NotebookLoadError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    return model


def _print_notification(sender, notification=None, **kwargs):
    console.print(f"[red]{notification.message}[/red]")


def _print_cell(index: int, cell: CellModel):
    status_char, status_style = get_cell_status(cell)
    icon = get_cell_type_icon(cell.cell_type)

    if cell.cell_type == CellType.CODE:
        exec_num = cell.execution_count or " "
        title = f"[{status_style}]In [{exec_num}][/{status_style}] [dim]{icon} #{index}[/dim]"
        body = Syntax(cell.source or " ", cell.language or "python", theme="monokai", line_numbers=False)
    else:
        title = f"[dim]Markdown {icon} #{index}[/dim]"
        body = Markdown(cell.source or " ")

    console.print(Panel(body, title=title, title_align="left", border_style=status_style))
    for output in cell.outputs:
        console.print(format_rich_output(output))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """notebook-core: notebook document model with an asynchronous kernel session."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@main.command()
@click.argument("path", type=click.Path(), default="notebook.ipynb")
def new(path: str):
    """Create a new notebook with one empty code cell."""
    model = NotebookModel(NotebookOptions())
    model.on_error.connect(_print_notification, weak=False)
    model.load()
    if not model.save(path):
        sys.exit(1)

    console.print(Panel(
        f"[green]Created:[/green] {path}\n"
        f"[dim]Cells:[/dim] {len(model.cells)}",
        title="[bold blue]notebook-core[/bold blue]",
        border_style="green",
    ))


@main.command()
@click.argument("path", type=click.Path(exists=True))
def show(path: str):
    """Display the cells and saved outputs of a notebook."""
    model = _load_model(path)

    language = model.language_info.name if model.language_info else settings.default_language
    console.print(Panel(
        f"[bold]{Path(path).name}[/bold]  [dim]{len(model.cells)} cells, {language}[/dim]",
        title="[bold blue]notebook-core[/bold blue]",
        border_style="blue",
    ))
    for i, cell in enumerate(model.cells):
        _print_cell(i, cell)


async def _run_notebook(model: NotebookModel) -> tuple[int, int]:
    try:
        await model.start_session()
        if model.in_error_state:
            return 0, 0

        code_cells = [c for c in model.cells if c.cell_type == CellType.CODE and c.source.strip()]
        success_count = 0
        for cell in code_cells:
            await model.run_cell(cell)
            if any(o.output_type == OutputType.ERROR for o in cell.outputs):
                break
            success_count += 1
        return success_count, len(code_cells)
    finally:
        await model.close()


@main.command()
@click.argument("path", type=click.Path(exists=True))
def run(path: str):
    """Run every code cell with the local IPython kernel and save the outputs."""
    model = _load_model(path, session_factory=LocalClientSession)

    success_count, total = asyncio.run(_run_notebook(model))
    if model.in_error_state:
        sys.exit(1)

    for i, cell in enumerate(model.cells):
        _print_cell(i, cell)

    if total == 0:
        console.print("[yellow]No code cells to execute[/yellow]")
        return

    model.save()
    if success_count == total:
        console.print(f"[green]All {total} cells executed successfully[/green]")
    else:
        console.print(f"[yellow]Executed {success_count}/{total} cells[/yellow]")


if __name__ == "__main__":
    main()
