"""Main CLI application."""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from epub_reflow.commands.inspect import execute_blocks, execute_info, execute_toc
from epub_reflow.config import ParseOptions
from epub_reflow.core.epub_parser import EpubParseError

app = typer.Typer(
    name="epub-reflow",
    help="Inspect how EPUB files decode into chapters and content blocks.",
    add_completion=False,
)

console = Console()

BookPath = Annotated[
    Path,
    typer.Argument(
        help="Path to the EPUB file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
]
IgnoreNcx = Annotated[
    bool,
    typer.Option(
        "--ignore-ncx",
        help="Read the table of contents from the EPUB3 nav document instead of the NCX",
    ),
]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log skipped items and other diagnostics"),
    ] = False,
) -> None:
    """Inspect how EPUB files decode into chapters and content blocks."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


@app.command()
def info(book_path: BookPath, ignore_ncx: IgnoreNcx = False) -> None:
    """Display book metadata and the reconciled chapter list."""
    try:
        execute_info(book_path, ParseOptions(ignore_ncx=ignore_ncx), console)
    except EpubParseError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)


@app.command()
def toc(book_path: BookPath, ignore_ncx: IgnoreNcx = False) -> None:
    """Display the table of contents as a tree."""
    try:
        execute_toc(book_path, ParseOptions(ignore_ncx=ignore_ncx), console)
    except EpubParseError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)


@app.command()
def blocks(
    book_path: BookPath,
    chapter: Annotated[
        str,
        typer.Argument(help="Chapter number (1-based, see 'info') or chapter id"),
    ],
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the blocks as JSON"),
    ] = False,
    ignore_ncx: IgnoreNcx = False,
) -> None:
    """Display the content blocks of one chapter."""
    try:
        found = execute_blocks(
            book_path,
            chapter,
            as_json,
            ParseOptions(ignore_ncx=ignore_ncx),
            console,
        )
    except EpubParseError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)
    if not found:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
