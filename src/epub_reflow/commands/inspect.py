"""Inspection commands: book info, table of contents, chapter blocks."""

from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from epub_reflow.config import ParseOptions
from epub_reflow.core.epub_parser import parse_epub
from epub_reflow.models.blocks import (
    BlockQuote,
    ContentBlock,
    ContentBlockAdapter,
    Embed,
    Header,
    Image,
    LineBreak,
    Link,
    ListBlock,
    Paragraph,
    Table as TableBlock,
    Text,
)
from epub_reflow.models.epub import Chapter, EpubDocument, TableOfContentsEntry


def select_chapter(document: EpubDocument, selector: str) -> Chapter | None:
    """Find a chapter by 1-based number or by id."""
    selector = selector.strip()
    if selector.isdigit():
        index = int(selector) - 1
        if 0 <= index < len(document.chapters):
            return document.chapters[index]
        return None
    return document.get_chapter(selector)


def summarize_block(block: ContentBlock, width: int = 60) -> str:
    """One-line description of a block for tabular display."""

    def clip(text: str) -> str:
        text = " ".join(text.split())
        return text if len(text) <= width else text[: width - 1] + "…"

    if isinstance(block, (Text, Paragraph)):
        return clip(block.content)
    if isinstance(block, Header):
        return f"h{block.level}: {clip(block.content)}"
    if isinstance(block, LineBreak):
        return ""
    if isinstance(block, BlockQuote):
        return f"{len(block.content)} nested block(s)"
    if isinstance(block, Image):
        size = f"{len(block.data):,} bytes" if block.data is not None else "unresolved"
        return f"{clip(block.src)} ({size})"
    if isinstance(block, Link):
        return f"{clip(block.content)} -> {block.href}"
    if isinstance(block, ListBlock):
        kind = "ordered" if block.ordered else "unordered"
        return f"{len(block.items)} {kind} item(s)"
    if isinstance(block, TableBlock):
        return f"{len(block.headers)} header(s), {len(block.rows)} row(s)"
    if isinstance(block, Embed):
        size = f"{len(block.data):,} bytes" if block.data is not None else "unresolved"
        return f"{block.media_type} {clip(block.src)} ({size})"
    return ""


def _chapter_type(chapter: Chapter) -> str:
    if chapter.is_image:
        return "image"
    if chapter.is_html:
        return "html"
    return escape(chapter.media_type)


def execute_info(book_path: Path, options: ParseOptions, console: Console) -> None:
    """Display book metadata and the reconciled chapter list."""
    document = parse_epub(book_path, options)
    metadata = document.metadata

    info_lines = [
        f"[bold]{escape(document.title)}[/]",
        "",
        f"[dim]Author:[/] {escape(document.author or 'Unknown')}",
        f"[dim]Language:[/] {escape(metadata.language or 'Unknown')}",
        f"[dim]Publisher:[/] {escape(metadata.publisher or 'Unknown')}",
        f"[dim]Identifier:[/] {escape(document.book_id)}",
        f"[dim]Chapters:[/] {len(document.chapters)}",
        f"[dim]Cover:[/] "
        + (f"{len(document.cover_image):,} bytes" if document.cover_image else "none"),
    ]
    if metadata.subjects:
        info_lines.append(f"[dim]Subjects:[/] {escape(', '.join(metadata.subjects))}")

    console.print()
    console.print(Panel("\n".join(info_lines), title="Book Information", border_style="green"))
    console.print()

    table = Table(title="Chapters", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", style="white")
    table.add_column("Id", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Spine", justify="right")
    table.add_column("Resources", justify="right", style="green")
    for number, chapter in enumerate(document.chapters, start=1):
        title = escape(chapter.title or "") or ("[italic]image[/]" if chapter.is_image else "")
        table.add_row(
            str(number),
            title,
            escape(chapter.id),
            _chapter_type(chapter),
            str(chapter.position),
            str(len(chapter.resources)),
        )
    console.print(table)
    console.print()


def _add_toc_nodes(tree: Tree, entries: list[TableOfContentsEntry]) -> None:
    for entry in entries:
        branch = tree.add(f"{escape(entry.title)} [dim]({escape(entry.href)})[/]")
        _add_toc_nodes(branch, entry.children)


def execute_toc(book_path: Path, options: ParseOptions, console: Console) -> None:
    """Display the hierarchical table of contents."""
    document = parse_epub(book_path, options)
    if not document.table_of_contents:
        console.print("[yellow]No table of contents found.[/]")
        return
    tree = Tree(f"[bold]{escape(document.title)}[/]")
    _add_toc_nodes(tree, document.table_of_contents)
    console.print(tree)


def execute_blocks(
    book_path: Path,
    chapter: str,
    as_json: bool,
    options: ParseOptions,
    console: Console,
) -> bool:
    """Display one chapter's content blocks. Returns False if not found."""
    document = parse_epub(book_path, options)
    selected = select_chapter(document, chapter)
    if selected is None:
        console.print(f"[red]Chapter not found: {chapter}[/]")
        return False

    blocks = document.content_blocks(selected)
    if as_json:
        console.print_json(ContentBlockAdapter.dump_json(blocks).decode())
        return True

    table = Table(
        title=escape(selected.title or selected.id),
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Kind", style="cyan")
    table.add_column("Summary", style="white")
    for number, block in enumerate(blocks, start=1):
        table.add_row(str(number), block.kind.value, escape(summarize_block(block)))
    console.print(table)
    return True
