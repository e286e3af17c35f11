"""Data models."""

from epub_reflow.models.blocks import (
    BlockKind,
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
    Table,
    Text,
)
from epub_reflow.models.epub import (
    Chapter,
    EpubDocument,
    Metadata,
    TableOfContentsEntry,
)

__all__ = [
    # Document models
    "Chapter",
    "EpubDocument",
    "Metadata",
    "TableOfContentsEntry",
    # Content blocks
    "BlockKind",
    "BlockQuote",
    "ContentBlock",
    "ContentBlockAdapter",
    "Embed",
    "Header",
    "Image",
    "LineBreak",
    "Link",
    "ListBlock",
    "Paragraph",
    "Table",
    "Text",
]
