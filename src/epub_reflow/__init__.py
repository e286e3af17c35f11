"""Decode EPUB containers into logical chapters and content blocks."""

from epub_reflow.config import ParseOptions
from epub_reflow.core.content_blocks import ContentBlockExtractor, extract_content_blocks
from epub_reflow.core.epub_parser import EpubParseError, EpubParser, parse_epub
from epub_reflow.core.resources import Manifest, ResourceResolver
from epub_reflow.models import (
    Chapter,
    ContentBlock,
    EpubDocument,
    Metadata,
    TableOfContentsEntry,
)

__all__ = [
    "parse_epub",
    "EpubParser",
    "EpubParseError",
    "ParseOptions",
    "extract_content_blocks",
    "ContentBlockExtractor",
    "Manifest",
    "ResourceResolver",
    "Chapter",
    "ContentBlock",
    "EpubDocument",
    "Metadata",
    "TableOfContentsEntry",
]
