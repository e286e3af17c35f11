"""Data models for a parsed EPUB document."""

from collections.abc import Iterator

from pydantic import BaseModel, ConfigDict, Field

from epub_reflow.models.blocks import ContentBlock, Image


class TableOfContentsEntry(BaseModel):
    """Single entry in table of contents."""

    model_config = ConfigDict(frozen=True)

    id: str
    href: str
    title: str
    level: int = 0
    children: list["TableOfContentsEntry"] = Field(default_factory=list)


class Chapter(BaseModel):
    """One logical chapter, possibly merged from several spine files."""

    model_config = ConfigDict(frozen=True)

    id: str
    href: str = ""
    title: str | None = None
    content: str = ""
    media_type: str = "text/html"
    position: int
    # Every alias a resource was found under; several keys may share bytes.
    resources: dict[str, bytes] = Field(default_factory=dict)

    @property
    def is_html(self) -> bool:
        media_type = self.media_type.lower()
        return "html" in media_type or "xhtml" in media_type

    @property
    def is_image(self) -> bool:
        return self.media_type.lower().startswith("image/")


class Metadata(BaseModel):
    """Book-level bibliographic metadata."""

    model_config = ConfigDict(frozen=True)

    title: str
    creator: str | None = None
    contributor: str | None = None
    publisher: str | None = None
    description: str | None = None
    subjects: list[str] = Field(default_factory=list)
    language: str | None = None
    identifier: str | None = None
    date: str | None = None
    rights: str | None = None
    source: str | None = None
    other_metadata: dict[str, str] = Field(default_factory=dict)


class EpubDocument(BaseModel):
    """Complete parsed EPUB structure."""

    model_config = ConfigDict(frozen=True)

    title: str
    author: str | None = None
    cover_image: bytes | None = None
    chapters: list[Chapter] = Field(default_factory=list)
    table_of_contents: list[TableOfContentsEntry] = Field(default_factory=list)
    metadata: Metadata
    book_id: str = "unknown"

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        """Return the chapter with the given id, if any."""
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None

    def flat_toc(self) -> Iterator[TableOfContentsEntry]:
        """Walk the table of contents depth-first in document order."""
        stack = list(reversed(self.table_of_contents))
        while stack:
            entry = stack.pop()
            yield entry
            stack.extend(reversed(entry.children))

    def content_blocks(self, chapter: Chapter) -> list[ContentBlock]:
        """Extract a chapter's content blocks with resource bytes attached.

        Standalone image chapters yield a single resolved Image block.
        """
        if chapter.is_image and chapter.resources:
            src, data = next(iter(chapter.resources.items()))
            return [Image(src=src, data=data)]

        from epub_reflow.core.content_blocks import (
            attach_resources,
            chapter_lookup,
            extract_content_blocks,
        )

        blocks = extract_content_blocks(chapter.content)
        return attach_resources(blocks, chapter_lookup(chapter))
