"""Reconcile the linear spine with the table of contents into logical chapters.

Spine order and TOC structure are authored independently: one logical
chapter is often split over several spine files, and continuation files
usually have no TOC entry of their own. The reconciler walks the spine once
and starts a new chapter only when a spine file matches a TOC entry that
differs from the last one matched; everything else is folded into the
chapter being accumulated. Image spine items always stand alone.
"""

import logging
import mimetypes
import warnings
from collections.abc import Sequence
from dataclasses import dataclass

from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

from epub_reflow.core.resources import ResourceResolver, decode_text, filename_of
from epub_reflow.core.toc import TocTarget
from epub_reflow.models.epub import Chapter

# Chapter documents are XHTML read through the HTML parser
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

log = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp")
MARKUP_EXTENSIONS = (".xhtml", ".html", ".htm", ".xml", ".svg")
MARKUP_MEDIA_HINTS = ("html", "xhtml", "xml", "svg")


@dataclass(frozen=True)
class SpineEntry:
    """One spine item with its manifest data; ``data`` is None if unresolved."""

    index: int
    id: str
    href: str
    media_type: str = ""
    linear: bool = True
    data: bytes | None = None


def is_image_entry(entry: SpineEntry) -> bool:
    return entry.href.lower().endswith(IMAGE_EXTENSIONS) or (
        entry.media_type.lower().startswith("image/")
    )


def is_chapter_entry(entry: SpineEntry) -> bool:
    media_type = entry.media_type.lower()
    if any(hint in media_type for hint in MARKUP_MEDIA_HINTS):
        return True
    # Non-linear items are still read when they are markup
    return not entry.linear and entry.href.lower().endswith(MARKUP_EXTENSIONS)


def body_markup(text: str) -> str:
    """Inner HTML of the document body, or the text itself if the body is blank."""
    if not text.strip():
        return ""
    body = BeautifulSoup(text, "lxml").body
    inner = body.decode_contents() if body is not None else ""
    return inner if inner.strip() else text


class _ChapterBuilder:
    """Accumulation state for the chapter currently being assembled."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.target: TocTarget | None = None
        self.chapter_id = ""
        self.href = ""
        self.media_type = "text/html"
        self.position: int | None = None
        self.parts: list[str] = []
        self.resources: dict[str, bytes] = {}

    def bind(self, target: TocTarget, entry: SpineEntry) -> None:
        self.target = target
        self.chapter_id = entry.id or f"chapter_{entry.index}"
        self.href = target.href
        self.media_type = entry.media_type or self.media_type
        self.position = entry.index

    def append(self, entry: SpineEntry, markup: str, resources: dict[str, bytes]) -> None:
        if self.position is None:
            self.position = entry.index
            self.href = entry.href
            self.media_type = entry.media_type or self.media_type
        self.parts.append(markup)
        self.resources.update(resources)

    @property
    def content(self) -> str:
        return "".join(self.parts)


class SpineTocReconciler:
    """Build the ordered list of logical chapters from spine and TOC."""

    def __init__(self, resolver: ResourceResolver):
        self.resolver = resolver

    def reconcile(
        self, spine: Sequence[SpineEntry], toc_targets: Sequence[TocTarget]
    ) -> list[Chapter]:
        log.debug("Spine has %d references", len(spine))
        toc_index: dict[str, int] = {}
        for index, target in enumerate(toc_targets):
            toc_index.setdefault(target.href, index)

        chapters: list[Chapter] = []
        builder = _ChapterBuilder()
        last_matched = -1

        for entry in spine:
            if entry.data is None:
                log.debug("Skipped unresolved spine item %r at index %d", entry.id, entry.index)
                continue

            if is_image_entry(entry):
                self._finalize(builder, chapters)
                chapters.append(self._image_chapter(entry))
                continue

            if not is_chapter_entry(entry):
                log.debug(
                    "Skipped non-chapter spine item %s (spine %d)", entry.href, entry.index
                )
                continue

            matched = toc_index.get(entry.href, -1)
            if matched != -1 and matched != last_matched:
                self._finalize(builder, chapters)
                builder.bind(toc_targets[matched], entry)
                last_matched = matched

            text = decode_text(entry.data)
            builder.append(
                entry,
                body_markup(text),
                self.resolver.collect_embedded(entry.href, text),
            )

        self._finalize(builder, chapters)
        return sorted(chapters, key=lambda chapter: chapter.position)

    def _finalize(self, builder: _ChapterBuilder, chapters: list[Chapter]) -> None:
        content = builder.content
        if content.strip() and builder.position is not None:
            target_title = builder.target.title if builder.target else ""
            chapters.append(
                Chapter(
                    id=builder.chapter_id or f"chapter_{builder.position}",
                    href=builder.href,
                    title=target_title or f"Chapter {len(chapters) + 1}",
                    content=f"<html><body>{content}</body></html>",
                    media_type=builder.media_type,
                    position=builder.position,
                    resources=dict(builder.resources),
                )
            )
        builder.reset()

    def _image_chapter(self, entry: SpineEntry) -> Chapter:
        data = entry.data or b""
        media_type = entry.media_type or mimetypes.guess_type(entry.href)[0] or ""
        resources = {entry.href: data}
        filename = filename_of(entry.href)
        if filename:
            resources[filename] = data
        return Chapter(
            id=entry.id or f"image_{entry.index}",
            href="",
            title="",
            content="",
            media_type=media_type,
            position=entry.index,
            resources=resources,
        )
