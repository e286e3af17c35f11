"""Convert chapter markup into typed content blocks."""

import logging
import mimetypes
import warnings
from collections.abc import Callable, Mapping
from urllib.parse import unquote

from bs4 import BeautifulSoup, Tag, XMLParsedAsHTMLWarning
from bs4.builder import ParserRejectedMarkup

from epub_reflow.models.blocks import (
    BlockQuote,
    ContentBlock,
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
from epub_reflow.models.epub import Chapter

# EPUB chapters are XHTML, which the HTML parser handles fine
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

log = logging.getLogger(__name__)

BLOCK_LEVEL_TAGS = frozenset(
    {
        "address",
        "article",
        "aside",
        "blockquote",
        "canvas",
        "dd",
        "div",
        "dl",
        "dt",
        "fieldset",
        "figcaption",
        "figure",
        "footer",
        "form",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "header",
        "hr",
        "li",
        "main",
        "nav",
        "noscript",
        "ol",
        "p",
        "pre",
        "section",
        "table",
        "tfoot",
        "ul",
        "video",
        "tr",
        "td",
        "th",
    }
)

# Containers that read as a paragraph unless they hold block-level children
CONTAINER_TAGS = frozenset(
    {
        "div",
        "section",
        "article",
        "main",
        "aside",
        "header",
        "footer",
        "figure",
        "figcaption",
        "nav",
        "address",
        "dd",
        "dt",
        "center",
    }
)
INLINE_TEXT_TAGS = frozenset(
    {"span", "b", "i", "em", "strong", "small", "sub", "sup", "u", "font", "code"}
)
HEADING_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})
EMBED_TAGS = frozenset({"video", "audio", "embed", "object", "iframe"})
IGNORED_TAGS = frozenset({"script", "style", "head", "title", "template"})


def _tag_name(element: Tag) -> str:
    return (element.name or "").lower()


def _children(element: Tag) -> list[Tag]:
    return [child for child in element.children if isinstance(child, Tag)]


def _normalized_text(element: Tag) -> str:
    return " ".join(element.get_text().split())


def _has_block_child(element: Tag) -> bool:
    return any(_tag_name(child) in BLOCK_LEVEL_TAGS for child in _children(element))


def _image_block(element: Tag) -> Image | None:
    # SVG <image> carries its target in xlink:href (or href in SVG 2)
    src = element.get("src") or element.get("xlink:href") or element.get("href")
    if src or _tag_name(element) == "img":
        return Image(src=src or "", alt=element.get("alt"))
    return None


def _embed_block(element: Tag) -> Embed | None:
    src = element.get("src") or element.get("data") or ""
    media_type = element.get("type") or ""
    if not src:
        source = element.find("source")
        if isinstance(source, Tag):
            src = source.get("src") or ""
            media_type = media_type or source.get("type") or ""
    if not src:
        return None
    if not media_type:
        guessed, _ = mimetypes.guess_type(src.split("#", 1)[0])
        media_type = guessed or "application/octet-stream"
    return Embed(media_type=media_type, src=src)


def _table_block(element: Tag) -> Table:
    headers: list[str] = []
    rows: list[list[str]] = []
    thead = element.find("thead")
    if isinstance(thead, Tag):
        header_row = thead.find("tr") or thead
        headers = [
            _normalized_text(cell) for cell in header_row.find_all(["th", "td"])
        ]
    for tr in element.find_all("tr"):
        if thead is not None and tr.find_parent("thead") is thead:
            continue
        cells = tr.find_all(["th", "td"], recursive=False)
        if not headers and not rows and cells and all(
            _tag_name(cell) == "th" for cell in cells
        ):
            headers = [_normalized_text(cell) for cell in cells]
            continue
        rows.append([_normalized_text(cell) for cell in cells])
    return Table(headers=headers, rows=rows)


class ContentBlockExtractor:
    """Walk a chapter's markup and emit renderer-ready content blocks."""

    def extract(self, markup: str) -> list[ContentBlock]:
        """Return the block sequence for ``markup``.

        Tries the HTML parser first, then the XML parser; if neither yields
        a block the raw markup comes back as a single Text block, so the
        result is never empty.
        """
        blocks: list[ContentBlock] = []
        if markup.strip():
            blocks = self._extract_html(markup)
            if not blocks:
                blocks = self._extract_xml(markup)
        if not blocks:
            blocks = [Text(content=markup)]
        return blocks

    def _extract_html(self, markup: str) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        try:
            soup = BeautifulSoup(markup, "lxml")
        except ParserRejectedMarkup as e:
            log.debug("HTML parser rejected markup: %s", e)
            return blocks
        root = soup.body or soup.find("html")
        if isinstance(root, Tag):
            self._parse_blocks(root, blocks)
        return blocks

    def _extract_xml(self, markup: str) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        try:
            soup = BeautifulSoup(markup, "lxml-xml")
        except ParserRejectedMarkup as e:
            log.debug("XML parser rejected markup: %s", e)
            return blocks
        root = soup.find("body") or soup.find("html") or soup.find(True)
        if isinstance(root, Tag):
            self._parse_blocks(root, blocks)
        return blocks

    def _parse_blocks(self, element: Tag, blocks: list[ContentBlock]) -> None:
        for child in _children(element):
            tag = _tag_name(child)
            if tag in IGNORED_TAGS or tag == "hr":
                continue
            if tag == "p":
                self._paragraph(child, blocks)
            elif tag in CONTAINER_TAGS:
                if _has_block_child(child):
                    self._parse_blocks(child, blocks)
                else:
                    self._paragraph(child, blocks)
            elif tag == "blockquote":
                nested: list[ContentBlock] = []
                if _has_block_child(child):
                    self._parse_blocks(child, nested)
                else:
                    self._paragraph(child, nested)
                if nested:
                    blocks.append(BlockQuote(content=nested))
            elif tag in HEADING_TAGS:
                blocks.append(Header(level=int(tag[1]), content=_normalized_text(child)))
            elif tag == "br":
                blocks.append(LineBreak())
            elif tag in INLINE_TEXT_TAGS:
                text = child.get_text().strip()
                if text:
                    blocks.append(Text(content=text))
                self._parse_inline(child, blocks)
            elif tag == "pre":
                text = child.get_text().strip("\r\n")
                if text.strip():
                    blocks.append(Text(content=text))
            elif tag in ("img", "image"):
                image = _image_block(child)
                if image is not None:
                    blocks.append(image)
            elif tag == "a":
                blocks.append(
                    Link(href=child.get("href") or "", content=_normalized_text(child))
                )
            elif tag in ("ul", "ol"):
                items = [
                    _normalized_text(li) for li in child.find_all("li", recursive=False)
                ]
                blocks.append(ListBlock(items=items, ordered=tag == "ol"))
            elif tag == "table":
                blocks.append(_table_block(child))
            elif tag in EMBED_TAGS:
                embed = _embed_block(child)
                if embed is not None:
                    blocks.append(embed)
            elif tag in BLOCK_LEVEL_TAGS and not _has_block_child(child):
                # stray li/td/form and the like read as paragraphs
                self._paragraph(child, blocks)
            else:
                self._parse_blocks(child, blocks)

    def _paragraph(self, element: Tag, blocks: list[ContentBlock]) -> None:
        text = element.get_text().strip()
        if text:
            blocks.append(Paragraph(content=text))
        self._parse_inline(element, blocks)

    def _parse_inline(self, element: Tag, blocks: list[ContentBlock]) -> None:
        for child in _children(element):
            tag = _tag_name(child)
            if tag == "br":
                blocks.append(LineBreak())
            elif tag in ("img", "image"):
                image = _image_block(child)
                if image is not None:
                    blocks.append(image)
            elif tag == "a":
                blocks.append(
                    Link(href=child.get("href") or "", content=_normalized_text(child))
                )
            elif tag in EMBED_TAGS:
                embed = _embed_block(child)
                if embed is not None:
                    blocks.append(embed)
            elif tag not in IGNORED_TAGS:
                self._parse_inline(child, blocks)


def extract_content_blocks(markup: str) -> list[ContentBlock]:
    """Convenience wrapper around ContentBlockExtractor."""
    return ContentBlockExtractor().extract(markup)


def attach_resources(
    blocks: list[ContentBlock], lookup: Callable[[str], bytes | None]
) -> list[ContentBlock]:
    """Return a copy of ``blocks`` with image and embed bytes filled in."""
    resolved: list[ContentBlock] = []
    for block in blocks:
        if isinstance(block, (Image, Embed)) and block.data is None:
            data = lookup(block.src)
            if data is not None:
                block = block.model_copy(update={"data": data})
        elif isinstance(block, BlockQuote):
            block = block.model_copy(
                update={"content": attach_resources(block.content, lookup)}
            )
        resolved.append(block)
    return resolved


def resource_lookup(resources: Mapping[str, bytes]) -> Callable[[str], bytes | None]:
    """Look a ``src`` up under the aliases a chapter's resources are keyed by."""

    def lookup(src: str) -> bytes | None:
        if not src:
            return None
        for key in (src, unquote(src), unquote(src).rsplit("/", 1)[-1]):
            if key in resources:
                return resources[key]
        return None

    return lookup


def chapter_lookup(chapter: Chapter) -> Callable[[str], bytes | None]:
    return resource_lookup(chapter.resources)
