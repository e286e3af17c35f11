"""Table of contents extraction."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import unquote

from epub_reflow.core.resources import Manifest, resolve_relative_path
from epub_reflow.models.epub import TableOfContentsEntry

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TocTarget:
    """A flattened TOC entry: the file it points at and its title."""

    href: str
    title: str


def strip_fragment(href: str) -> str:
    return href.split("#", 1)[0]


class TableOfContentsExtractor:
    """Turn ebooklib's TOC (Links, Sections and nested tuples) into entries.

    ``base_path`` is the TOC document's own path when its hrefs are relative
    to it (ebooklib leaves NCX ``content/@src`` values untouched). Nodes whose
    target file is missing from the manifest are dropped along with their
    children.
    """

    def __init__(self, manifest: Manifest, base_path: str = ""):
        self.manifest = manifest
        self.base_path = base_path

    def extract(self, toc: Iterable) -> list[TableOfContentsEntry]:
        return self._extract_level(toc, level=0)

    def _extract_level(self, items: Iterable, level: int) -> list[TableOfContentsEntry]:
        entries = []
        for index, item in enumerate(items or []):
            node, children = item if isinstance(item, tuple) else (item, [])
            title = (getattr(node, "title", None) or "").strip()
            href = getattr(node, "href", None) or ""
            target = self.target_path(href)
            if target is None:
                log.debug(
                    "Skipped TOC entry with missing target at level %d: title=%r href=%r",
                    level,
                    title,
                    href,
                )
                continue

            if level == 0:
                fallback_id = f"toc_{index}"
                fallback_title = f"Section {index + 1}"
            else:
                fallback_id = f"toc_sub_{level}-{index}"
                fallback_title = f"Section {level}.{index + 1}"

            _, sep, fragment = href.partition("#")
            entries.append(
                TableOfContentsEntry(
                    id=getattr(node, "uid", None) or fallback_id,
                    href=f"{target}{sep}{fragment}",
                    title=title or fallback_title,
                    level=level,
                    children=self._extract_level(children, level + 1),
                )
            )
        return entries

    def flatten_targets(self, toc: Iterable) -> list[TocTarget]:
        """Depth-first (file, title) pairs in document order.

        Titles are kept as written (possibly blank) and skipped nodes are
        excluded together with their subtrees.
        """
        targets: list[TocTarget] = []
        for item in toc or []:
            node, children = item if isinstance(item, tuple) else (item, [])
            target = self.target_path(getattr(node, "href", None) or "")
            if target is None:
                continue
            title = (getattr(node, "title", None) or "").strip()
            targets.append(TocTarget(href=target, title=title))
            targets.extend(self.flatten_targets(children))
        return targets

    def target_path(self, href: str) -> str | None:
        """Manifest path a TOC href points at, or None if it is not there."""
        raw = strip_fragment(href)
        if not raw:
            return None
        decoded = unquote(raw)
        candidates = [decoded, raw]
        if self.base_path:
            candidates.insert(0, resolve_relative_path(self.base_path, decoded))
        for candidate in candidates:
            if candidate in self.manifest:
                return candidate
        return None
