"""EPUB parsing using ebooklib."""

import io
import logging
import os
import warnings
import zipfile
from pathlib import Path
from typing import BinaryIO, Union

import ebooklib
from ebooklib import epub
from lxml import etree

from epub_reflow.config import ParseOptions
from epub_reflow.core.metadata import MetadataExtractor
from epub_reflow.core.reconciler import SpineEntry, SpineTocReconciler
from epub_reflow.core.resources import Manifest, ManifestEntry, ResourceResolver
from epub_reflow.core.toc import TableOfContentsExtractor
from epub_reflow.models.epub import EpubDocument

# ebooklib warns about its future ignore_ncx default on every read
warnings.filterwarnings("ignore", category=UserWarning, module=r"ebooklib\..*")
warnings.filterwarnings("ignore", category=FutureWarning, module=r"ebooklib\..*")

log = logging.getLogger(__name__)

EpubSource = Union[str, os.PathLike, bytes, bytearray, BinaryIO]

NCX_MEDIA_TYPE = "application/x-dtbncx+xml"


class EpubParseError(RuntimeError):
    """Raised when an EPUB archive or its package document cannot be read."""


def build_manifest(book: epub.EpubBook) -> Manifest:
    """Index every manifest item by its path relative to the package document."""
    return Manifest(
        ManifestEntry(
            id=item.get_id() or "",
            href=item.get_name(),
            media_type=item.media_type or "",
            data=item.content or b"",
        )
        for item in book.get_items()
    )


class EpubParser:
    """Parse EPUB files into an EpubDocument."""

    def __init__(self, source: EpubSource, options: ParseOptions | None = None):
        self.options = options or ParseOptions()
        self.book = self._read(source)
        self.manifest = build_manifest(self.book)
        self.resolver = ResourceResolver(self.manifest, self.options.image_dirs)

    def parse(self) -> EpubDocument:
        """Parse the EPUB and return complete structure."""
        metadata = MetadataExtractor().extract(self.book)
        toc_extractor = TableOfContentsExtractor(self.manifest, self._toc_base())
        chapters = SpineTocReconciler(self.resolver).reconcile(
            self._get_spine(), toc_extractor.flatten_targets(self.book.toc)
        )

        return EpubDocument(
            title=metadata.title,
            author=metadata.creator,
            cover_image=self._get_cover() if self.options.extract_cover else None,
            chapters=chapters,
            table_of_contents=toc_extractor.extract(self.book.toc),
            metadata=metadata,
            book_id=metadata.identifier or "unknown",
        )

    def _read(self, source: EpubSource) -> epub.EpubBook:
        if isinstance(source, (bytes, bytearray)):
            return self._read_archive(io.BytesIO(bytes(source)), "<in-memory EPUB>")
        if hasattr(source, "read"):
            # zipfile needs a seekable stream
            return self._read_archive(io.BytesIO(source.read()), "<in-memory EPUB>")

        path = Path(source)
        if not path.is_file():
            raise EpubParseError(f"EPUB file not found: {path}")
        return self._read_archive(str(path), str(path))

    def _read_archive(self, archive: str | BinaryIO, label: str) -> epub.EpubBook:
        try:
            return epub.read_epub(archive, {"ignore_ncx": self.options.ignore_ncx})
        except zipfile.BadZipFile as e:
            raise EpubParseError(f"Invalid EPUB archive: {label}") from e
        except epub.EpubException as e:
            raise EpubParseError(
                f"Malformed EPUB {label}: {getattr(e, 'msg', e)}"
            ) from e
        except etree.LxmlError as e:
            raise EpubParseError(
                f"Malformed EPUB {label}: unparseable package document"
            ) from e
        except (KeyError, IndexError, AttributeError, TypeError, ValueError) as e:
            raise EpubParseError(
                f"Malformed EPUB {label}: missing or corrupt resource ({e!r})"
            ) from e

    def _get_spine(self) -> list[SpineEntry]:
        """Get reading order from spine, resolved against the manifest."""
        entries = []
        for index, ref in enumerate(self.book.spine):
            idref, linear = ref if isinstance(ref, tuple) else (ref, "yes")
            linear_flag = str(linear).strip().lower() != "no"
            item = self.book.get_item_with_id(idref) if idref else None
            if item is None:
                entries.append(
                    SpineEntry(index=index, id=idref or "", href="", linear=linear_flag)
                )
                continue
            entries.append(
                SpineEntry(
                    index=index,
                    id=item.get_id() or "",
                    href=item.get_name(),
                    media_type=item.media_type or "",
                    linear=linear_flag,
                    data=item.content,
                )
            )
        return entries

    def _get_cover(self) -> bytes | None:
        """Find the cover image bytes, if the book declares or names one."""
        for item in self.book.get_items_of_type(ebooklib.ITEM_COVER):
            if item.content:
                return item.content

        for cover_id in self._meta_cover_ids():
            entry = self.manifest.by_id(cover_id)
            if entry is not None and entry.media_type.startswith("image/") and entry.data:
                return entry.data

        for item in self.book.get_items_of_type(ebooklib.ITEM_IMAGE):
            if "cover" in (item.get_id() or "").lower() or "cover" in item.get_name().lower():
                if item.content:
                    return item.content

        log.debug("No cover image found")
        return None

    def _meta_cover_ids(self) -> list[str]:
        """Manifest ids named by EPUB2 <meta name="cover" content="..."/>."""
        ids = [
            (attributes or {}).get("content")
            for _, attributes in self.book.get_metadata("OPF", "cover")
        ]
        # Inside the OPF default namespace ebooklib keys these as "meta"
        ids.extend(
            attributes.get("content")
            for _, attributes in self.book.get_metadata("OPF", "meta")
            if attributes and attributes.get("name") == "cover"
        )
        return [cover_id for cover_id in ids if cover_id]

    def _toc_base(self) -> str:
        """Path NCX hrefs are relative to; nav document hrefs arrive normalized."""
        ncx = next(
            (item for item in self.book.get_items() if item.media_type == NCX_MEDIA_TYPE),
            None,
        )
        if ncx is None:
            return ""
        if self.options.ignore_ncx and any(
            isinstance(item, epub.EpubNav) for item in self.book.get_items()
        ):
            return ""
        return ncx.get_name()


def parse_epub(source: EpubSource, options: ParseOptions | None = None) -> EpubDocument:
    """Parse an EPUB from a path, raw bytes, or a binary file object."""
    return EpubParser(source, options).parse()
