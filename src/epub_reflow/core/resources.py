"""Resolve resource references found in chapter markup against the manifest."""

import base64
import binascii
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from urllib.parse import unquote, unquote_to_bytes

from bs4 import BeautifulSoup, UnicodeDammit
from bs4.builder import ParserRejectedMarkup

from epub_reflow.config import DEFAULT_IMAGE_DIRS

log = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:"
REMOTE_PREFIXES = ("http:", "https:", "ftp:", "mailto:", "//")
MEDIA_TAGS = ["video", "audio", "source", "embed"]


@dataclass(frozen=True)
class ManifestEntry:
    """A single file declared in the package manifest."""

    id: str
    href: str
    media_type: str
    data: bytes


class Manifest:
    """Lookup of manifest entries by path (relative to the package document)."""

    def __init__(self, entries: Iterable[ManifestEntry] = ()):
        self._by_href: dict[str, ManifestEntry] = {}
        self._by_id: dict[str, ManifestEntry] = {}
        for entry in entries:
            self._by_href.setdefault(entry.href, entry)
            if entry.id:
                self._by_id.setdefault(entry.id, entry)

    @classmethod
    def from_mapping(
        cls, files: Mapping[str, bytes], media_types: Mapping[str, str] | None = None
    ) -> "Manifest":
        """Build a manifest from a plain path -> bytes mapping."""
        media_types = media_types or {}
        return cls(
            ManifestEntry(
                id=f"item_{index}",
                href=href,
                media_type=media_types.get(href, ""),
                data=data,
            )
            for index, (href, data) in enumerate(files.items())
        )

    def get(self, href: str) -> bytes | None:
        entry = self._by_href.get(href)
        return entry.data if entry is not None else None

    def by_id(self, item_id: str) -> ManifestEntry | None:
        return self._by_id.get(item_id)

    def __contains__(self, href: object) -> bool:
        return href in self._by_href

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self._by_href.values())

    def __len__(self) -> int:
        return len(self._by_href)


def is_data_uri(reference: str) -> bool:
    return reference[:5].lower() == DATA_URI_PREFIX


def is_remote(reference: str) -> bool:
    lowered = reference.lower()
    return lowered.startswith(REMOTE_PREFIXES)


def decode_data_uri(reference: str) -> bytes | None:
    """Decode the payload of a ``data:`` URI, or None if it is malformed."""
    header, sep, payload = reference.partition(",")
    if not sep:
        return None
    if header.lower().endswith(";base64"):
        compact = "".join(payload.split())
        compact += "=" * (-len(compact) % 4)
        try:
            return base64.b64decode(compact)
        except (binascii.Error, ValueError):
            log.debug("Undecodable base64 data URI (%d chars)", len(payload))
            return None
    return unquote_to_bytes(payload)


def filename_of(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


def resolve_relative_path(base_path: str, reference: str) -> str:
    """Normalize ``reference`` against the document at ``base_path``.

    A base path whose last segment contains a dot names a file and its
    filename is dropped. ``..`` segments pop one base component each; once
    the base is exhausted further ``..`` segments are discarded, so paths
    never climb above the archive root.
    """
    base_parts = [part for part in base_path.split("/") if part]
    if base_parts and "." in base_parts[-1]:
        base_parts.pop()

    parts = list(base_parts)
    for segment in reference.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts:
                parts.pop()
            continue
        parts.append(segment)
    return "/".join(parts)


def decode_text(data: bytes | None) -> str:
    """Decode document bytes, honouring declared encodings. Undecodable is ''."""
    if not data:
        return ""
    dammit = UnicodeDammit(data, ["utf-8"])
    if dammit.unicode_markup is None:
        log.warning("Could not decode %d bytes of markup", len(data))
        return ""
    return dammit.unicode_markup


class ResourceResolver:
    """Resolve references to manifest bytes with fallback search strategies."""

    def __init__(
        self,
        manifest: Manifest,
        image_dirs: Iterable[str] = DEFAULT_IMAGE_DIRS,
    ):
        self.manifest = manifest
        self.image_dirs = tuple(image_dirs)

    def resolve(self, base_path: str, reference: str) -> bytes | None:
        """Return the bytes ``reference`` points to, or None. Never raises."""
        reference = (reference or "").strip()
        if not reference:
            return None
        if is_data_uri(reference):
            return decode_data_uri(reference)
        if reference.startswith("/") or is_remote(reference):
            return None

        decoded = unquote(reference.split("#", 1)[0])
        if not decoded:
            return None
        normalized = resolve_relative_path(base_path, decoded)
        for candidate in self._candidates(normalized, decoded):
            data = self.manifest.get(candidate)
            if data is not None:
                return data
        return self._scan(filename_of(normalized))

    def resolve_path(self, base_path: str, reference: str) -> str | None:
        """Return the normalized path of a local reference, or None."""
        reference = (reference or "").strip()
        if not reference or is_data_uri(reference):
            return None
        if reference.startswith("/") or is_remote(reference):
            return None
        decoded = unquote(reference.split("#", 1)[0])
        return resolve_relative_path(base_path, decoded) if decoded else None

    def _candidates(self, normalized: str, decoded: str) -> list[str]:
        filename = filename_of(normalized)
        candidates = [normalized, decoded, filename]
        candidates.extend(f"{directory}{filename}" for directory in self.image_dirs)
        return [c for c in dict.fromkeys(candidates) if c]

    def _scan(self, filename: str) -> bytes | None:
        if not filename:
            return None
        suffix = f"/{filename}"
        for entry in self.manifest:
            if entry.href == filename or entry.href.endswith(suffix):
                return entry.data
        return None

    def collect_embedded(self, base_path: str, markup: str) -> dict[str, bytes]:
        """Resolve every resource a chapter document refers to.

        Resolved bytes are stored under each alias a renderer may use to look
        them up: the reference as written, its decoded form, the normalized
        path and the bare filename.
        """
        resources: dict[str, bytes] = {}
        if not markup.strip():
            return resources
        try:
            soup = BeautifulSoup(markup, "lxml-xml")
        except ParserRejectedMarkup as e:
            log.debug("Skipping resource scan of %s: %s", base_path, e)
            return resources

        references: list[str] = []
        for img in soup.find_all("img"):
            references.append(img.get("src") or "")
        for image in soup.find_all("image"):
            references.append(image.get("xlink:href") or image.get("href") or "")
        for tag in soup.find_all(MEDIA_TAGS):
            references.append(tag.get("src") or "")
        for obj in soup.find_all("object"):
            references.append(obj.get("data") or "")

        for reference in references:
            reference = reference.strip()
            if reference:
                self._store_aliases(resources, base_path, reference)

        for link in soup.find_all("link"):
            rel = link.get("rel") or ""
            rels = rel if isinstance(rel, list) else rel.split()
            href = (link.get("href") or "").strip()
            if href and "stylesheet" in [r.lower() for r in rels]:
                data = self.resolve(base_path, href)
                if data is not None:
                    resources[href] = data
        return resources

    def _store_aliases(
        self, resources: dict[str, bytes], base_path: str, reference: str
    ) -> None:
        data = self.resolve(base_path, reference)
        if data is None:
            log.debug("Unresolved resource %r in %s", reference, base_path)
            return
        resources[reference] = data
        if is_data_uri(reference):
            return
        decoded = unquote(reference)
        resources[decoded] = data
        normalized = self.resolve_path(base_path, reference)
        if normalized:
            resources[normalized] = data
        filename = filename_of(decoded.split("#", 1)[0])
        if filename:
            resources[filename] = data
