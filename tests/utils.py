from __future__ import annotations

import io
import mimetypes
import re
import zipfile
from html import escape
from pathlib import Path
from typing import Sequence, Union

# (title, href) or (title, href, [children])
TocNode = Union[tuple[str, str], tuple[str, str, list]]

PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
    b"\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f"
    b"\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)

CONTAINER_XML = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""


def xhtml(body: str, title: str = "Test") -> str:
    """Wrap body markup in a minimal XHTML document."""
    return (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<html xmlns='http://www.w3.org/1999/xhtml'>"
        f"<head><title>{title}</title></head><body>{body}</body></html>"
    )


def item_id(href: str) -> str:
    """Manifest id the helper assigns to ``href``."""
    stem = href.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    return re.sub(r"[^A-Za-z0-9_]", "_", stem)


def _split(node: TocNode) -> tuple[str, str, list]:
    title, href, *rest = node
    return title, href, (rest[0] if rest else [])


def _nav_points(nodes: Sequence[TocNode], counter: list[int]) -> str:
    parts = []
    for node in nodes:
        title, href, children = _split(node)
        counter[0] += 1
        number = counter[0]
        parts.append(
            f'<navPoint id="np{number}" playOrder="{number}">'
            f"<navLabel><text>{escape(title)}</text></navLabel>"
            f'<content src="{escape(href)}"/>'
            f"{_nav_points(children, counter)}</navPoint>"
        )
    return "".join(parts)


def _nav_list(nodes: Sequence[TocNode]) -> str:
    parts = []
    for node in nodes:
        title, href, children = _split(node)
        sublist = f"<ol>{_nav_list(children)}</ol>" if children else ""
        parts.append(f'<li><a href="{escape(href)}">{escape(title)}</a>{sublist}</li>')
    return "".join(parts)


def build_epub(
    documents: Sequence[tuple[str, str]],
    *,
    spine: Sequence[str] | None = None,
    toc: Sequence[TocNode] | None = None,
    toc_format: str = "ncx",
    ncx_href: str = "toc.ncx",
    images: dict[str, bytes] | None = None,
    extra_files: dict[str, bytes] | None = None,
    non_linear: Sequence[str] = (),
    cover: str | None = None,
    title: str = "Test Book",
    creator: str = "Jane Doe",
    identifier: str = "urn:uuid:12345",
    extra_metadata: str = "",
    version: str = "3.0",
) -> bytes:
    """Build an EPUB archive in memory.

    ``documents`` are (href, markup) pairs relative to OEBPS/. ``spine``
    lists hrefs in reading order (defaults to the documents in order); a
    value that names no file is written as a dangling idref. ``cover``
    flags one of the ``images`` as the EPUB3 cover image. NCX hrefs are
    written as given, so they must be relative to ``ncx_href``.
    """
    images = images or {}
    extra_files = extra_files or {}
    known: dict[str, str] = {}
    manifest_items = []

    for href, _ in documents:
        known[href] = item_id(href)
        manifest_items.append(
            f'<item id="{known[href]}" href="{escape(href)}" '
            f'media-type="application/xhtml+xml"/>'
        )
    for href in images:
        known[href] = item_id(href)
        media_type = mimetypes.guess_type(href)[0] or "application/octet-stream"
        properties = ' properties="cover-image"' if href == cover else ""
        manifest_items.append(
            f'<item id="{known[href]}" href="{escape(href)}" '
            f'media-type="{media_type}"{properties}/>'
        )
    for href in extra_files:
        known[href] = item_id(href)
        media_type = mimetypes.guess_type(href)[0] or "application/octet-stream"
        manifest_items.append(
            f'<item id="{known[href]}" href="{escape(href)}" media-type="{media_type}"/>'
        )

    files: dict[str, bytes] = {}
    spine_attrs = ""
    if toc is not None and toc_format in ("ncx", "both"):
        manifest_items.append(
            f'<item id="ncx" href="{escape(ncx_href)}" media-type="application/x-dtbncx+xml"/>'
        )
        spine_attrs = ' toc="ncx"'
        files[f"OEBPS/{ncx_href}"] = (
            '<?xml version="1.0" encoding="utf-8"?>\n'
            '<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">'
            f'<head><meta name="dtb:uid" content="{identifier}"/></head>'
            f"<docTitle><text>{escape(title)}</text></docTitle>"
            f"<navMap>{_nav_points(toc, [0])}</navMap></ncx>"
        ).encode("utf-8")
    if toc is not None and toc_format in ("nav", "both"):
        manifest_items.append(
            '<item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" '
            'properties="nav"/>'
        )
        files["OEBPS/nav.xhtml"] = (
            "<?xml version='1.0' encoding='utf-8'?>\n"
            "<html xmlns='http://www.w3.org/1999/xhtml' "
            "xmlns:epub='http://www.idpf.org/2007/ops'><head><title>Nav</title></head>"
            f"<body><nav epub:type='toc'><ol>{_nav_list(toc)}</ol></nav></body></html>"
        ).encode("utf-8")

    spine_items = []
    for index, href in enumerate(spine if spine is not None else [h for h, _ in documents]):
        idref = known.get(href, f"missing_{index}")
        linear = ' linear="no"' if href in non_linear else ""
        spine_items.append(f'<itemref idref="{idref}"{linear}/>')

    opf = f"""<?xml version="1.0" encoding="utf-8"?>
<package version="{version}" unique-identifier="bookid" xmlns="http://www.idpf.org/2007/opf">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:opf="http://www.idpf.org/2007/opf">
    <dc:identifier id="bookid">{escape(identifier)}</dc:identifier>
    <dc:title>{escape(title)}</dc:title>
    <dc:creator>{escape(creator)}</dc:creator>
    <dc:language>en</dc:language>
    {extra_metadata}
  </metadata>
  <manifest>
    {''.join(manifest_items)}
  </manifest>
  <spine{spine_attrs}>{''.join(spine_items)}</spine>
</package>
"""

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr(
            "mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED
        )
        zf.writestr("META-INF/container.xml", CONTAINER_XML)
        zf.writestr("OEBPS/content.opf", opf)
        for href, markup in documents:
            zf.writestr(f"OEBPS/{href}", markup)
        for href, data in {**images, **extra_files}.items():
            zf.writestr(f"OEBPS/{href}", data)
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def write_epub(path: Path, documents: Sequence[tuple[str, str]], **kwargs) -> Path:
    """Write an EPUB built by :func:`build_epub` to ``path``."""
    path.write_bytes(build_epub(documents, **kwargs))
    return path
