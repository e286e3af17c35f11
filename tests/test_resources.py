from __future__ import annotations

import base64

from epub_reflow.core.resources import (
    Manifest,
    ResourceResolver,
    decode_data_uri,
    decode_text,
    resolve_relative_path,
)


class _ExplodingManifest(Manifest):
    def get(self, href: str) -> bytes | None:
        raise AssertionError(f"manifest consulted for {href!r}")

    def __iter__(self):
        raise AssertionError("manifest scanned")


def _resolver(files: dict[str, bytes]) -> ResourceResolver:
    return ResourceResolver(Manifest.from_mapping(files))


def test_resolve_relative_reference_from_chapter_directory():
    """References climb out of the chapter's directory with '..'."""
    resolver = _resolver({"images/cover.png": b"png"})
    assert resolver.resolve("text/ch1.xhtml", "../images/cover.png") == b"png"


def test_data_uri_is_decoded_without_touching_manifest():
    """Data URIs decode in place and are deterministic."""
    payload = base64.b64encode(b"\x00\x01binary").decode()
    resolver = ResourceResolver(_ExplodingManifest())
    uri = f"data:image/png;base64,{payload}"
    assert resolver.resolve("text/ch1.xhtml", uri) == b"\x00\x01binary"
    assert resolver.resolve("other.xhtml", uri) == b"\x00\x01binary"


def test_data_uri_without_padding_and_percent_encoded():
    """Missing base64 padding is tolerated and plain payloads are unquoted."""
    assert decode_data_uri("data:text/plain;base64,aGk") == b"hi"
    assert decode_data_uri("data:text/plain,a%20b") == b"a b"


def test_malformed_data_uri_returns_none():
    """A data URI without a comma or with bad base64 resolves to nothing."""
    resolver = ResourceResolver(_ExplodingManifest())
    assert resolver.resolve("", "data:image/png;base64") is None
    assert resolver.resolve("", "data:image/png;base64,abcde") is None


def test_resolve_is_idempotent():
    """Resolving the same reference twice yields identical bytes."""
    resolver = _resolver({"OEBPS/images/a.jpg": b"jpeg"})
    first = resolver.resolve("OEBPS/text/c.xhtml", "../images/a.jpg")
    second = resolver.resolve("OEBPS/text/c.xhtml", "../images/a.jpg")
    assert first == second == b"jpeg"


def test_image_directory_fallback():
    """img/pic.png is found under images/ when the literal path is absent."""
    resolver = _resolver({"images/pic.png": b"pic"})
    assert resolver.resolve("ch.xhtml", "img/pic.png") == b"pic"


def test_bare_filename_and_suffix_scan():
    """A reference with a wrong directory still finds the file by name."""
    resolver = _resolver({"assets/deep/figure.svg": b"<svg/>", "plain.gif": b"gif"})
    assert resolver.resolve("text/ch.xhtml", "media/figure.svg") == b"<svg/>"
    assert resolver.resolve("text/ch.xhtml", "elsewhere/plain.gif") == b"gif"


def test_scan_matches_whole_filenames_only():
    """The scan never matches a file whose name merely ends the same way."""
    resolver = _resolver({"images/bigpic.png": b"big"})
    assert resolver.resolve("ch.xhtml", "pic.png") is None


def test_excess_parent_segments_clamp_at_root():
    """More '..' segments than directories never raise and stop at the root."""
    assert resolve_relative_path("a/b.xhtml", "../../../../x.png") == "x.png"
    resolver = _resolver({"x.png": b"x"})
    assert resolver.resolve("a/b.xhtml", "../../../../x.png") == b"x"


def test_base_path_without_extension_is_a_directory():
    """A base whose last segment has no dot is treated as a directory."""
    assert resolve_relative_path("OEBPS/text", "img.png") == "OEBPS/text/img.png"
    assert resolve_relative_path("OEBPS/text/ch.xhtml", "./img.png") == "OEBPS/text/img.png"


def test_absolute_and_remote_references_are_unresolvable():
    """Absolute paths and remote URLs resolve to nothing."""
    resolver = _resolver({"pic.png": b"pic"})
    assert resolver.resolve("ch.xhtml", "/pic.png") is None
    assert resolver.resolve("ch.xhtml", "http://example.com/pic.png") is None
    assert resolver.resolve("ch.xhtml", "//cdn.example.com/pic.png") is None
    assert resolver.resolve("ch.xhtml", "") is None


def test_percent_encoded_reference_and_fragment():
    """Percent-escapes are decoded and fragments ignored."""
    resolver = _resolver({"text/my image.png": b"img"})
    assert resolver.resolve("text/ch.xhtml", "my%20image.png#frag") == b"img"


def test_collect_embedded_stores_every_alias():
    """Resolved resources are keyed by literal, normalized path and filename."""
    resolver = _resolver(
        {
            "OEBPS/images/fig 1.png": b"fig",
            "OEBPS/audio/clip.mp3": b"mp3",
            "OEBPS/styles/main.css": b"css",
        }
    )
    markup = (
        "<html xmlns='http://www.w3.org/1999/xhtml'><head>"
        "<link rel='stylesheet' href='../styles/main.css'/></head><body>"
        "<img src='../images/fig%201.png'/>"
        "<audio src='../audio/clip.mp3'/>"
        "<img src='missing.png'/>"
        "</body></html>"
    )
    resources = resolver.collect_embedded("OEBPS/text/ch1.xhtml", markup)
    assert resources["../images/fig%201.png"] == b"fig"
    assert resources["../images/fig 1.png"] == b"fig"
    assert resources["OEBPS/images/fig 1.png"] == b"fig"
    assert resources["fig 1.png"] == b"fig"
    assert resources["clip.mp3"] == b"mp3"
    assert resources["../styles/main.css"] == b"css"
    assert "missing.png" not in resources


def test_collect_embedded_svg_image():
    """SVG image elements contribute their xlink:href target."""
    resolver = _resolver({"images/cover.jpg": b"jpg"})
    markup = (
        "<html xmlns='http://www.w3.org/1999/xhtml'><body>"
        "<svg xmlns='http://www.w3.org/2000/svg' xmlns:xlink='http://www.w3.org/1999/xlink'>"
        "<image xlink:href='images/cover.jpg'/></svg></body></html>"
    )
    resources = resolver.collect_embedded("cover.xhtml", markup)
    assert resources["images/cover.jpg"] == b"jpg"


def test_decode_text_honours_declared_encoding():
    """Documents declaring a legacy encoding decode correctly; empty is ''."""
    data = "<?xml version='1.0' encoding='iso-8859-1'?><p>café</p>".encode("latin-1")
    assert "café" in decode_text(data)
    assert decode_text(b"") == ""
    assert decode_text(None) == ""


def test_manifest_lookup_by_id():
    """Entries are reachable by manifest id as well as by path."""
    manifest = Manifest.from_mapping({"images/front.png": b"png"}, {"images/front.png": "image/png"})
    entry = manifest.by_id("item_0")
    assert entry is not None
    assert entry.href == "images/front.png"
    assert entry.media_type == "image/png"
    assert manifest.by_id("absent") is None
