"""Options controlling how an EPUB is parsed."""

from dataclasses import dataclass, field

DEFAULT_IMAGE_DIRS: tuple[str, ...] = (
    "images/",
    "Images/",
    "image/",
    "Image/",
    "img/",
    "Img/",
)


@dataclass(frozen=True)
class ParseOptions:
    """Configuration for a single parse call."""

    # Prefer the EPUB3 nav document over the NCX when both are present
    ignore_ncx: bool = False
    image_dirs: tuple[str, ...] = field(default=DEFAULT_IMAGE_DIRS)
    extract_cover: bool = True
