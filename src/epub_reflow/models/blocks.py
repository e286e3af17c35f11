"""Typed content blocks produced from chapter markup.

Blocks form a closed set discriminated by ``kind`` so that renderers can
switch over every variant exhaustively.
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class BlockKind(str, Enum):
    """Discriminator for content block variants."""

    TEXT = "text"
    PARAGRAPH = "paragraph"
    LINE_BREAK = "line_break"
    BLOCK_QUOTE = "block_quote"
    IMAGE = "image"
    HEADER = "header"
    LINK = "link"
    LIST = "list"
    TABLE = "table"
    EMBED = "embed"


class _Block(BaseModel):
    model_config = ConfigDict(
        frozen=True, ser_json_bytes="base64", val_json_bytes="base64"
    )


class Text(_Block):
    """Run of text rendered without paragraph styling."""

    kind: Literal[BlockKind.TEXT] = BlockKind.TEXT
    content: str


class Paragraph(_Block):
    """Paragraph rendered with first-line indent and vertical margins."""

    kind: Literal[BlockKind.PARAGRAPH] = BlockKind.PARAGRAPH
    content: str


class LineBreak(_Block):
    kind: Literal[BlockKind.LINE_BREAK] = BlockKind.LINE_BREAK


class BlockQuote(_Block):
    kind: Literal[BlockKind.BLOCK_QUOTE] = BlockKind.BLOCK_QUOTE
    content: list["ContentBlock"] = Field(default_factory=list)


class Image(_Block):
    """Image reference; ``data`` is filled in by a later resolution pass."""

    kind: Literal[BlockKind.IMAGE] = BlockKind.IMAGE
    src: str
    alt: str | None = None
    data: bytes | None = None


class Header(_Block):
    kind: Literal[BlockKind.HEADER] = BlockKind.HEADER
    level: int = Field(ge=1, le=6)
    content: str


class Link(_Block):
    kind: Literal[BlockKind.LINK] = BlockKind.LINK
    href: str
    content: str


class ListBlock(_Block):
    kind: Literal[BlockKind.LIST] = BlockKind.LIST
    items: list[str] = Field(default_factory=list)
    ordered: bool = False


class Table(_Block):
    kind: Literal[BlockKind.TABLE] = BlockKind.TABLE
    headers: list[str] = Field(default_factory=list)
    rows: list[list[str]] = Field(default_factory=list)


class Embed(_Block):
    """Embedded media (audio, video, object) with optional resolved bytes."""

    kind: Literal[BlockKind.EMBED] = BlockKind.EMBED
    media_type: str
    src: str
    data: bytes | None = None


ContentBlock = Annotated[
    Union[
        Text,
        Paragraph,
        LineBreak,
        BlockQuote,
        Image,
        Header,
        Link,
        ListBlock,
        Table,
        Embed,
    ],
    Field(discriminator="kind"),
]

BlockQuote.model_rebuild()

ContentBlockAdapter = TypeAdapter(list[ContentBlock])
