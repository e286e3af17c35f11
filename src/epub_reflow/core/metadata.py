"""Bibliographic metadata extraction from the package document."""

from ebooklib import epub

from epub_reflow.models.epub import Metadata

DC_FIELDS = (
    "title",
    "creator",
    "contributor",
    "publisher",
    "description",
    "subject",
    "language",
    "identifier",
    "date",
    "rights",
    "source",
)
DC_NAMESPACE = "http://purl.org/dc/elements/1.1/"
OPF_NAMESPACE = "http://www.idpf.org/2007/opf"


def _clean(value: object) -> str | None:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


class MetadataExtractor:
    """Map Dublin Core and OPF metadata onto the Metadata record."""

    def extract(self, book: epub.EpubBook) -> Metadata:
        def first(name: str) -> str | None:
            for value, _ in book.get_metadata("DC", name):
                cleaned = _clean(value)
                if cleaned:
                    return cleaned
            return None

        subjects = [
            cleaned
            for value, _ in book.get_metadata("DC", "subject")
            if (cleaned := _clean(value))
        ]

        return Metadata(
            title=first("title") or "Unknown",
            creator=first("creator"),
            contributor=first("contributor"),
            publisher=first("publisher"),
            description=first("description"),
            subjects=subjects,
            language=first("language"),
            identifier=first("identifier"),
            date=first("date"),
            rights=first("rights"),
            source=first("source"),
            other_metadata=self._other_metadata(book),
        )

    def _other_metadata(self, book: epub.EpubBook) -> dict[str, str]:
        """Collect every field the record has no slot for."""
        other: dict[str, str] = {}
        for namespace, fields in book.metadata.items():
            for name, values in fields.items():
                if namespace == DC_NAMESPACE and name in DC_FIELDS:
                    continue
                for value, attributes in values:
                    key, text = self._entry(namespace, name, value, attributes or {})
                    if key and text and key not in other:
                        other[key] = text
        return other

    def _entry(
        self, namespace: str, name: str | None, value: object, attributes: dict
    ) -> tuple[str | None, str | None]:
        if namespace == DC_NAMESPACE:
            return f"dc:{name}", _clean(value)
        # ebooklib files namespaced <meta> elements under "meta" itself
        if name == "meta":
            name = attributes.get("name")
        # EPUB2 <meta name="..." content="..."/>
        if name and attributes.get("content"):
            return name, _clean(attributes["content"])
        # EPUB3 <meta property="...">value</meta>
        prop = attributes.get("property")
        if prop:
            return prop, _clean(value)
        if name:
            return name, _clean(value)
        return None, None
