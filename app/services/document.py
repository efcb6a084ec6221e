"""Document model adapter over pypdf.

Operations never touch pypdf directly for structural work; they go through
``Document`` so page numbering (1-based), validation and error mapping stay
in one place.
"""

from __future__ import annotations

import io
from typing import Iterable, Optional

import structlog
from pypdf import PageObject, PdfReader, PdfWriter
from pypdf.annotations import Text
from pypdf.errors import PyPdfError
from pypdf.generic import NameObject, NumberObject, RectangleObject

from app.errors import AuthError, CorruptFormatError, ValidationError

logger = structlog.get_logger(__name__)


class Document:
    """An ordered set of pages owned by one operation invocation."""

    def __init__(
        self,
        writer: PdfWriter,
        name: str = "document.pdf",
        encrypted: bool = False,
        source_size: Optional[int] = None,
    ):
        self._writer = writer
        self.name = name
        self.was_encrypted = encrypted
        self.source_size = source_size

    # -----------------------------------------------------------------------
    # Construction
    # -----------------------------------------------------------------------

    @classmethod
    def new(cls, name: str = "document.pdf") -> "Document":
        return cls(PdfWriter(), name=name)

    @classmethod
    def load(cls, content: bytes, name: str = "document.pdf", password: Optional[str] = None) -> "Document":
        """Parse PDF bytes into a Document.

        The whole document catalog is cloned, so outlines, form fields, named
        destinations and page labels survive in-place edits. Operations that
        assemble new documents start from ``Document.new`` instead.

        Raises:
            CorruptFormatError: the bytes are not a readable PDF.
            AuthError: the document is encrypted and cannot be opened.
        """
        try:
            reader = PdfReader(io.BytesIO(content), strict=False)
            encrypted = reader.is_encrypted
            if encrypted:
                _decrypt(reader, name, password)
            writer = PdfWriter(clone_from=reader)
        except (PyPdfError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("pdf_load_failed", name=name, error=str(exc))
            raise CorruptFormatError(
                f"Could not read '{name}' as PDF: {exc}",
                user_message=f"File '{name}' is corrupted or is not a valid PDF",
            ) from exc

        doc = cls(writer, name=name, encrypted=encrypted, source_size=len(content))
        logger.debug("pdf_loaded", name=name, pages=doc.page_count, encrypted=encrypted)
        return doc

    # -----------------------------------------------------------------------
    # Inspection
    # -----------------------------------------------------------------------

    @property
    def page_count(self) -> int:
        return len(self._writer.pages)

    @property
    def metadata(self) -> dict:
        return dict(self._writer.metadata or {})

    def require_pages(self) -> None:
        if self.page_count == 0:
            raise ValidationError(f"Document '{self.name}' has no pages")

    def check_page(self, number: int) -> None:
        if not 1 <= number <= self.page_count:
            raise ValidationError(
                f"Page {number} out of range; document has {self.page_count} page(s)"
            )

    def page(self, number: int) -> PageObject:
        self.check_page(number)
        return self._writer.pages[number - 1]

    def page_size(self, number: int) -> tuple[float, float]:
        box = self.page(number).mediabox
        return float(box.width), float(box.height)

    def page_origin(self, number: int) -> tuple[float, float]:
        box = self.page(number).mediabox
        return float(box.left), float(box.bottom)

    def rotation(self, number: int) -> int:
        return int(self.page(number).rotation) % 360

    def extract_text(self, number: int) -> str:
        try:
            return self.page(number).extract_text() or ""
        except (PyPdfError, ValueError, KeyError, TypeError) as exc:
            logger.warning("text_extraction_failed", name=self.name, page=number, error=str(exc))
            return ""

    # -----------------------------------------------------------------------
    # Structural edits
    # -----------------------------------------------------------------------

    def copy_pages(self, source: "Document", numbers: Iterable[int]) -> None:
        """Append pages of ``source`` in the given order."""
        for number in numbers:
            self._writer.add_page(source.page(number))

    def append_document(self, source: "Document") -> None:
        self.copy_pages(source, range(1, source.page_count + 1))

    def insert_page(self, index: int, page: PageObject) -> None:
        """Insert ``page`` so it becomes page ``index`` (1-based)."""
        if not 1 <= index <= self.page_count + 1:
            raise ValidationError(f"Insert position {index} out of range")
        self._writer.insert_page(page, index - 1)

    def remove_page(self, number: int) -> None:
        self.check_page(number)
        del self._writer.pages[number - 1]

    def rotate(self, number: int, angle: int, *, absolute: bool = False) -> int:
        """Rotate a page and return its stored rotation, normalized to 0-270."""
        if angle % 90:
            raise ValidationError(f"Rotation must be a multiple of 90, got {angle}")
        page = self.page(number)
        current = 0 if absolute else int(page.rotation)
        value = (current + angle) % 360
        page[NameObject("/Rotate")] = NumberObject(value)
        return value

    def set_page_box(self, number: int, left: float, bottom: float, right: float, top: float) -> None:
        """Set the visible area of a page (media, crop and trim boxes)."""
        page = self.page(number)
        rect = RectangleObject([left, bottom, right, top])
        page.mediabox = rect
        page.cropbox = rect
        page.trimbox = rect

    def stamp_page(self, number: int, overlay: PageObject) -> None:
        """Draw ``overlay`` on top of page ``number``."""
        self.page(number).merge_page(overlay)

    def upright(self, number: int) -> None:
        """Bake a page's rotation into its content so drawing matches the viewed page."""
        page = self.page(number)
        if int(page.rotation) % 360:
            page.transfer_rotation_to_content()

    def add_note(self, number: int, x: float, y: float, width: float, height: float, text: str) -> None:
        """Attach a sticky-note annotation at a bottom-left origin rect."""
        self.check_page(number)
        note = Text(rect=(x, y, x + width, y + height), text=text)
        self._writer.add_annotation(page_number=number - 1, annotation=note)

    def add_metadata(self, values: dict) -> None:
        self._writer.add_metadata(values)

    def set_xmp_metadata(self, packet: bytes) -> None:
        """Replace the catalog's XMP stream with an uncompressed ``packet``."""
        self._writer.xmp_metadata = None
        self._writer.xmp_metadata = packet
        stream = self._writer.root_object["/Metadata"].get_object()
        stream[NameObject("/Type")] = NameObject("/Metadata")
        stream[NameObject("/Subtype")] = NameObject("/XML")

    # -----------------------------------------------------------------------
    # Output
    # -----------------------------------------------------------------------

    def save(
        self,
        *,
        compact: bool = False,
        strip_metadata: bool = False,
        compress_streams: bool = False,
        encrypt: Optional[dict] = None,
    ) -> bytes:
        """Serialize to PDF bytes.

        ``encrypt`` takes the keyword arguments of ``PdfWriter.encrypt``.
        """
        writer = self._writer
        if strip_metadata:
            writer.metadata = None
            writer.xmp_metadata = None
        if compress_streams:
            for page in writer.pages:
                page.compress_content_streams()
        if compact:
            writer.compress_identical_objects(remove_duplicates=True, remove_unreferenced=True)
        if encrypt:
            writer.encrypt(**encrypt)

        buffer = io.BytesIO()
        writer.write(buffer)
        return buffer.getvalue()


def _decrypt(reader: PdfReader, name: str, password: Optional[str]) -> None:
    if reader.decrypt(password or "") != 0:
        return
    if password:
        raise AuthError(f"Wrong password for '{name}'", user_message="Incorrect password")
    raise AuthError(
        f"'{name}' is password protected",
        user_message=f"File '{name}' is password protected; unlock it first",
    )
