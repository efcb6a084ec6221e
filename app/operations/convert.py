"""Format conversion between PDF, office documents and images.

Conversions are approximate: text and tables are re-laid out, not
reproduced with the source's exact formatting.
"""

from __future__ import annotations

import io
import re
import zipfile
from typing import Callable
from xml.sax.saxutils import escape

import docx
import structlog
from bs4 import BeautifulSoup
from docx.opc.exceptions import PackageNotFoundError
from docx.shared import Pt
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from PIL import Image, ImageFilter, ImageOps
from pptx import Presentation
from pptx.exc import PackageNotFoundError as PptxPackageNotFoundError
from pptx.util import Emu
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, legal, letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.errors import CorruptFormatError, UnsupportedTypeError, ValidationError
from app.operations.registry import InputKind, OperationResult, OutputFile, SourceFile, registry
from app.schemas.options import ConvertOptions
from app.services.document import Document
from app.services.geometry import POINTS_PER_PX
from app.services.naming import output_name, stem_of
from app.services.overlay import check_image
from app.services.page_ranges import resolve_selection
from app.services.rendering import render_pages

logger = structlog.get_logger(__name__)

PAGE_SIZES = {"A4": A4, "Letter": letter, "Legal": legal}

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "jpg": "image/jpeg",
    "png": "image/png",
}

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png")
HTML_EXTENSIONS = ("html", "htm")
EMU_PER_POINT = 12700

# Characters XML-based office formats cannot store
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_COLUMN_GAP = re.compile(r"\t|\s{2,}")


@registry.register("convert", ConvertOptions, inputs=InputKind.MANY)
def convert(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    """Convert PDF to docx/xlsx/pptx/jpg/png, or images/docx/xlsx/pptx/html to PDF."""
    kinds = {_source_kind(s) for s in sources}
    if len(kinds) > 1:
        raise ValidationError("All files in a conversion must have the same type")
    kind = kinds.pop()

    converter = CONVERTERS.get((kind, options.target))
    if converter is None:
        raise UnsupportedTypeError(f"Conversion from {kind} to {options.target} is not supported")
    if kind != "image" and len(sources) != 1:
        raise ValidationError(f"Convert one {kind} file per request")

    result = converter(sources, options)
    logger.info("document_converted", source_kind=kind, target=options.target, outputs=len(result.outputs))
    return result


def _source_kind(source: SourceFile) -> str:
    if source.looks_like_pdf():
        return "pdf"
    if source.extension in IMAGE_EXTENSIONS:
        return "image"
    if source.extension in ("docx", "xlsx", "pptx"):
        return source.extension
    if source.extension in HTML_EXTENSIONS or (source.content_type or "").startswith("text/html"):
        return "html"
    raise UnsupportedTypeError(f"Unsupported file type for '{source.name}'")


def _clean(text: str) -> str:
    return _CONTROL_CHARS.sub("", text or "")


def _load_pdf(sources: list[SourceFile], options: ConvertOptions) -> tuple[Document, list[int]]:
    source = sources[0]
    doc = Document.load(source.content, name=source.name)
    doc.require_pages()
    return doc, resolve_selection(options.pages, doc.page_count)


def _single(filename: str, content: bytes, target: str, report: dict) -> OperationResult:
    return OperationResult(
        outputs=[OutputFile(filename, content, MEDIA_TYPES[target])],
        report=report,
        message=f"Converted to {target.upper()}",
    )


# ---------------------------------------------------------------------------
# PDF -> office / images
# ---------------------------------------------------------------------------

def pdf_to_docx(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    doc, pages = _load_pdf(sources, options)
    word = docx.Document()
    style = word.styles["Normal"]
    style.font.name = "Calibri"
    style.font.size = Pt(11)

    paragraphs = 0
    for index, number in enumerate(pages):
        for line in _clean(doc.extract_text(number)).splitlines():
            if line.strip():
                word.add_paragraph(line.strip())
                paragraphs += 1
        if index != len(pages) - 1:
            word.add_page_break()

    buffer = io.BytesIO()
    word.save(buffer)
    name = output_name(options.output_name, default=stem_of(doc.name), extension="docx")
    return _single(name, buffer.getvalue(), "docx", {"pages_converted": len(pages), "paragraphs": paragraphs})


def pdf_to_xlsx(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    doc, pages = _load_pdf(sources, options)
    wb = Workbook()
    header_font = Font(bold=True, size=11)
    rows_written = 0

    if options.sheet_layout == "single":
        ws = wb.active
        ws.title = "Document"
        ws.append(["Page", "Line", "Content"])
        for cell in ws[1]:
            cell.font = header_font
        for number in pages:
            for line_no, columns in enumerate(_table_rows(doc.extract_text(number)), start=1):
                ws.append([number, line_no, *columns])
                rows_written += 1
        _fit_columns(ws)
    else:
        wb.remove(wb.active)
        for number in pages:
            ws = wb.create_sheet(title=f"Page {number}")
            for columns in _table_rows(doc.extract_text(number)):
                ws.append(columns)
                rows_written += 1
            _fit_columns(ws)

    buffer = io.BytesIO()
    wb.save(buffer)
    name = output_name(options.output_name, default=stem_of(doc.name), extension="xlsx")
    return _single(name, buffer.getvalue(), "xlsx", {
        "pages_converted": len(pages),
        "sheet_layout": options.sheet_layout,
        "rows": rows_written,
    })


def _table_rows(text: str) -> list[list[str]]:
    """Split page text into rows; runs of spaces or tabs separate columns."""
    rows = []
    for line in _clean(text).splitlines():
        if line.strip():
            rows.append([col.strip() for col in _COLUMN_GAP.split(line.strip())])
    return rows


def _fit_columns(ws) -> None:
    for col_idx, column in enumerate(ws.iter_cols(values_only=True), start=1):
        longest = max((len(str(v)) for v in column if v is not None), default=8)
        ws.column_dimensions[get_column_letter(col_idx)].width = min(max(longest + 2, 10), 80)
        for cell in ws[get_column_letter(col_idx)]:
            cell.alignment = Alignment(vertical="top", wrap_text=True)


def pdf_to_pptx(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    doc, pages = _load_pdf(sources, options)
    width, height = doc.page_size(pages[0])

    prs = Presentation()
    prs.slide_width = Emu(int(width * EMU_PER_POINT))
    prs.slide_height = Emu(int(height * EMU_PER_POINT))
    blank = prs.slide_layouts[6]

    for number, image in render_pages(doc.save(), pages, options.dpi):
        slide = prs.slides.add_slide(blank)
        picture = io.BytesIO()
        image.save(picture, format="PNG")
        picture.seek(0)
        slide.shapes.add_picture(picture, 0, 0, width=prs.slide_width, height=prs.slide_height)
        text = _clean(doc.extract_text(number)).strip()
        if text:
            slide.notes_slide.notes_text_frame.text = text

    buffer = io.BytesIO()
    prs.save(buffer)
    name = output_name(options.output_name, default=stem_of(doc.name), extension="pptx")
    return _single(name, buffer.getvalue(), "pptx", {"slides": len(pages), "dpi": options.dpi})


def pdf_to_images(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    doc, pages = _load_pdf(sources, options)
    base = stem_of(doc.name)
    ext = options.target
    outputs = []
    for number, image in render_pages(doc.save(), pages, options.dpi):
        buffer = io.BytesIO()
        if ext == "jpg":
            image.save(buffer, format="JPEG", quality=options.quality, optimize=True)
        else:
            image.save(buffer, format="PNG", optimize=True)
        outputs.append(OutputFile(f"{base}_page_{number}.{ext}", buffer.getvalue(), MEDIA_TYPES[ext]))

    return OperationResult(
        outputs=outputs,
        report={"pages_converted": len(outputs), "format": ext, "dpi": options.dpi},
        message=f"Rendered {len(outputs)} page(s) as {ext.upper()}",
    )


# ---------------------------------------------------------------------------
# Images / office -> PDF
# ---------------------------------------------------------------------------

def images_to_pdf(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    page_w, page_h = PAGE_SIZES[options.page_size]
    margin = options.margin
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(page_w, page_h))

    for source in sources:
        check_image(source.content)
        raw = _enhance_scan(source.content, options.quality) if options.enhance_scan else source.content
        with Image.open(io.BytesIO(raw)) as img:
            px_w, px_h = img.size
        # landscape images go on a landscape page
        width, height = (page_h, page_w) if px_w > px_h else (page_w, page_h)
        natural_w, natural_h = px_w * POINTS_PER_PX, px_h * POINTS_PER_PX
        fit = min((width - 2 * margin) / natural_w, (height - 2 * margin) / natural_h, 1.0)
        draw_w, draw_h = natural_w * fit, natural_h * fit

        c.setPageSize((width, height))
        c.drawImage(
            ImageReader(io.BytesIO(raw)),
            (width - draw_w) / 2,
            (height - draw_h) / 2,
            width=draw_w,
            height=draw_h,
            mask="auto",
        )
        c.showPage()
    c.save()

    default = stem_of(sources[0].name) if len(sources) == 1 else "images"
    name = output_name(options.output_name, default=default, extension="pdf")
    return _single(name, buffer.getvalue(), "pdf", {
        "images": len(sources),
        "page_size": options.page_size,
        "enhanced": options.enhance_scan,
    })


def _enhance_scan(raw: bytes, quality: int) -> bytes:
    """Grayscale, stretch contrast and sharpen a photographed or scanned page."""
    with Image.open(io.BytesIO(raw)) as img:
        page = ImageOps.exif_transpose(img)
        page = ImageOps.autocontrast(ImageOps.grayscale(page)).filter(ImageFilter.SHARPEN)
        buffer = io.BytesIO()
        page.save(buffer, format="JPEG", quality=max(quality, 90))
    return buffer.getvalue()


def docx_to_pdf(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    source = sources[0]
    try:
        word = docx.Document(io.BytesIO(source.content))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise CorruptFormatError(f"'{source.name}' is not a readable DOCX file") from exc

    styles = getSampleStyleSheet()
    story = []
    for para in word.paragraphs:
        text = escape(_clean(para.text).strip())
        style_name = (para.style.name or "") if para.style is not None else ""
        if not text:
            story.append(Spacer(1, 6))
        elif style_name.startswith("Heading"):
            story.append(Paragraph(text, styles["Heading2"]))
        else:
            story.append(Paragraph(text, styles["BodyText"]))

    for table in word.tables:
        data = [[escape(_clean(cell.text)) for cell in row.cells] for row in table.rows]
        if data:
            story.append(Spacer(1, 12))
            story.append(_pdf_table(data, styles, options))

    content = _build_pdf(story, options)
    name = output_name(options.output_name, default=stem_of(source.name), extension="pdf")
    return _single(name, content, "pdf", {"paragraphs": len(word.paragraphs), "tables": len(word.tables)})


def xlsx_to_pdf(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    source = sources[0]
    try:
        wb = load_workbook(io.BytesIO(source.content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise CorruptFormatError(f"'{source.name}' is not a readable XLSX file") from exc

    styles = getSampleStyleSheet()
    story = []
    sheets = 0
    try:
        for ws in wb.worksheets:
            if sheets:
                story.append(PageBreak())
            story.append(Paragraph(escape(ws.title), styles["Heading2"]))
            data = [
                ["" if v is None else escape(_clean(str(v))) for v in row]
                for row in ws.iter_rows(values_only=True)
            ]
            data = [row for row in data if any(row)]
            if data:
                story.append(_pdf_table(data, styles, options))
            else:
                story.append(Paragraph("(empty sheet)", styles["Italic"]))
            sheets += 1
    finally:
        wb.close()

    content = _build_pdf(story, options)
    name = output_name(options.output_name, default=stem_of(source.name), extension="pdf")
    return _single(name, content, "pdf", {"sheets": sheets})


def pptx_to_pdf(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    source = sources[0]
    try:
        prs = Presentation(io.BytesIO(source.content))
    except (PptxPackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise CorruptFormatError(f"'{source.name}' is not a readable PPTX file") from exc

    styles = getSampleStyleSheet()
    story = []
    slides = 0
    for slide in prs.slides:
        slides += 1
        if slides > 1:
            story.append(PageBreak())
        title_shape = slide.shapes.title
        title = _clean(title_shape.text_frame.text).strip() if title_shape is not None else ""
        story.append(Paragraph(escape(title or f"Slide {slides}"), styles["Heading2"]))

        for shape in slide.shapes:
            if title_shape is not None and shape.shape_id == title_shape.shape_id:
                continue
            if shape.has_text_frame:
                for para in shape.text_frame.paragraphs:
                    text = escape(_clean("".join(run.text for run in para.runs)).strip())
                    if text:
                        story.append(Paragraph(text, styles["BodyText"]))
            elif shape.has_table:
                data = [[escape(_clean(cell.text)) for cell in row.cells] for row in shape.table.rows]
                if data:
                    story.append(_pdf_table(data, styles, options))

        notes = slide.notes_slide.notes_text_frame if slide.has_notes_slide else None
        if notes is not None and _clean(notes.text).strip():
            story.append(Spacer(1, 12))
            story.append(Paragraph(escape(_clean(notes.text).strip()), styles["Italic"]))

    content = _build_pdf(story, options)
    name = output_name(options.output_name, default=stem_of(source.name), extension="pdf")
    return _single(name, content, "pdf", {"slides": slides})


# block tag -> paragraph style
HTML_BLOCKS = {
    "h1": "Heading1",
    "h2": "Heading2",
    "h3": "Heading3",
    "h4": "Heading4",
    "h5": "Heading5",
    "h6": "Heading6",
    "p": "BodyText",
    "li": "BodyText",
    "pre": "Code",
    "blockquote": "Italic",
}


def html_to_pdf(sources: list[SourceFile], options: ConvertOptions) -> OperationResult:
    """Lay out headings, paragraphs, lists and tables; CSS and scripts are ignored."""
    source = sources[0]
    try:
        markup = source.content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise CorruptFormatError(f"'{source.name}' is not UTF-8 encoded HTML") from exc

    soup = BeautifulSoup(markup, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    for tag in soup(["script", "style", "head", "noscript", "template"]):
        tag.decompose()

    styles = getSampleStyleSheet()
    story = []
    tables = 0
    wanted = [*HTML_BLOCKS, "table"]
    for element in soup.find_all(wanted):
        if element.find_parent(wanted) is not None:
            continue
        if element.name == "table":
            data = [
                [escape(_clean(cell.get_text(" ", strip=True))) for cell in row.find_all(["td", "th"])]
                for row in element.find_all("tr")
            ]
            data = [row for row in data if row]
            if data:
                story.append(_pdf_table(data, styles, options))
                story.append(Spacer(1, 8))
                tables += 1
            continue
        text = escape(_clean(element.get_text(" ", strip=True)))
        if text:
            prefix = "\u2022 " if element.name == "li" else ""
            story.append(Paragraph(prefix + text, styles[HTML_BLOCKS[element.name]]))

    if not story:
        # markup without block elements: keep its text lines
        for line in _clean(soup.get_text("\n")).splitlines():
            if line.strip():
                story.append(Paragraph(escape(line.strip()), styles["BodyText"]))
    if title:
        story.insert(0, Paragraph(escape(_clean(title)), styles["Title"]))

    content = _build_pdf(story, options)
    name = output_name(options.output_name, default=stem_of(source.name), extension="pdf")
    return _single(name, content, "pdf", {"title": title or None, "blocks": len(story), "tables": tables})


def _pdf_table(data: list[list[str]], styles, options: ConvertOptions) -> Table:
    width = PAGE_SIZES[options.page_size][0] - 2 * options.margin
    columns = max(len(row) for row in data)
    cell_style = styles["BodyText"].clone("cell", fontSize=8, leading=10)
    rows = [
        [Paragraph(value, cell_style) for value in row] + [""] * (columns - len(row))
        for row in data
    ]
    table = Table(rows, colWidths=[width / columns] * columns, repeatRows=1)
    table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    return table


def _build_pdf(story: list, options: ConvertOptions) -> bytes:
    buffer = io.BytesIO()
    template = SimpleDocTemplate(
        buffer,
        pagesize=PAGE_SIZES[options.page_size],
        leftMargin=options.margin,
        rightMargin=options.margin,
        topMargin=options.margin,
        bottomMargin=options.margin,
    )
    template.build(story or [Spacer(1, 1)])
    return buffer.getvalue()


CONVERTERS: dict[tuple[str, str], Callable[[list[SourceFile], ConvertOptions], OperationResult]] = {
    ("pdf", "docx"): pdf_to_docx,
    ("pdf", "xlsx"): pdf_to_xlsx,
    ("pdf", "pptx"): pdf_to_pptx,
    ("pdf", "jpg"): pdf_to_images,
    ("pdf", "png"): pdf_to_images,
    ("image", "pdf"): images_to_pdf,
    ("docx", "pdf"): docx_to_pdf,
    ("xlsx", "pdf"): xlsx_to_pdf,
    ("pptx", "pdf"): pptx_to_pdf,
    ("html", "pdf"): html_to_pdf,
}
