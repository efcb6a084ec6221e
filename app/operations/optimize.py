"""Size reduction, archival tagging and structural repair."""

from __future__ import annotations

from datetime import datetime, timezone
from xml.sax.saxutils import escape

import structlog

from app.errors import CorruptFormatError, UnsupportedTypeError
from app.operations.registry import InputKind, OperationResult, OutputFile, SourceFile, registry
from app.schemas.options import CompressOptions, PdfaOptions, RepairOptions
from app.services.document import Document
from app.services.naming import stem_of
from app.services.overlay import render_text_pages

logger = structlog.get_logger(__name__)

# level -> settings passed to Document.save
COMPRESSION_LEVELS = {
    "low": {"compact": False, "strip_metadata": False, "compress_streams": False},
    "medium": {"compact": True, "strip_metadata": True, "compress_streams": False},
    "high": {"compact": True, "strip_metadata": True, "compress_streams": True},
}


@registry.register("compress", CompressOptions)
def compress(doc: Document, options: CompressOptions) -> OperationResult:
    """Reduce file size with lossless rewriting at the chosen level."""
    original_size = doc.source_size
    content = doc.save(**COMPRESSION_LEVELS[options.level])

    reduction = None
    if original_size:
        reduction = round((original_size - len(content)) / original_size * 100, 1)
    logger.info(
        "pdf_compressed",
        name=doc.name,
        level=options.level,
        original_size=original_size,
        compressed_size=len(content),
    )
    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_compressed.pdf", content)],
        report={
            "level": options.level,
            "original_size": original_size,
            "compressed_size": len(content),
            "reduction_percent": reduction,
            "settings": COMPRESSION_LEVELS[options.level],
        },
        message=f"Compressed with level '{options.level}'",
    )


@registry.register("repair", RepairOptions, inputs=InputKind.RAW)
def repair(source: SourceFile, options: RepairOptions) -> OperationResult:
    """Rewrite a PDF page by page; emit a diagnostic PDF when it cannot be read."""
    if not source.looks_like_pdf():
        raise UnsupportedTypeError(f"'{source.name}' is not a PDF file")

    base = stem_of(source.name)
    try:
        original = Document.load(source.content, name=source.name)
    except CorruptFormatError as exc:
        if not options.attempt_recovery:
            raise
        logger.warning("pdf_repair_unrecoverable", name=source.name, error=exc.message)
        diagnostic = render_text_pages(
            "Repair report",
            [
                f"File: {source.name}",
                f"Size: {len(source.content)} bytes",
                "Status: the document could not be parsed.",
                f"Error: {exc.message}",
            ],
        )
        return OperationResult(
            outputs=[OutputFile(f"{base}_repair_report.pdf", diagnostic)],
            report={
                "original_status": "corrupted",
                "recovered": False,
                "pages_recovered": 0,
                "error": exc.message,
            },
            message="Document could not be recovered; a diagnostic report was produced",
        )

    rebuilt = Document.new(name=source.name)
    rebuilt.append_document(original)
    actions = ["rebuilt page tree", "rewrote cross-reference table"]
    if options.keep_metadata and original.metadata:
        rebuilt.add_metadata(original.metadata)
        actions.append("carried over document metadata")

    logger.info("pdf_repaired", name=source.name, pages=rebuilt.page_count)
    return OperationResult(
        outputs=[OutputFile(f"{base}_repaired.pdf", rebuilt.save())],
        report={
            "original_status": "loadable",
            "recovered": True,
            "pages_recovered": rebuilt.page_count,
            "repair_actions": actions,
        },
        message=f"Rebuilt {rebuilt.page_count} page(s)",
    )


# ---------------------------------------------------------------------------
# Archival metadata
# ---------------------------------------------------------------------------

PRODUCER = "PDF Toolkit API"
ARCHIVAL_KEYWORDS = "PDF/A, archival, long-term preservation"

_XMP_PACKET = """<?xpacket begin="\ufeff" id="W5M0MpCehiHzreSzNTczkc9d"?>
<x:xmpmeta xmlns:x="adobe:ns:meta/">
 <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
  <rdf:Description rdf:about=""
    xmlns:dc="http://purl.org/dc/elements/1.1/"
    xmlns:xmp="http://ns.adobe.com/xap/1.0/"
    xmlns:pdf="http://ns.adobe.com/pdf/1.3/"
    xmlns:pdfaid="http://www.aiim.org/pdfa/ns/id/">
   <dc:format>application/pdf</dc:format>
   <dc:title><rdf:Alt><rdf:li xml:lang="x-default">{title}</rdf:li></rdf:Alt></dc:title>
   <dc:creator><rdf:Seq><rdf:li>{author}</rdf:li></rdf:Seq></dc:creator>
   <xmp:CreateDate>{timestamp}</xmp:CreateDate>
   <xmp:ModifyDate>{timestamp}</xmp:ModifyDate>
   <xmp:CreatorTool>{producer}</xmp:CreatorTool>
   <pdf:Producer>{producer}</pdf:Producer>
   <pdf:Keywords>{keywords}</pdf:Keywords>
   <pdfaid:part>{part}</pdfaid:part>
   <pdfaid:conformance>{conformance}</pdfaid:conformance>
  </rdf:Description>
 </rdf:RDF>
</x:xmpmeta>
<?xpacket end="w"?>"""


@registry.register("pdfa", PdfaOptions)
def pdfa(doc: Document, options: PdfaOptions) -> OperationResult:
    """Tag a PDF for archiving: document info plus PDF/A identification in XMP.

    Fonts, color profiles and other PDF/A content rules are not checked, so
    the output carries the identification without being validated.
    """
    level = options.compliance_level
    part, conformance = level[len("PDF/A-"):-1], level[-1].upper()
    existing = doc.metadata
    title = options.title or str(existing.get("/Title") or "") or stem_of(doc.name)
    author = options.author or str(existing.get("/Author") or "") or PRODUCER
    now = datetime.now(timezone.utc)

    doc.add_metadata({
        "/Title": title,
        "/Author": author,
        "/Subject": f"{level} document",
        "/Creator": f"{PRODUCER} PDF/A converter",
        "/Producer": PRODUCER,
        "/Keywords": ARCHIVAL_KEYWORDS,
        "/CreationDate": now.strftime("D:%Y%m%d%H%M%SZ"),
        "/ModDate": now.strftime("D:%Y%m%d%H%M%SZ"),
    })
    packet = _XMP_PACKET.format(
        title=escape(title),
        author=escape(author),
        timestamp=now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        producer=escape(PRODUCER),
        keywords=escape(ARCHIVAL_KEYWORDS),
        part=part,
        conformance=conformance,
    )
    doc.set_xmp_metadata(packet.encode("utf-8"))
    content = doc.save(compact=True)

    logger.info("pdf_archived", name=doc.name, compliance_level=level, pages=doc.page_count)
    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}-PDF-A.pdf", content)],
        report={
            "compliance_level": level,
            "title": title,
            "author": author,
            "pages": doc.page_count,
            "validated": False,
        },
        message=f"Converted to {level}; compliance has not been validated",
    )
