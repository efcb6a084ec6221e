"""Page-structure operations: merge, split, rotate, organize."""

from __future__ import annotations

import structlog

from app.config import settings
from app.errors import ValidationError
from app.operations.registry import InputKind, OperationResult, OutputFile, SourceFile, registry
from app.schemas.options import MergeOptions, OrganizeOptions, RotateOptions, SplitOptions
from app.services.document import Document
from app.services.naming import output_name, stem_of
from app.services.overlay import render_text_pages
from app.services.page_ranges import chunk_pages, parse_page_ranges, resolve_selection

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

@registry.register("merge", MergeOptions, inputs=InputKind.MANY)
def merge(sources: list[SourceFile], options: MergeOptions) -> OperationResult:
    """Concatenate PDFs in request order, with a contents page for long results."""
    if len(sources) > settings.max_merge_files:
        raise ValidationError(f"At most {settings.max_merge_files} files can be merged at once")

    documents: list[Document] = []
    skipped: list[str] = []
    for source in sources:
        if not source.looks_like_pdf():
            logger.warning("merge_skipped_file", name=source.name, reason="not a PDF")
            skipped.append(source.name)
            continue
        doc = Document.load(source.content, name=source.name)
        doc.require_pages()
        documents.append(doc)

    if len(documents) < 2:
        raise ValidationError("At least two PDF files are required to merge")

    source_pages = sum(d.page_count for d in documents)
    threshold = options.toc_threshold or settings.toc_threshold_pages
    with_toc = options.add_toc and source_pages > threshold

    merged = Document.new(name="merged.pdf")
    entries = _start_pages(documents, offset=0)
    if with_toc:
        # contents length depends only on the number of entries
        contents = _contents(entries)
        entries = _start_pages(documents, offset=contents.page_count)
        merged.append_document(_contents(entries))
    for doc in documents:
        merged.append_document(doc)

    logger.info("pdf_merged", files=len(documents), pages=merged.page_count, toc=with_toc)
    filename = output_name(options.output_name, default="merged", extension="pdf")
    return OperationResult(
        outputs=[OutputFile(filename, merged.save())],
        report={
            "files_merged": len(documents),
            "total_pages": merged.page_count,
            "table_of_contents": [
                {"file": name, "start_page": start} for name, start in entries
            ] if with_toc else None,
            "skipped_files": skipped,
        },
        message=f"Merged {len(documents)} files into {merged.page_count} pages",
    )


def _start_pages(documents: list[Document], offset: int) -> list[tuple[str, int]]:
    entries = []
    for doc in documents:
        entries.append((doc.name, offset + 1))
        offset += doc.page_count
    return entries


def _contents(entries: list[tuple[str, int]]) -> Document:
    lines = [f"{i}. {name}  ....  page {start}" for i, (name, start) in enumerate(entries, start=1)]
    return Document.load(render_text_pages("Contents", lines), name="contents.pdf")


# ---------------------------------------------------------------------------
# Split
# ---------------------------------------------------------------------------

@registry.register("split", SplitOptions)
def split(doc: Document, options: SplitOptions) -> OperationResult:
    """Split a PDF into one file per page, one selected range, or fixed-size chunks."""
    total = doc.page_count
    base = stem_of(doc.name)

    if options.mode == "single":
        groups = [[p] for p in range(1, total + 1)]
    elif options.mode == "range":
        groups = [resolve_selection(options.pages or options.range, total)]
    else:
        scope = (
            parse_page_ranges(options.range, total, clamp=True)
            if options.range else list(range(1, total + 1))
        )
        groups = chunk_pages(scope, min(options.every, len(scope)))

    outputs = []
    for group in groups:
        part = Document.new(name=doc.name)
        part.copy_pages(doc, group)
        outputs.append(OutputFile(_split_name(base, group, options.mode), part.save()))
        logger.info("pdf_split", name=doc.name, pages=f"{group[0]}-{group[-1]}", count=len(group))

    logger.info("pdf_split_complete", total_documents=len(outputs))
    return OperationResult(
        outputs=outputs,
        report={
            "original_pages": total,
            "files_created": len(outputs),
            "files": [o.filename for o in outputs],
        },
        message=f"Split into {len(outputs)} file(s)",
    )


def _split_name(base: str, group: list[int], mode: str) -> str:
    if len(group) == 1:
        return f"{base}_page_{group[0]}.pdf"
    contiguous = group == list(range(group[0], group[-1] + 1))
    if mode == "range" and not contiguous:
        return f"{base}_selected_pages.pdf"
    return f"{base}_pages_{group[0]}-{group[-1]}.pdf"


# ---------------------------------------------------------------------------
# Rotate
# ---------------------------------------------------------------------------

@registry.register("rotate", RotateOptions)
def rotate(doc: Document, options: RotateOptions) -> OperationResult:
    """Rotate selected pages by 90, 180 or 270 degrees."""
    pages = resolve_selection(options.pages, doc.page_count)
    absolute = options.mode == "absolute"
    rotations = {p: doc.rotate(p, options.angle, absolute=absolute) for p in pages}

    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_rotated.pdf", doc.save())],
        report={
            "pages_rotated": len(pages),
            "angle": options.angle,
            "mode": options.mode,
            "rotations": rotations,
        },
        message=f"Rotated {len(pages)} page(s)",
    )


# ---------------------------------------------------------------------------
# Organize
# ---------------------------------------------------------------------------

@registry.register("organize", OrganizeOptions)
def organize(doc: Document, options: OrganizeOptions) -> OperationResult:
    """Apply move/delete steps in order, then rebuild the page sequence."""
    order = list(range(1, doc.page_count + 1))
    counts = {"move": 0, "delete": 0}

    for step_no, step in enumerate(options.operations, start=1):
        if step.source_page > len(order):
            raise ValidationError(
                f"Step {step_no}: page {step.source_page} out of range "
                f"({len(order)} page(s) at this point)"
            )
        if step.type == "move" and step.target_page > len(order):
            raise ValidationError(
                f"Step {step_no}: target position {step.target_page} out of range "
                f"({len(order)} page(s) at this point)"
            )
        page = order.pop(step.source_page - 1)
        if step.type == "move":
            order.insert(step.target_page - 1, page)
        counts[step.type] += 1

    if not order:
        raise ValidationError("Cannot delete every page of the document")

    organized = Document.new(name=doc.name)
    organized.copy_pages(doc, order)
    organized.add_metadata(doc.metadata)

    return OperationResult(
        outputs=[OutputFile(f"{stem_of(doc.name)}_organized.pdf", organized.save())],
        report={
            "original_pages": doc.page_count,
            "final_pages": len(order),
            "pages_moved": counts["move"],
            "pages_deleted": counts["delete"],
            "final_order": order,
        },
        message=f"Applied {len(options.operations)} page operation(s)",
    )
