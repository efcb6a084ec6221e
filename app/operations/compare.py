"""Text comparison of two PDFs."""

from __future__ import annotations

import re
from typing import Optional

import structlog

from app.errors import UnsupportedTypeError, ValidationError
from app.operations.registry import InputKind, OperationResult, OutputFile, SourceFile, registry
from app.schemas.options import CompareOptions
from app.services.document import Document
from app.services.naming import output_name, stem_of
from app.services.overlay import render_text_pages

logger = structlog.get_logger(__name__)

_WORD = re.compile(r"\w+")


@registry.register("compare", CompareOptions, inputs=InputKind.MANY)
def compare(sources: list[SourceFile], options: CompareOptions) -> OperationResult:
    """Compare the text of two PDFs and report added and removed words."""
    if len(sources) != 2:
        raise ValidationError("Exactly two PDF files are required for comparison")

    documents = []
    for source in sources:
        if not source.looks_like_pdf():
            raise UnsupportedTypeError(f"'{source.name}' is not a PDF file")
        doc = Document.load(source.content, name=source.name)
        doc.require_pages()
        documents.append(doc)
    first, second = documents

    first_pages = _page_words(first, options.case_sensitive)
    second_pages = _page_words(second, options.case_sensitive)
    first_words = {w for page in first_pages for w in page}
    second_words = {w for page in second_pages for w in page}

    added = sorted(second_words - first_words)
    removed = sorted(first_words - second_words)
    vocabulary = first_words | second_words
    similarity = 100.0
    if vocabulary:
        similarity = round(len(first_words & second_words) / len(vocabulary) * 100, 2)
    changed_pages = [
        n for n in range(1, max(len(first_pages), len(second_pages)) + 1)
        if _page(first_pages, n) != _page(second_pages, n)
    ]

    report = {
        "files": [
            {"name": doc.name, "pages": doc.page_count, "words": sum(len(p) for p in pages)}
            for doc, pages in ((first, first_pages), (second, second_pages))
        ],
        "similarity": similarity,
        "additions": len(added),
        "deletions": len(removed),
        "changed_pages": changed_pages,
    }
    lines = _report_lines(report, added, removed, options.max_listed)
    content = render_text_pages("PDF comparison report", lines)

    default = f"comparison_{stem_of(first.name)}_vs_{stem_of(second.name)}"
    filename = output_name(options.output_name, default=default, extension="pdf")
    logger.info("pdf_compared", similarity=similarity, additions=len(added), deletions=len(removed))
    return OperationResult(
        outputs=[OutputFile(filename, content)],
        report={
            **report,
            "added_words": added[:options.max_listed],
            "removed_words": removed[:options.max_listed],
        },
        message=f"Documents are {similarity}% similar",
    )


def _page_words(doc: Document, case_sensitive: bool) -> list[list[str]]:
    pages = []
    for number in range(1, doc.page_count + 1):
        text = doc.extract_text(number)
        pages.append(_WORD.findall(text if case_sensitive else text.lower()))
    return pages


def _page(pages: list[list[str]], number: int) -> Optional[list[str]]:
    return pages[number - 1] if number <= len(pages) else None


def _report_lines(report: dict, added: list[str], removed: list[str], limit: int) -> list[str]:
    one, two = report["files"]
    lines = [
        f"File 1: {one['name']} ({one['pages']} pages, {one['words']} words)",
        f"File 2: {two['name']} ({two['pages']} pages, {two['words']} words)",
        "",
        f"Similarity: {report['similarity']}%",
        f"Pages that differ: {', '.join(map(str, report['changed_pages'])) or 'none'}",
        "",
        f"Added in file 2 ({len(added)}):",
    ]
    lines += [f"  + {word}" for word in added[:limit]]
    if len(added) > limit:
        lines.append(f"  ... {len(added) - limit} more")
    lines += ["", f"Removed from file 1 ({len(removed)}):"]
    lines += [f"  - {word}" for word in removed[:limit]]
    if len(removed) > limit:
        lines.append(f"  ... {len(removed) - limit} more")
    return lines
