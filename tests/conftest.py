"""Shared fixtures: in-memory PDFs, a temp artifact store and an API client."""

from __future__ import annotations

import base64
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from pypdf import PdfReader, PdfWriter
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from app.config import settings
from app.operations.registry import SourceFile
from app.storage.artifacts import LocalArtifactStore
from app.storage.rate_limit import RateLimiter


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_pdf(pages: int = 1, size=letter, texts=None) -> bytes:
    """PDF with one line of text per page ("Page N" unless ``texts`` given)."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=size)
    for i in range(pages):
        c.setFont("Helvetica", 14)
        c.drawString(72, size[1] - 72, texts[i] if texts else f"Page {i + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


def make_blank_pdf(pages: int = 1, width: float = 612, height: float = 792) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def make_outlined_pdf(pages: int = 3, title: str = "Introduction") -> bytes:
    """PDF with one bookmark pointing at the last page."""
    writer = PdfWriter(clone_from=PdfReader(io.BytesIO(make_pdf(pages))))
    writer.add_outline_item(title, pages - 1)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def make_encrypted_pdf(password: str, pages: int = 2) -> bytes:
    writer = PdfWriter()
    for page in PdfReader(io.BytesIO(make_pdf(pages))).pages:
        writer.add_page(page)
    writer.encrypt(user_password=password, owner_password=password, algorithm="AES-256")
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def make_image(fmt: str = "PNG", size=(200, 100), color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def read_pdf(content: bytes) -> PdfReader:
    return PdfReader(io.BytesIO(content))


def b64(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


def pdf_source(content: bytes, name: str = "doc.pdf") -> SourceFile:
    return SourceFile(name=name, content=content, content_type="application/pdf")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock) -> LocalArtifactStore:
    s = LocalArtifactStore(str(tmp_path), ttl_seconds=7200, clock=clock)
    s.start()
    return s


@pytest.fixture
def client(tmp_path, monkeypatch):
    """API client with storage in tmp_path and no background sweeper."""
    from app.main import create_app

    monkeypatch.setattr(settings, "cleanup_enabled", False)
    monkeypatch.setattr(settings, "public_base_url", "")
    app = create_app(
        store=LocalArtifactStore(str(tmp_path)),
        rate_limiter=RateLimiter(window_seconds=900, max_requests=1000),
    )
    with TestClient(app) as c:
        yield c
