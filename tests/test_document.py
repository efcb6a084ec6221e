"""Tests for the pypdf document adapter."""

import pytest

from app.errors import AuthError, CorruptFormatError, ValidationError
from app.services.document import Document

from conftest import make_blank_pdf, make_encrypted_pdf, make_outlined_pdf, make_pdf, read_pdf


class TestLoad:
    def test_loads_pages(self):
        doc = Document.load(make_pdf(3), name="three.pdf")
        assert doc.page_count == 3
        assert doc.name == "three.pdf"
        assert not doc.was_encrypted

    def test_garbage_is_corrupt(self):
        with pytest.raises(CorruptFormatError) as exc_info:
            Document.load(b"this is not a pdf", name="bad.pdf")
        assert "bad.pdf" in exc_info.value.user_message

    def test_encrypted_without_password(self):
        with pytest.raises(AuthError):
            Document.load(make_encrypted_pdf("secret"), name="locked.pdf")

    def test_encrypted_wrong_password(self):
        with pytest.raises(AuthError):
            Document.load(make_encrypted_pdf("secret"), password="nope")

    def test_encrypted_right_password(self):
        doc = Document.load(make_encrypted_pdf("secret", pages=2), password="secret")
        assert doc.page_count == 2
        assert doc.was_encrypted

    def test_records_source_size(self):
        content = make_pdf(1)
        assert Document.load(content).source_size == len(content)

    def test_keeps_outline(self):
        out = read_pdf(Document.load(make_outlined_pdf(3)).save())
        assert [item.title for item in out.outline] == ["Introduction"]
        assert out.get_destination_page_number(out.outline[0]) == 2


class TestPages:
    def test_page_size(self):
        doc = Document.load(make_blank_pdf(1, 300, 400))
        assert doc.page_size(1) == (300, 400)

    def test_out_of_range_page(self):
        doc = Document.load(make_pdf(2))
        with pytest.raises(ValidationError):
            doc.page(3)
        with pytest.raises(ValidationError):
            doc.page(0)

    def test_require_pages_on_empty_document(self):
        with pytest.raises(ValidationError, match="no pages"):
            Document.new().require_pages()

    def test_copy_pages_preserves_order(self):
        source = Document.load(make_pdf(3))
        target = Document.new()
        target.copy_pages(source, [3, 1])
        out = read_pdf(target.save())
        assert len(out.pages) == 2
        assert "Page 3" in out.pages[0].extract_text()
        assert "Page 1" in out.pages[1].extract_text()

    def test_remove_and_insert(self):
        doc = Document.load(make_pdf(3))
        doc.remove_page(2)
        assert doc.page_count == 2
        extra = Document.load(make_pdf(1, texts=["Inserted"]))
        doc.insert_page(1, extra.page(1))
        assert "Inserted" in doc.extract_text(1)
        assert doc.page_count == 3

    def test_insert_position_validated(self):
        doc = Document.load(make_pdf(1))
        with pytest.raises(ValidationError):
            doc.insert_page(5, doc.page(1))


class TestRotate:
    def test_relative_rotation_accumulates(self):
        doc = Document.load(make_pdf(1))
        doc.rotate(1, 90)
        doc.rotate(1, 180)
        assert doc.rotation(1) == 270

    def test_wraps_at_360(self):
        doc = Document.load(make_pdf(1))
        doc.rotate(1, 270)
        assert doc.rotate(1, 180) == 90

    def test_absolute_rotation(self):
        doc = Document.load(make_pdf(1))
        doc.rotate(1, 90)
        assert doc.rotate(1, 180, absolute=True) == 180

    def test_rejects_non_right_angles(self):
        doc = Document.load(make_pdf(1))
        with pytest.raises(ValidationError):
            doc.rotate(1, 45)

    def test_rotation_survives_save(self):
        doc = Document.load(make_pdf(1))
        doc.rotate(1, 90)
        assert read_pdf(doc.save()).pages[0].rotation == 90


class TestSave:
    def test_strip_metadata(self):
        doc = Document.load(make_pdf(1))
        doc.add_metadata({"/Title": "Quarterly report"})
        assert read_pdf(doc.save()).metadata.title == "Quarterly report"

        doc = Document.load(make_pdf(1))
        doc.add_metadata({"/Title": "Quarterly report"})
        stripped = read_pdf(doc.save(strip_metadata=True))
        assert stripped.metadata is None or stripped.metadata.title is None

    def test_strip_metadata_keeps_outline(self):
        out = read_pdf(Document.load(make_outlined_pdf(2)).save(compact=True, strip_metadata=True))
        assert [item.title for item in out.outline] == ["Introduction"]

    def test_compact_drops_removed_pages(self):
        def trimmed(compact):
            doc = Document.load(make_pdf(5))
            for _ in range(4):
                doc.remove_page(2)
            return doc.save(compact=compact)

        compacted = trimmed(True)
        assert len(read_pdf(compacted).pages) == 1
        assert len(compacted) < len(trimmed(False))

    def test_encrypt(self):
        doc = Document.load(make_pdf(1))
        out = read_pdf(doc.save(encrypt={"user_password": "abcd", "algorithm": "AES-256"}))
        assert out.is_encrypted
        assert out.decrypt("abcd") != 0
