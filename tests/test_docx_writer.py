"""Тесты экспорта в DOCX."""

from docx import Document
from docx.enum.text import WD_PARAGRAPH_ALIGNMENT

from arabic_ocr.services.docx_writer import create_docx_from_text


def test_one_paragraph_per_line(tmp_path):
    path = create_docx_from_text("السطر الأول\nالسطر الثاني", tmp_path / "out" / "r.docx")

    doc = Document(str(path))
    texts = [p.text for p in doc.paragraphs]

    assert texts == ["السطر الأول", "السطر الثاني"]
    assert doc.paragraphs[0].alignment == WD_PARAGRAPH_ALIGNMENT.RIGHT


def test_ltr(tmp_path):
    path = create_docx_from_text("hello", tmp_path / "r.docx", rtl=False)

    doc = Document(str(path))

    assert doc.paragraphs[0].text == "hello"
    assert doc.paragraphs[0].alignment is None
