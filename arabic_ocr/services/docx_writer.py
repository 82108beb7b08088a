"""Экспорт распознанного текста в DOCX (python-docx)."""

import logging
from pathlib import Path

from docx import Document
from docx.enum.text import WD_PARAGRAPH_ALIGNMENT
from docx.shared import Pt

logger = logging.getLogger(__name__)


def create_docx_from_text(
    text: str,
    output_path: Path,
    font_name: str = "Arial",
    font_size: int = 12,
    rtl: bool = True,
) -> Path:
    """
    Записывает текст в DOCX: одна строка текста — один абзац.

    Для арабского (rtl=True) абзацы выравниваются по правому краю.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    doc = Document()
    for line in text.split("\n"):
        para = doc.add_paragraph()
        run = para.add_run(line)
        run.font.name = font_name
        run.font.size = Pt(font_size)
        if rtl:
            para.alignment = WD_PARAGRAPH_ALIGNMENT.RIGHT

    doc.save(str(output_path))
    logger.info(f"Сохранён DOCX: {output_path}")
    return output_path
