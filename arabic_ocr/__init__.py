"""
Arabic OCR Service — конвертация PDF в арабский (и любой другой) текст.

Состав:
    - Пайплайн: PDF -> images (pdf2image) -> OCR (Tesseract) -> текст
    - Пакетная обработка папок с ограничением параллельности
    - Очистка диска по политике хранения (uploads, output, temp, logs)
    - FastAPI приложение: загрузка PDF, скачивание txt/docx
    - CLI утилиты: pdf-to-images, ocr-images, pdf-to-text,
      batch-pdf-to-text, file-cleaner
"""

from arabic_ocr.schemas import (
    BatchOptions,
    BatchSummary,
    CleanupStats,
    PipelineOptions,
    RetentionPolicy,
)

__version__ = "1.0.0"

__all__ = [
    "BatchOptions",
    "BatchSummary",
    "CleanupStats",
    "PipelineOptions",
    "RetentionPolicy",
]
