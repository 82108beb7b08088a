"""
Сервисы Arabic OCR.

Модули:
    - pdf_processor: разбиение PDF на изображения страниц
    - ocr_processor: распознавание папки изображений (Tesseract)
    - pipeline: конвертация одного документа PDF -> текст
    - batch_processor: пакетная конвертация с ограничением параллельности
    - file_cleaner: очистка старых файлов по политике хранения
    - result_store: хранилище результатов для скачивания (TTL)
    - docx_writer: экспорт текста в DOCX
"""

from arabic_ocr.services.batch_processor import batch_process_pdfs
from arabic_ocr.services.file_cleaner import FileCleaner
from arabic_ocr.services.ocr_processor import ocr_images
from arabic_ocr.services.pdf_processor import convert_pdf_to_images
from arabic_ocr.services.pipeline import DocumentPipeline, convert_pdf_to_text

__all__ = [
    "convert_pdf_to_images",
    "ocr_images",
    "convert_pdf_to_text",
    "DocumentPipeline",
    "batch_process_pdfs",
    "FileCleaner",
]
