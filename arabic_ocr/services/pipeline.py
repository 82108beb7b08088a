"""
Пайплайн одного документа: PDF -> изображения -> OCR -> текст.

Этапы:
    1. Split: растеризация страниц во временную папку
    2. OCR: распознавание папки в текстовый файл
    3. Очистка временной папки (если keep_images не задан)

Временная папка помечается маркером .in_progress на время работы,
чтобы очистка диска не удалила её из-под работающего пайплайна.
При ошибке папка остаётся на месте для диагностики.
"""

import logging
import shutil
import time
from pathlib import Path
from typing import Optional

from arabic_ocr.errors import EmptyDocumentError, FatalIOError, SourceNotFoundError
from arabic_ocr.schemas import (
    ConversionOutcome,
    PipelineOptions,
    RasterOptions,
    RecognizeOptions,
)
from arabic_ocr.services.ocr_processor import OCREngine, ocr_images
from arabic_ocr.services.pdf_processor import (
    Rasterizer,
    convert_pdf_to_images,
    default_images_folder,
)

logger = logging.getLogger(__name__)

IN_PROGRESS_MARKER = ".in_progress"


def default_output_text(pdf_path: Path) -> Path:
    return Path(f"{pdf_path.stem}_ocr_results.txt")


def _remove_marker(folder: Path) -> None:
    try:
        (folder / IN_PROGRESS_MARKER).unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"   Не удалось удалить маркер в {folder}: {e}")


def _remove_images_folder(folder: Path) -> None:
    try:
        shutil.rmtree(folder)
        logger.info(f"   Временная папка удалена: {folder}")
    except OSError as e:
        logger.warning(f"   Не удалось удалить временную папку {folder}: {e}")


async def convert_pdf_to_text(
    pdf_path: Path,
    options: Optional[PipelineOptions] = None,
    rasterizer: Optional[Rasterizer] = None,
    engine: Optional[OCREngine] = None,
) -> ConversionOutcome:
    """
    Конвертирует PDF в текстовый файл через растеризацию и OCR.

    Args:
        pdf_path: путь к PDF
        options: опции конвертации
        rasterizer: внешний растеризатор (по умолчанию pdf2image)
        engine: движок OCR (по умолчанию Tesseract)

    Returns:
        ConversionOutcome: путь к тексту, число страниц, длительность

    Raises:
        SourceNotFoundError: PDF не найден
        RasterizationError: растеризатор упал
        EmptyDocumentError: не получено ни одной страницы
        NoImagesFoundError, FatalIOError: ошибки этапа OCR
    """
    start = time.perf_counter()
    pdf_path = Path(pdf_path)
    options = options or PipelineOptions()

    images_folder = options.temp_images_folder or default_images_folder(pdf_path)
    output_text = options.output_text or default_output_text(pdf_path)

    logger.info("=" * 60)
    logger.info("КОНВЕРТАЦИЯ PDF -> TEXT")
    logger.info(f"   Файл: {pdf_path}")
    logger.info(f"   Язык: {options.language}, dpi={options.density}")
    logger.info("=" * 60)

    if not pdf_path.exists():
        raise SourceNotFoundError(f"PDF file not found: {pdf_path}")

    try:
        images_folder.mkdir(parents=True, exist_ok=True)
        (images_folder / IN_PROGRESS_MARKER).touch()
    except OSError as e:
        raise FatalIOError(f"Cannot create images folder {images_folder}: {e}") from e

    try:
        # 1. Split: PDF -> images
        images = await convert_pdf_to_images(
            pdf_path,
            RasterOptions(
                output_folder=images_folder,
                image_format=options.image_format,
                density=options.density,
                quality=options.quality,
                thread_count=options.thread_count,
            ),
            rasterizer=rasterizer,
        )

        if not images:
            raise EmptyDocumentError(f"No pages could be rasterized from {pdf_path.name}")

        # 2. OCR: images -> text
        result_file = await ocr_images(
            images_folder,
            RecognizeOptions(
                output_file=output_text,
                language=options.language,
                oem=options.oem,
                psm=options.psm,
            ),
            engine=engine,
            images=images,
        )
    finally:
        if images_folder.exists():
            _remove_marker(images_folder)

    # 3. Очистка временных изображений
    if not options.keep_images:
        _remove_images_folder(images_folder)
    else:
        logger.info(f"   Изображения сохранены в: {images_folder}")

    duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info(
        f"Готово: {pdf_path.name} -> {result_file} "
        f"({len(images)} страниц, {duration_ms}ms)"
    )

    return ConversionOutcome(
        output_path=result_file,
        page_count=len(images),
        images_folder=images_folder,
        duration_ms=duration_ms,
    )


class DocumentPipeline:
    """
    Конвертация документов с фиксированными растеризатором и движком OCR.

    Удобна там, где внешние компоненты подменяются (тесты, HTTP слой).
    """

    def __init__(
        self,
        rasterizer: Optional[Rasterizer] = None,
        engine: Optional[OCREngine] = None,
    ):
        self.rasterizer = rasterizer
        self.engine = engine

    async def convert(
        self,
        pdf_path: Path,
        options: Optional[PipelineOptions] = None,
    ) -> ConversionOutcome:
        return await convert_pdf_to_text(
            pdf_path,
            options,
            rasterizer=self.rasterizer,
            engine=self.engine,
        )

    async def run(
        self,
        pdf_path: Path,
        options: Optional[PipelineOptions] = None,
    ) -> Path:
        """Возвращает только путь к итоговому текстовому файлу."""
        outcome = await self.convert(pdf_path, options)
        return outcome.output_path
