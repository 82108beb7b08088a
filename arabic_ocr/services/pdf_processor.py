"""
Процессор разбиения PDF на изображения страниц.

Использует pdf2image (pdftoppm) для рендеринга страниц. Растеризатор
сохраняет файлы под своими именами (page0001-1.png и т.п.), задача
процессора — переименовать их в детерминированные page_001.png, page_002.png...
и сообщить, какие страницы удалось сохранить.

Растеризатор может вернуть результат в двух формах:
    - FileResult: файл уже лежит на диске, его нужно переместить
    - InlineResult: закодированное изображение, его нужно записать
"""

import io
import logging
from pathlib import Path
from typing import Optional, Protocol

from pdf2image import convert_from_path
from starlette.concurrency import run_in_threadpool

from arabic_ocr.errors import FatalIOError, RasterizationError, SourceNotFoundError
from arabic_ocr.schemas import FileResult, InlineResult, RasterOptions, RasterResult

logger = logging.getLogger(__name__)

# Базовое имя файлов, которые пишет сам растеризатор
RASTER_BASE_NAME = "page"


class Rasterizer(Protocol):
    """Внешний растеризатор: один PDF -> N изображений в порядке страниц."""

    def rasterize(
        self,
        pdf_path: Path,
        output_folder: Path,
        image_format: str,
        density: int,
        quality: int,
        base_name: str,
    ) -> list[RasterResult]: ...


class Pdf2ImageRasterizer:
    """
    Растеризатор на pdf2image (pdftoppm).

    Args:
        thread_count: количество потоков pdftoppm
        in_memory: вернуть закодированные изображения (InlineResult)
            вместо файлов в output_folder
    """

    def __init__(self, thread_count: int = 1, in_memory: bool = False):
        self.thread_count = thread_count
        self.in_memory = in_memory

    def rasterize(
        self,
        pdf_path: Path,
        output_folder: Path,
        image_format: str,
        density: int,
        quality: int,
        base_name: str,
    ) -> list[RasterResult]:
        fmt = "jpeg" if image_format == "jpg" else image_format
        jpegopt = None
        if fmt == "jpeg":
            jpegopt = {"quality": quality, "progressive": False, "optimize": False}

        if self.in_memory:
            images = convert_from_path(
                str(pdf_path),
                dpi=density,
                fmt=fmt,
                jpegopt=jpegopt,
                thread_count=self.thread_count,
            )
            results: list[RasterResult] = []
            for img in images:
                with io.BytesIO() as buf:
                    img.save(buf, format=fmt.upper(), quality=quality)
                    results.append(InlineResult(data=buf.getvalue()))
            return results

        paths = convert_from_path(
            str(pdf_path),
            dpi=density,
            fmt=fmt,
            jpegopt=jpegopt,
            thread_count=self.thread_count,
            output_folder=str(output_folder),
            output_file=base_name,
            paths_only=True,
        )
        return [FileResult(path=Path(p)) for p in paths]


def page_image_name(page_number: int, image_format: str) -> str:
    """Детерминированное имя файла страницы: page_001.png."""
    return f"page_{page_number:03d}.{image_format.lower()}"


def default_images_folder(pdf_path: Path) -> Path:
    return Path(f"{pdf_path.stem}_images")


def persist_raster_result(
    result: RasterResult,
    target: Path,
) -> Optional[Path]:
    """
    Приводит результат растеризатора к каноническому файлу страницы.

    Args:
        result: FileResult или InlineResult
        target: итоговый путь (page_NNN.fmt)

    Returns:
        Path итогового файла или None, если страницу сохранить не удалось
    """
    if isinstance(result, FileResult):
        if not result.path.exists():
            logger.warning(f"   Файл страницы не найден: {result.path}")
            return None
        if result.path.resolve() != target.resolve():
            try:
                result.path.replace(target)
            except OSError as e:
                logger.warning(
                    f"   Не удалось переименовать {result.path.name} -> {target.name}: {e}"
                )
                return None
            logger.debug(f"   Переименован: {result.path.name} -> {target.name}")
        return target

    try:
        target.write_bytes(result.data)
    except OSError as e:
        logger.error(f"   Не удалось записать {target.name}: {e}")
        return None
    logger.debug(f"   Записан из памяти: {target.name}")
    return target


async def convert_pdf_to_images(
    pdf_path: Path,
    options: Optional[RasterOptions] = None,
    rasterizer: Optional[Rasterizer] = None,
) -> list[Path]:
    """
    Разбивает PDF на изображения страниц с именами page_NNN.<format>.

    Вызов растеризатора блокирующий, поэтому выполняется в пуле потоков.

    Args:
        pdf_path: путь к PDF
        options: опции растеризации
        rasterizer: внешний растеризатор (по умолчанию pdf2image)

    Returns:
        list[Path]: сохранённые страницы в порядке номеров.
            Может быть короче числа страниц, если часть не сохранилась.

    Raises:
        SourceNotFoundError: PDF не существует
        FatalIOError: нельзя создать папку вывода
        RasterizationError: растеризатор упал
    """
    pdf_path = Path(pdf_path)
    options = options or RasterOptions()
    rasterizer = rasterizer or Pdf2ImageRasterizer(thread_count=options.thread_count)

    if not pdf_path.exists():
        raise SourceNotFoundError(f"PDF file not found: {pdf_path}")

    output_folder = options.output_folder or default_images_folder(pdf_path)
    try:
        output_folder.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FatalIOError(f"Cannot create output folder {output_folder}: {e}") from e

    logger.info(f"Разбиение PDF: {pdf_path.name}")
    logger.info(f"   Папка: {output_folder}")
    logger.info(f"   Формат: {options.image_format.upper()}, dpi={options.density}")

    try:
        results = await run_in_threadpool(
            rasterizer.rasterize,
            pdf_path,
            output_folder,
            options.image_format,
            options.density,
            options.quality,
            RASTER_BASE_NAME,
        )
    except Exception as e:
        raise RasterizationError(f"Rasterization failed for {pdf_path.name}: {e}") from e

    total_pages = len(results)
    saved: list[Path] = []

    for idx, result in enumerate(results):
        page_number = idx + 1
        target = output_folder / page_image_name(page_number, options.image_format)
        path = await run_in_threadpool(persist_raster_result, result, target)
        if path is None:
            logger.warning(f"   Пропущена страница {page_number}/{total_pages}")
            continue
        saved.append(path)

    logger.info(f"Разбиение завершено: {len(saved)}/{total_pages} страниц")
    return saved
