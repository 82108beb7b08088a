"""
Процессор OCR — распознавание папки с изображениями страниц.

Содержит:
    - Сессию Tesseract (одна сессия на документ, не на страницу)
    - Функцию ocr_images: обход страниц, подстановку маркера ошибки
      для нераспознанных страниц и сборку итогового текста

Порядок страниц:
    - Файлы сортируются лексически (page_001, page_002, ...)
    - Сборка текста всегда идёт по возрастанию номера страницы,
      независимо от порядка завершения распознавания
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Protocol

import pytesseract
from PIL import Image
from starlette.concurrency import run_in_threadpool

from arabic_ocr.errors import (
    FatalIOError,
    NoImagesFoundError,
    PageProcessingError,
    SourceNotFoundError,
)
from arabic_ocr.schemas import PageText, RecognizeOptions

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".tiff", ".bmp"}
ERROR_MARKER = "[ERROR: Could not process this page - {message}]"


class OCRSession(Protocol):
    def recognize(self, image_path: Path) -> str: ...

    def terminate(self) -> None: ...


class OCREngine(Protocol):
    def start(self, language: str) -> OCRSession: ...


class TesseractSession:
    """
    Сессия Tesseract для одного документа.

    Tesseract запускается на каждый вызов image_to_string, поэтому сессия
    хранит язык и конфиг и следит, чтобы после terminate() её не использовали.
    """

    def __init__(self, language: str, oem: int = 3, psm: int = 3):
        self.language = language
        self.config = f"--oem {oem} --psm {psm}"
        self.closed = False

    def recognize(self, image_path: Path) -> str:
        if self.closed:
            raise RuntimeError("OCR session is terminated")
        with Image.open(image_path) as image:
            return pytesseract.image_to_string(
                image,
                lang=self.language,
                config=self.config,
            )

    def terminate(self) -> None:
        self.closed = True


class TesseractEngine:
    """
    Движок OCR на pytesseract.

    При старте сессии проверяет, что все запрошенные языки установлены
    (например "ara+eng" требует ara.traineddata и eng.traineddata).
    """

    def __init__(self, oem: int = 3, psm: int = 3):
        self.oem = oem
        self.psm = psm

    def start(self, language: str) -> TesseractSession:
        available = set(pytesseract.get_languages(config=""))
        missing = [lang for lang in language.split("+") if lang not in available]
        if missing:
            raise RuntimeError(
                f"Tesseract language data not installed: {', '.join(missing)}"
            )
        return TesseractSession(language, oem=self.oem, psm=self.psm)


@asynccontextmanager
async def ocr_session(engine: OCREngine, language: str) -> AsyncIterator[OCRSession]:
    """Открывает сессию OCR и гарантированно закрывает её на любом выходе."""
    logger.info(f"Инициализация OCR сессии: язык={language}")
    session = await run_in_threadpool(engine.start, language)
    try:
        yield session
    finally:
        await run_in_threadpool(session.terminate)
        logger.info("OCR сессия закрыта")


def list_page_images(images_folder: Path, page_prefix: str = "page_") -> list[Path]:
    """
    Возвращает изображения страниц в порядке номеров.

    Фильтрует по расширению и префиксу, сортирует лексически —
    нулевое дополнение имён (page_001) даёт числовой порядок.
    """
    files = [
        p
        for p in images_folder.iterdir()
        if p.is_file()
        and p.suffix.lower() in IMAGE_EXTENSIONS
        and p.name.startswith(page_prefix)
    ]
    return sorted(files, key=lambda p: p.name)


def error_marker(message: str) -> str:
    return ERROR_MARKER.format(message=message)


def assemble_text(pages: list[PageText], page_separator: str) -> str:
    """
    Собирает итоговый текст: разделитель с номером страницы + текст + перенос.

    Страницы сортируются по номеру перед сборкой.
    """
    blocks = []
    for page in sorted(pages, key=lambda p: p.page_number):
        separator = page_separator.replace("{pageNumber}", str(page.page_number))
        blocks.append(separator + page.text + "\n")
    return "".join(blocks)


async def recognize_page(
    session: OCRSession,
    page_number: int,
    image_path: Path,
) -> PageText:
    """
    Распознаёт одну страницу. Ошибка не пробрасывается — вместо текста
    подставляется маркер ошибки.
    """
    try:
        text = await run_in_threadpool(session.recognize, image_path)
    except Exception as e:
        error = PageProcessingError(page_number, str(e))
        logger.warning(f"   Ошибка OCR {image_path.name}: {error}")
        return PageText(
            page_number=page_number,
            image_path=image_path,
            text=error_marker(error.message),
            error=error.message,
        )

    return PageText(
        page_number=page_number,
        image_path=image_path,
        text=(text or "").strip(),
    )


async def ocr_images(
    images_folder: Path,
    options: Optional[RecognizeOptions] = None,
    engine: Optional[OCREngine] = None,
    images: Optional[list[Path]] = None,
) -> Path:
    """
    Распознаёт все страницы папки и записывает текст в файл.

    Одна сессия OCR на всю папку. Страница с ошибкой не прерывает
    документ: вместо её текста пишется маркер
    [ERROR: Could not process this page - <сообщение>].

    Args:
        images_folder: папка с page_NNN.<ext>
        options: опции OCR (язык, префикс, разделитель, выходной файл)
        engine: движок OCR (по умолчанию Tesseract)
        images: страницы в порядке номеров; если заданы, папка не сканируется
            (файлы прошлых запусков в той же папке не попадут в текст)

    Returns:
        Path: путь к записанному текстовому файлу

    Raises:
        SourceNotFoundError: папка не существует
        NoImagesFoundError: в папке нет подходящих изображений
        FatalIOError: не удалось записать результат
    """
    images_folder = Path(images_folder)
    options = options or RecognizeOptions()
    engine = engine or TesseractEngine(oem=options.oem, psm=options.psm)

    if not images_folder.is_dir():
        raise SourceNotFoundError(f"Images folder not found: {images_folder}")

    if images is None:
        files = await run_in_threadpool(list_page_images, images_folder, options.page_prefix)
    else:
        files = list(images)
    if not files:
        raise NoImagesFoundError(f"No image files found in {images_folder}")

    total = len(files)
    logger.info(f"OCR: {total} страниц в {images_folder}, язык={options.language}")

    pages: list[PageText] = []
    async with ocr_session(engine, options.language) as session:
        for idx, image_path in enumerate(files):
            page_number = idx + 1
            logger.info(f"   Страница {page_number}/{total}: {image_path.name}")
            pages.append(await recognize_page(session, page_number, image_path))

    failed = sum(1 for p in pages if p.error)
    text = assemble_text(pages, options.page_separator)

    output_file = Path(options.output_file)
    try:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        await run_in_threadpool(output_file.write_text, text, encoding="utf-8")
    except OSError as e:
        raise FatalIOError(f"Cannot write OCR results to {output_file}: {e}") from e

    logger.info(
        f"OCR завершён: {total} страниц, ошибок {failed}, результат: {output_file}"
    )
    return output_file
