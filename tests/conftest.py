"""Общие фикстуры: подменные растеризатор и движок OCR, PDF-заглушки."""

import os
import time
from pathlib import Path

import pytest

from arabic_ocr.schemas import FileResult, InlineResult

PDF_BYTES = b"%PDF-1.4\n% test document\n"


class FakeRasterizer:
    """
    Растеризатор без pdftoppm: пишет N файлов под «чужими» именами
    (как pdf2image) или возвращает байты в памяти.

    Args:
        pages: сколько страниц «отрендерить»
        inline: вернуть InlineResult вместо файлов
        missing_pages: номера страниц (с 1), для которых файл не создаётся
        error: исключение, которое бросить вместо рендеринга
    """

    def __init__(self, pages=3, inline=False, missing_pages=(), error=None):
        self.pages = pages
        self.inline = inline
        self.missing_pages = set(missing_pages)
        self.error = error
        self.calls = []

    def rasterize(self, pdf_path, output_folder, image_format, density, quality, base_name):
        self.calls.append(
            {
                "pdf_path": pdf_path,
                "output_folder": output_folder,
                "image_format": image_format,
                "density": density,
                "quality": quality,
            }
        )
        if self.error is not None:
            raise self.error

        results = []
        for n in range(1, self.pages + 1):
            data = f"image {n}".encode()
            if self.inline:
                results.append(InlineResult(data=data))
                continue
            path = Path(output_folder) / f"{base_name}-{n:02d}.{image_format}"
            if n not in self.missing_pages:
                path.write_bytes(data)
            results.append(FileResult(path=path))
        return results


class FakeSession:
    def __init__(self, language, fail_names=()):
        self.language = language
        self.fail_names = set(fail_names)
        self.recognized = []
        self.terminated = False

    def recognize(self, image_path):
        if self.terminated:
            raise RuntimeError("OCR session is terminated")
        self.recognized.append(image_path.name)
        if image_path.name in self.fail_names:
            raise RuntimeError("corrupt image")
        return f"  نص {image_path.stem}  \n"

    def terminate(self):
        self.terminated = True


class FakeEngine:
    """Движок OCR: текст страницы — «نص <имя файла>», сбой для fail_names."""

    def __init__(self, fail_names=()):
        self.fail_names = fail_names
        self.sessions = []

    def start(self, language):
        session = FakeSession(language, self.fail_names)
        self.sessions.append(session)
        return session


def page_text(stem: str) -> str:
    return f"نص {stem}"


def set_age(path: Path, seconds: float, now: float) -> None:
    """Выставляет mtime так, чтобы возраст элемента был `seconds`."""
    ts = now - seconds
    os.utime(path, (ts, ts))


@pytest.fixture
def now() -> float:
    return time.time()


@pytest.fixture
def pdf_file(tmp_path) -> Path:
    path = tmp_path / "document.pdf"
    path.write_bytes(PDF_BYTES)
    return path


@pytest.fixture
def fake_rasterizer() -> FakeRasterizer:
    return FakeRasterizer(pages=3)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()
