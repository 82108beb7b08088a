"""
Пакетная конвертация PDF -> текст.

Обрабатывает папку с PDF (или один PDF) порциями по `concurrent` документов:
внутри порции документы конвертируются одновременно, следующая порция
стартует только после завершения всей текущей. Так число одновременных
OCR сессий не превышает `concurrent`.

Ошибка документа не прерывает пакет — она попадает в сводку.
По завершении в папку результатов пишется отчёт batch_processing_summary.txt.
"""

import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional

from arabic_ocr.errors import FatalIOError, InvalidInputError, NoDocumentsFoundError
from arabic_ocr.schemas import (
    BatchOptions,
    BatchSettings,
    BatchSummary,
    ConversionOutcome,
    DocumentJob,
    PipelineFailure,
    PipelineOptions,
    PipelineResult,
    PipelineSuccess,
)
from arabic_ocr.services.pipeline import convert_pdf_to_text

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "batch_processing_summary.txt"

Converter = Callable[[Path, PipelineOptions], Awaitable[ConversionOutcome]]


def find_pdf_files(input_path: Path) -> list[Path]:
    """
    Возвращает PDF для обработки.

    Папка — её непосредственные файлы с расширением .pdf (без учёта регистра),
    отсортированные по имени. Один файл .pdf — список из одного элемента.

    Raises:
        InvalidInputError: путь не существует или это не PDF и не папка
    """
    input_path = Path(input_path)

    if input_path.is_dir():
        return sorted(
            (p for p in input_path.iterdir() if p.is_file() and p.suffix.lower() == ".pdf"),
            key=lambda p: p.name,
        )
    if input_path.is_file() and input_path.suffix.lower() == ".pdf":
        return [input_path]

    raise InvalidInputError("Input must be a PDF file or directory containing PDF files")


def build_jobs(pdf_files: list[Path], output_folder: Path) -> list[DocumentJob]:
    """
    Пути результата и временных изображений для каждого PDF.

    Совпадающие без учёта регистра имена (x.pdf и x.PDF) получают суффикс
    _2, _3..., чтобы документы не писали в один файл.
    """
    used: set[str] = set()
    jobs = []
    for pdf in pdf_files:
        base_name = pdf.stem
        n = 1
        while base_name.casefold() in used:
            n += 1
            base_name = f"{pdf.stem}_{n}"
        used.add(base_name.casefold())
        jobs.append(
            DocumentJob(
                source=pdf,
                output_text=output_folder / f"{base_name}_ocr.txt",
                temp_images_folder=output_folder / f"{base_name}_temp_images",
            )
        )
    return jobs


def chunked(items: list, size: int) -> list[list]:
    return [items[i:i + size] for i in range(0, len(items), size)]


async def _run_job(
    job: DocumentJob,
    options: BatchOptions,
    converter: Converter,
    progress: dict,
) -> PipelineResult:
    """Конвертирует один документ; любая ошибка превращается в PipelineFailure."""
    start = time.perf_counter()
    pipeline_options = PipelineOptions(
        output_text=job.output_text,
        temp_images_folder=job.temp_images_folder,
        keep_images=options.keep_images,
        image_format=options.image_format,
        density=options.density,
        quality=options.quality,
        thread_count=options.thread_count,
        language=options.language,
        oem=options.oem,
        psm=options.psm,
    )

    logger.info(f"Обработка: {job.filename}")
    try:
        outcome = await converter(job.source, pipeline_options)
    except Exception as e:
        duration_ms = int((time.perf_counter() - start) * 1000)
        progress["completed"] += 1
        logger.error(
            f"Ошибка {progress['completed']}/{progress['total']}: "
            f"{job.filename} ({duration_ms}ms): {e}"
        )
        return PipelineFailure(input=job.filename, reason=str(e), duration_ms=duration_ms)

    duration_ms = int((time.perf_counter() - start) * 1000)
    progress["completed"] += 1
    logger.info(
        f"Готово {progress['completed']}/{progress['total']}: "
        f"{job.filename} ({duration_ms}ms) -> {outcome.output_path.name}"
    )
    return PipelineSuccess(
        input=job.filename,
        output_path=outcome.output_path,
        page_count=outcome.page_count,
        duration_ms=duration_ms,
    )


def _seconds(ms: int) -> str:
    return f"{ms / 1000:.1f}"


def generate_summary(summary: BatchSummary) -> str:
    """Текстовый отчёт пакетной обработки."""
    total = summary.total_files
    success_rate = f"{summary.succeeded / total * 100:.1f}" if total else "0"
    s = summary.settings

    lines = [
        "BATCH PDF TO TEXT CONVERSION SUMMARY",
        "=====================================",
        "",
        f"Processing Date: {summary.processed_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"Total Files: {total}",
        f"Successful: {summary.succeeded}",
        f"Failed: {summary.failed}",
        f"Success Rate: {success_rate}%",
        f"Total Duration: {_seconds(summary.total_duration_ms)} seconds",
        f"Average per file: {_seconds(summary.average_duration_ms)} seconds",
        "",
        "SETTINGS:",
        "---------",
        f"Language: {s.language}",
        f"Image Format: {s.image_format}",
        f"DPI: {s.density}",
        f"Keep Images: {'Yes' if s.keep_images else 'No'}",
        f"Concurrent: {s.concurrent}",
        "",
    ]

    if summary.successes:
        lines += ["SUCCESSFUL CONVERSIONS:", "----------------------"]
        for idx, result in enumerate(summary.successes, start=1):
            lines += [
                f"{idx}. {result.input}",
                f"   Output: {result.output_path.name}",
                f"   Pages: {result.page_count}",
                f"   Duration: {_seconds(result.duration_ms)}s",
                "",
            ]

    if summary.failures:
        lines += ["FAILED CONVERSIONS:", "------------------"]
        for idx, result in enumerate(summary.failures, start=1):
            lines += [
                f"{idx}. {result.input}",
                f"   Error: {result.reason}",
                f"   Duration: {_seconds(result.duration_ms)}s",
                "",
            ]

    return "\n".join(lines) + "\n"


async def batch_process_pdfs(
    input_path: Path,
    options: Optional[BatchOptions] = None,
    converter: Optional[Converter] = None,
) -> BatchSummary:
    """
    Пакетно конвертирует PDF в текст.

    Args:
        input_path: PDF или папка с PDF
        options: опции пакета (папка результатов, concurrent, рендер, язык)
        converter: конвертер одного документа (по умолчанию convert_pdf_to_text)

    Returns:
        BatchSummary: сводка; её текстовый отчёт уже записан на диск

    Raises:
        InvalidInputError: вход не PDF и не папка
        NoDocumentsFoundError: PDF не найдены
        FatalIOError: нельзя создать папку результатов или записать отчёт
    """
    options = options or BatchOptions()
    converter = converter or convert_pdf_to_text
    output_folder = Path(options.output_folder)

    pdf_files = find_pdf_files(Path(input_path))
    if not pdf_files:
        raise NoDocumentsFoundError("No PDF files found in the specified location")

    try:
        output_folder.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FatalIOError(f"Cannot create output folder {output_folder}: {e}") from e

    jobs = build_jobs(pdf_files, output_folder)

    logger.info("=" * 60)
    logger.info("ПАКЕТНАЯ КОНВЕРТАЦИЯ")
    logger.info(f"   Вход: {input_path}")
    logger.info(f"   Папка результатов: {output_folder}")
    logger.info(f"   Документов: {len(jobs)}, одновременно: {options.concurrent}")
    logger.info(f"   Язык: {options.language}")
    logger.info("=" * 60)
    for idx, job in enumerate(jobs, start=1):
        logger.info(f"   {idx}. {job.filename}")

    progress = {"completed": 0, "total": len(jobs)}
    results: list[PipelineResult] = []

    for chunk in chunked(jobs, options.concurrent):
        chunk_results = await asyncio.gather(
            *(_run_job(job, options, converter, progress) for job in chunk)
        )
        results.extend(chunk_results)

    succeeded = sum(1 for r in results if isinstance(r, PipelineSuccess))
    total_duration_ms = sum(r.duration_ms for r in results)

    summary = BatchSummary(
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=tuple(results),
        settings=BatchSettings(
            language=options.language,
            image_format=options.image_format,
            density=options.density,
            concurrent=options.concurrent,
            keep_images=options.keep_images,
        ),
        total_duration_ms=total_duration_ms,
        average_duration_ms=total_duration_ms // len(results),
        report_path=output_folder / SUMMARY_FILENAME,
        processed_at=datetime.now(),
    )

    try:
        summary.report_path.write_text(generate_summary(summary), encoding="utf-8")
    except OSError as e:
        raise FatalIOError(f"Cannot write summary report {summary.report_path}: {e}") from e

    logger.info("=" * 60)
    logger.info("ПАКЕТ ЗАВЕРШЁН")
    logger.info(f"   Успешно: {summary.succeeded}")
    logger.info(f"   С ошибкой: {summary.failed}")
    logger.info(f"   Отчёт: {summary.report_path}")
    logger.info("=" * 60)

    return summary
