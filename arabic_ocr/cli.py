"""
CLI утилиты Arabic OCR Service.

Команды (каждая доступна и как отдельный console script, и как
подкоманда группы `arabic-ocr`):
    pdf-to-images      PDF -> изображения страниц
    ocr-images         папка изображений -> текст
    pdf-to-text        PDF -> текст (split + OCR + очистка)
    batch-pdf-to-text  пакетная конвертация папки с PDF
    file-cleaner       очистка старых файлов / отчёт об использовании диска

Код возврата: 0 — успех, 1 — фатальная ошибка (сообщение в stderr).
"""

import asyncio
import logging
import sys
from pathlib import Path

import click

from arabic_ocr import __version__
from arabic_ocr.config import configure_logging, settings
from arabic_ocr.schemas import DEFAULT_PAGE_SEPARATOR, IMAGE_FORMATS, RasterOptions, RecognizeOptions
from arabic_ocr.services.batch_processor import batch_process_pdfs
from arabic_ocr.services.file_cleaner import FileCleaner, format_cleanup_summary
from arabic_ocr.services.ocr_processor import ocr_images
from arabic_ocr.services.pdf_processor import convert_pdf_to_images, default_images_folder
from arabic_ocr.services.pipeline import convert_pdf_to_text

FORMAT_CHOICE = click.Choice(IMAGE_FORMATS, case_sensitive=False)


def _fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


@click.command("pdf-to-images")
@click.argument("pdf_path", type=click.Path(path_type=Path))
@click.option("-o", "--output", "output", type=click.Path(path_type=Path), default=None,
              help="Папка для изображений (по умолчанию <имя_pdf>_images)")
@click.option("-f", "--format", "image_format", type=FORMAT_CHOICE, default="png", show_default=True,
              help="Формат изображений")
@click.option("-d", "--density", type=click.IntRange(72, 600), default=300, show_default=True,
              help="DPI рендеринга")
@click.option("-q", "--quality", type=click.IntRange(1, 100), default=100, show_default=True,
              help="Качество JPEG 1-100")
def pdf_to_images(pdf_path: Path, output, image_format: str, density: int, quality: int) -> None:
    """Конвертирует страницы PDF в изображения page_001.<format>, page_002..."""
    configure_logging()
    try:
        images = asyncio.run(
            convert_pdf_to_images(
                pdf_path,
                RasterOptions(
                    output_folder=output,
                    image_format=image_format,
                    density=density,
                    quality=quality,
                    thread_count=settings.render_thread_count,
                ),
            )
        )
    except Exception as e:
        _fail(e)

    folder = output or default_images_folder(pdf_path)
    click.echo(f"Conversion completed! {len(images)} pages saved to '{folder}'")


@click.command("ocr-images")
@click.argument("images_folder", type=click.Path(path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), default=Path("ocr_results.txt"),
              show_default=True, help="Итоговый текстовый файл")
@click.option("-l", "--language", default="ara", show_default=True,
              help="Язык Tesseract (ara — арабский)")
@click.option("-p", "--prefix", default="page_", show_default=True,
              help="Префикс файлов страниц")
@click.option("-s", "--separator", default=DEFAULT_PAGE_SEPARATOR,
              help="Шаблон разделителя страниц, {pageNumber} — номер страницы")
def ocr_images_command(images_folder: Path, output: Path, language: str, prefix: str, separator: str) -> None:
    """Распознаёт изображения страниц и сохраняет текст в файл."""
    configure_logging()
    try:
        result = asyncio.run(
            ocr_images(
                images_folder,
                RecognizeOptions(
                    output_file=output,
                    language=language,
                    page_prefix=prefix,
                    page_separator=separator,
                    oem=settings.ocr_oem,
                    psm=settings.ocr_psm,
                ),
            )
        )
    except Exception as e:
        _fail(e)

    click.echo(f"OCR completed! Results saved to '{result}'")


@click.command("pdf-to-text")
@click.argument("pdf_file", type=click.Path(path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), default=None,
              help="Итоговый текстовый файл (по умолчанию <имя_pdf>_ocr_results.txt)")
@click.option("-i", "--images-folder", type=click.Path(path_type=Path), default=None,
              help="Временная папка изображений (по умолчанию <имя_pdf>_images)")
@click.option("-k", "--keep-images", is_flag=True, default=False,
              help="Не удалять изображения после OCR")
@click.option("-f", "--format", "image_format", type=FORMAT_CHOICE, default="png", show_default=True,
              help="Формат изображений")
@click.option("-d", "--density", type=click.IntRange(72, 600), default=300, show_default=True,
              help="DPI рендеринга")
@click.option("-l", "--language", default="ara", show_default=True,
              help="Язык Tesseract (ara — арабский)")
def pdf_to_text(pdf_file: Path, output, images_folder, keep_images: bool,
                image_format: str, density: int, language: str) -> None:
    """Конвертирует PDF в текст: растеризация + OCR + очистка временных файлов."""
    configure_logging()
    try:
        outcome = asyncio.run(
            convert_pdf_to_text(
                pdf_file,
                settings.pipeline_options(
                    output_text=output,
                    temp_images_folder=images_folder,
                    keep_images=keep_images,
                    image_format=image_format,
                    density=density,
                    language=language,
                ),
            )
        )
    except Exception as e:
        _fail(e)

    click.echo("SUCCESS! PDF converted to text:")
    click.echo(f"  Input PDF: {pdf_file}")
    click.echo(f"  Output text: {outcome.output_path}")
    click.echo(f"  Pages processed: {outcome.page_count}")


@click.command("batch-pdf-to-text")
@click.argument("input_path", metavar="INPUT", type=click.Path(path_type=Path))
@click.option("-O", "--output-folder", type=click.Path(path_type=Path),
              default=Path("batch_ocr_results"), show_default=True,
              help="Папка для результатов и отчёта")
@click.option("-K", "--keep-images", is_flag=True, default=False,
              help="Не удалять изображения после OCR")
@click.option("-F", "--format", "image_format", type=FORMAT_CHOICE, default="png", show_default=True,
              help="Формат изображений")
@click.option("-D", "--density", type=click.IntRange(72, 600), default=300, show_default=True,
              help="DPI рендеринга")
@click.option("-L", "--language", default="ara", show_default=True,
              help="Язык Tesseract (ara — арабский)")
@click.option("-C", "--concurrent", type=click.IntRange(min=1), default=1, show_default=True,
              help="Сколько документов обрабатывать одновременно")
def batch_pdf_to_text(input_path: Path, output_folder: Path, keep_images: bool,
                      image_format: str, density: int, language: str, concurrent: int) -> None:
    """Пакетно конвертирует PDF файл или папку с PDF в текст."""
    configure_logging()
    try:
        summary = asyncio.run(
            batch_process_pdfs(
                input_path,
                settings.batch_options(
                    output_folder=output_folder,
                    keep_images=keep_images,
                    image_format=image_format,
                    density=density,
                    language=language,
                    concurrent=concurrent,
                ),
            )
        )
    except Exception as e:
        _fail(e)

    click.echo("Batch processing completed!")
    click.echo(f"  Successful: {summary.succeeded}")
    click.echo(f"  Failed: {summary.failed}")
    click.echo(f"  Output folder: {output_folder}")
    click.echo(f"  Summary report: {summary.report_path.name}")

    for result in summary.successes:
        click.echo(f"  + {result.input} -> {result.output_path.name}")
    for result in summary.failures:
        click.echo(f"  - {result.input}: {result.reason}")


@click.command("file-cleaner")
@click.option("-u", "--uploads-retention", type=click.FloatRange(min=0),
              default=settings.uploads_retention_days, show_default=True,
              help="Срок хранения uploads, дни")
@click.option("-o", "--output-retention", type=click.FloatRange(min=0),
              default=settings.output_retention_days, show_default=True,
              help="Срок хранения output, дни")
@click.option("-t", "--temp-retention", type=click.FloatRange(min=0),
              default=settings.temp_retention_hours, show_default=True,
              help="Срок хранения temp, часы")
@click.option("-l", "--logs-retention", type=click.FloatRange(min=0),
              default=settings.logs_retention_days, show_default=True,
              help="Срок хранения logs, дни")
@click.option("-d", "--dry-run", is_flag=True, default=False,
              help="Показать, что будет удалено, ничего не удаляя")
@click.option("-v", "--verbose", is_flag=True, default=False,
              help="Подробный лог")
@click.option("-r", "--report", is_flag=True, default=False,
              help="Только отчёт об использовании диска")
@click.option("--base-dir", type=click.Path(path_type=Path), default=settings.base_dir,
              show_default=True, help="Корень с папками uploads/, output/, temp/, logs/")
def file_cleaner(uploads_retention: float, output_retention: float, temp_retention: float,
                 logs_retention: float, dry_run: bool, verbose: bool, report: bool,
                 base_dir: Path) -> None:
    """Удаляет старые файлы из рабочих папок сервиса."""
    configure_logging(logging.INFO if verbose else logging.WARNING)

    cleaner = FileCleaner(
        settings.retention_policy(
            dry_run=dry_run,
            uploads_retention_days=uploads_retention,
            output_retention_days=output_retention,
            temp_retention_hours=temp_retention,
            logs_retention_days=logs_retention,
        ),
        base_dir=base_dir,
    )

    try:
        if report:
            click.echo(asyncio.run(cleaner.report_disk_usage()))
            return
        stats = asyncio.run(cleaner.run_cleanup())
    except Exception as e:
        click.echo(f"Cleanup failed: {e}", err=True)
        sys.exit(1)

    click.echo(format_cleanup_summary(stats))


@click.group("arabic-ocr")
@click.version_option(__version__)
def cli() -> None:
    """Arabic OCR: конвертация PDF в текст и обслуживание рабочих папок."""


cli.add_command(pdf_to_images)
cli.add_command(ocr_images_command)
cli.add_command(pdf_to_text)
cli.add_command(batch_pdf_to_text)
cli.add_command(file_cleaner)


if __name__ == "__main__":
    cli()
