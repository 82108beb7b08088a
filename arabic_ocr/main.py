"""
Arabic OCR Service — FastAPI приложение.

Эндпоинты:
    POST /upload — загрузка PDF и распознавание текста
    GET  /download/{session_id}/{format} — скачивание результата (txt, docx)
    GET  /health — проверка работоспособности (Tesseract + хранилище)
    POST /cleanup — ручная очистка старых файлов
    GET  /disk-usage — размер рабочих папок

Фоновые задачи (lifespan):
    - удаление просроченных результатов из хранилища
    - автоочистка диска (если ARABIC_OCR_AUTO_CLEANUP_ENABLED=true)

Запуск:
    uvicorn arabic_ocr.main:app --host 0.0.0.0 --port 3000
"""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from arabic_ocr import __version__
from arabic_ocr.config import configure_logging, settings
from arabic_ocr.schemas import (
    CleanupRequest,
    CleanupResponse,
    CleanupStatsModel,
    DiskUsageModel,
    DiskUsageResponse,
    UploadResponse,
)
from arabic_ocr.services.docx_writer import create_docx_from_text
from arabic_ocr.services.file_cleaner import FileCleaner
from arabic_ocr.services.pipeline import DocumentPipeline
from arabic_ocr.services.result_store import ResultStore, remove_files

# Настройка логгера
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 500


class UnicodeJSONResponse(JSONResponse):
    """JSON ответ с нормальным отображением арабского текста (без \\uXXXX экранирования)."""

    def render(self, content) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
        ).encode("utf-8")


# =============================================================================
# Фоновые задачи
# =============================================================================


async def sweep_expired_results(store: ResultStore) -> int:
    """
    Один проход очистки хранилища результатов.

    Записи убираются в event loop (там же работают put/get),
    в пул потоков уходит только удаление файлов.
    """
    expired = store.pop_expired()
    files = [path for result in expired for path in result.files]
    if files:
        await run_in_threadpool(remove_files, files)
    return len(expired)


async def _sweep_results(store: ResultStore, interval_seconds: float) -> None:
    """Периодически удаляет просроченные результаты и их файлы."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await sweep_expired_results(store)
        except Exception as e:
            logger.exception(f"Очистка просроченных результатов не удалась: {e}")


async def _auto_cleanup(initial_delay_seconds: float, interval_hours: float) -> None:
    """Первая очистка после задержки, затем каждые interval_hours часов."""
    await asyncio.sleep(initial_delay_seconds)
    while True:
        try:
            logger.info("Плановая очистка диска")
            cleaner = FileCleaner(settings.retention_policy(), base_dir=settings.base_dir)
            await cleaner.run_cleanup()
        except Exception as e:
            logger.exception(f"Плановая очистка не удалась: {e}")
        await asyncio.sleep(interval_hours * 60 * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    for directory in (settings.uploads_dir, settings.temp_dir, settings.output_dir):
        directory.mkdir(parents=True, exist_ok=True)

    store = ResultStore(ttl_seconds=settings.result_ttl_seconds)
    app.state.result_store = store

    tasks = [
        asyncio.create_task(_sweep_results(store, settings.result_sweep_interval_seconds))
    ]
    if settings.auto_cleanup_enabled:
        tasks.append(
            asyncio.create_task(
                _auto_cleanup(
                    settings.auto_cleanup_initial_delay_seconds,
                    settings.auto_cleanup_interval_hours,
                )
            )
        )
        logger.info(
            f"Автоочистка включена: каждые {settings.auto_cleanup_interval_hours:g} ч."
        )

    logger.info(f"Arabic OCR Service запущен, корень: {settings.base_dir.resolve()}")
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


# FastAPI приложение
app = FastAPI(
    title="Arabic OCR Service",
    description="Распознавание арабского текста из PDF документов (Tesseract OCR)",
    version=__version__,
    default_response_class=UnicodeJSONResponse,
    lifespan=lifespan,
)

# Rate limiting по IP для всех эндпоинтов, лимит читается из настроек на каждый запрос
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[lambda: settings.rate_limit],
    enabled=settings.rate_limit_enabled,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "style-src 'self' 'unsafe-inline'",
        "script-src 'self'",
        "img-src 'self' data:",
        "connect-src 'self'",
        "font-src 'self'",
        "object-src 'none'",
        "media-src 'self'",
        "frame-src 'none'",
    ]
)

SECURITY_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


@app.middleware("http")
async def security_headers(request: Request, call_next):
    """Заголовки безопасности на каждый ответ (заданные эндпоинтом не перезаписываются)."""
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


# =============================================================================
# Зависимости
# =============================================================================


def get_pipeline() -> DocumentPipeline:
    return DocumentPipeline()


def get_result_store(request: Request) -> ResultStore:
    return request.app.state.result_store


# =============================================================================
# Эндпоинты
# =============================================================================


@app.get("/health")
async def health_check(store: ResultStore = Depends(get_result_store)) -> dict:
    """
    Проверка работоспособности сервиса.

    Returns:
        dict: статус, доступность Tesseract, статистика хранилища
    """
    tesseract_ok = False
    try:
        import pytesseract
        tesseract_version = pytesseract.get_tesseract_version().public
        tesseract_ok = True
    except Exception as e:
        tesseract_version = f"error: {e}"

    return {
        "status": "OK",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
        "tesseract": {
            "available": tesseract_ok,
            "version": tesseract_version,
        },
        "results": store.stats(),
    }


@app.post("/upload", response_model=UploadResponse)
async def upload_pdf(
    pdf: UploadFile = File(..., description="PDF файл для распознавания"),
    language: Optional[str] = Form(default=None, description="Язык Tesseract: ara, ara+eng"),
    pipeline: DocumentPipeline = Depends(get_pipeline),
    store: ResultStore = Depends(get_result_store),
) -> UploadResponse:
    """
    Принимает PDF, распознаёт текст и сохраняет результат для скачивания.

    Returns:
        UploadResponse: UUID сессии для /download и превью текста

    Raises:
        HTTPException: 400/413 при ошибках валидации, 500 при ошибке обработки
    """
    file_bytes = await _validate_and_read_file(pdf)
    original_filename = pdf.filename or "document.pdf"

    stored_name = f"{uuid.uuid4()}-{Path(original_filename).name}"
    pdf_path = settings.uploads_dir / stored_name
    await run_in_threadpool(pdf_path.write_bytes, file_bytes)

    filename = Path(stored_name).stem
    temp_images_folder = settings.temp_dir / f"{filename}_images"
    output_text = settings.output_dir / f"{filename}_ocr.txt"
    files_to_cleanup = [pdf_path, temp_images_folder]

    logger.info(f"Получен файл: {original_filename} ({len(file_bytes)} байт)")

    try:
        outcome = await pipeline.convert(
            pdf_path,
            settings.pipeline_options(
                output_text=output_text,
                temp_images_folder=temp_images_folder,
                keep_images=False,
                language=language,
            ),
        )
        ocr_text = await run_in_threadpool(outcome.output_path.read_text, encoding="utf-8")
    except Exception as e:
        logger.exception(f"Ошибка обработки PDF {original_filename}: {e}")
        await run_in_threadpool(remove_files, files_to_cleanup + [output_text])
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to process PDF",
                "message": "Processing failed" if settings.is_production else str(e),
            },
        )

    session_id = store.put(
        ocr_text,
        filename,
        files=files_to_cleanup + [outcome.output_path],
    )
    preview = ocr_text[:PREVIEW_LENGTH] + ("..." if len(ocr_text) > PREVIEW_LENGTH else "")

    return UploadResponse(
        success=True,
        message="PDF processed successfully",
        session_id=session_id,
        preview=preview,
        original_filename=original_filename,
        page_count=outcome.page_count,
    )


@app.get("/download/{session_id}/{format}")
async def download_result(
    session_id: str,
    format: str,
    store: ResultStore = Depends(get_result_store),
):
    """
    Отдаёт распознанный текст как txt или docx.

    Raises:
        HTTPException: 404 если сессия не найдена или истекла, 400 для неизвестного формата
    """
    result = store.get(session_id)
    if result is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "session_not_found", "message": "Session not found or expired"},
        )

    download_name = f"{result.filename}_ocr.{format}"

    if format == "txt":
        return Response(
            content=result.text,
            media_type="text/plain; charset=utf-8",
            headers={"Content-Disposition": _content_disposition(download_name)},
        )

    if format == "docx":
        docx_path = settings.output_dir / f"{result.filename}_ocr_{uuid.uuid4().hex[:8]}.docx"
        try:
            await run_in_threadpool(create_docx_from_text, result.text, docx_path)
        except Exception as e:
            logger.exception(f"Ошибка создания DOCX: {e}")
            raise HTTPException(
                status_code=500,
                detail={"error": "download_error", "message": "Failed to generate download"},
            )
        return FileResponse(
            docx_path,
            media_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            filename=download_name,
            background=BackgroundTask(remove_files, [docx_path]),
        )

    raise HTTPException(
        status_code=400,
        detail={"error": "invalid_format", "message": "Invalid format. Use txt or docx"},
    )


@app.post("/cleanup", response_model=CleanupResponse)
async def manual_cleanup(body: Optional[CleanupRequest] = None) -> CleanupResponse:
    """
    Ручная очистка старых файлов.

    Пороги по умолчанию берутся из настроек, тело запроса может их переопределить.
    """
    body = body or CleanupRequest()
    policy = settings.retention_policy(
        dry_run=body.dry_run,
        uploads_retention_days=body.uploads_retention_days,
        output_retention_days=body.output_retention_days,
        temp_retention_hours=body.temp_retention_hours,
        logs_retention_days=body.logs_retention_days,
    )

    try:
        stats = await FileCleaner(policy, base_dir=settings.base_dir).run_cleanup()
    except Exception as e:
        logger.exception(f"Ручная очистка не удалась: {e}")
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Cleanup failed",
                "message": "Internal error" if settings.is_production else str(e),
            },
        )

    return CleanupResponse(
        success=True,
        message="Cleanup completed successfully",
        stats=CleanupStatsModel(
            cleaned=stats.cleaned,
            total_size_freed=stats.total_size_freed,
            errors=stats.errors,
            dry_run=stats.dry_run,
            duration_ms=stats.duration_ms,
        ),
        timestamp=datetime.now(),
    )


@app.get("/disk-usage", response_model=DiskUsageResponse)
async def disk_usage() -> DiskUsageResponse:
    """Размер рабочих папок по областям хранения."""
    try:
        usage = await FileCleaner(base_dir=settings.base_dir).get_disk_usage()
    except Exception as e:
        logger.exception(f"Проверка диска не удалась: {e}")
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to check disk usage",
                "message": "Internal error" if settings.is_production else str(e),
            },
        )

    return DiskUsageResponse(
        success=True,
        usage={
            area: DiskUsageModel(size=info.size, exists=info.exists)
            for area, info in usage.items()
        },
        timestamp=datetime.now(),
    )


def _content_disposition(filename: str) -> str:
    return f"attachment; filename*=utf-8''{quote(filename)}"


async def _validate_and_read_file(file: UploadFile) -> bytes:
    """
    Валидирует и читает загруженный файл.

    Проверяет:
        - Тип файла (application/pdf или application/octet-stream)
        - Размер файла (не больше max_file_size_mb)
        - PDF сигнатуру (%PDF)

    Raises:
        HTTPException: при ошибках валидации
    """
    if file.content_type and file.content_type not in (
        "application/pdf",
        "application/octet-stream",
    ):
        raise HTTPException(
            status_code=400,
            detail={
                "error": "invalid_file_type",
                "message": "Only PDF files are allowed!",
            },
        )

    file_bytes = await file.read()

    max_size = settings.max_file_size_mb * 1024 * 1024
    if len(file_bytes) > max_size:
        raise HTTPException(
            status_code=413,
            detail={
                "error": "file_too_large",
                "message": f"File too large. Maximum size is {settings.max_file_size_mb}MB.",
            },
        )

    if not file_bytes.startswith(b"%PDF"):
        raise HTTPException(
            status_code=400,
            detail={
                "error": "invalid_pdf",
                "message": "Only PDF files are allowed!",
            },
        )

    return file_bytes


def run() -> None:
    """Запуск сервера (console script arabic-ocr-server)."""
    import uvicorn

    logger.info(f"Запуск Arabic OCR Service на порту {settings.port}")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    run()
