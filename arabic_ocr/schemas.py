"""
Единые схемы данных Arabic OCR Service.

Включает:
    - Pydantic модели опций (валидируются один раз на границе: CLI, HTTP)
    - Внутренние dataclass'ы пайплайна (результаты растеризации, страницы,
      результаты документов, сводка пакета)
    - Структуры очистки диска
    - Pydantic модели ответов API
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

IMAGE_FORMATS = ("png", "jpeg", "jpg")
DEFAULT_PAGE_SEPARATOR = "\n\n=== PAGE {pageNumber} ===\n\n"


# =============================================================================
# Pydantic модели опций
# =============================================================================


class RasterOptions(BaseModel):
    """
    Опции растеризации PDF -> изображения.

    Attributes:
        output_folder: папка для страниц (по умолчанию <имя_pdf>_images)
        image_format: png, jpeg или jpg
        density: DPI рендеринга (72-600)
        quality: качество JPEG (1-100)
        thread_count: потоки pdftoppm
    """

    output_folder: Optional[Path] = None
    image_format: str = Field(default="png", description="png, jpeg, jpg")
    density: int = Field(default=300, ge=72, le=600)
    quality: int = Field(default=100, ge=1, le=100)
    thread_count: int = Field(default=1, ge=1)

    @field_validator("image_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        return _normalize_format(value)


class RecognizeOptions(BaseModel):
    """
    Опции OCR папки с изображениями.

    Attributes:
        output_file: итоговый текстовый файл
        language: языки Tesseract ("ara", "ara+eng")
        page_prefix: префикс имён файлов страниц
        page_separator: шаблон разделителя, {pageNumber} — номер страницы с 1
        oem: OCR Engine Mode Tesseract
        psm: Page Segmentation Mode Tesseract
    """

    output_file: Path = Path("ocr_results.txt")
    language: str = "ara"
    page_prefix: str = "page_"
    page_separator: str = DEFAULT_PAGE_SEPARATOR
    oem: int = Field(default=3, ge=0, le=3)
    psm: int = Field(default=3, ge=0, le=13)


class ConversionOptions(BaseModel):
    """Общие параметры конвертации одного документа (рендер + OCR)."""

    keep_images: bool = False
    image_format: str = "png"
    density: int = Field(default=300, ge=72, le=600)
    quality: int = Field(default=100, ge=1, le=100)
    thread_count: int = Field(default=1, ge=1)
    language: str = "ara"
    oem: int = Field(default=3, ge=0, le=3)
    psm: int = Field(default=3, ge=0, le=13)

    @field_validator("image_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        return _normalize_format(value)


class PipelineOptions(ConversionOptions):
    """
    Опции конвертации PDF -> текст.

    Attributes:
        output_text: итоговый файл (по умолчанию <имя_pdf>_ocr_results.txt)
        temp_images_folder: временная папка страниц (по умолчанию <имя_pdf>_images)
    """

    output_text: Optional[Path] = None
    temp_images_folder: Optional[Path] = None


class BatchOptions(ConversionOptions):
    """
    Опции пакетной конвертации.

    Attributes:
        output_folder: папка результатов и отчёта
        concurrent: сколько документов обрабатывается одновременно
    """

    output_folder: Path = Path("batch_ocr_results")
    concurrent: int = Field(default=1, ge=1)


class RetentionPolicy(BaseModel):
    """
    Политика хранения файлов для очистки диска.

    Пороги задаются раздельно: temp — в часах (меняется быстрее всего),
    остальные области — в днях.

    Attributes:
        temp_safety_margin_minutes: temp-элементы моложе этого возраста
            не удаляются никогда (их может использовать работающий пайплайн)
        stale_marker_hours: папка с маркером .in_progress пропускается,
            пока маркер моложе этого возраста
    """

    uploads_retention_days: float = Field(default=1, ge=0)
    output_retention_days: float = Field(default=7, ge=0)
    temp_retention_hours: float = Field(default=2, ge=0)
    logs_retention_days: float = Field(default=30, ge=0)
    dry_run: bool = False
    temp_safety_margin_minutes: float = Field(default=15, ge=0)
    stale_marker_hours: float = Field(default=24, ge=0)


def _normalize_format(value: str) -> str:
    value = value.lower()
    if value not in IMAGE_FORMATS:
        raise ValueError(
            f"Invalid format: {value}. Must be one of: {', '.join(IMAGE_FORMATS)}"
        )
    return value


# =============================================================================
# Внутренние dataclass'ы пайплайна
# =============================================================================


@dataclass
class FileResult:
    """Растеризатор сохранил страницу сам — известен только путь."""

    path: Path


@dataclass
class InlineResult:
    """Растеризатор вернул закодированное изображение, сохранить должен вызывающий."""

    data: bytes


RasterResult = Union[FileResult, InlineResult]


@dataclass
class PageText:
    """
    Результат OCR одной страницы.

    Attributes:
        page_number: порядковый номер страницы (начинается с 1)
        image_path: файл страницы
        text: распознанный текст (или маркер ошибки)
        error: сообщение об ошибке, если страница не распознана
    """

    page_number: int
    image_path: Path
    text: str
    error: Optional[str] = None


@dataclass
class DocumentJob:
    """Документ, поставленный в пакетную обработку."""

    source: Path
    output_text: Path
    temp_images_folder: Path

    @property
    def filename(self) -> str:
        return self.source.name


@dataclass
class ConversionOutcome:
    """Итог конвертации одного документа."""

    output_path: Path
    page_count: int
    images_folder: Path
    duration_ms: int


@dataclass(frozen=True)
class PipelineSuccess:
    input: str
    output_path: Path
    page_count: int
    duration_ms: int

    success = True


@dataclass(frozen=True)
class PipelineFailure:
    input: str
    reason: str
    duration_ms: int

    success = False


PipelineResult = Union[PipelineSuccess, PipelineFailure]


@dataclass(frozen=True)
class BatchSettings:
    """Снимок настроек, с которыми запускался пакет."""

    language: str
    image_format: str
    density: int
    concurrent: int
    keep_images: bool


@dataclass(frozen=True)
class BatchSummary:
    """
    Сводка пакетной обработки. Не изменяется после записи отчёта.

    Attributes:
        succeeded: количество успешно сконвертированных документов
        failed: количество документов с ошибкой
        results: результаты в порядке входного списка
        settings: снимок настроек запуска
        total_duration_ms: сумма времён по документам
        average_duration_ms: среднее время на документ
        report_path: файл текстового отчёта
        processed_at: время формирования сводки
    """

    succeeded: int
    failed: int
    results: tuple[PipelineResult, ...]
    settings: BatchSettings
    total_duration_ms: int
    average_duration_ms: int
    report_path: Path
    processed_at: datetime

    @property
    def successes(self) -> list[PipelineSuccess]:
        return [r for r in self.results if isinstance(r, PipelineSuccess)]

    @property
    def failures(self) -> list[PipelineFailure]:
        return [r for r in self.results if isinstance(r, PipelineFailure)]

    @property
    def total_files(self) -> int:
        return self.succeeded + self.failed


# =============================================================================
# Очистка диска
# =============================================================================


class RetentionArea(str, Enum):
    """Области хранения, которые обходит очистка."""

    UPLOADS = "uploads"
    OUTPUTS = "outputs"
    TEMP = "temp"
    LOGS = "logs"


@dataclass
class AreaCleanupResult:
    """Результат очистки одной области."""

    count: int = 0
    bytes_freed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class CleanupStats:
    """
    Статистика полного прохода очистки.

    Attributes:
        cleaned: количество удалённых элементов по областям
        total_size_freed: освобождено байт суммарно
        errors: "<путь>: <сообщение>" для элементов, которые не удалось удалить
        dry_run: проход был симуляцией
        duration_ms: длительность прохода
    """

    cleaned: dict[str, int] = field(
        default_factory=lambda: {area.value: 0 for area in RetentionArea}
    )
    total_size_freed: int = 0
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False
    duration_ms: int = 0

    @property
    def total_cleaned(self) -> int:
        return sum(self.cleaned.values())


@dataclass
class DiskUsage:
    size: int
    exists: bool


# =============================================================================
# Pydantic модели для API
# =============================================================================


class UploadResponse(BaseModel):
    """
    Ответ на загрузку PDF.

    Attributes:
        session_id: ключ для скачивания результата (/download/{session_id}/...)
        preview: первые 500 символов распознанного текста
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    session_id: str = Field(serialization_alias="sessionId")
    preview: str
    original_filename: str = Field(serialization_alias="originalFilename")
    page_count: int = Field(default=0, serialization_alias="pageCount")


class CleanupRequest(BaseModel):
    """Переопределения политики хранения для ручной очистки."""

    model_config = ConfigDict(populate_by_name=True)

    uploads_retention_days: Optional[float] = Field(
        default=None, ge=0, alias="uploadsRetentionDays"
    )
    output_retention_days: Optional[float] = Field(
        default=None, ge=0, alias="outputRetentionDays"
    )
    temp_retention_hours: Optional[float] = Field(
        default=None, ge=0, alias="tempRetentionHours"
    )
    logs_retention_days: Optional[float] = Field(
        default=None, ge=0, alias="logsRetentionDays"
    )
    dry_run: bool = Field(default=False, alias="dryRun")


class CleanupStatsModel(BaseModel):
    cleaned: dict[str, int]
    total_size_freed: int
    errors: list[str]
    dry_run: bool
    duration_ms: int


class CleanupResponse(BaseModel):
    success: bool
    message: str
    stats: CleanupStatsModel
    timestamp: datetime


class DiskUsageModel(BaseModel):
    size: int
    exists: bool


class DiskUsageResponse(BaseModel):
    success: bool
    usage: dict[str, DiskUsageModel]
    timestamp: datetime
