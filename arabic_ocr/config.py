"""
Единая конфигурация Arabic OCR Service.

Объединяет настройки веб-сервиса, CLI-утилит и очистки диска в одном классе.
Все значения читаются из .env файла (или переменных окружения),
у каждого параметра есть дефолт.

Единый префикс: ARABIC_OCR_

Сервисы ядра (pdf_processor, ocr_processor, pipeline, batch_processor,
file_cleaner) настройки напрямую не читают: границы (CLI, HTTP) собирают
из settings явные модели опций (см. schemas.py).
"""

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from arabic_ocr.schemas import (
    BatchOptions,
    PipelineOptions,
    RetentionPolicy,
)

LOG_FORMAT = "%(asctime)s [Arabic-OCR] %(message)s"
LOG_DATEFMT = "%H:%M:%S"


class Settings(BaseSettings):
    """
    Настройки Arabic OCR Service.

    Читает переменные с префиксом ARABIC_OCR_ из .env файла.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARABIC_OCR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Сервер ---
    port: int = 3000
    environment: str = "development"
    log_level: str = "INFO"

    # Корень, в котором лежат uploads/, output/, temp/, logs/
    base_dir: Path = Path(".")

    # --- API: лимиты ---
    max_file_size_mb: int = 50

    # Rate limiting по IP: запросов за окно (в production строже)
    rate_limit_enabled: bool = True
    rate_limit_window_minutes: int = 15
    rate_limit_production: int = 15
    rate_limit_development: int = 50

    # --- Split: PDF -> images ---
    render_dpi: int = 300
    render_format: str = "png"
    render_thread_count: int = 1

    # --- OCR: Tesseract ---
    ocr_language: str = "ara"
    ocr_oem: int = 3
    ocr_psm: int = 3

    # --- Хранилище результатов для скачивания ---
    result_ttl_seconds: int = 600
    result_sweep_interval_seconds: int = 300

    # --- Очистка диска ---
    uploads_retention_days: float = 1
    output_retention_days: float = 7
    temp_retention_hours: float = 2
    logs_retention_days: float = 30
    temp_safety_margin_minutes: float = 15
    auto_cleanup_enabled: bool = False
    auto_cleanup_interval_hours: float = 6
    auto_cleanup_initial_delay_seconds: float = 30

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def rate_limit(self) -> str:
        """Лимит в формате limits: "50 per 15 minutes"."""
        count = self.rate_limit_production if self.is_production else self.rate_limit_development
        return f"{count} per {self.rate_limit_window_minutes} minutes"

    @property
    def uploads_dir(self) -> Path:
        return self.base_dir / "uploads"

    @property
    def temp_dir(self) -> Path:
        return self.base_dir / "temp"

    @property
    def output_dir(self) -> Path:
        return self.base_dir / "output"

    def retention_policy(self, dry_run: bool = False, **overrides) -> RetentionPolicy:
        """Собирает политику хранения из настроек (overrides имеют приоритет)."""
        values = {
            "uploads_retention_days": self.uploads_retention_days,
            "output_retention_days": self.output_retention_days,
            "temp_retention_hours": self.temp_retention_hours,
            "logs_retention_days": self.logs_retention_days,
            "temp_safety_margin_minutes": self.temp_safety_margin_minutes,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RetentionPolicy(dry_run=dry_run, **values)

    def pipeline_options(self, **overrides) -> PipelineOptions:
        values = {
            "image_format": self.render_format,
            "density": self.render_dpi,
            "language": self.ocr_language,
            "oem": self.ocr_oem,
            "psm": self.ocr_psm,
            "thread_count": self.render_thread_count,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return PipelineOptions(**values)

    def batch_options(self, **overrides) -> BatchOptions:
        values = {
            "image_format": self.render_format,
            "density": self.render_dpi,
            "language": self.ocr_language,
            "oem": self.ocr_oem,
            "psm": self.ocr_psm,
            "thread_count": self.render_thread_count,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return BatchOptions(**values)


def configure_logging(level=logging.INFO) -> None:
    """Настраивает корневой логгер в едином формате сервиса."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        force=True,
    )


# Глобальный экземпляр настроек
settings = Settings()
