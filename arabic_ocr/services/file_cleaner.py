"""
Очистка старых файлов в рабочих папках сервиса.

Области хранения (относительно base_dir):
    - uploads/ — загруженные PDF, порог в днях
    - output/  — результаты OCR, порог в днях
    - temp/    — временные изображения страниц, порог в часах
    - logs/    — только файлы *.log, порог в днях

Области чистятся одновременно и независимо. Ошибка удаления одного
элемента записывается в статистику и не прерывает очистку.
В режиме dry_run всё считается так же, но ничего не удаляется.

Защита работающих пайплайнов в temp/:
    - элементы моложе temp_safety_margin_minutes не удаляются никогда
    - папка с маркером .in_progress пропускается, пока маркер не устарел
"""

import asyncio
import logging
import re
import shutil
import stat
import time
from pathlib import Path
from typing import Callable, Optional

from starlette.concurrency import run_in_threadpool

from arabic_ocr.errors import CleanupEntryError
from arabic_ocr.schemas import (
    AreaCleanupResult,
    CleanupStats,
    DiskUsage,
    RetentionArea,
    RetentionPolicy,
)
from arabic_ocr.services.pipeline import IN_PROGRESS_MARKER

logger = logging.getLogger(__name__)

PLACEHOLDER_FILENAME = ".gitkeep"
LOG_FILE_PATTERN = re.compile(r"\.log$")

AREA_DIRECTORIES = {
    RetentionArea.UPLOADS: "uploads",
    RetentionArea.OUTPUTS: "output",
    RetentionArea.TEMP: "temp",
    RetentionArea.LOGS: "logs",
}

HOUR = 60 * 60
DAY = 24 * HOUR


def format_file_size(size: int) -> str:
    """Человекочитаемый размер: 0 Bytes, 1.5 KB, 2 MB..."""
    sizes = ["Bytes", "KB", "MB", "GB", "TB"]
    if size <= 0:
        return "0 Bytes"
    i = 0
    value = float(size)
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    value = round(value, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {sizes[i]}"


def get_directory_size(path: Path) -> int:
    """Рекурсивный размер папки. Недоступные элементы пропускаются."""
    total = 0
    try:
        entries = list(path.iterdir())
    except OSError:
        return 0

    for entry in entries:
        try:
            st = entry.lstat()
        except OSError:
            continue
        if stat.S_ISDIR(st.st_mode):
            total += get_directory_size(entry)
        else:
            total += st.st_size
    return total


class FileCleaner:
    """
    Очистка областей хранения по возрасту файлов.

    Args:
        policy: пороги хранения и режим dry_run
        base_dir: корень, в котором лежат папки областей
        clock: источник текущего времени (секунды epoch)
    """

    def __init__(
        self,
        policy: Optional[RetentionPolicy] = None,
        base_dir: Path = Path("."),
        clock: Callable[[], float] = time.time,
    ):
        self.policy = policy or RetentionPolicy()
        self.base_dir = Path(base_dir)
        self.clock = clock

    # -------------------------------------------------------------------------
    # Параметры областей
    # -------------------------------------------------------------------------

    def area_path(self, area: RetentionArea) -> Path:
        return self.base_dir / AREA_DIRECTORIES[area]

    def area_max_age(self, area: RetentionArea) -> float:
        """Порог возраста области в секундах."""
        p = self.policy
        if area is RetentionArea.UPLOADS:
            return p.uploads_retention_days * DAY
        if area is RetentionArea.OUTPUTS:
            return p.output_retention_days * DAY
        if area is RetentionArea.TEMP:
            return max(p.temp_retention_hours * HOUR, p.temp_safety_margin_minutes * 60)
        return p.logs_retention_days * DAY

    def area_pattern(self, area: RetentionArea) -> Optional[re.Pattern]:
        return LOG_FILE_PATTERN if area is RetentionArea.LOGS else None

    def _is_in_progress(self, entry: Path, now: float) -> bool:
        marker = entry / IN_PROGRESS_MARKER
        try:
            marker_mtime = marker.stat().st_mtime
        except OSError:
            return False
        return now - marker_mtime <= self.policy.stale_marker_hours * HOUR

    # -------------------------------------------------------------------------
    # Обход
    # -------------------------------------------------------------------------

    def _clean_directory(self, area: RetentionArea) -> AreaCleanupResult:
        """Синхронный обход одной области. Выполняется в пуле потоков."""
        result = AreaCleanupResult()
        dir_path = self.area_path(area)
        max_age = self.area_max_age(area)
        pattern = self.area_pattern(area)

        if not dir_path.exists():
            logger.info(f"Папка {dir_path} не существует, пропускаем")
            return result

        try:
            entries = sorted(dir_path.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.error(f"Ошибка чтения папки {dir_path}: {e}")
            result.errors.append(str(CleanupEntryError(str(dir_path), str(e))))
            return result

        logger.info(f"Проверка {len(entries)} элементов в {dir_path}")
        now = self.clock()

        for entry in entries:
            if entry.name == PLACEHOLDER_FILENAME:
                continue
            if pattern is not None and not pattern.search(entry.name):
                continue

            try:
                st = entry.lstat()
            except OSError:
                continue

            is_dir = stat.S_ISDIR(st.st_mode)
            age = now - st.st_mtime
            if age <= max_age:
                continue

            if area is RetentionArea.TEMP and is_dir and self._is_in_progress(entry, now):
                logger.info(f"Пропуск {entry.name}: идёт обработка")
                continue

            size = get_directory_size(entry) if is_dir else st.st_size
            kind = "папка" if is_dir else "файл"
            logger.info(
                f"Найден старый {kind}: {entry.name} "
                f"({format_file_size(size)}, {round(age / HOUR)} ч.)"
            )

            if not self.policy.dry_run:
                try:
                    if is_dir:
                        shutil.rmtree(entry)
                    else:
                        entry.unlink()
                except OSError as e:
                    error = CleanupEntryError(str(entry), str(e))
                    logger.error(f"Ошибка удаления {error}")
                    result.errors.append(str(error))
                    continue
                logger.info(f"Удалено: {entry.name}")

            result.count += 1
            result.bytes_freed += size

        return result

    async def clean_area(self, area: RetentionArea) -> AreaCleanupResult:
        """Чистит одну область. Общую статистику не трогает: её собирает run_cleanup."""
        logger.info(
            f"Очистка {AREA_DIRECTORIES[area]}/ старше {self.area_max_age(area) / HOUR:g} ч."
        )
        return await run_in_threadpool(self._clean_directory, area)

    async def run_cleanup(self) -> CleanupStats:
        """
        Полный проход по всем областям (одновременно).

        Returns:
            CleanupStats: количество по областям, освобождённый объём, ошибки
        """
        start = time.perf_counter()
        stats = CleanupStats(dry_run=self.policy.dry_run)
        p = self.policy

        logger.info(f"Запуск очистки{' (DRY RUN)' if p.dry_run else ''}")
        logger.info(f"   Корень: {self.base_dir}")
        logger.info(
            f"   Хранение: uploads={p.uploads_retention_days:g}d, "
            f"outputs={p.output_retention_days:g}d, "
            f"temp={p.temp_retention_hours:g}h, logs={p.logs_retention_days:g}d"
        )

        areas = list(RetentionArea)
        results = await asyncio.gather(*(self.clean_area(area) for area in areas))
        for area, result in zip(areas, results):
            stats.cleaned[area.value] = result.count
            stats.total_size_freed += result.bytes_freed
            stats.errors.extend(result.errors)

        stats.duration_ms = int((time.perf_counter() - start) * 1000)

        logger.info("=== CLEANUP SUMMARY ===")
        for area in RetentionArea:
            logger.info(f"   {area.value}: {stats.cleaned[area.value]}")
        logger.info(f"   Освобождено: {format_file_size(stats.total_size_freed)}")
        logger.info(f"   Длительность: {stats.duration_ms}ms")
        for error in stats.errors:
            logger.error(f"   - {error}")
        if p.dry_run:
            logger.info("DRY RUN: ничего не удалено")

        return stats

    # -------------------------------------------------------------------------
    # Использование диска
    # -------------------------------------------------------------------------

    def _disk_usage(self) -> dict[str, DiskUsage]:
        usage = {}
        for area in RetentionArea:
            path = self.area_path(area)
            usage[area.value] = DiskUsage(
                size=get_directory_size(path),
                exists=path.is_dir(),
            )
        return usage

    async def get_disk_usage(self) -> dict[str, DiskUsage]:
        return await run_in_threadpool(self._disk_usage)

    async def report_disk_usage(self) -> str:
        """Текстовый отчёт об использовании диска по областям."""
        usage = await self.get_disk_usage()
        lines = ["=== DISK USAGE REPORT ==="]
        for area in RetentionArea:
            info = usage[area.value]
            name = AREA_DIRECTORIES[area]
            if info.exists:
                lines.append(f"{name}/: {format_file_size(info.size)}")
            else:
                lines.append(f"{name}/: Directory does not exist")
        report = "\n".join(lines)
        logger.info(report)
        return report


def format_cleanup_summary(stats: CleanupStats) -> str:
    """Текстовая сводка для CLI."""
    lines = [
        "=== CLEANUP SUMMARY ===",
        f"Uploads cleaned: {stats.cleaned[RetentionArea.UPLOADS.value]} files",
        f"Outputs cleaned: {stats.cleaned[RetentionArea.OUTPUTS.value]} files",
        f"Temp files cleaned: {stats.cleaned[RetentionArea.TEMP.value]} files",
        f"Log files cleaned: {stats.cleaned[RetentionArea.LOGS.value]} files",
        f"Total size freed: {format_file_size(stats.total_size_freed)}",
        f"Duration: {stats.duration_ms}ms",
    ]
    if stats.errors:
        lines.append(f"Errors encountered: {len(stats.errors)}")
        lines.extend(f"  - {error}" for error in stats.errors)
    if stats.dry_run:
        lines.append("DRY RUN: No files were actually deleted")
    return "\n".join(lines)
