"""
In-memory хранилище результатов OCR для скачивания.

После загрузки PDF распознанный текст кладётся сюда под UUID сессии,
по которому клиент потом скачивает txt/docx.

Особенности:
    - Хранение в памяти (без персистентности)
    - TTL: просроченные записи не выдаются и удаляются при evict_expired()
    - При удалении записи удаляются и связанные с ней файлы
    - Экземпляр принадлежит HTTP-приложению (app.state), не ядру
"""

import logging
import shutil
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class StoredResult:
    """
    Результат OCR, ожидающий скачивания.

    Attributes:
        session_id: UUID сессии
        text: распознанный текст
        filename: базовое имя для файлов скачивания
        created_at: время сохранения (секунды epoch)
        files: файлы на диске, которые удаляются вместе с записью
    """

    session_id: str
    text: str
    filename: str
    created_at: float
    files: list[Path] = field(default_factory=list)


def remove_files(files: list[Path]) -> None:
    """Удаляет файлы и папки; ошибки логируются и не пробрасываются."""
    for path in files:
        if not path.exists():
            continue
        try:
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as e:
            logger.error(f"Ошибка удаления {path}: {e}")


class ResultStore:
    """
    Хранилище результатов с TTL.

    Args:
        ttl_seconds: время жизни записи
        clock: источник текущего времени (секунды epoch)
    """

    def __init__(self, ttl_seconds: float = 600, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._store: dict[str, StoredResult] = {}

    def __len__(self) -> int:
        return len(self._store)

    def _is_expired(self, result: StoredResult, now: float) -> bool:
        return now - result.created_at > self.ttl_seconds

    def put(self, text: str, filename: str, files: Optional[list[Path]] = None) -> str:
        """
        Сохраняет результат и возвращает UUID сессии.

        Args:
            text: распознанный текст
            filename: базовое имя для скачивания
            files: файлы, которые нужно удалить по истечении TTL
        """
        session_id = str(uuid.uuid4())
        self._store[session_id] = StoredResult(
            session_id=session_id,
            text=text,
            filename=filename,
            created_at=self.clock(),
            files=list(files or []),
        )

        logger.info(
            f"Сохранён результат: session_id={session_id}, "
            f"символов={len(text)}, всего в хранилище={len(self._store)}"
        )
        return session_id

    def get(self, session_id: str) -> Optional[StoredResult]:
        """Возвращает запись или None, если её нет или TTL истёк."""
        result = self._store.get(session_id)
        if result is None or self._is_expired(result, self.clock()):
            logger.warning(f"Сессия не найдена или истекла: {session_id}")
            return None
        return result

    def pop(self, session_id: str) -> Optional[StoredResult]:
        """Удаляет запись вместе с файлами."""
        result = self._store.pop(session_id, None)
        if result is not None:
            remove_files(result.files)
        return result

    def pop_expired(self, now: Optional[float] = None) -> list[StoredResult]:
        """
        Убирает просроченные записи из хранилища, файлы не трогает.

        Вызывается из event loop, как и put/get: словарь не защищён блокировкой.
        """
        now = self.clock() if now is None else now
        expired = [r for r in self._store.values() if self._is_expired(r, now)]
        for result in expired:
            del self._store[result.session_id]

        if expired:
            logger.info(
                f"Удалено просроченных результатов: {len(expired)}, "
                f"осталось={len(self._store)}"
            )
        return expired

    def evict_expired(self, now: Optional[float] = None) -> list[StoredResult]:
        """Удаляет просроченные записи и их файлы."""
        expired = self.pop_expired(now)
        for result in expired:
            remove_files(result.files)
        return expired

    def stats(self) -> dict:
        """
        Статистика хранилища для мониторинга.

        Returns:
            dict: {results_count, oldest, newest}
        """
        if not self._store:
            return {"results_count": 0, "oldest": None, "newest": None}

        sorted_results = sorted(self._store.values(), key=lambda r: r.created_at)
        return {
            "results_count": len(self._store),
            "oldest": {
                "session_id": sorted_results[0].session_id,
                "created_at": datetime.fromtimestamp(sorted_results[0].created_at).isoformat(),
            },
            "newest": {
                "session_id": sorted_results[-1].session_id,
                "created_at": datetime.fromtimestamp(sorted_results[-1].created_at).isoformat(),
            },
        }
