"""
Исключения Arabic OCR Service.

Уровни обработки:
    - Страница: PageProcessingError — восстанавливается на месте,
      вместо текста страницы подставляется маркер ошибки
    - Документ: SourceNotFoundError, EmptyDocumentError, NoImagesFoundError,
      RasterizationError — прерывают только этот документ
    - Пакет: InvalidInputError, NoDocumentsFoundError — прерывают весь запуск
    - Очистка: CleanupEntryError — накапливается в статистике
    - FatalIOError — пробрасывается вызывающему (например, нельзя создать папку)
"""


class OCRServiceError(Exception):
    """Базовое исключение сервиса. Сообщение безопасно показывать пользователю."""


class SourceNotFoundError(OCRServiceError):
    """Исходный PDF (или папка с изображениями) не найден."""


class EmptyDocumentError(OCRServiceError):
    """Растеризация не дала ни одной страницы."""


class NoImagesFoundError(OCRServiceError):
    """В папке нет изображений страниц для OCR."""


class InvalidInputError(OCRServiceError):
    """Вход пакетной обработки — не PDF и не папка."""


class NoDocumentsFoundError(OCRServiceError):
    """В указанном месте не найдено ни одного PDF."""


class RasterizationError(OCRServiceError):
    """Внешний растеризатор упал. Исходная ошибка доступна в __cause__."""


class FatalIOError(OCRServiceError):
    """Ошибка файловой системы, после которой продолжать нельзя."""


class PageProcessingError(OCRServiceError):
    """
    Ошибка OCR одной страницы.

    Никогда не выходит за пределы распознавателя: превращается в маркер
    [ERROR: Could not process this page - ...] в тексте документа.
    """

    def __init__(self, page_number: int, message: str):
        self.page_number = page_number
        self.message = message
        super().__init__(f"page {page_number}: {message}")


class CleanupEntryError(OCRServiceError):
    """Не удалось удалить один элемент при очистке. Накапливается в CleanupStats."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")
