"""Ошибки ядра задач и клиента API."""

from typing import Any, Dict, Optional


def build_error_payload(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


class StaffTaskBotError(Exception):
    """Базовая ошибка: код + сообщение для пользователя"""

    code: str = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.payload = build_error_payload(self.code, message, details)


class InvalidTransition(StaffTaskBotError):
    """Переход статуса запрещен таблицей переходов. В сеть не отправляется."""

    code = "invalid_transition"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change status from '{current}' to '{requested}'",
            {"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class LoadError(StaffTaskBotError):
    """Не удалось загрузить список назначений"""

    code = "load_error"


class ApiError(StaffTaskBotError):
    """Сервер ответил ошибкой"""

    code = "api_error"

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.status_code = status_code


class NetworkError(ApiError):
    code = "network_error"


class Unauthorized(ApiError):
    """Сессия недействительна - нужна повторная авторизация"""

    code = "unauthorized"


class Conflict(ApiError):
    """Статус изменился на сервере, пока мы его меняли"""

    code = "conflict"


class NotFound(ApiError):
    code = "not_found"
