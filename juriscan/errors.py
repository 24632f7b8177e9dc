# juriscan/errors.py
"""
Erros de aplicação com código e status HTTP.

O servidor converte qualquer AppError no corpo padrão:
    {"error": {"code": ..., "message": ..., "details": ...}}
"""
from __future__ import annotations
from typing import Any, Dict, Optional


class AppError(Exception):
    """Erro base com código estável, mensagem em PT-BR e status HTTP."""

    code = "APP_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return {"error": body}


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthError(AppError):
    code = "AUTH_ERROR"
    status_code = 401

    def __init__(self, message: str = "Não autorizado", **kw: Any) -> None:
        super().__init__(message, **kw)


class InsufficientCreditsError(AppError):
    code = "INSUFFICIENT_CREDITS"
    status_code = 402

    def __init__(self, required: int, available: int, message: str = "Créditos insuficientes") -> None:
        super().__init__(message, details={"required": required, "available": available})
        self.required = required
        self.available = available


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Acesso negado", **kw: Any) -> None:
        super().__init__(message, **kw)


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str = "Recurso", **kw: Any) -> None:
        super().__init__(f"{resource} não encontrado", **kw)
        self.resource = resource


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409


class RateLimitError(AppError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, message: str = "Muitas requisições. Tente novamente mais tarde.", **kw: Any) -> None:
        super().__init__(message, **kw)


class InternalError(AppError):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "Erro interno do servidor", **kw: Any) -> None:
        super().__init__(message, **kw)
