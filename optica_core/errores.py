# optica_core/errores.py
# Taxonomía de errores del dominio y su traducción a respuestas HTTP.
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from optica_core.logging_config import get_logger

logger = get_logger(__name__)


class OpticaError(Exception):
    """Error base de la aplicación."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        body = {"message": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(OpticaError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(OpticaError):
    status_code = status.HTTP_404_NOT_FOUND


class AuthenticationError(OpticaError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(OpticaError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(OpticaError):
    status_code = status.HTTP_409_CONFLICT


def _campo(loc) -> Optional[str]:
    # loc viene como ("body", "price") o ("query", "patientId")
    partes = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(partes) or None


async def optica_error_handler(request: Request, exc: OpticaError):
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errores = exc.errors()
    logger.warning("validacion_fallida", path=request.url.path, errores=len(errores))
    campo = _campo(errores[0].get("loc", ())) if errores else None
    detalle = "; ".join(
        f"{_campo(e.get('loc', ())) or 'body'}: {e.get('msg')}" for e in errores
    )
    body = {"message": detalle or "Datos inválidos"}
    if campo:
        body["field"] = campo
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)


async def global_exception_handler(request: Request, exc: Exception):
    logger.error("error_no_controlado", path=request.url.path, exc_info=exc)
    # Corre fuera del middleware de request id: el header se pone acá
    request_id = (
        structlog.contextvars.get_contextvars().get("request_id")
        or request.headers.get("X-Request-ID")
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Error interno del servidor"},
        headers={"X-Request-ID": request_id} if request_id else None,
    )


def registrar_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OpticaError, optica_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
