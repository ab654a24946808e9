"""
MANEJADORES DE ERRORES DE LA API DE RETENCIONES
===============================================

Traduce las excepciones del preliquidador a respuestas HTTP con cuerpo
estandar (ver utils/mockups.py).

Mapeo:
- RequestValidationError -> 200 con estado "error_validacion" y desglose vacio
- FacturaNoEncontradaError -> 404
- FacturaInvalidaError -> 400
- ConfiguracionTarifasError / PersistenciaRetencionesError -> 500
- Excepcion no controlada -> 500

Autor: Sistema Preliquidador
Version: 3.0
"""

import logging
from typing import Any, Dict, List, Sequence

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from Liquidador.exceptions import (
    FacturaInvalidaError,
    FacturaNoEncontradaError,
    RetencionesError,
)
from utils.mockups import crear_respuesta_error_validacion, crear_respuesta_error_procesamiento

logger = logging.getLogger(__name__)

# Codigo HTTP por tipo de error de dominio; el resto responde 500
CODIGOS_POR_ERROR = (
    (FacturaNoEncontradaError, status.HTTP_404_NOT_FOUND),
    (FacturaInvalidaError, status.HTTP_400_BAD_REQUEST),
)


# ============================================
# HANDLERS
# ============================================

async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Responde 200 con la estructura "error_validacion" cuando el body no
    cumple los modelos de request (factura con montos negativos, campos
    faltantes, fechas invalidas).
    """
    errores = extraer_informacion_errores(exc)
    logger.warning(f" Request invalido en {request.url.path}: {generar_mensaje_error_usuario(errores)}")

    cuerpo = crear_respuesta_error_validacion(
        errores_validacion=errores,
        url_request=str(request.url),
        metodo_http=request.method,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=jsonable_encoder(cuerpo))


async def retenciones_exception_handler(request: Request, exc: RetencionesError) -> JSONResponse:
    """Traduce la jerarquia RetencionesError a codigos HTTP"""
    codigo = status.HTTP_500_INTERNAL_SERVER_ERROR
    for tipo, codigo_tipo in CODIGOS_POR_ERROR:
        if isinstance(exc, tipo):
            codigo = codigo_tipo
            break

    invoice_id = getattr(exc, "invoice_id", None)
    logger.error(f" {type(exc).__name__} en {request.url.path}: {exc}")
    return JSONResponse(
        status_code=codigo,
        content=crear_respuesta_error_procesamiento(type(exc).__name__, str(exc), invoice_id),
    )


async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f" Error inesperado en {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=crear_respuesta_error_procesamiento("ErrorInterno", str(exc)),
    )


# ============================================
# AUXILIARES
# ============================================

def _campo_desde_ubicacion(ubicacion: Sequence[Any]) -> str:
    return ".".join(str(parte) for parte in ubicacion)


def extraer_informacion_errores(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """
    Aplana los errores de pydantic a diccionarios serializables.

    Cada error queda como {"campo", "tipo_error", "mensaje", "ubicacion",
    "input_recibido"}; por ejemplo un subtotal negativo produce
    campo "body.factura.subtotal" y tipo_error "greater_than_equal".
    """
    errores = []
    for error in exc.errors():
        ubicacion = list(error.get("loc", ()))
        errores.append({
            "campo": _campo_desde_ubicacion(ubicacion),
            "tipo_error": error.get("type", "unknown"),
            "mensaje": error.get("msg", "Valor invalido"),
            "ubicacion": ubicacion,
            "input_recibido": error.get("input"),
        })
    return errores


def generar_mensaje_error_usuario(errores: List[Dict[str, Any]]) -> str:
    """Resumen de una linea para el log"""
    if not errores:
        return "Error de validación en los parámetros de entrada"

    partes = []
    for error in errores:
        campo = error["campo"].removeprefix("body.")
        if error["tipo_error"] == "missing":
            partes.append(f"falta '{campo}'")
        else:
            partes.append(f"'{campo}': {error['mensaje']}")
    return "; ".join(partes)


# ============================================
# REGISTRO
# ============================================

def registrar_exception_handler(app) -> None:
    """Registra los handlers de validacion, dominio y errores inesperados en la app"""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RetencionesError, retenciones_exception_handler)
    app.add_exception_handler(Exception, unexpected_exception_handler)
    logger.info(" Exception handlers registrados")
