"""
MÓDULO MOCKUPS - RESPUESTAS ESTRUCTURADAS PARA ERRORES

SRP: Responsabilidad única de generar las estructuras de respuesta cuando
     una solicitud no se puede procesar
DIP: No depende de implementaciones concretas, solo retorna estructuras de datos

Todas las respuestas comparten la forma de DesgloseRetenciones vacio para
que el consumidor no tenga que distinguir esquemas.

Versión: 3.0
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


def _crear_desglose_vacio(observacion: str) -> Dict[str, Any]:
    """Desglose sin retenciones con la observacion indicada"""
    return {
        "retefuente": [],
        "reteica": [],
        "reteiva": [],
        "total_retenciones": 0.0,
        "resumen": {
            "total_retefuente": 0.0,
            "total_reteica": 0.0,
            "total_reteiva": 0.0,
            "valor_neto": 0.0,
        },
        "observaciones": [observacion],
        "requiere_revision_manual": True,
    }


def crear_respuesta_error_validacion(
    errores_validacion: List[Dict[str, Any]],
    url_request: str,
    metodo_http: str
) -> Dict[str, Any]:
    """
    Crea la respuesta estándar cuando la solicitud no pasa la validación Pydantic.

    Args:
        errores_validacion: Errores estructurados (ver extraer_informacion_errores)
        url_request: URL solicitada
        metodo_http: Metodo HTTP

    Returns:
        dict: Estructura con estado "error_validacion" y desglose vacio
    """
    mensaje = "Error de validación en los parámetros de entrada"
    return {
        "estado": "error_validacion",
        "mensaje": mensaje,
        "errores": errores_validacion,
        "desglose": _crear_desglose_vacio(mensaje),
        "request": {
            "url": url_request,
            "metodo": metodo_http,
        },
        "timestamp": datetime.now().isoformat(),
    }


def crear_respuesta_error_procesamiento(
    error: str,
    mensaje: str,
    invoice_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Crea la respuesta estándar para errores de calculo o persistencia.

    Args:
        error: Tipo de error (nombre de la excepcion)
        mensaje: Detalle legible
        invoice_id: Factura afectada, si aplica

    Returns:
        dict: {"error", "mensaje", "invoice_id", "timestamp"}
    """
    return {
        "error": error,
        "mensaje": mensaje,
        "invoice_id": invoice_id,
        "timestamp": datetime.now().isoformat(),
    }
