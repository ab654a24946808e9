# Utilidades de la API: respuestas de error estandar y exception handlers

from .mockups import (
    crear_respuesta_error_validacion,
    crear_respuesta_error_procesamiento
)
from .error_handlers import (
    registrar_exception_handler,
    validation_exception_handler,
    retenciones_exception_handler,
    extraer_informacion_errores
)

__all__ = [
    'crear_respuesta_error_validacion',
    'crear_respuesta_error_procesamiento',
    'registrar_exception_handler',
    'validation_exception_handler',
    'retenciones_exception_handler',
    'extraer_informacion_errores'
    ]
