"""
LIQUIDADOR DE RETENCIONES
=========================

Módulo para calcular retenciones sobre factura electrónica según normativa colombiana.

Módulos disponibles:
- motor_tributario.MotorReglasTributarias: ReteFuente, ReteICA y ReteIVA (funcion pura)
- procesador_retenciones.ProcesadorRetenciones: Orquestacion por factura y desglose
- exceptions: Jerarquia de excepciones del modulo

Los submodulos se importan directamente; config.py depende de exceptions.
"""

from .exceptions import (
    RetencionesError,
    ConfiguracionTarifasError,
    FacturaInvalidaError,
    PersistenciaRetencionesError,
    FacturaNoEncontradaError,
)

__all__ = [
    'RetencionesError',
    'ConfiguracionTarifasError',
    'FacturaInvalidaError',
    'PersistenciaRetencionesError',
    'FacturaNoEncontradaError',
]
