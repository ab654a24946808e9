"""
MODELOS MODULE - DOMAIN LAYER
==============================

Modulo de modelos de datos (Domain Layer) para el preliquidador de
retenciones.

UBICACION EN CLEAN ARCHITECTURE:
- Domain Layer: Entities & Value Objects
- Sin dependencias de infraestructura
- Reutilizable en todos los modulos (Liquidador, Clasificador, database)

ORGANIZACION DE EXPORTS:
- Seccion 1: Enumeraciones del dominio
- Seccion 2: Entidades tributarias
- Seccion 3: Factura, contexto y resultados del motor
- Seccion 4: Detalle, desglose y resultados de procesamiento

Autor: Sistema Preliquidador
Version: 3.0 - Clean Architecture
"""

# ===============================
# SECCION 1: ENUMERACIONES
# ===============================

from .modelos import (
    TipoEntidad,
    TipoRegimen,
    EstadoVerificacion,
    ClasificacionEntidad,
    TipoServicio,
    Municipio,
    TipoRetencion,
    MetodoCalculo,
    EstadoProcesamiento,
)

# ===============================
# SECCION 2: ENTIDADES TRIBUTARIAS
# ===============================

from .modelos import (
    EntidadTributaria,
    ResultadoValidacionEntidad,
)

# ===============================
# SECCION 3: FACTURA, CONTEXTO Y MOTOR
# ===============================

from .modelos import (
    Factura,
    ContextoTributarioFactura,
    ResultadoCalculoImpuesto,
    ResultadoMotorTributario,
)

# ===============================
# SECCION 4: DETALLE, DESGLOSE Y PROCESAMIENTO
# ===============================

from .modelos import (
    DetalleRetencion,
    ResumenRetenciones,
    DesgloseRetenciones,
    ReglaOverride,
    ResultadoProcesamientoFactura,
    ResultadoLote,
)

__all__ = [
    # Seccion 1: Enumeraciones
    "TipoEntidad",
    "TipoRegimen",
    "EstadoVerificacion",
    "ClasificacionEntidad",
    "TipoServicio",
    "Municipio",
    "TipoRetencion",
    "MetodoCalculo",
    "EstadoProcesamiento",

    # Seccion 2: Entidades
    "EntidadTributaria",
    "ResultadoValidacionEntidad",

    # Seccion 3: Factura, contexto y motor
    "Factura",
    "ContextoTributarioFactura",
    "ResultadoCalculoImpuesto",
    "ResultadoMotorTributario",

    # Seccion 4: Detalle y desglose
    "DetalleRetencion",
    "ResumenRetenciones",
    "DesgloseRetenciones",
    "ReglaOverride",
    "ResultadoProcesamientoFactura",
    "ResultadoLote",
]

__version__ = "3.0.0"
__author__ = "Sistema Preliquidador"
__architecture__ = "Clean Architecture - Domain Layer"

import logging
logger = logging.getLogger(__name__)
logger.debug(f"Modulo de modelos inicializado - Version {__version__}")
