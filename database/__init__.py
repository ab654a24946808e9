"""
PERSISTENCIA DE RETENCIONES
===========================

Repositorio de entidades tributarias, facturas y lineas de retencion, mas el
servicio que calcula y persiste el desglose de cada factura.

CAPAS:
- database.py: RepositorioRetenciones (Supabase o memoria)
- database_service.py: RetencionesService (calculo + reemplazo atomico)
- setup.py: Factory segun DATABASE_TYPE y modo degradado
- migraciones/: Funcion SQL de reemplazo atomico para Supabase

Autor: Sistema Preliquidador
Version: 3.0
"""

# ===============================
# DATA ACCESS LAYER EXPORTS
# ===============================

from .database import (
    # Interfaces y abstracciones
    RepositorioRetenciones,

    # Implementaciones concretas
    SupabaseDatabase,
    MemoriaDatabase,
)

# ===============================
# BUSINESS LOGIC LAYER EXPORTS
# ===============================

from .database_service import (
    IRetencionesService,
    RetencionesService,
    crear_retenciones_service,
)

# ===============================
# INFRASTRUCTURE LAYER EXPORTS
# ===============================

from .setup import (
    crear_database_por_tipo,
    inicializar_servicio_retenciones,
)

__all__ = [
    # Data Access Layer
    'RepositorioRetenciones',
    'SupabaseDatabase',
    'MemoriaDatabase',

    # Business Logic Layer
    'IRetencionesService',
    'RetencionesService',
    'crear_retenciones_service',

    # Infrastructure Layer
    'crear_database_por_tipo',
    'inicializar_servicio_retenciones',
]

__version__ = "3.0.0"
__architecture__ = "SOLID + Clean Architecture"
