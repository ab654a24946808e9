"""
CLASIFICADOR DE ENTIDADES Y SERVICIOS
=====================================

Módulo para clasificar terceros y servicios facturados antes del cálculo de retenciones.

ARQUITECTURA SOLID v3.1:
- ValidadorEntidades: Resuelve NIT y nombre a EntidadTributaria (SRP)
- clasificar_servicio / resolver_municipio: Mapeos totales a las enumeraciones del dominio
"""

from .clasificador_servicios import (
    clasificar_servicio,
    normalizar_texto,
    resolver_municipio,
    resolver_tipo_servicio,
)
from .validador_entidades import ValidadorEntidades, sanitizar_nit


__all__ = [
    'ValidadorEntidades',
    'sanitizar_nit',
    'clasificar_servicio',
    'normalizar_texto',
    'resolver_municipio',
    'resolver_tipo_servicio',
]
