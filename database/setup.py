"""
INICIALIZACION DEL REPOSITORIO DE RETENCIONES
=============================================

Crea el repositorio segun DATABASE_TYPE y el RetencionesService que lo usa.

PRINCIPIOS SOLID APLICADOS:
- SRP: Solo construye infraestructura, no calcula retenciones
- DIP: main.py recibe la abstraccion RepositorioRetenciones

Si el repositorio no se puede crear (credenciales ausentes, tipo invalido o
health check fallido) la API arranca en modo degradado: solo calculo, sin
persistencia.

Autor: Sistema Preliquidador
Version: 3.0
"""

import os
import logging
from typing import Optional, Tuple

from config import DatabaseConfig
from .database import RepositorioRetenciones, SupabaseDatabase, MemoriaDatabase
from .database_service import crear_retenciones_service, RetencionesService

logger = logging.getLogger(__name__)


def crear_database_por_tipo(tipo_db: str) -> Optional[RepositorioRetenciones]:
    """
    Factory del repositorio.

    Args:
        tipo_db: 'supabase' (usa SUPABASE_URL y SUPABASE_KEY) o 'memoria'

    Returns:
        RepositorioRetenciones, o None si el tipo no existe o faltan credenciales
    """
    tipo = tipo_db.strip().lower()

    if tipo == DatabaseConfig.DB_TYPE_SUPABASE:
        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_KEY")
        if not (url and key):
            logger.warning(" SUPABASE_URL / SUPABASE_KEY ausentes, no se crea el repositorio Supabase")
            return None
        logger.info(" Repositorio de retenciones: Supabase")
        return SupabaseDatabase(url, key)

    if tipo == DatabaseConfig.DB_TYPE_MEMORIA:
        logger.warning(" Repositorio de retenciones en memoria: los datos se pierden al reiniciar")
        return MemoriaDatabase()

    logger.error(f" DATABASE_TYPE '{tipo_db}' no soportado (opciones: supabase, memoria)")
    return None


def inicializar_servicio_retenciones() -> Tuple[Optional[RepositorioRetenciones], Optional[RetencionesService]]:
    """
    Inicializa repositorio y servicio desde variables de entorno.

    Returns:
        (repositorio, servicio), o (None, None) en modo degradado
    """
    tipo_db = DatabaseConfig.get_database_type()
    try:
        repositorio = crear_database_por_tipo(tipo_db)
        if repositorio is None:
            logger.warning(" API en modo degradado: calculo de retenciones sin persistencia")
            return None, None

        if not repositorio.health_check():
            logger.error(f" Health check fallido para el repositorio '{tipo_db}', modo degradado")
            return None, None

        servicio = crear_retenciones_service(repositorio)
        logger.info(f" Servicio de retenciones listo (repositorio: {tipo_db})")
        return repositorio, servicio

    except Exception as e:
        logger.error(f" Error inicializando el repositorio '{tipo_db}': {e}")
        logger.exception("Traceback completo del error:")
        return None, None


# Metadata del modulo
__version__ = "3.0.0"
__architecture__ = "Clean Architecture - Infrastructure Layer"
