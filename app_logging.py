"""
CONFIGURACION DE LOGGING - INFRASTRUCTURE LAYER
================================================

Modulo de infraestructura para configurar el logging del preliquidador de
retenciones. El nivel se toma de LOG_LEVEL cuando no se indica.

Autor: Sistema Preliquidador
Version: 3.0 - Clean Architecture
"""

import logging
import sys
from typing import Optional

from config import DatabaseConfig

# Librerias de transporte del cliente Supabase que registran cada request en INFO
LIBRERIAS_RUIDOSAS = ("httpx", "httpcore", "hpack")


def configurar_logging(nivel: Optional[str] = None) -> None:
    """
    Configura el logging de la aplicacion.

    CARACTERISTICAS:
    - Elimina handlers existentes para evitar duplicacion (reloader de uvicorn)
    - Formato con timestamp, modulo y nivel
    - Envia logs a la consola (stdout)
    - Baja a WARNING las librerias HTTP del cliente Supabase

    Args:
        nivel: Nivel de logging (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Default: variable LOG_LEVEL o "INFO"

    Example:
        >>> configurar_logging()  # LOG_LEVEL o INFO
        >>> configurar_logging("DEBUG")  # Modo debug
    """
    nivel = (nivel or DatabaseConfig.get_log_level()).upper()
    root_logger = logging.getLogger()

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    nivel_logging = getattr(logging, nivel, logging.INFO)
    root_logger.setLevel(nivel_logging)
    root_logger.addHandler(stream_handler)

    if nivel_logging > logging.DEBUG:
        for nombre in LIBRERIAS_RUIDOSAS:
            logging.getLogger(nombre).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Sistema de logging configurado - Nivel: {nivel}")


# Metadata del modulo
__version__ = "3.0.0"
__architecture__ = "Clean Architecture - Infrastructure Layer"
